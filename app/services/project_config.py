"""Deployment-specific adjustments to a fetched project."""

import asyncio
import json
from pathlib import Path

from app.core.exceptions import ConfigurationError, ManifestNotFoundError
from app.utils.logging import get_logger

MANIFEST_FILE = "package.json"


class ProjectConfigurer:
    """Rewrites ``homepage`` in package.json so built asset paths are relative.

    Sites are served from ``<cdn>/<project>/``, so absolute asset URLs would
    point at the CDN root.
    """

    homepage = "."

    def __init__(self):
        self.logger = get_logger("configurer")

    async def configure(self, project_path: Path) -> Path:
        return await asyncio.to_thread(self._rewrite_manifest, project_path)

    def _rewrite_manifest(self, project_path: Path) -> Path:
        manifest = project_path / MANIFEST_FILE
        if not manifest.is_file():
            raise ManifestNotFoundError(str(manifest))

        try:
            package = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(str(e), str(manifest)) from e

        if not isinstance(package, dict):
            raise ConfigurationError("manifest is not a JSON object", str(manifest))

        if package.get("homepage") != self.homepage:
            package["homepage"] = self.homepage
            try:
                manifest.write_text(json.dumps(package, indent=2) + "\n", encoding="utf-8")
            except OSError as e:
                raise ConfigurationError(str(e), str(manifest)) from e

        self.logger.info("configurer.homepage_updated", path=str(manifest))
        return manifest
