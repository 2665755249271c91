"""Deployment Orchestrator.

Runs one deployment end to end:

1. cache check (a hit returns immediately)
2. clone the repository into a fresh working directory
3. rewrite the project manifest for relative asset paths
4. install + build
5. publish the build output under the project prefix
6. cache the result

The working directory is removed on every exit path. Errors raised by the
components pass through unchanged.

Concurrent deployments of the same project are not serialized; the last one
to finish publishing wins the key prefix.
"""

import asyncio
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID, uuid4

from app.config import settings
from app.core.cache import ResultCache, deployment_cache_key
from app.models.deployment import DeploymentRecord, DeploymentRequest, DeploymentResult
from app.services.build_service import BuildRunner
from app.services.git_service import SourceFetcher
from app.services.project_config import ProjectConfigurer
from app.services.storage_service import ArtifactPublisher, S3ObjectStore
from app.utils.logging import get_logger


class DeploymentOrchestrator:
    """Sequences fetch, configure, build, publish and cache for one request."""

    def __init__(
        self,
        cache: ResultCache,
        fetcher: SourceFetcher,
        configurer: ProjectConfigurer,
        builder: BuildRunner,
        publisher: ArtifactPublisher,
        cdn_base_url: str | None = None,
        work_root: Path | str | None = None,
        cache_ttl: int | None = None,
    ):
        self.cache = cache
        self.fetcher = fetcher
        self.configurer = configurer
        self.builder = builder
        self.publisher = publisher
        self.cdn_base_url = (cdn_base_url or settings.cdn_base_url).rstrip("/")
        self.work_root = Path(work_root or settings.temp_dir)
        self.cache_ttl = cache_ttl or settings.redis_ttl
        self.logger = get_logger("orchestrator")

    def public_url(self, project_name: str) -> str:
        return f"{self.cdn_base_url}/{project_name}/index.html"

    def working_directory(self, deployment_id: UUID) -> Path:
        return self.work_root / f"deploy-{deployment_id}"

    async def deploy(self, request: DeploymentRequest) -> DeploymentResult:
        """Deploy a static site, or serve the cached result.

        Raises:
            DeployError: Any classified component failure, unchanged
        """
        deployment_id = uuid4()
        start = time.perf_counter()
        log = self.logger.bind(
            deployment_id=str(deployment_id),
            project_name=request.project_name,
        )

        cache_key = deployment_cache_key(request.project_name, request.source_url)
        cached = await self.cache.get(cache_key)
        if isinstance(cached, dict) and cached.get("url"):
            log.info("orchestrator.deploy.cache_hit", url=cached["url"])
            return DeploymentResult(
                success=True,
                url=cached["url"],
                deployment_id=str(deployment_id),
                cached=True,
                duration_ms=_elapsed_ms(start),
                message="Deployment served from cache",
            )

        work_dir = self.working_directory(deployment_id)
        log.info(
            "orchestrator.deploy.started",
            source_url=request.source_url,
            build_command=request.build_command,
            output_dir=request.output_dir,
            work_dir=str(work_dir),
        )

        try:
            await asyncio.to_thread(self.work_root.mkdir, parents=True, exist_ok=True)

            project_path = await self.fetcher.fetch(
                request.source_url,
                work_dir,
                shallow=True,
                branch=request.branch,
            )
            await self.configurer.configure(project_path)

            output_path = await self.builder.build(
                project_path,
                build_command=request.build_command,
                output_dir=request.output_dir,
                no_source_map=True,
            )

            published = await self.publisher.publish(output_path, request.project_name)

            url = self.public_url(request.project_name)
            duration_ms = _elapsed_ms(start)
            record = DeploymentRecord(
                deployment_id=deployment_id,
                project_name=request.project_name,
                url=url,
                deployed_at=datetime.now(timezone.utc),
                duration_ms=duration_ms,
            )
            stored = await self.cache.set(cache_key, record.model_dump(mode="json"), self.cache_ttl)
            if not stored:
                log.warning("orchestrator.deploy.cache_write_skipped")

        except Exception as e:
            log.error(
                "orchestrator.deploy.failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=_elapsed_ms(start),
            )
            raise
        finally:
            await self._cleanup(work_dir, log)

        log.info(
            "orchestrator.deploy.completed",
            url=url,
            files=published.uploaded,
            duration_ms=duration_ms,
        )
        return DeploymentResult(
            success=True,
            url=url,
            deployment_id=str(deployment_id),
            cached=False,
            duration_ms=duration_ms,
            message="Project deployed successfully",
        )

    async def _cleanup(self, work_dir: Path, log) -> None:
        try:
            if await asyncio.to_thread(work_dir.exists):
                await asyncio.to_thread(shutil.rmtree, work_dir)
                log.info("orchestrator.cleanup.completed", work_dir=str(work_dir))
        except OSError as e:
            log.warning("orchestrator.cleanup.failed", work_dir=str(work_dir), error=str(e))


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


# Singleton instance
_orchestrator: DeploymentOrchestrator | None = None


def get_orchestrator() -> DeploymentOrchestrator:
    """Get the orchestrator singleton wired to the production components."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = DeploymentOrchestrator(
            cache=ResultCache(default_ttl=settings.redis_ttl),
            fetcher=SourceFetcher(),
            configurer=ProjectConfigurer(),
            builder=BuildRunner(),
            publisher=ArtifactPublisher(S3ObjectStore()),
        )
    return _orchestrator
