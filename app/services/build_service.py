"""Build runner.

Installs dependencies and runs the project's build command inside the
working directory, then locates the directory the build tool wrote to.
"""

import errno
import os
import shlex
import time
from pathlib import Path
from typing import Sequence

from app.config import settings
from app.core.exceptions import (
    BuildFailedError,
    BuildOutputNotFoundError,
    BuildTimeoutError,
    CommandNotFoundError,
    EmptyBuildOutputError,
    InsufficientSpaceError,
    ManifestNotFoundError,
    ValidationError,
)
from app.models.deployment import BuildTimings
from app.utils.logging import get_logger
from app.utils.process import ProcessResult, ProcessTimeoutError, run_process

MANIFEST_FILE = "package.json"

# Reproducible install first, then a tolerant one for peer-dependency conflicts
INSTALL_COMMANDS: tuple[str, ...] = (
    "npm ci",
    "npm install --legacy-peer-deps",
)

# Probed after the caller's output_dir: Vite/Rollup, Create React App, Next export
OUTPUT_DIR_CANDIDATES: tuple[str, ...] = ("dist", "build", "out")

COMMAND_NOT_FOUND_EXIT_CODE = 127


def build_environment(no_source_map: bool = True) -> dict[str, str]:
    """Environment for install and build commands."""
    env = os.environ.copy()
    env["NODE_ENV"] = "production"
    # Several build tools treat warnings differently or skip prompts under CI
    env["CI"] = "true"
    if no_source_map:
        env["GENERATE_SOURCEMAP"] = "false"
        env["VITE_SOURCEMAP"] = "false"
    return env


def output_candidates(output_dir: str | None) -> list[str]:
    """Ordered, de-duplicated output directory names to probe."""
    candidates: list[str] = []
    for name in (output_dir, *OUTPUT_DIR_CANDIDATES):
        if name and name not in candidates:
            candidates.append(name)
    return candidates


def _is_out_of_space(text: str) -> bool:
    return "ENOSPC" in text or "no space left on device" in text.lower()


class BuildRunner:
    """Runs install + build for a Node-based static site."""

    def __init__(
        self,
        timeout: float | None = None,
        install_commands: Sequence[str] = INSTALL_COMMANDS,
    ):
        self.timeout = timeout if timeout is not None else settings.build_timeout_seconds
        self.install_commands = tuple(install_commands)
        self.logger = get_logger("build")

    async def build(
        self,
        project_path: Path,
        build_command: str | None = None,
        output_dir: str | None = None,
        no_source_map: bool = True,
    ) -> Path:
        """Build the project and return the absolute output directory.

        Args:
            project_path: Root of the fetched project
            build_command: Shell-style command line, e.g. ``npm run build``
            output_dir: Preferred output directory, relative to the project
            no_source_map: Suppress source map generation

        Raises:
            ManifestNotFoundError: No package.json; nothing is spawned
            CommandNotFoundError, BuildTimeoutError, InsufficientSpaceError,
            BuildFailedError, BuildOutputNotFoundError, EmptyBuildOutputError
        """
        project_path = Path(project_path).resolve()
        build_command = build_command or settings.default_build_command

        if not (project_path / MANIFEST_FILE).is_file():
            raise ManifestNotFoundError(str(project_path / MANIFEST_FILE))

        env = build_environment(no_source_map)
        timings = BuildTimings()
        start = time.perf_counter()

        self.logger.info(
            "build.started",
            path=str(project_path),
            build_command=build_command,
            output_dir=output_dir,
        )

        try:
            install_start = time.perf_counter()
            await self._install(project_path, env, timings, start)
            timings.install_ms = _elapsed_ms(install_start)

            build_start = time.perf_counter()
            result = await self._run("build", build_command, project_path, env, timings, start)
            timings.build_ms = _elapsed_ms(build_start)
            if result.returncode != 0:
                raise self._failure("build", result, timings, start)

            timings.total_ms = _elapsed_ms(start)
            output_path = self._locate_output(project_path, output_dir, timings)
        except Exception as e:
            timings.total_ms = timings.total_ms or _elapsed_ms(start)
            self.logger.error(
                "build.failed",
                path=str(project_path),
                error=str(e),
                **timings.as_dict(),
            )
            raise

        self.logger.info(
            "build.completed",
            path=str(project_path),
            output=str(output_path),
            **timings.as_dict(),
        )
        return output_path

    async def _install(
        self,
        project_path: Path,
        env: dict[str, str],
        timings: BuildTimings,
        start: float,
    ) -> None:
        last_result: ProcessResult | None = None
        for attempt, command in enumerate(self.install_commands):
            if attempt > 0:
                self.logger.warning(
                    "build.install.fallback",
                    command=command,
                    previous_error=last_result.output_preview[-300:] if last_result else None,
                )
            result = await self._run("install", command, project_path, env, timings, start)
            if result.returncode == 0:
                self.logger.info(
                    "build.install.completed",
                    command=command,
                    duration_ms=result.duration_ms,
                )
                return
            last_result = result
            # A second install cannot succeed on a full disk
            if _is_out_of_space(result.stderr + result.stdout):
                break

        if last_result is None:
            return
        timings.install_ms = _elapsed_ms(start)
        raise self._failure("install", last_result, timings, start)

    async def _run(
        self,
        phase: str,
        command_line: str,
        project_path: Path,
        env: dict[str, str],
        timings: BuildTimings,
        start: float,
    ) -> ProcessResult:
        try:
            command = shlex.split(command_line)
        except ValueError as e:
            raise ValidationError(
                f"Unparseable {phase} command: {e}", {"phase": phase, "command": command_line}
            ) from e
        try:
            return await run_process(command, timeout=self.timeout, cwd=project_path, env=env)
        except FileNotFoundError as e:
            timings.total_ms = _elapsed_ms(start)
            raise CommandNotFoundError(command[0], {"phase": phase, **timings.as_dict()}) from e
        except ProcessTimeoutError as e:
            if phase == "install":
                timings.install_ms = _elapsed_ms(start)
            else:
                timings.build_ms = e.duration_ms
            timings.total_ms = _elapsed_ms(start)
            self.logger.error(
                "build.timeout",
                phase=phase,
                command=command_line,
                timeout=self.timeout,
            )
            raise BuildTimeoutError(phase, self.timeout, timings.as_dict()) from None
        except OSError as e:
            if e.errno == errno.ENOSPC:
                timings.total_ms = _elapsed_ms(start)
                raise InsufficientSpaceError(
                    f"Insufficient disk space during {phase}",
                    {"phase": phase, **timings.as_dict()},
                ) from e
            raise

    def _failure(
        self,
        phase: str,
        result: ProcessResult,
        timings: BuildTimings,
        start: float,
    ) -> Exception:
        timings.total_ms = _elapsed_ms(start)
        details = {
            "command": " ".join(result.command),
            "returncode": result.returncode,
            "output": result.output_preview,
            **timings.as_dict(),
        }
        if _is_out_of_space(result.stderr + result.stdout):
            return InsufficientSpaceError(f"Insufficient disk space during {phase}", details)
        if result.returncode == COMMAND_NOT_FOUND_EXIT_CODE:
            return CommandNotFoundError(result.command[0], details)

        lines = result.output_preview.strip().splitlines()
        message = lines[-1] if lines else f"exit code {result.returncode}"
        return BuildFailedError(phase, message, details)

    def _locate_output(
        self,
        project_path: Path,
        output_dir: str | None,
        timings: BuildTimings,
    ) -> Path:
        candidates = output_candidates(output_dir)
        for name in candidates:
            path = (project_path / name).resolve()
            # output_dir is sanitized upstream; still refuse anything outside the project
            if not path.is_relative_to(project_path):
                continue
            if path.is_dir():
                if not any(path.iterdir()):
                    raise EmptyBuildOutputError(str(path), timings.as_dict())
                return path

        raise BuildOutputNotFoundError(candidates, timings.as_dict())


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
