"""Source fetcher.

Clones a remote repository into a local working directory with the git CLI.
A single attempt is made; retrying is left to the caller.
"""

import os
from pathlib import Path

from app.config import settings
from app.core.exceptions import (
    CloneTimeoutError,
    CommandNotFoundError,
    RepositoryAccessError,
    RepositoryNotFoundError,
    SourceFetchError,
)
from app.utils.logging import get_logger
from app.utils.process import ProcessTimeoutError, run_process

# With prompts disabled, GitHub answers a missing repository with a
# credential request, so the prompt failures count as not found.
NOT_FOUND_MARKERS = (
    "repository not found",
    "not found",
    "does not exist",
    "does not appear to be a git repository",
    "remote branch",
    "could not read username",
    "terminal prompts disabled",
)
PERMISSION_MARKERS = (
    "permission denied",
    "authentication failed",
    "access denied",
    "returned error: 403",
    "error: 403",
)


class SourceFetcher:
    """Clones repositories with ``git clone``."""

    def __init__(self, timeout: float | None = None, git_executable: str = "git"):
        self.timeout = timeout if timeout is not None else settings.clone_timeout_seconds
        self.git_executable = git_executable
        self.logger = get_logger("fetcher")

    def build_command(
        self,
        remote_url: str,
        dest_path: Path,
        shallow: bool = True,
        branch: str | None = None,
    ) -> list[str]:
        cmd = [self.git_executable, "clone"]
        if shallow:
            cmd.extend(["--depth", "1"])
        if branch:
            cmd.extend(["--branch", branch, "--single-branch"])
        cmd.extend(["--", remote_url, str(dest_path)])
        return cmd

    async def fetch(
        self,
        remote_url: str,
        dest_path: Path,
        shallow: bool = True,
        branch: str | None = None,
    ) -> Path:
        """Clone ``remote_url`` into ``dest_path`` and return ``dest_path``."""
        cmd = self.build_command(remote_url, dest_path, shallow=shallow, branch=branch)

        env = os.environ.copy()
        # Never block on a credential prompt
        env["GIT_TERMINAL_PROMPT"] = "0"

        self.logger.info(
            "fetcher.clone.started",
            url=remote_url,
            dest=str(dest_path),
            shallow=shallow,
            branch=branch,
        )

        try:
            result = await run_process(cmd, timeout=self.timeout, env=env)
        except FileNotFoundError as e:
            raise CommandNotFoundError(self.git_executable) from e
        except ProcessTimeoutError:
            self.logger.error("fetcher.clone.timeout", url=remote_url, timeout=self.timeout)
            raise CloneTimeoutError(remote_url, self.timeout) from None

        if result.returncode != 0:
            self.logger.error(
                "fetcher.clone.failed",
                url=remote_url,
                returncode=result.returncode,
                error_preview=result.stderr[:500],
            )
            raise classify_clone_failure(remote_url, result.stderr)

        self.logger.info(
            "fetcher.clone.completed",
            url=remote_url,
            dest=str(dest_path),
            duration_ms=result.duration_ms,
        )
        return dest_path


def classify_clone_failure(remote_url: str, stderr: str) -> Exception:
    """Map git's stderr onto the fetcher's error taxonomy."""
    lowered = stderr.lower()
    if any(marker in lowered for marker in NOT_FOUND_MARKERS):
        return RepositoryNotFoundError(remote_url, stderr)
    if any(marker in lowered for marker in PERMISSION_MARKERS):
        return RepositoryAccessError(remote_url, stderr)
    last_line = stderr.strip().splitlines()[-1] if stderr.strip() else "git clone failed"
    return SourceFetchError(last_line, stderr)
