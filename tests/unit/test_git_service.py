"""Unit tests for the source fetcher."""

import shutil
import subprocess
from pathlib import Path

import pytest

from app.core.exceptions import (
    CloneTimeoutError,
    CommandNotFoundError,
    RepositoryAccessError,
    RepositoryNotFoundError,
    SourceFetchError,
)
from app.services.git_service import SourceFetcher, classify_clone_failure

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def make_local_repo(path: Path) -> Path:
    """Create a small repository with two commits."""
    path.mkdir()
    git = ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com"]
    subprocess.run(["git", "init", "-q", str(path)], check=True)
    (path / "package.json").write_text('{"name": "demo"}')
    subprocess.run([*git, "-C", str(path), "add", "."], check=True)
    subprocess.run([*git, "-C", str(path), "commit", "-q", "-m", "first"], check=True)
    (path / "README.md").write_text("demo")
    subprocess.run([*git, "-C", str(path), "add", "."], check=True)
    subprocess.run([*git, "-C", str(path), "commit", "-q", "-m", "second"], check=True)
    return path


class TestBuildCommand:
    def test_shallow_clone(self):
        cmd = SourceFetcher().build_command("https://github.com/acme/demo", Path("/tmp/x"))
        assert cmd == ["git", "clone", "--depth", "1", "--", "https://github.com/acme/demo", "/tmp/x"]

    def test_branch_selector(self):
        cmd = SourceFetcher().build_command(
            "https://github.com/acme/demo",
            Path("/tmp/x"),
            shallow=False,
            branch="gh-pages",
        )
        assert "--depth" not in cmd
        assert cmd[2:5] == ["--branch", "gh-pages", "--single-branch"]


class TestClassifyCloneFailure:
    @pytest.mark.parametrize(
        "stderr,expected",
        [
            ("remote: Repository not found.\nfatal: repository 'x' not found", RepositoryNotFoundError),
            ("fatal: Remote branch nope not found in upstream origin", RepositoryNotFoundError),
            (
                "fatal: could not read Username for 'https://github.com': terminal prompts disabled",
                RepositoryNotFoundError,
            ),
            ("fatal: repository 'https://github.com/acme/site403/' not found", RepositoryNotFoundError),
            ("fatal: '/tmp/nowhere' does not appear to be a git repository", RepositoryNotFoundError),
            ("remote: Forbidden\nfatal: unable to access: The requested URL returned error: 403", RepositoryAccessError),
            ("git@github.com: Permission denied (publickey).", RepositoryAccessError),
            ("fatal: unable to access: Could not resolve host: github.com", SourceFetchError),
            ("", SourceFetchError),
        ],
    )
    def test_classification(self, stderr: str, expected: type):
        assert isinstance(classify_clone_failure("https://github.com/acme/demo", stderr), expected)

    def test_status_codes(self):
        assert classify_clone_failure("u", "Repository not found").status_code == 404
        assert classify_clone_failure("u", "Permission denied").status_code == 403
        assert classify_clone_failure("u", "boom").status_code == 400

    def test_status_digits_in_url_are_not_a_denial(self):
        url = "https://github.com/acme/site403"
        stderr = "remote: Repository not found.\nfatal: repository 'https://github.com/acme/site403/' not found"

        error = classify_clone_failure(url, stderr)

        assert isinstance(error, RepositoryNotFoundError)
        assert error.status_code == 404


class TestSourceFetcher:
    """Tests for SourceFetcher."""

    @pytest.mark.asyncio
    async def test_missing_git_binary(self, tmp_path: Path):
        fetcher = SourceFetcher(git_executable="git-binary-that-does-not-exist")

        with pytest.raises(CommandNotFoundError):
            await fetcher.fetch("https://github.com/acme/demo", tmp_path / "clone")

    @requires_git
    @pytest.mark.asyncio
    async def test_shallow_clone_of_local_repo(self, tmp_path: Path):
        origin = make_local_repo(tmp_path / "origin")
        dest = tmp_path / "clone"

        result = await SourceFetcher(timeout=60).fetch(f"file://{origin}", dest, shallow=True)

        assert result == dest
        assert (dest / "package.json").exists()
        log = subprocess.run(
            ["git", "-C", str(dest), "rev-list", "--count", "HEAD"],
            check=True,
            capture_output=True,
            text=True,
        )
        assert log.stdout.strip() == "1"

    @requires_git
    @pytest.mark.asyncio
    async def test_missing_repository(self, tmp_path: Path):
        with pytest.raises(RepositoryNotFoundError) as exc_info:
            await SourceFetcher(timeout=60).fetch(
                f"file://{tmp_path / 'nowhere'}",
                tmp_path / "clone",
            )

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path: Path):
        script = tmp_path / "slow-git"
        script.write_text("#!/bin/sh\nexec sleep 30\n")
        script.chmod(0o755)
        fetcher = SourceFetcher(timeout=0.5, git_executable=str(script))

        with pytest.raises(CloneTimeoutError) as exc_info:
            await fetcher.fetch("https://github.com/acme/demo", tmp_path / "clone")

        assert exc_info.value.status_code == 408
