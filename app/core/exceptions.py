"""Classified exceptions for the deployment pipeline.

Every component raises one of these; the HTTP layer maps ``status_code``
and ``classification`` straight into the error response.
"""

from typing import Any


class DeployError(Exception):
    """Base exception for the deployer."""

    status_code: int = 500
    classification: str = "internal"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(DeployError):
    """Request or project input is invalid."""

    status_code = 400
    classification = "validation"


class NotFoundError(DeployError):
    status_code = 404
    classification = "not_found"


class PermissionDeniedError(DeployError):
    status_code = 403
    classification = "permission_denied"


class DeployTimeoutError(DeployError):
    status_code = 408
    classification = "timeout"


class InsufficientSpaceError(DeployError):
    status_code = 507
    classification = "resource_exhausted"


class UpstreamServiceError(DeployError):
    """Object store or cache backend failure."""

    status_code = 502
    classification = "upstream"


class InternalFailure(DeployError):
    status_code = 500
    classification = "internal"


# Source fetcher


class RepositoryNotFoundError(NotFoundError):
    """Repository absent or not visible to us."""

    def __init__(self, source_url: str, stderr: str = ""):
        super().__init__(
            f"Repository not found: {source_url}",
            {"source_url": source_url, "stderr": stderr[:500]},
        )


class RepositoryAccessError(PermissionDeniedError):
    def __init__(self, source_url: str, stderr: str = ""):
        super().__init__(
            f"Permission denied cloning repository: {source_url}",
            {"source_url": source_url, "stderr": stderr[:500]},
        )


class CloneTimeoutError(DeployTimeoutError):
    def __init__(self, source_url: str, timeout: float):
        super().__init__(
            f"Clone of {source_url} timed out after {timeout:g}s",
            {"source_url": source_url, "timeout_seconds": timeout},
        )


class SourceFetchError(ValidationError):
    """Generic git failure."""

    classification = "fetch_failed"

    def __init__(self, message: str, stderr: str = ""):
        details = {}
        if stderr:
            details["stderr"] = stderr[:500]
        super().__init__(f"Git operation failed: {message}", details)


# Project configuration and build


class ManifestNotFoundError(ValidationError):
    def __init__(self, path: str):
        super().__init__("package.json not found", {"path": path})


class ConfigurationError(InternalFailure):
    """Project manifest could not be rewritten."""

    def __init__(self, message: str, path: str):
        super().__init__(
            f"Failed to update package.json configuration: {message}",
            {"path": path},
        )


class CommandNotFoundError(InternalFailure):
    classification = "command_not_found"

    def __init__(self, command: str, details: dict[str, Any] | None = None):
        super().__init__(
            f"Command not found: {command}",
            {"command": command, **(details or {})},
        )


class BuildTimeoutError(DeployTimeoutError):
    def __init__(self, phase: str, timeout: float, details: dict[str, Any] | None = None):
        super().__init__(
            f"Build {phase} timed out after {timeout:g}s",
            {"phase": phase, "timeout_seconds": timeout, **(details or {})},
        )
        self.phase = phase


class BuildFailedError(InternalFailure):
    """Build tool exited with a nonzero status."""

    classification = "build_failed"

    def __init__(self, phase: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            f"Build process failed during {phase}: {message}",
            {"phase": phase, **(details or {})},
        )
        self.phase = phase


class BuildOutputNotFoundError(InternalFailure):
    def __init__(self, candidates: list[str], details: dict[str, Any] | None = None):
        super().__init__(
            "Build directory not found. Ensure your project outputs one of: "
            + ", ".join(candidates),
            {"candidates": candidates, **(details or {})},
        )


class EmptyBuildOutputError(InternalFailure):
    def __init__(self, path: str, details: dict[str, Any] | None = None):
        super().__init__(
            f"Build output directory is empty: {path}",
            {"path": path, **(details or {})},
        )


# Artifact publisher


class BucketNotFoundError(UpstreamServiceError):
    def __init__(self, bucket: str):
        super().__init__(f"Bucket not found: {bucket}", {"bucket": bucket})


class AccessDeniedError(PermissionDeniedError):
    def __init__(self, bucket: str, key: str | None = None):
        super().__init__(
            f"Access denied to bucket: {bucket}",
            {"bucket": bucket, "key": key},
        )


class NetworkError(UpstreamServiceError):
    def __init__(self, message: str):
        super().__init__(f"Object store unreachable: {message}")


class PartialUploadError(UpstreamServiceError):
    """Some uploads in a publish run failed."""

    classification = "partial_upload"

    def __init__(self, failed: int, uploaded: int, cause: str):
        super().__init__(
            f"{failed} of {failed + uploaded} files failed to upload: {cause}",
            {"failed": failed, "uploaded": uploaded, "cause": cause},
        )
        self.failed = failed
        self.uploaded = uploaded


# Result cache


class CacheNotInitializedError(UpstreamServiceError):
    def __init__(self) -> None:
        super().__init__("Redis client not initialized. Call connect_redis() first.")
