"""Core functionality for the deployer."""

from app.core.cache import ResultCache, deployment_cache_key
from app.core.exceptions import (
    DeployError,
    DeployTimeoutError,
    InsufficientSpaceError,
    InternalFailure,
    NotFoundError,
    PartialUploadError,
    PermissionDeniedError,
    UpstreamServiceError,
    ValidationError,
)
from app.core.orchestrator import DeploymentOrchestrator, get_orchestrator

__all__ = [
    "DeployError",
    "DeployTimeoutError",
    "InsufficientSpaceError",
    "InternalFailure",
    "NotFoundError",
    "PartialUploadError",
    "PermissionDeniedError",
    "UpstreamServiceError",
    "ValidationError",
    "ResultCache",
    "deployment_cache_key",
    "DeploymentOrchestrator",
    "get_orchestrator",
]
