"""Data models for the deployer."""

from app.models.deployment import (
    BuildTimings,
    DeploymentRecord,
    DeploymentRequest,
    DeploymentResult,
    PublishResult,
    UploadUnit,
)

__all__ = [
    "BuildTimings",
    "DeploymentRecord",
    "DeploymentRequest",
    "DeploymentResult",
    "PublishResult",
    "UploadUnit",
]
