"""Deployment data models."""

import posixpath
import re
import shlex
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.config import settings

GITHUB_URL_PATTERN = re.compile(r"^https://github\.com/[^/]+/[^/]+?(?:\.git)?$")
PROJECT_NAME_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

# Names that collide with routes or well-known prefixes on the CDN
RESERVED_PROJECT_NAMES = frozenset(
    {
        "admin",
        "api",
        "assets",
        "cdn",
        "health",
        "internal",
        "static",
        "status",
        "v1",
        "www",
    }
)


class DeploymentRequest(BaseModel):
    """Request to deploy a static site."""

    source_url: str = Field(description="GitHub repository URL")
    project_name: str = Field(min_length=3, max_length=50)
    build_command: str = Field(
        default_factory=lambda: settings.default_build_command,
        description=(
            "Build command, split into arguments and run without a shell. "
            "Shell syntax such as pipes, &&, or VAR=value prefixes is not supported."
        ),
    )
    output_dir: str = Field(default_factory=lambda: settings.default_output_dir)
    branch: str | None = None

    @field_validator("source_url")
    @classmethod
    def validate_source_url(cls, value: str) -> str:
        value = value.strip()
        if not GITHUB_URL_PATTERN.match(value):
            raise ValueError(
                "Invalid GitHub URL format. Must be a valid GitHub repository URL."
            )
        return value

    @field_validator("project_name")
    @classmethod
    def validate_project_name(cls, value: str) -> str:
        if not PROJECT_NAME_PATTERN.match(value):
            raise ValueError(
                "Project name must contain only lowercase alphanumeric characters and hyphens."
            )
        if value in RESERVED_PROJECT_NAMES:
            raise ValueError(f"Project name '{value}' is reserved.")
        return value

    @field_validator("build_command")
    @classmethod
    def validate_build_command(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Build command must not be empty.")
        try:
            shlex.split(value)
        except ValueError as e:
            raise ValueError(f"Build command could not be parsed: {e}.") from e
        return value.strip()

    @field_validator("output_dir")
    @classmethod
    def validate_output_dir(cls, value: str) -> str:
        candidate = value.strip().replace("\\", "/")
        if not candidate or candidate.startswith("/") or re.match(r"^[a-zA-Z]:", candidate):
            raise ValueError("Output directory must be a relative path.")
        normalized = posixpath.normpath(candidate)
        if normalized == ".." or normalized.startswith("../"):
            raise ValueError("Output directory must not escape the project directory.")
        if normalized == ".":
            raise ValueError("Output directory must be a subdirectory of the project.")
        return normalized

    @field_validator("branch")
    @classmethod
    def validate_branch(cls, value: str | None) -> str | None:
        if value is not None and (not value.strip() or value.startswith("-")):
            raise ValueError("Invalid branch name.")
        return value


class DeploymentRecord(BaseModel):
    """A finished deployment, as stored in the result cache."""

    deployment_id: UUID
    project_name: str
    url: str
    deployed_at: datetime
    duration_ms: int = 0


class DeploymentResult(BaseModel):
    """Result of a deployment."""

    success: bool
    url: str = ""
    deployment_id: str = ""
    cached: bool = False
    duration_ms: int = 0
    message: str = ""


@dataclass(frozen=True)
class UploadUnit:
    """One file to publish."""

    local_path: Path
    object_key: str
    content_type: str
    cache_control: str
    content_encoding: str | None = None


@dataclass(frozen=True)
class PublishResult:
    uploaded: int
    failed: int
    total: int
    batches: int


@dataclass
class BuildTimings:
    """Elapsed time per build phase, in milliseconds."""

    install_ms: int = 0
    build_ms: int = 0
    total_ms: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "install_ms": self.install_ms,
            "build_ms": self.build_ms,
            "total_ms": self.total_ms,
        }
