"""Pipeline stages: fetch, configure, build, publish."""

from app.services.build_service import BuildRunner
from app.services.git_service import SourceFetcher
from app.services.project_config import ProjectConfigurer
from app.services.storage_service import ArtifactPublisher, S3ObjectStore

__all__ = [
    "ArtifactPublisher",
    "BuildRunner",
    "ProjectConfigurer",
    "S3ObjectStore",
    "SourceFetcher",
]
