"""Pytest configuration and fixtures."""

import json
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.deps import get_deployer
from app.core.cache import ResultCache
from app.core.orchestrator import DeploymentOrchestrator
from app.main import app
from app.services.project_config import ProjectConfigurer
from app.services.storage_service import ArtifactPublisher
from tests.fakes import FakeRedis, InMemoryObjectStore, StubBuilder, StubFetcher

CDN_BASE = "https://cdn.example.com"


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A project directory with a package.json."""
    project = tmp_path / "project"
    project.mkdir()
    package_json = {
        "name": "test-project",
        "scripts": {"build": "vite build"},
    }
    (project / "package.json").write_text(json.dumps(package_json))
    return project


@pytest.fixture
def make_orchestrator(tmp_path: Path, fake_redis: FakeRedis):
    """Build an orchestrator around stub fetch/build and an in-memory store."""

    def factory(
        fetcher: StubFetcher | None = None,
        builder: StubBuilder | None = None,
        store: InMemoryObjectStore | None = None,
        cache: ResultCache | None = None,
    ) -> DeploymentOrchestrator:
        return DeploymentOrchestrator(
            cache=cache or ResultCache(client_provider=lambda: fake_redis),
            fetcher=fetcher or StubFetcher(),
            configurer=ProjectConfigurer(),
            builder=builder or StubBuilder(),
            publisher=ArtifactPublisher(store or InMemoryObjectStore(), concurrency=4),
            cdn_base_url=CDN_BASE,
            work_root=tmp_path / "work",
            cache_ttl=120,
        )

    return factory


@pytest.fixture
def api_orchestrator(make_orchestrator) -> DeploymentOrchestrator:
    return make_orchestrator()


@pytest.fixture
async def client(api_orchestrator: DeploymentOrchestrator) -> AsyncClient:
    """Async test client whose deployer uses stubbed pipeline stages."""
    app.dependency_overrides[get_deployer] = lambda: api_orchestrator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
