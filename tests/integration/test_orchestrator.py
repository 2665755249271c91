"""Integration tests for the deployment orchestrator."""

import json

import pytest

from app.core.cache import ResultCache, deployment_cache_key
from app.core.exceptions import (
    BuildFailedError,
    BuildTimeoutError,
    CacheNotInitializedError,
    PartialUploadError,
    RepositoryNotFoundError,
)
from app.models.deployment import DeploymentRequest
from tests.fakes import FakeRedis, InMemoryObjectStore, StubBuilder, StubFetcher

CDN_BASE = "https://cdn.example.com"


@pytest.fixture
def request_data() -> DeploymentRequest:
    return DeploymentRequest(
        source_url="https://github.com/acme/demo",
        project_name="demo-site",
    )


class TestDeploymentOrchestrator:
    """Tests for DeploymentOrchestrator."""

    @pytest.mark.asyncio
    async def test_first_deploy_then_cache_hit(self, make_orchestrator, request_data, fake_redis):
        fetcher = StubFetcher()
        builder = StubBuilder()
        store = InMemoryObjectStore()
        orchestrator = make_orchestrator(fetcher=fetcher, builder=builder, store=store)

        first = await orchestrator.deploy(request_data)

        assert first.success is True
        assert first.cached is False
        assert first.url == f"{CDN_BASE}/demo-site/index.html"
        assert set(store.objects) == {"demo-site/index.html", "demo-site/assets/main.js"}

        key = deployment_cache_key("demo-site", "https://github.com/acme/demo")
        record = json.loads(fake_redis.data[key])
        assert record["url"] == first.url
        assert record["deployment_id"] == first.deployment_id
        assert record["project_name"] == "demo-site"
        assert fake_redis.ttls[key] == 120

        second = await orchestrator.deploy(request_data)

        assert second.success is True
        assert second.cached is True
        assert second.url == first.url
        assert second.deployment_id != first.deployment_id
        # Served from cache: nothing else ran
        assert len(fetcher.calls) == 1
        assert builder.calls == 1
        assert len(store.calls) == 2

    @pytest.mark.asyncio
    async def test_cache_key_includes_source(self, make_orchestrator, request_data):
        fetcher = StubFetcher()
        orchestrator = make_orchestrator(fetcher=fetcher)

        await orchestrator.deploy(request_data)
        await orchestrator.deploy(
            DeploymentRequest(source_url="https://github.com/acme/other", project_name="demo-site")
        )

        assert len(fetcher.calls) == 2

    @pytest.mark.asyncio
    async def test_configures_manifest(self, make_orchestrator, request_data):
        class InspectingBuilder(StubBuilder):
            async def build(self, project_path, **kwargs):
                self.homepage = json.loads((project_path / "package.json").read_text())["homepage"]
                self.kwargs = kwargs
                return await super().build(project_path, **kwargs)

        builder = InspectingBuilder()
        orchestrator = make_orchestrator(builder=builder)

        await orchestrator.deploy(request_data)

        assert builder.homepage == "."
        assert builder.kwargs == {
            "build_command": "npm run build",
            "output_dir": "build",
            "no_source_map": True,
        }

    @pytest.mark.asyncio
    async def test_working_directory_removed_on_success(self, make_orchestrator, request_data):
        fetcher = StubFetcher()
        orchestrator = make_orchestrator(fetcher=fetcher)

        await orchestrator.deploy(request_data)

        assert not fetcher.calls[0].exists()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "stage,error",
        [
            ("fetch", RepositoryNotFoundError("https://github.com/acme/demo")),
            ("build", BuildFailedError("build", "exit code 1")),
            ("build", BuildTimeoutError("build", 600)),
            ("publish", None),
        ],
    )
    async def test_working_directory_removed_on_failure(
        self, make_orchestrator, request_data, fake_redis, stage, error
    ):
        fetcher = StubFetcher(error=error if stage == "fetch" else None)
        builder = StubBuilder(error=error if stage == "build" else None)
        store = InMemoryObjectStore(fail_keys={"demo-site/index.html"})
        orchestrator = make_orchestrator(fetcher=fetcher, builder=builder, store=store)

        expected = type(error) if error is not None else PartialUploadError
        with pytest.raises(expected) as exc_info:
            await orchestrator.deploy(request_data)

        # The component's error passes through untouched
        if error is not None:
            assert exc_info.value is error
        assert not fetcher.calls[0].exists()
        assert fake_redis.data == {}

    @pytest.mark.asyncio
    async def test_unique_working_directories(self, make_orchestrator, request_data):
        fetcher = StubFetcher()
        orchestrator = make_orchestrator(fetcher=fetcher, cache=ResultCache(lambda: FakeRedis()))

        await orchestrator.deploy(request_data)
        await orchestrator.deploy(request_data)

        assert len(set(fetcher.calls)) == 2

    @pytest.mark.asyncio
    async def test_deploys_without_cache_store(self, make_orchestrator, request_data):
        def not_initialized():
            raise CacheNotInitializedError()

        cache = ResultCache(client_provider=not_initialized)
        fetcher = StubFetcher()
        orchestrator = make_orchestrator(fetcher=fetcher, cache=cache)

        first = await orchestrator.deploy(request_data)
        second = await orchestrator.deploy(request_data)

        assert first.success is True
        assert second.cached is False
        assert cache.enabled is False
        assert len(fetcher.calls) == 2

    @pytest.mark.asyncio
    async def test_cache_write_failure_is_not_fatal(self, make_orchestrator, request_data):
        from redis.exceptions import ConnectionError as RedisConnectionError

        broken = FakeRedis()
        orchestrator = make_orchestrator(cache=ResultCache(client_provider=lambda: broken))

        async def failing_setex(*args, **kwargs):
            raise RedisConnectionError("connection lost")

        broken.setex = failing_setex

        result = await orchestrator.deploy(request_data)

        assert result.success is True
        assert result.url == f"{CDN_BASE}/demo-site/index.html"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("entry", ['"x"', "[1, 2]", '{"deployment_id": "abc"}'])
    async def test_unusable_cache_entry_is_a_miss(
        self, make_orchestrator, request_data, fake_redis, entry
    ):
        key = deployment_cache_key("demo-site", "https://github.com/acme/demo")
        fake_redis.data[key] = entry
        fetcher = StubFetcher()
        orchestrator = make_orchestrator(fetcher=fetcher)

        result = await orchestrator.deploy(request_data)

        assert result.cached is False
        assert len(fetcher.calls) == 1
        assert json.loads(fake_redis.data[key])["url"] == result.url
