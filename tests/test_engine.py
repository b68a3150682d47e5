import pytest

from opendata_search.config import Settings
from opendata_search.core.errors import ConfigurationError
from opendata_search.retrieval.engine import RetrievalEngine
from opendata_search.retrieval.models import Query, SearchMethod
from opendata_search.retrieval.strategies import CloudVectorStrategy
from opendata_search.sources import vertex as vertex_module
from opendata_search.sources.vertex import VertexVectorSearchClient

from conftest import FakeEmbedder, FakeSource, make_item


def _settings(**overrides):
    return Settings(_env_file=None, index_batch_delay=0.0, **overrides)


@pytest.mark.asyncio
async def test_stats_before_and_after_initialize(childcare_items):
    engine = RetrievalEngine.build(
        FakeEmbedder(fail_on=["図書館"]), FakeSource(childcare_items), batch_delay=0.0
    )

    stats = engine.get_stats()
    assert stats["total_items"] == 0
    assert stats["is_initialized"] is False
    assert stats["in_flight"] is False

    await engine.initialize()
    stats = engine.get_stats()

    assert stats["total_items"] == 4
    assert stats["items_with_embeddings"] == 3
    assert stats["unembeddable_items"] == 1
    assert stats["is_initialized"] is True
    assert stats["category_counts"] == {"子育て": 2, "観光": 1, "教育": 1}
    assert stats["embedding_cache_size"] == 3
    assert stats["cache_size"] == 0


@pytest.mark.asyncio
async def test_reinitialize_rebuilds_and_drops_cached_results(childcare_items):
    source = FakeSource(childcare_items)
    engine = RetrievalEngine.build(
        FakeEmbedder(), source, dynamic_search=False, batch_delay=0.0
    )

    await engine.search(Query(text="保育園"))
    assert engine.get_stats()["cache_size"] == 1

    source.items = [make_item("new-nursery", title="新しい保育園", content="保育園")]
    summary = await engine.reinitialize_index()

    assert summary["items"] == 1
    assert engine.get_stats()["cache_size"] == 0

    result = await engine.search(Query(text="保育園"))
    assert result.used_cache is False
    assert [i.id for i in result.items] == ["new-nursery"]


@pytest.mark.asyncio
async def test_operations_without_source_raise_configuration_error():
    engine = RetrievalEngine.build(FakeEmbedder())

    with pytest.raises(ConfigurationError):
        await engine.initialize()
    with pytest.raises(ConfigurationError):
        await engine.reinitialize_index()


def test_from_settings_builds_chain_in_order():
    engine = RetrievalEngine.from_settings(
        _settings(), source=FakeSource([]), embedder=FakeEmbedder()
    )

    names = [s.name for s in engine.orchestrator.strategies]
    assert names == ["dynamic", "vertex", "local", "text", "static_fallback"]


def test_from_settings_can_disable_dynamic_search():
    engine = RetrievalEngine.from_settings(
        _settings(dynamic_search_enabled=False),
        source=FakeSource([]),
        embedder=FakeEmbedder(),
    )

    names = [s.name for s in engine.orchestrator.strategies]
    assert names == ["vertex", "local", "text", "static_fallback"]


def test_from_settings_attaches_configured_vertex_client():
    engine = RetrievalEngine.from_settings(
        _settings(
            gcp_project_id="project",
            vertex_index_endpoint_id="endpoint",
            vertex_deployed_index_id="deployed",
            vertex_access_token="token",
        ),
        source=FakeSource([]),
        embedder=FakeEmbedder(),
    )

    cloud = next(
        s for s in engine.orchestrator.strategies if isinstance(s, CloudVectorStrategy)
    )
    assert isinstance(cloud.client, VertexVectorSearchClient)
    assert cloud.client.is_configured


def test_from_settings_leaves_unconfigured_vertex_detached(monkeypatch):
    monkeypatch.setattr(vertex_module.settings, "vertex_access_token", None)
    engine = RetrievalEngine.from_settings(
        _settings(), source=FakeSource([]), embedder=FakeEmbedder()
    )

    cloud = next(
        s for s in engine.orchestrator.strategies if isinstance(s, CloudVectorStrategy)
    )
    assert cloud.client is None


@pytest.mark.asyncio
async def test_result_cache_settings_are_applied():
    engine = RetrievalEngine.from_settings(
        _settings(result_cache_ttl=42.0, result_cache_max_size=7, embedding_cache_max_size=5),
        source=FakeSource([]),
        embedder=FakeEmbedder(),
    )

    assert engine.result_cache.ttl == 42.0
    assert engine.result_cache.max_size == 7
    assert engine.get_stats()["result_cache"]["max_size"] == 7
