import hashlib

from opendata_search.embeddings.cache import EmbeddingCache
from opendata_search.embeddings.index import ItemIndex

from conftest import make_item


def test_key_is_sha256_of_utf8_text():
    expected = hashlib.sha256("保育園".encode("utf-8")).hexdigest()
    assert EmbeddingCache.key_for("保育園") == expected
    assert EmbeddingCache.key_for("a") != EmbeddingCache.key_for("a ")


def test_put_get_and_clear():
    cache = EmbeddingCache()
    key = cache.key_for("text")

    assert cache.get(key) is None
    cache.put(key, [0.1, 0.2])

    assert key in cache
    assert cache.get(key) == [0.1, 0.2]
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test_optional_lru_cap():
    cache = EmbeddingCache(max_size=2)
    cache.put("a", [1.0])
    cache.put("b", [2.0])
    cache.get("a")
    cache.put("c", [3.0])

    assert "a" in cache
    assert "b" not in cache
    assert "c" in cache


def test_index_stats_and_atomic_replace():
    index = ItemIndex()
    index.replace_all([make_item("old")])

    fresh = [
        make_item("a", category="子育て", embedding=[1.0, 0.0]),
        make_item("b", category="子育て").mark_unembeddable(),
        make_item("c", category="交通"),
    ]
    index.replace_all(fresh)

    assert "old" not in index
    assert [i.id for i in index.snapshot()] == ["a", "b", "c"]
    assert [i.id for i in index.embedded_items()] == ["a"]
    assert index.get_stats() == {
        "total_items": 3,
        "items_with_embeddings": 1,
        "unembeddable_items": 1,
        "category_counts": {"子育て": 2, "交通": 1},
    }


def test_repeated_id_keeps_last_occurrence():
    index = ItemIndex()
    index.replace_all(
        [make_item("a", title="before", embedding=[1.0]), make_item("a", title="after")]
    )

    assert len(index) == 1
    assert index.get("a").title == "after"
    assert index.get("a").embedding is None
