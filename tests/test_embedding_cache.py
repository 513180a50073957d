"""
Tests for the SQLite embedding cache and the caching provider wrapper.
"""

import pytest

from kbase.errors import ProviderError
from kbase.protocol import EmbeddingCacheProtocol
from kbase.providers.embedding_cache import (
    CachingEmbeddingProvider, SQLiteEmbeddingCache, content_hash,
)

from conftest import FailingEmbeddingProvider, MockEmbeddingProvider


@pytest.fixture
def cache(tmp_path):
    c = SQLiteEmbeddingCache(tmp_path / "embedding_cache.db")
    yield c
    c.close()


class TestSQLiteEmbeddingCache:

    def test_satisfies_protocol(self, cache):
        assert isinstance(cache, EmbeddingCacheProtocol)

    def test_miss_then_hit(self, cache):
        assert cache.get("hello") is None
        cache.put("hello", [0.5, -0.25, 1.0])
        assert cache.get("hello") == [0.5, -0.25, 1.0]
        assert cache.has("hello")
        assert not cache.has("other")

    def test_float32_precision(self, cache):
        cache.put("x", [0.1, 0.2])
        assert cache.get("x") == pytest.approx([0.1, 0.2], rel=1e-6)

    def test_replace(self, cache):
        cache.put("x", [1.0])
        cache.put("x", [2.0, 3.0])
        assert cache.get("x") == [2.0, 3.0]
        assert cache.size() == 1

    def test_clear(self, cache):
        cache.put("a", [1.0])
        cache.put("b", [1.0])
        assert cache.size() == 2
        cache.clear()
        assert cache.size() == 0

    def test_stats(self, cache, tmp_path):
        assert cache.stats()["size"] == 0
        cache.put("a", [1.0])
        stats = cache.stats()
        assert stats["size"] == 1
        assert stats["oldest"] is not None
        assert stats["path"] == str(tmp_path / "embedding_cache.db")

    def test_persists(self, tmp_path):
        path = tmp_path / "c.db"
        first = SQLiteEmbeddingCache(path)
        first.put("kept", [0.5])
        first.close()
        second = SQLiteEmbeddingCache(path)
        assert second.get("kept") == [0.5]
        second.close()

    def test_content_hash(self):
        assert content_hash("a") == content_hash("a")
        assert content_hash("a") != content_hash("b")
        assert len(content_hash("a")) == 64


class TestCachingEmbeddingProvider:

    def test_second_embed_is_a_hit(self, cache):
        inner = MockEmbeddingProvider()
        provider = CachingEmbeddingProvider(inner, cache)
        first = provider.embed("some text")
        second = provider.embed("some text")
        assert second == pytest.approx(first, rel=1e-6)
        assert inner.embed_calls == 1
        assert provider.cache_stats() == {"hits": 1, "misses": 1, "hit_rate": 0.5}

    def test_batch_embeds_only_misses(self, cache):
        inner = MockEmbeddingProvider()
        provider = CachingEmbeddingProvider(inner, cache)
        provider.embed("a")
        vectors = provider.embed_batch(["a", "b", "c"])
        assert len(vectors) == 3
        assert inner.texts == ["a", "b", "c"]
        assert provider.hits == 1
        assert provider.misses == 3

    def test_passes_through_attributes(self, cache):
        provider = CachingEmbeddingProvider(MockEmbeddingProvider(), cache)
        assert provider.dimension == MockEmbeddingProvider.dimension
        assert provider.model_name == "mock-model"

    def test_errors_not_cached(self, cache):
        provider = CachingEmbeddingProvider(FailingEmbeddingProvider(fail_after=0), cache)
        with pytest.raises(ProviderError):
            provider.embed("boom")
        assert cache.size() == 0

    def test_clear_cache_resets_counters(self, cache):
        provider = CachingEmbeddingProvider(MockEmbeddingProvider(), cache)
        provider.embed("a")
        provider.embed("a")
        provider.clear_cache()
        assert cache.size() == 0
        assert provider.cache_stats()["hit_rate"] == 0.0
