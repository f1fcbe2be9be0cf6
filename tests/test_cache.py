"""Tests for the recency-bounded embedding cache."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import numpy as np
import pytest
import redis

from contextfinder.embedding.cache import (
    EmbeddingCache,
    InMemoryCacheBackend,
    RedisCacheBackend,
    cosine_similarity,
    decode_embedding,
    encode_embedding,
)
from contextfinder.errors import CacheUnavailable
from contextfinder.models import CachedEmbedding


def basis(index: int, dimension: int = 8) -> np.ndarray:
    vector = np.zeros(dimension, dtype="float32")
    vector[index] = 1.0
    return vector


class TestCosineSimilarity:
    """Test cosine similarity edge cases."""

    def test_identical(self) -> None:
        v = np.array([1.0, 2.0, 3.0], dtype="float32")
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_orthogonal(self) -> None:
        assert cosine_similarity(basis(0), basis(1)) == pytest.approx(0.0)

    def test_opposite(self) -> None:
        v = np.array([1.0, -1.0], dtype="float32")
        assert cosine_similarity(v, -v) == pytest.approx(-1.0)

    def test_symmetric(self) -> None:
        rng = np.random.default_rng(7)
        for _ in range(20):
            a = rng.normal(size=16).astype("float32")
            b = rng.normal(size=16).astype("float32")
            assert cosine_similarity(a, b) == cosine_similarity(b, a)

    def test_mismatched_length(self) -> None:
        assert cosine_similarity(np.ones(3), np.ones(4)) == 0.0

    def test_zero_norm(self) -> None:
        assert cosine_similarity(np.zeros(3), np.ones(3)) == 0.0
        assert cosine_similarity(np.ones(3), np.zeros(3)) == 0.0


class TestEncoding:
    """Test base64 float32 member encoding."""

    def test_encoding_layout(self) -> None:
        """Members are base64 of little-endian float32 bytes."""
        vector = np.array([1.0, -2.5], dtype="float32")
        assert decode_embedding(encode_embedding(vector)).tolist() == [1.0, -2.5]
        assert len(encode_embedding(vector)) == 12  # 8 bytes -> 12 base64 chars

    def test_decode_rejects_partial_floats(self) -> None:
        import base64

        with pytest.raises(ValueError):
            decode_embedding(base64.b64encode(b"abc"))


class TestEmbeddingCache:
    """Test insert-with-trim and similarity lookup."""

    def test_empty_lookup(self) -> None:
        """An empty cache never finds anything."""
        cache = EmbeddingCache()
        assert cache.find_similar(basis(0), 0.5) is None
        assert len(cache) == 0

    def test_insert_and_find(self) -> None:
        cache = EmbeddingCache()
        cache.insert(basis(0))

        found = cache.find_similar(basis(0), 0.99)

        assert found is not None
        np.testing.assert_array_equal(found, basis(0))

    def test_threshold_is_strict(self) -> None:
        """Similarity equal to the threshold is not a hit."""
        cache = EmbeddingCache()
        cache.insert(basis(0))

        assert cache.find_similar(basis(0), 1.0) is None

    def test_mismatched_dimension_never_matches(self) -> None:
        cache = EmbeddingCache()
        cache.insert(np.ones(4, dtype="float32"))

        assert cache.find_similar(np.ones(5, dtype="float32"), -0.5) is None

    def test_zero_vector_never_matches(self) -> None:
        cache = EmbeddingCache()
        cache.insert(np.zeros(4, dtype="float32"))

        assert cache.find_similar(np.ones(4, dtype="float32"), -0.5) is None

    def test_six_inserts_keep_five_newest(self) -> None:
        """Inserting 6 into a size-5 cache evicts the oldest."""
        cache = EmbeddingCache(max_size=5)
        for index in range(6):
            cache.insert(basis(index))

        entries = cache.entries()
        assert len(entries) == 5
        kept = [int(np.argmax(entry.embedding)) for entry in entries]
        assert kept == [1, 2, 3, 4, 5]
        assert cache.find_similar(basis(0), 0.9) is None
        assert cache.find_similar(basis(5), 0.9) is not None

    def test_size_never_exceeds_bound(self) -> None:
        cache = EmbeddingCache(max_size=3)
        for index in range(8):
            cache.insert(basis(index))
            assert len(cache) <= 3

    def test_timestamps_strictly_increase(self) -> None:
        cache = EmbeddingCache(max_size=10)
        keys = [cache.insert(basis(0)).inserted_at for _ in range(10)]
        assert keys == sorted(set(keys))

    def test_lookup_does_not_refresh(self) -> None:
        """Access never changes eviction order."""
        cache = EmbeddingCache(max_size=2)
        cache.insert(basis(0))
        cache.insert(basis(1))
        assert cache.find_similar(basis(0), 0.9) is not None

        cache.insert(basis(2))

        assert cache.find_similar(basis(0), 0.9) is None

    def test_entries_are_immutable(self) -> None:
        cache = EmbeddingCache()
        source = basis(0)
        entry = cache.insert(source)

        source[0] = 5.0
        assert entry.embedding[0] == 1.0
        with pytest.raises(ValueError):
            entry.embedding[0] = 2.0

    def test_clear(self) -> None:
        cache = EmbeddingCache()
        cache.insert(basis(0))
        cache.clear()
        assert len(cache) == 0

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            EmbeddingCache(max_size=0)

    def test_concurrent_inserts_respect_bound(self) -> None:
        """Parallel writers and readers never see more than max_size entries."""
        cache = EmbeddingCache(max_size=5)
        observed: list[int] = []

        def writer(offset: int) -> None:
            for index in range(50):
                cache.insert(basis((offset + index) % 8))

        def reader() -> None:
            for _ in range(100):
                observed.append(len(cache.entries()))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        threads.append(threading.Thread(target=reader))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(cache) == 5
        assert max(observed) <= 5

    def test_backend_failure_raises_cache_unavailable(self) -> None:
        backend = MagicMock()
        backend.snapshot.side_effect = CacheUnavailable("down")
        cache = EmbeddingCache(backend)

        with pytest.raises(CacheUnavailable):
            cache.find_similar(basis(0), 0.5)


class TestInMemoryBackend:
    def test_add_trims_oldest(self) -> None:
        backend = InMemoryCacheBackend()
        for key in range(4):
            backend.add(CachedEmbedding(embedding=basis(key), inserted_at=key), max_size=2)

        assert [entry.inserted_at for entry in backend.snapshot()] == [2, 3]


class TestRedisBackend:
    """Test the sorted-set backend against a mocked client."""

    def test_add_uses_transactional_pipeline(self) -> None:
        client = MagicMock()
        pipe = client.pipeline.return_value
        backend = RedisCacheBackend(client, key="embedding_cache")
        entry = CachedEmbedding(embedding=basis(0), inserted_at=42)

        backend.add(entry, max_size=5)

        client.pipeline.assert_called_once_with(transaction=True)
        pipe.zadd.assert_called_once_with("embedding_cache", {encode_embedding(basis(0)): 42})
        pipe.zremrangebyrank.assert_called_once_with("embedding_cache", 0, -6)
        pipe.execute.assert_called_once()

    def test_snapshot_decodes_members(self) -> None:
        client = MagicMock()
        client.zrange.return_value = [
            (encode_embedding(basis(1)).encode("ascii"), 1.0),
            (b"!!not-base64!!", 2.0),
            (encode_embedding(basis(2)).encode("ascii"), 3.0),
        ]
        backend = RedisCacheBackend(client)

        entries = backend.snapshot()

        client.zrange.assert_called_once_with("embedding_cache", 0, -1, withscores=True)
        assert [entry.inserted_at for entry in entries] == [1, 3]
        np.testing.assert_array_equal(entries[0].embedding, basis(1))

    def test_add_failure(self) -> None:
        client = MagicMock()
        client.pipeline.return_value.execute.side_effect = redis.ConnectionError("refused")
        backend = RedisCacheBackend(client)

        with pytest.raises(CacheUnavailable):
            backend.add(CachedEmbedding(embedding=basis(0), inserted_at=1), max_size=5)

    def test_snapshot_failure(self) -> None:
        client = MagicMock()
        client.zrange.side_effect = redis.ConnectionError("refused")
        cache = EmbeddingCache(RedisCacheBackend(client))

        with pytest.raises(CacheUnavailable):
            cache.find_similar(basis(0), 0.5)

    def test_cache_over_redis_backend(self) -> None:
        """The cache passes its size bound through to the trim command."""
        client = MagicMock()
        cache = EmbeddingCache(RedisCacheBackend(client), max_size=3)

        cache.insert(basis(0))

        client.pipeline.return_value.zremrangebyrank.assert_called_once_with(
            "embedding_cache", 0, -4
        )
