"""Recency-bounded, similarity-gated embedding cache.

The cache keeps the ``max_size`` most recently inserted embeddings. Eviction is
purely by insertion order; lookups never refresh an entry. A single lock covers
both the insert-then-trim sequence and the snapshot taken by a lookup, so a
reader never sees a half-trimmed cache.
"""

from __future__ import annotations

import base64
import logging
import threading
import time
from typing import Protocol

import numpy as np
import redis

from contextfinder.errors import CacheUnavailable
from contextfinder.models import CachedEmbedding

LOGGER = logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 5
DEFAULT_CACHE_KEY = "embedding_cache"


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """dot(a, b) / (|a| |b|); 0.0 for mismatched lengths or zero vectors."""
    a = np.asarray(a, dtype="float64").ravel()
    b = np.asarray(b, dtype="float64").ravel()
    if a.shape != b.shape:
        return 0.0

    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def encode_embedding(embedding: np.ndarray) -> str:
    """Base64 of the little-endian float32 bytes."""
    return base64.b64encode(np.asarray(embedding, dtype="<f4").tobytes()).decode("ascii")


def decode_embedding(encoded: str | bytes) -> np.ndarray:
    raw = base64.b64decode(encoded, validate=True)
    if len(raw) % 4:
        raise ValueError("Encoded embedding is not a whole number of float32 values")
    return np.frombuffer(raw, dtype="<f4").astype("float32")


class CacheBackend(Protocol):
    def add(self, entry: CachedEmbedding, max_size: int) -> None:
        """Store ``entry`` and drop everything older than the newest ``max_size``."""

    def snapshot(self) -> list[CachedEmbedding]:
        """Return the cached entries, oldest first."""

    def clear(self) -> None: ...


class InMemoryCacheBackend:
    """Process-local backend holding entries in insertion order."""

    def __init__(self) -> None:
        self._entries: list[CachedEmbedding] = []

    def add(self, entry: CachedEmbedding, max_size: int) -> None:
        self._entries.append(entry)
        if len(self._entries) > max_size:
            del self._entries[: len(self._entries) - max_size]

    def snapshot(self) -> list[CachedEmbedding]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class RedisCacheBackend:
    """Sorted-set backend: members are encoded vectors, scores are timestamps."""

    def __init__(self, client, *, key: str = DEFAULT_CACHE_KEY) -> None:
        self.client = client
        self.key = key

    @classmethod
    def from_url(cls, url: str, *, key: str = DEFAULT_CACHE_KEY) -> "RedisCacheBackend":
        return cls(redis.Redis.from_url(url), key=key)

    def add(self, entry: CachedEmbedding, max_size: int) -> None:
        member = encode_embedding(entry.embedding)
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.zadd(self.key, {member: entry.inserted_at})
            pipe.zremrangebyrank(self.key, 0, -max_size - 1)
            pipe.execute()
        except redis.RedisError as exc:
            raise CacheUnavailable(f"Failed to add embedding to cache: {exc}") from exc

    def snapshot(self) -> list[CachedEmbedding]:
        try:
            members = self.client.zrange(self.key, 0, -1, withscores=True)
        except redis.RedisError as exc:
            raise CacheUnavailable(f"Failed to get cached embeddings: {exc}") from exc

        entries: list[CachedEmbedding] = []
        for member, score in members:
            try:
                embedding = decode_embedding(member)
            except ValueError:
                LOGGER.debug("Skipping undecodable cache member")
                continue
            entries.append(CachedEmbedding(embedding=embedding, inserted_at=int(score)))
        return entries

    def clear(self) -> None:
        try:
            self.client.delete(self.key)
        except redis.RedisError as exc:
            raise CacheUnavailable(f"Failed to clear cache: {exc}") from exc


class EmbeddingCache:
    """Bounded most-recent-N cache with cosine-similarity lookup."""

    def __init__(
        self,
        backend: CacheBackend | None = None,
        *,
        max_size: int = DEFAULT_CACHE_SIZE,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.backend = backend if backend is not None else InMemoryCacheBackend()
        self.max_size = max_size
        self._lock = threading.Lock()
        self._last_key = 0

    def _next_key(self) -> int:
        # Must be called with the lock held.
        # Microseconds stay exact as a float64 sorted-set score.
        key = max(time.time_ns() // 1_000, self._last_key + 1)
        self._last_key = key
        return key

    def insert(self, embedding: np.ndarray) -> CachedEmbedding:
        vector = np.array(embedding, dtype="float32", copy=True).ravel()
        vector.setflags(write=False)
        with self._lock:
            entry = CachedEmbedding(embedding=vector, inserted_at=self._next_key())
            self.backend.add(entry, self.max_size)
        return entry

    def entries(self) -> list[CachedEmbedding]:
        with self._lock:
            return self.backend.snapshot()

    def __len__(self) -> int:
        return len(self.entries())

    def clear(self) -> None:
        with self._lock:
            self.backend.clear()

    def find_similar(self, query: np.ndarray, threshold: float) -> np.ndarray | None:
        """Return the first cached embedding whose similarity exceeds ``threshold``.

        Raises:
            CacheUnavailable: the backend could not be read.
        """
        for entry in self.entries():
            if cosine_similarity(query, entry.embedding) > threshold:
                return entry.embedding
        return None
