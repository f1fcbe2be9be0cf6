"""Embed scraped text and persist it, skipping near-duplicate chunks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

import numpy as np

from contextfinder.embedding.cache import EmbeddingCache
from contextfinder.embedding.encoder import EmbeddingModel
from contextfinder.errors import CacheUnavailable
from contextfinder.index.storage import SQLiteVectorStore
from contextfinder.models import ChunkRecord, SearchResult
from contextfinder.utils.text import chunk_text

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexStats:
    stored: int = 0
    duplicates: int = 0
    chunk_ids: list[int] = field(default_factory=list)


class Indexer:
    """Coordinates chunking, embedding, cache gating and persistence."""

    def __init__(
        self,
        embedder: EmbeddingModel,
        store: SQLiteVectorStore,
        *,
        cache: EmbeddingCache | None = None,
        cache_threshold: float = 0.95,
        chunk_chars: int = 1200,
        overlap: int = 200,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.cache = cache
        self.cache_threshold = cache_threshold
        self.chunk_chars = chunk_chars
        self.overlap = overlap

    def embed_query(self, text: str) -> np.ndarray:
        return self.embedder.embed_query(text)

    def _is_cached_duplicate(self, vector: np.ndarray) -> bool:
        if self.cache is None:
            return False
        try:
            return self.cache.find_similar(vector, self.cache_threshold) is not None
        except CacheUnavailable as exc:
            LOGGER.warning("Embedding cache lookup failed, treating as miss: %s", exc)
            return False

    def _remember(self, vector: np.ndarray) -> None:
        if self.cache is None:
            return
        try:
            self.cache.insert(vector)
        except CacheUnavailable as exc:
            LOGGER.warning("Embedding cache insert failed: %s", exc)

    def embed_and_store(
        self,
        text: str,
        result: SearchResult,
        *,
        query_only: bool = False,
    ) -> np.ndarray:
        """Embed ``text`` and store its chunks under ``result``.

        Returns the chunk embeddings, one row per chunk. With ``query_only`` the
        text is embedded as a single vector and nothing is stored.
        """
        if query_only:
            return self.embed_query(text)

        texts = list(chunk_text(text, max_chars=self.chunk_chars, overlap=self.overlap))
        if not texts:
            return np.zeros((0, self.store.dimension), dtype="float32")

        embeddings = self.embedder.embed(texts)
        stats = self.store_embeddings(result, texts, embeddings)
        LOGGER.info(
            "Stored %d chunk(s) for %s (%d near-duplicate(s) skipped)",
            stats.stored,
            result.link,
            stats.duplicates,
        )
        return embeddings

    def store_embeddings(
        self,
        result: SearchResult,
        texts: List[str],
        embeddings: np.ndarray,
    ) -> IndexStats:
        stats = IndexStats()
        kept_chunks: List[ChunkRecord] = []
        kept_rows: List[np.ndarray] = []

        for idx, (chunk, vector) in enumerate(zip(texts, embeddings)):
            if self._is_cached_duplicate(vector):
                stats.duplicates += 1
                continue
            self._remember(vector)
            kept_chunks.append(ChunkRecord(title=result.title, link=result.link, index=idx, text=chunk))
            kept_rows.append(vector)

        if not kept_chunks:
            return stats

        stats.chunk_ids = self.store.add_chunks(result, kept_chunks, np.vstack(kept_rows))
        stats.stored = len(stats.chunk_ids)
        return stats
