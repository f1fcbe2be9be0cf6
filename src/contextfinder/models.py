"""Core ContextFinder data models."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, slots=True)
class SearchResult:
    """A single hit emitted by a search source."""

    title: str
    link: str
    is_catalog_source: bool = False


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """Reference transcript record loaded from the catalog file."""

    title: str
    speaker: str
    transcript: str

    @property
    def key(self) -> str:
        return f"{self.title}|{self.speaker}"


@dataclass(slots=True)
class ScrapedDocument:
    """Text obtained for a search result. Empty text means no content."""

    source: SearchResult
    text: str

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


@dataclass(frozen=True, slots=True)
class CachedEmbedding:
    embedding: np.ndarray
    inserted_at: int


@dataclass(slots=True)
class ChunkRecord:
    """Chunk of document text paired with its source attribution."""

    title: str
    link: str
    index: int
    text: str
