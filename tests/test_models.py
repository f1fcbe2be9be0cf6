"""Tests for data models."""

from __future__ import annotations

import dataclasses

import numpy as np
import pytest

from contextfinder.models import CachedEmbedding, CatalogEntry, ScrapedDocument, SearchResult


class TestSearchResult:
    def test_defaults(self) -> None:
        result = SearchResult(title="T", link="https://t.test")
        assert result.is_catalog_source is False

    def test_frozen(self) -> None:
        result = SearchResult(title="T", link="https://t.test")
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.link = "other"  # type: ignore[misc]

    def test_hashable(self) -> None:
        """Equal results collapse in a set."""
        a = SearchResult(title="T", link="https://t.test")
        b = SearchResult(title="T", link="https://t.test")
        assert len({a, b}) == 1


class TestCatalogEntry:
    def test_key(self) -> None:
        entry = CatalogEntry(title="Talk", speaker="Speaker", transcript="...")
        assert entry.key == "Talk|Speaker"


class TestScrapedDocument:
    def test_is_empty(self) -> None:
        result = SearchResult(title="T", link="https://t.test")
        assert ScrapedDocument(source=result, text="").is_empty
        assert ScrapedDocument(source=result, text="  \n").is_empty
        assert not ScrapedDocument(source=result, text="body").is_empty


class TestCachedEmbedding:
    def test_fields(self) -> None:
        entry = CachedEmbedding(embedding=np.ones(3, dtype="float32"), inserted_at=7)
        assert entry.inserted_at == 7
        assert entry.embedding.shape == (3,)
