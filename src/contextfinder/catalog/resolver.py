"""Fuzzy reconciliation of scraped talk metadata against the catalog.

Matching is "first above threshold": entries are scanned in catalog order and
the first one scoring at least the threshold wins, even if a later entry would
score higher.
"""

from __future__ import annotations

import logging

from contextfinder.catalog.store import Catalog
from contextfinder.ingestion.extractor import extract_talk_metadata
from contextfinder.ingestion.fetcher import Fetcher
from contextfinder.models import CatalogEntry
from contextfinder.utils.text import levenshtein

LOGGER = logging.getLogger(__name__)

DEFAULT_MATCH_THRESHOLD = 70.0
NO_MATCH_MESSAGE = "No matching TED Talk found."


def title_similarity(a: str, b: str) -> float:
    """Edit-distance similarity on a 0-100 scale."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 100.0
    return (1 - levenshtein(a, b) / longest) * 100


def find_entry(
    title: str,
    speaker: str,
    catalog: Catalog,
    *,
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> CatalogEntry | None:
    if not title and not speaker:
        LOGGER.info("No title or speaker metadata; skipping catalog lookup")
        return None

    for entry in catalog:
        score = title_similarity(entry.title, title)
        if score >= threshold:
            LOGGER.debug("Catalog match %r ~ %r (%.1f)", entry.title, title, score)
            return entry
    return None


def resolve(
    title: str,
    speaker: str,
    catalog: Catalog,
    *,
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> str | None:
    """Return the transcript of the first sufficiently similar entry, or None."""
    entry = find_entry(title, speaker, catalog, threshold=threshold)
    return entry.transcript if entry is not None else None


class CatalogResolver:
    """Resolve catalog-flagged search results to stored transcripts."""

    def __init__(
        self,
        fetcher: Fetcher,
        catalog: Catalog,
        *,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
    ) -> None:
        self.fetcher = fetcher
        self.catalog = catalog
        self.threshold = threshold

    async def resolve_url(self, url: str) -> str:
        """Fetch a talk page and return the matching transcript ("" if none)."""
        page = await self.fetcher.fetch_html(url)
        title, speaker = extract_talk_metadata(page.text)
        transcript = resolve(title, speaker, self.catalog, threshold=self.threshold)
        if transcript is None:
            LOGGER.info("No catalog match for %s (title=%r)", url, title)
            return ""
        return transcript
