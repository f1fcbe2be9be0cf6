"""Read-only transcript catalog."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from contextfinder.errors import CatalogError, ParseError
from contextfinder.models import CatalogEntry

LOGGER = logging.getLogger(__name__)


class Catalog:
    """Immutable, ordered collection of catalog entries.

    Iteration follows file order, which the resolver relies on. Entries are also
    indexed by ``"title|speaker"``; a later duplicate key replaces the earlier
    one in the index but both stay in iteration order.
    """

    __slots__ = ("_entries", "_by_key")

    def __init__(self, entries: Iterable[CatalogEntry]) -> None:
        self._entries: tuple[CatalogEntry, ...] = tuple(entries)
        self._by_key: Mapping[str, CatalogEntry] = MappingProxyType(
            {entry.key: entry for entry in self._entries}
        )

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def by_key(self) -> Mapping[str, CatalogEntry]:
        return self._by_key

    def get(self, title: str, speaker: str) -> CatalogEntry | None:
        return self._by_key.get(f"{title}|{speaker}")


def _entry_from_record(record: object, position: int) -> CatalogEntry:
    if not isinstance(record, dict):
        raise ParseError(f"Catalog record #{position} is not an object")
    return CatalogEntry(
        title=str(record.get("title") or ""),
        speaker=str(record.get("speaker") or ""),
        transcript=str(record.get("output") or ""),
    )


def load_catalog(path: Path) -> Catalog:
    """Load a JSON array of ``{title, output, speaker}`` records."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise CatalogError(f"Catalog file not found: {path}") from exc
    except OSError as exc:
        raise CatalogError(f"Unable to read catalog {path}: {exc}") from exc

    try:
        records = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Malformed catalog JSON in {path}: {exc}") from exc

    if not isinstance(records, list):
        raise ParseError(f"Catalog {path} must contain a JSON array")

    catalog = Catalog(_entry_from_record(record, idx) for idx, record in enumerate(records))
    LOGGER.info("Loaded %d catalog entries from %s", len(catalog), path)
    return catalog
