"""Application configuration defaults."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

from contextfinder.embedding.encoder import DEFAULT_MODEL
from contextfinder.generation.answer import DEFAULT_GENERATION_MODEL


def _get_default_db_path() -> Path:
    """Get the default database path based on platform and execution context."""
    user_db = Path.home() / ".contextfinder" / "contextfinder.db"

    if getattr(sys, "frozen", False):
        return user_db

    # When running from source, prefer local data/ if it exists
    local_db = Path("data/contextfinder.db")
    if local_db.exists():
        return local_db

    return user_db


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    model_name: str = DEFAULT_MODEL
    catalog_path: Path = Path("new_op.json")
    chunk_chars: int = 1200
    overlap: int = 200

    # search sources
    web_results: int = 8
    catalog_results: int = 3

    # fetcher
    max_retries: int = 3
    retry_delay: float = 1.0
    fetch_timeout: float = 5.0

    max_workers: int = 8
    dedupe_links: bool = True
    match_threshold: float = 70.0

    # embedding cache
    cache_size: int = 5
    cache_similarity_threshold: float = 0.95
    redis_url: str | None = None

    # final similarity query
    search_limit: int = 10
    score_threshold: float = 0.6

    generation_model: str = DEFAULT_GENERATION_MODEL

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path

    def resolve_catalog_path(self, base_dir: Path | None = None) -> Path:
        if Path(self.catalog_path).is_absolute() or base_dir is None:
            return Path(self.catalog_path)
        return base_dir / self.catalog_path
