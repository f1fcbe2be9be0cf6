"""Exceptions raised by the retrieval pipeline."""

from __future__ import annotations


class ContextFinderError(Exception):
    """Base class for all ContextFinder errors."""


class FetchError(ContextFinderError):
    """A URL could not be retrieved."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url


class FetchExhausted(FetchError):
    """Transport failures persisted for every allowed attempt."""

    def __init__(self, url: str, attempts: int) -> None:
        super().__init__(url, f"failed to fetch {url} after {attempts} attempts")
        self.attempts = attempts


class FetchHTTPStatus(FetchError):
    """The server answered with a non-2xx status. Never retried."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(url, f"request to {url} failed with status code {status_code}")
        self.status_code = status_code


class ParseError(ContextFinderError):
    """Malformed HTML or JSON payload."""


class CacheUnavailable(ContextFinderError):
    """The embedding cache backend could not serve the request."""


class CatalogError(ContextFinderError):
    """The catalog file is missing or unreadable."""


class VectorStoreError(ContextFinderError):
    """The vector store could not be prepared for use."""
