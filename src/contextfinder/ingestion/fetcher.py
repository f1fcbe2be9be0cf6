"""Retry-governed page fetching.

Only transport failures (connection errors, DNS, timeouts) are retried. An HTTP
response with a non-2xx status is a definitive answer and is surfaced at once.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

import httpx

from contextfinder.errors import FetchExhausted, FetchHTTPStatus
from contextfinder.ingestion.extractor import DEFAULT_SELECTORS, extract_main_text

LOGGER = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.5",
}


@dataclass(slots=True)
class FetchResult:
    url: str
    text: str
    attempts: int


class Fetcher:
    """Download pages and pull their main text out."""

    def __init__(
        self,
        *,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 5.0,
        selectors: Sequence[str] = DEFAULT_SELECTORS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.selectors = tuple(selectors)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers=DEFAULT_HEADERS,
            transport=self._transport,
        )

    async def fetch_html(self, url: str) -> FetchResult:
        """GET ``url`` and return the raw body.

        Raises:
            FetchHTTPStatus: the server answered with a non-2xx status.
            FetchExhausted: every attempt failed at the transport level.
        """
        LOGGER.info("Fetching %s", url)
        attempts = 0
        async with self._client() as client:
            while attempts < self.max_retries:
                attempts += 1
                try:
                    response = await client.get(url)
                except httpx.TransportError as exc:
                    LOGGER.warning(
                        "Attempt %d/%d for %s failed: %s", attempts, self.max_retries, url, exc
                    )
                    if attempts < self.max_retries:
                        await asyncio.sleep(self.retry_delay)
                    continue

                if not response.is_success:
                    LOGGER.warning("Request to %s failed with status %d", url, response.status_code)
                    raise FetchHTTPStatus(url, response.status_code)
                return FetchResult(url=url, text=response.text, attempts=attempts)

        LOGGER.error("Failed to fetch %s after %d attempts", url, attempts)
        raise FetchExhausted(url, attempts)

    async def fetch(self, url: str) -> FetchResult:
        """Fetch ``url`` and reduce it to cleaned main-content text.

        A page without extractable content yields empty text, not an error.
        """
        page = await self.fetch_html(url)
        text = extract_main_text(page.text, self.selectors)
        if not text.strip():
            LOGGER.info("No content extracted from %s", url)
        return FetchResult(url=url, text=text, attempts=page.attempts)
