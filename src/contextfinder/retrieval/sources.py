"""Search sources backed by the Google Custom Search JSON API."""

from __future__ import annotations

import logging
from typing import List

import httpx

from contextfinder.errors import FetchHTTPStatus, ParseError
from contextfinder.models import SearchResult

LOGGER = logging.getLogger(__name__)

GOOGLE_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"
CATALOG_QUERY_PREFIX = "TED Talk"


class GoogleSearchSource:
    """One search provider query.

    A catalog-biased source prefixes the query and flags every result it emits
    so workers resolve it through the catalog instead of scraping.
    """

    def __init__(
        self,
        api_key: str,
        cx_id: str,
        *,
        name: str = "web",
        max_results: int = 8,
        catalog_biased: bool = False,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.cx_id = cx_id
        self.name = name
        self.max_results = max_results
        self.catalog_biased = catalog_biased
        self.timeout = timeout
        self._transport = transport

    def build_query(self, query: str) -> str:
        if self.catalog_biased:
            return f"{CATALOG_QUERY_PREFIX} {query}"
        return query

    async def search(self, query: str) -> List[SearchResult]:
        params = {"q": self.build_query(query), "key": self.api_key, "cx": self.cx_id}
        LOGGER.debug("%s search: %s", self.name, params["q"])

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(GOOGLE_SEARCH_URL, params=params)

        if response.status_code != httpx.codes.OK:
            raise FetchHTTPStatus(GOOGLE_SEARCH_URL, response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError(f"Undecodable {self.name} search response: {exc}") from exc

        if not isinstance(payload, dict):
            raise ParseError(f"Unexpected {self.name} search response shape")
        items = payload.get("items") or []
        results: List[SearchResult] = []
        for item in items[: self.max_results]:
            if not isinstance(item, dict):
                continue
            results.append(
                SearchResult(
                    title=str(item.get("title") or ""),
                    link=str(item.get("link") or ""),
                    is_catalog_source=self.catalog_biased,
                )
            )
        LOGGER.info("%s search returned %d result(s)", self.name, len(results))
        return results


def default_sources(
    api_key: str,
    cx_id: str,
    *,
    web_results: int = 8,
    catalog_results: int = 3,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[GoogleSearchSource]:
    """The general web source and the catalog-biased source."""
    return [
        GoogleSearchSource(
            api_key, cx_id, name="web", max_results=web_results, transport=transport
        ),
        GoogleSearchSource(
            api_key,
            cx_id,
            name="catalog",
            max_results=catalog_results,
            catalog_biased=True,
            transport=transport,
        ),
    ]
