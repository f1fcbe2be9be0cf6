"""Concurrent multi-source retrieval.

Per query the coordinator moves through::

    DISPATCHING -> COLLECTING -> SCRAPING_EMBEDDING -> ASSEMBLING -> DONE

Both sources write onto one shared queue. Only the supervisor task closes it,
after both producers have returned, so no producer can write after close. Each
result gets its own worker; workers are bounded by a semaphore and fail
independently. Assembling starts only once every worker has finished.

A link returned by both sources is processed once, except that a catalog copy
arriving after a web copy is still resolved, once the web worker is done.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import List, Protocol, Sequence

from contextfinder.catalog.resolver import CatalogResolver
from contextfinder.index.indexer import Indexer
from contextfinder.index.storage import SQLiteVectorStore
from contextfinder.ingestion.fetcher import Fetcher
from contextfinder.models import ScrapedDocument, SearchResult
from contextfinder.retrieval.context import Context

LOGGER = logging.getLogger(__name__)

_CLOSED = object()


class SearchSource(Protocol):
    name: str

    async def search(self, query: str) -> List[SearchResult]: ...


class CoordinatorState(enum.Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    COLLECTING = "collecting"
    SCRAPING_EMBEDDING = "scraping_embedding"
    ASSEMBLING = "assembling"
    DONE = "done"


@dataclass(slots=True)
class RetrievalReport:
    context: Context
    results: list[SearchResult] = field(default_factory=list)
    documents: list[ScrapedDocument] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)


class RetrievalCoordinator:
    """Fan out source queries and scrape work, then assemble context.

    A coordinator runs one query at a time; ``state`` tracks that query.
    """

    def __init__(
        self,
        sources: Sequence[SearchSource],
        fetcher: Fetcher,
        resolver: CatalogResolver,
        indexer: Indexer,
        store: SQLiteVectorStore,
        *,
        max_workers: int = 8,
        search_limit: int = 10,
        score_threshold: float = 0.6,
        dedupe_links: bool = True,
    ) -> None:
        self.sources = list(sources)
        self.fetcher = fetcher
        self.resolver = resolver
        self.indexer = indexer
        self.store = store
        self.max_workers = max(1, max_workers)
        self.search_limit = search_limit
        self.score_threshold = score_threshold
        self.dedupe_links = dedupe_links
        self.state = CoordinatorState.IDLE

    async def run(self, query: str) -> Context:
        report = await self.retrieve(query)
        return report.context

    async def retrieve(self, query: str) -> RetrievalReport:
        if self.state not in (CoordinatorState.IDLE, CoordinatorState.DONE):
            raise RuntimeError(f"Coordinator is busy ({self.state.value})")

        try:
            report = await self._retrieve(query)
        except Exception:
            self.state = CoordinatorState.IDLE
            raise
        self.state = CoordinatorState.DONE
        return report

    async def _retrieve(self, query: str) -> RetrievalReport:
        report = RetrievalReport(context=Context(query=query))
        channel: asyncio.Queue = asyncio.Queue()

        self.state = CoordinatorState.DISPATCHING
        producers = [
            asyncio.create_task(self._produce(source, query, channel, report))
            for source in self.sources
        ]

        self.state = CoordinatorState.COLLECTING
        supervisor = asyncio.create_task(self._close_when_done(producers, channel))

        await self._consume(channel, report)
        await supervisor

        self.state = CoordinatorState.ASSEMBLING
        report.context = await self._assemble(query)

        return report

    async def _produce(
        self,
        source: SearchSource,
        query: str,
        channel: asyncio.Queue,
        report: RetrievalReport,
    ) -> None:
        try:
            results = await source.search(query)
        except Exception as exc:
            LOGGER.error("Source %s failed: %s", source.name, exc)
            report.failures[f"source:{source.name}"] = str(exc)
            return

        for result in results:
            await channel.put(result)

    @staticmethod
    async def _close_when_done(producers: list[asyncio.Task], channel: asyncio.Queue) -> None:
        await asyncio.gather(*producers)
        await channel.put(_CLOSED)

    async def _consume(self, channel: asyncio.Queue, report: RetrievalReport) -> None:
        limiter = asyncio.Semaphore(self.max_workers)
        dispatched: dict[str, tuple[SearchResult, asyncio.Task]] = {}
        workers: list[asyncio.Task] = []

        while True:
            item = await channel.get()
            if item is _CLOSED:
                break
            result: SearchResult = item
            after: asyncio.Task | None = None
            if self.dedupe_links and result.link in dispatched:
                earlier, earlier_task = dispatched[result.link]
                if earlier.is_catalog_source or not result.is_catalog_source:
                    LOGGER.debug("Skipping duplicate link %s", result.link)
                    continue
                # The catalog copy wins: it runs after the web scrape and replaces its chunks.
                LOGGER.debug("Catalog result supersedes web result for %s", result.link)
                report.results.remove(earlier)
                after = earlier_task

            LOGGER.info("Result: %s (%s)", result.title, result.link)
            report.results.append(result)
            if self.state is not CoordinatorState.SCRAPING_EMBEDDING:
                self.state = CoordinatorState.SCRAPING_EMBEDDING
            task = asyncio.create_task(self._work(result, limiter, report, after=after))
            dispatched[result.link] = (result, task)
            workers.append(task)

        await asyncio.gather(*workers)

    async def _scrape(self, result: SearchResult) -> ScrapedDocument:
        if not result.link:
            return ScrapedDocument(source=result, text="")
        if result.is_catalog_source:
            text = await self.resolver.resolve_url(result.link)
        else:
            text = (await self.fetcher.fetch(result.link)).text
        return ScrapedDocument(source=result, text=text)

    async def _work(
        self,
        result: SearchResult,
        limiter: asyncio.Semaphore,
        report: RetrievalReport,
        *,
        after: asyncio.Task | None = None,
    ) -> None:
        if after is not None:
            await asyncio.wait({after})
        async with limiter:
            try:
                document = await self._scrape(result)
                if document.is_empty:
                    LOGGER.debug("No content for %s", result.link)
                    return
                await asyncio.to_thread(self.indexer.embed_and_store, document.text, result)
                report.documents.append(document)
            except Exception as exc:
                LOGGER.error("Failed to process %s: %s", result.link, exc)
                report.failures[result.link] = str(exc)

    async def _assemble(self, query: str) -> Context:
        embedding = await asyncio.to_thread(self.indexer.embed_query, query)
        chunk_ids = await asyncio.to_thread(
            self.store.similarity_search,
            embedding,
            limit=self.search_limit,
            score_threshold=self.score_threshold,
        )
        chunks = await asyncio.to_thread(self.store.get_chunks, chunk_ids)
        context = Context.assemble(query, chunks)
        LOGGER.info("Assembled context from %d chunk(s)", len(context.chunks))
        return context
