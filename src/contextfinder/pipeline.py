"""Retrieve, generate, persist."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass

from contextfinder.generation.answer import AnswerGenerator, build_prompt
from contextfinder.index.storage import SQLiteVectorStore
from contextfinder.retrieval.context import Context
from contextfinder.retrieval.coordinator import RetrievalCoordinator

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Answer:
    query: str
    text: str
    context: Context

    @property
    def grounded(self) -> bool:
        return not self.context.is_empty


class AnswerPipeline:
    """Ground a query in retrieved context and answer it.

    With no retrieved content the generator is still called, with an empty
    context; callers get an ungrounded answer rather than an error.
    """

    def __init__(
        self,
        coordinator: RetrievalCoordinator,
        generator: AnswerGenerator,
        store: SQLiteVectorStore,
    ) -> None:
        self.coordinator = coordinator
        self.generator = generator
        self.store = store

    async def answer(self, query: str) -> Answer:
        context = await self.coordinator.run(query)
        if context.is_empty:
            LOGGER.warning("No grounding context for %r; answer will be ungrounded", query)

        text = await self.generator.generate(build_prompt(query, context))
        await self._persist(query, text)
        return Answer(query=query, text=text, context=context)

    async def _persist(self, query: str, text: str) -> None:
        try:
            await asyncio.to_thread(self.store.record_answer, query, text)
        except sqlite3.Error as exc:
            LOGGER.warning("Could not record answer for %r: %s", query, exc)
