"""Grounded answer generation with Google GenAI."""

from __future__ import annotations

import logging
from typing import Protocol

from google import genai

from contextfinder.retrieval.context import Context

LOGGER = logging.getLogger(__name__)

DEFAULT_GENERATION_MODEL = "gemini-1.5-flash"

INSTRUCTION = (
    "You are a helpful AI assistant that helps users answer queries using the provided "
    "context. If you cant frame an answer from the context given, copy paste directly from "
    "context rather than making up an answer. Please provide a detailed answer to the query "
    "below only using the context provided. Include in-text citations like this [1] for each "
    "fact or statement at the end of the sentence. At the end of your response, list all "
    "sources in a citation section with the format: [citation number] Name - URL."
)


def build_prompt(query: str, context: Context | str, *, instruction: str = INSTRUCTION) -> str:
    return f"INSTRUCTION : {instruction}. QUERY : {query}. CONTEXT : {context}."


class AnswerGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


class GeminiAnswerGenerator:
    """Send an assembled prompt to a Gemini model and return its text."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_GENERATION_MODEL,
        client: genai.Client | None = None,
    ) -> None:
        self.model = model
        self.client = client if client is not None else genai.Client(api_key=api_key)

    async def generate(self, prompt: str) -> str:
        LOGGER.debug("Generating answer with %s (%d prompt chars)", self.model, len(prompt))
        response = await self.client.aio.models.generate_content(
            model=self.model, contents=prompt
        )
        return response.text or ""
