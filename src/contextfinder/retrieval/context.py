"""Context assembly from retrieved chunks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List

from contextfinder.models import ChunkRecord


def format_chunk(chunk: ChunkRecord) -> str:
    return (
        f"Title of the website where the following paragraph was obtained from -> {chunk.title}. "
        f"Link of the website -> {chunk.link} . "
        f"Paragraph -> {chunk.text} . End of that paragraph.\n"
        " Starting new paragraph :  \n"
    )


@dataclass(slots=True)
class Context:
    """Attributed chunks grounding one query.

    A chunk whose text is the query itself is never admitted.
    """

    query: str
    chunks: List[ChunkRecord] = field(default_factory=list)

    @classmethod
    def assemble(cls, query: str, chunks: Iterable[ChunkRecord]) -> "Context":
        return cls(query=query, chunks=[chunk for chunk in chunks if chunk.text != query])

    @property
    def is_empty(self) -> bool:
        return not self.chunks

    @property
    def sources(self) -> List[str]:
        """Distinct links in first-seen order, for citation numbering."""
        seen: dict[str, None] = {}
        for chunk in self.chunks:
            seen.setdefault(chunk.link, None)
        return list(seen)

    def render(self) -> str:
        return "".join(format_chunk(chunk) for chunk in self.chunks)

    def __str__(self) -> str:
        return self.render()
