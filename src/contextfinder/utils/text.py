"""Text helpers: whitespace cleanup and simple character chunking."""

from __future__ import annotations

from typing import Iterator


def clean_text(text: str) -> str:
    """Trim and collapse every run of whitespace (newlines included) to one space."""
    if not text:
        return ""
    return " ".join(text.split())


def chunk_text(text: str, *, max_chars: int = 1200, overlap: int = 200) -> Iterator[str]:
    """Split text into overlapping character chunks.

    This coarse chunker keeps things simple while preserving context overlap.
    """
    if not text:
        return

    step = max(max_chars - overlap, 1)
    for start in range(0, len(text), step):
        chunk = text[start : start + max_chars]
        yield chunk
        if start + max_chars >= len(text):
            break


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (char_a != char_b),
                )
            )
        previous = current
    return previous[-1]
