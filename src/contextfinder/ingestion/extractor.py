"""HTML to plain-text extraction.

Uses BeautifulSoup CSS selectors to pick the main content block of a page and
to read catalog page metadata.
"""

from __future__ import annotations

import logging
from typing import Sequence

from bs4 import BeautifulSoup

from contextfinder.utils.text import clean_text

LOGGER = logging.getLogger(__name__)

DEFAULT_SELECTORS: tuple[str, ...] = ("article", "div.main-content", "body")


def _parse(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def extract_main_text(html: str, selectors: Sequence[str] = DEFAULT_SELECTORS) -> str:
    """Return the cleaned text of the first selector that yields any content.

    Every element matched by a selector is cleaned on its own and the non-empty
    blocks are joined with newlines. An empty string means nothing matched.
    """
    if not html:
        return ""

    soup = _parse(html)
    for selector in selectors:
        blocks = [clean_text(node.get_text(" ")) for node in soup.select(selector)]
        blocks = [block for block in blocks if block]
        if blocks:
            LOGGER.debug("Selector %r matched %d block(s)", selector, len(blocks))
            return "\n".join(blocks)

    LOGGER.info("No content found with selectors %s", ", ".join(selectors))
    return ""


def extract_talk_metadata(html: str) -> tuple[str, str]:
    """Read the (title, speaker) pair from a catalog talk page."""
    if not html:
        return "", ""

    soup = _parse(html)
    title = ""
    meta = soup.select_one("meta[property='og:title']")
    if meta is not None:
        title = clean_text(meta.get("content") or "")

    speaker = " ".join(
        clean_text(node.get_text(" ")) for node in soup.select(".talk-speaker__name")
    ).strip()
    return title, speaker
