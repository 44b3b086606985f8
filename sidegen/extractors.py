"""Metadata extractors for SideGen.

Pure functions that pull derived metadata out of Markdown source:
frontmatter, a plain-text excerpt, word counts, reading time and the
table of contents. None of them keep state between calls.

Key functions:
- extract_frontmatter: Split YAML frontmatter from the body.
- extract_excerpt: Plain-text excerpt truncated to a maximum length.
- count_words / estimate_reading_time: Word-based reading estimates.
- extract_toc: Heading outline for table of contents generation.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

import yaml

from .utils import slugify

FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(?:(.*?)\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL
)
HEADING_LINE_RE = re.compile(r"^(#{1,6})\s+(.+?)(?:\s+#+)?\s*$")
FENCE_RE = re.compile(r"^\s*(```|~~~)")

DEFAULT_EXCERPT_LENGTH = 200
DEFAULT_WORDS_PER_MINUTE = 200

# Applied in order; images go before links so "![alt](src)" is not
# mistaken for a link.
_MARKDOWN_STRIP_RULES = (
    (re.compile(r"^#{1,6}\s+", re.MULTILINE), ""),
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),
    (re.compile(r"__(.*?)__"), r"\1"),
    (re.compile(r"\*(.*?)\*"), r"\1"),
    (re.compile(r"`(.*?)`"), r"\1"),
    (re.compile(r"!\[.*?\]\(.*?\)"), ""),
    (re.compile(r"\[(.*?)\]\(.*?\)"), r"\1"),
)


@dataclass(frozen=True)
class TocEntry:
    """A heading in a document outline.

    Attributes:
        level: Heading level (1-6).
        text: Heading text with inline Markdown removed.
        slug: URL-friendly identifier for the heading.
        anchor: In-page link target (``#`` + slug).
    """

    level: int
    text: str
    slug: str
    anchor: str


@dataclass(frozen=True)
class ReadingTime:
    """Estimated reading time for a document."""

    word_count: int
    minutes: int
    text: str


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Extract YAML frontmatter from content.

    Malformed frontmatter (invalid YAML or a non-mapping document) is not
    an error: the whole input is returned as the body.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (frontmatter dict, remaining content).
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1) or "") or {}
    except (yaml.YAMLError, ValueError, TypeError):
        # PyYAML raises ValueError for impossible dates such as 2024-13-45
        return {}, text
    if not isinstance(data, dict):
        return {}, text
    return data, text[match.end() :]


def strip_markdown(text: str) -> str:
    """Remove common Markdown syntax and collapse whitespace.

    Heading markers, bold/italic and inline code markers are dropped,
    images removed and links replaced by their text.
    """
    cleaned = text
    for pattern, replacement in _MARKDOWN_STRIP_RULES:
        cleaned = pattern.sub(replacement, cleaned)
    return " ".join(cleaned.split())


def extract_excerpt(text: str, max_length: int = DEFAULT_EXCERPT_LENGTH) -> str:
    """Build a plain-text excerpt from Markdown.

    Args:
        text: Markdown body.
        max_length: Maximum excerpt length before the ellipsis.

    Returns:
        The cleaned text, truncated with a trailing ``...`` when longer
        than ``max_length``.
    """
    cleaned = strip_markdown(text)
    if len(cleaned) <= max_length:
        return cleaned
    return cleaned[:max_length].strip() + "..."


def count_words(text: str) -> int:
    """Count words in Markdown text after stripping syntax."""
    return len(strip_markdown(text).split())


def estimate_reading_time(
    text: str, words_per_minute: int = DEFAULT_WORDS_PER_MINUTE
) -> ReadingTime:
    """Estimate reading time, rounding minutes up."""
    word_count = count_words(text)
    minutes = math.ceil(word_count / words_per_minute)
    return ReadingTime(
        word_count=word_count, minutes=minutes, text=f"{minutes} min read"
    )


def extract_toc(text: str) -> list[TocEntry]:
    """Collect ATX headings (``#`` to ``######``) in document order.

    Lines inside fenced code blocks are ignored.

    Args:
        text: Markdown body.

    Returns:
        List of TocEntry objects.
    """
    entries: list[TocEntry] = []
    in_fence = False
    for line in text.splitlines():
        if FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = HEADING_LINE_RE.match(line)
        if not match:
            continue
        heading_text = strip_markdown(match.group(2))
        slug = slugify(heading_text)
        entries.append(
            TocEntry(
                level=len(match.group(1)),
                text=heading_text,
                slug=slug,
                anchor=f"#{slug}",
            )
        )
    return entries
