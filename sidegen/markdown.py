"""Content parser for SideGen.

Turns raw Markdown (with optional YAML frontmatter) into a
ContentDocument: frontmatter, body, rendered HTML and derived fields.

Key classes:
- MarkdownProcessor: Facade composing extractors and the Markdown renderer.
- ParsedContent: Result of splitting frontmatter from the body.
- ContentDocument: Fully processed document.
- ValidationResult: Outcome of validating a document for authoring.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .extractors import (
    DEFAULT_EXCERPT_LENGTH,
    DEFAULT_WORDS_PER_MINUTE,
    ReadingTime,
    TocEntry,
    count_words,
    estimate_reading_time,
    extract_excerpt,
    extract_frontmatter,
    extract_toc,
)
from .renderers import MarkdownRenderer


@dataclass(frozen=True)
class ParsedContent:
    """Frontmatter split from the body, before rendering."""

    frontmatter: dict[str, Any]
    body: str
    excerpt: str
    raw: str


@dataclass(frozen=True)
class ContentDocument:
    """A parsed and rendered content file.

    Attributes:
        raw: Original source text.
        frontmatter: Metadata mapping from the frontmatter block.
        body: Markdown without frontmatter.
        html: HTML rendered from ``body``.
        excerpt: Explicit frontmatter excerpt or one derived from the body.
        word_count: Number of words in the body.
        reading_time: Reading estimate derived from the word count.
        toc: Headings found in the body.
    """

    raw: str
    frontmatter: dict[str, Any]
    body: str
    html: str
    excerpt: str
    word_count: int
    reading_time: ReadingTime
    toc: list[TocEntry] = field(default_factory=list)


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: list[str]
    parsed: ParsedContent


class MarkdownProcessor:
    """Parses and renders Markdown content files.

    Attributes:
        excerpt_length: Maximum derived excerpt length.
        words_per_minute: Reading speed used for reading-time estimates.
        frontmatter: Whether a leading frontmatter block is recognized.
        toc: Whether the table of contents is collected.
        renderer: Markdown-to-HTML renderer.
    """

    def __init__(
        self,
        excerpt_length: int = DEFAULT_EXCERPT_LENGTH,
        words_per_minute: int = DEFAULT_WORDS_PER_MINUTE,
        gfm: bool = True,
        frontmatter: bool = True,
        highlight: bool = True,
        toc: bool = True,
        anchor_links: bool = True,
    ):
        self.excerpt_length = excerpt_length
        self.words_per_minute = words_per_minute
        self.frontmatter = frontmatter
        self.toc = toc
        self.renderer = MarkdownRenderer(
            gfm=gfm, highlight_code=highlight, anchor_links=anchor_links
        )

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> MarkdownProcessor:
        """Build a processor from the ``markdown`` and ``excerpt_length`` options."""
        options = config.get("markdown") or {}
        return cls(
            excerpt_length=int(config.get("excerpt_length", DEFAULT_EXCERPT_LENGTH)),
            gfm=options.get("gfm", True),
            frontmatter=options.get("frontmatter", True),
            highlight=options.get("highlight", True),
            toc=options.get("toc", True),
            anchor_links=options.get("anchor_links", True),
        )

    def parse(self, raw: str) -> ParsedContent:
        """Split frontmatter from the body.

        Never raises: malformed or missing frontmatter yields an empty
        mapping and the whole (trimmed) input as body.
        """
        if self.frontmatter:
            frontmatter, body = extract_frontmatter(raw)
        else:
            frontmatter, body = {}, raw
        body = body.strip()
        explicit = frontmatter.get("excerpt")
        if explicit:
            excerpt = str(explicit)
        else:
            excerpt = extract_excerpt(body, self.excerpt_length)
        return ParsedContent(frontmatter=frontmatter, body=body, excerpt=excerpt, raw=raw)

    def render(self, body: str) -> str:
        """Convert a Markdown body to HTML."""
        return self.renderer.render(body)

    def process(self, raw: str) -> ContentDocument:
        """Parse, render and derive every document field."""
        parsed = self.parse(raw)
        return ContentDocument(
            raw=raw,
            frontmatter=parsed.frontmatter,
            body=parsed.body,
            html=self.render(parsed.body),
            excerpt=parsed.excerpt,
            word_count=count_words(parsed.body),
            reading_time=estimate_reading_time(parsed.body, self.words_per_minute),
            toc=extract_toc(parsed.body) if self.toc else [],
        )

    def validate(self, raw: str) -> ValidationResult:
        """Check a document for authoring problems.

        Problems are reported as messages rather than raised.
        """
        parsed = self.parse(raw)
        errors: list[str] = []
        if not parsed.frontmatter.get("title"):
            errors.append("Missing title in frontmatter")
        if not parsed.body.strip():
            errors.append("Content is empty")
        return ValidationResult(is_valid=not errors, errors=errors, parsed=parsed)
