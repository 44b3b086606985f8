"""Content catalog for SideGen.

This module discovers content files, turns each into a Page and groups
pages into collections.

Key classes:
- Page: Dataclass representing one content file ready for rendering.
- LoadResult: Outcome of loading a single file (page or error message).
- SiteContext: Site-wide values handed to templates.
- FileContentLoader: Discovers Markdown files under the input directory.
- DefaultPageBuilder: Builds a Page from a source file.
- ContentCatalog: Facade that discovers, loads and organizes content.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path, PurePath
from typing import Any

from .collections import PageCollection, organize_collections
from .extractors import ReadingTime, TocEntry
from .markdown import MarkdownProcessor
from .output import page_url
from .protocols import ContentLoader, PageBuilder
from .utils import coerce_datetime, is_markdown, normalize_list, slugify

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION = "pages"
_PAGE_ID_RE = re.compile(r"[^a-zA-Z0-9]")
_TRUE_STRINGS = {"true", "yes", "on", "1"}


@dataclass(frozen=True)
class Page:
    """A content file enriched with everything templates need.

    Pages are never mutated; a changed file yields a new Page with the
    same ``id``.

    Attributes:
        id: Identifier derived from the relative source path.
        source_path: Absolute path to the source file.
        relative_path: Path relative to the input directory.
        slug: URL-friendly slug.
        title: Human-readable title.
        content: Markdown body (frontmatter removed).
        html: Rendered HTML body.
        frontmatter: Raw frontmatter mapping.
        excerpt: Short plain-text summary.
        word_count: Words in the body.
        reading_time: Reading estimate.
        toc: Headings for a table of contents.
        template: Template name used to render the page.
        layout: Layout name wrapping the template output.
        date: Publication date.
        draft: Whether this is a draft page.
        tags: Normalized tag list.
        categories: Normalized category list.
        collection: Collection the page belongs to.
        url: Public URL path.
    """

    id: str
    source_path: Path
    relative_path: PurePath
    slug: str
    title: str
    content: str
    html: str
    frontmatter: dict[str, Any]
    excerpt: str
    word_count: int
    reading_time: ReadingTime
    toc: list[TocEntry]
    template: str
    layout: str
    date: datetime
    draft: bool
    tags: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    collection: str = DEFAULT_COLLECTION
    url: str = "/"

    @property
    def author(self) -> str:
        return str(self.frontmatter.get("author") or "")

    @property
    def image(self) -> str:
        return str(self.frontmatter.get("image") or "")


@dataclass(frozen=True)
class LoadResult:
    """Outcome of loading one content file."""

    path: Path
    page: Page | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.page is not None


@dataclass(frozen=True)
class SiteContext:
    """Site-wide values shared by every template during one build.

    ``pages`` and the ``collections`` values are PageCollection objects,
    so a template can write ``site.pages.with_tag("python").latest(3)``.
    """

    title: str
    description: str
    base_url: str
    author: str
    language: str
    build_time: datetime
    pages: PageCollection
    collections: dict[str, PageCollection]

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any],
        pages: list[Page],
        collections: dict[str, list[Page]],
        build_time: datetime | None = None,
    ) -> SiteContext:
        return cls(
            title=str(config.get("title", "")),
            description=str(config.get("description", "")),
            base_url=str(config.get("base_url", "")),
            author=str(config.get("author", "")),
            language=str(config.get("language", "en")),
            build_time=build_time or datetime.now(),
            pages=PageCollection(pages),
            collections={name: PageCollection(members) for name, members in collections.items()},
        )


def generate_page_id(relative_path: PurePath) -> str:
    """Derive a page id by replacing non-alphanumerics in the relative path.

    Examples:
        >>> generate_page_id(PurePath("posts/hello.md"))
        'posts_hello_md'
    """
    return _PAGE_ID_RE.sub("_", relative_path.as_posix())


def generate_slug(frontmatter: dict[str, Any], relative_path: PurePath) -> str:
    """Pick a slug from frontmatter slug, then title, then filename.

    A source that slugifies to nothing is skipped in favour of the next;
    the page id is the last resort.
    """
    for candidate in (frontmatter.get("slug"), frontmatter.get("title"), relative_path.stem):
        if candidate:
            slug = slugify(str(candidate))
            if slug:
                return slug
    return generate_page_id(relative_path)


def determine_collection(relative_path: PurePath, frontmatter: dict[str, Any]) -> str:
    """Collection from frontmatter, else the top-level folder, else ``pages``.

    A frontmatter value is slugified, so it always names a single folder
    under the output directory.
    """
    explicit = slugify(str(frontmatter.get("collection") or ""))
    if explicit:
        return explicit
    if len(relative_path.parts) > 1:
        return relative_path.parts[0]
    return DEFAULT_COLLECTION


def parse_draft(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


class FileContentLoader:
    """Discovers Markdown content files.

    Attributes:
        input_dir: Directory containing content.
    """

    def __init__(self, input_dir: Path):
        self.input_dir = input_dir

    def iter_files(self) -> list[Path]:
        """List every Markdown-family file under the input directory.

        Raises:
            FileNotFoundError: If the input directory does not exist.
            NotADirectoryError: If the input path is not a directory.
        """
        if not self.input_dir.exists():
            raise FileNotFoundError(f"Input directory not found: {self.input_dir}")
        if not self.input_dir.is_dir():
            raise NotADirectoryError(f"Input path is not a directory: {self.input_dir}")
        return sorted(
            path for path in self.input_dir.rglob("*") if path.is_file() and is_markdown(path)
        )


class DefaultPageBuilder:
    """Builds Page objects from source files.

    Attributes:
        input_dir: Directory containing content.
        config: Normalized site configuration.
        processor: Markdown processor used for every file.
    """

    def __init__(
        self,
        input_dir: Path,
        config: dict[str, Any],
        processor: MarkdownProcessor | None = None,
    ):
        self.input_dir = input_dir
        self.config = config
        self.processor = processor or MarkdownProcessor.from_config(config)

    def build(self, path: Path) -> Page:
        """Build a Page from a source file.

        Raises:
            OSError: If the file cannot be read.
            UnicodeDecodeError: If the file is not valid UTF-8.
        """
        relative = PurePath(path.relative_to(self.input_dir).as_posix())
        raw = path.read_text(encoding="utf-8")
        document = self.processor.process(raw)
        frontmatter = document.frontmatter

        collection = determine_collection(relative, frontmatter)
        options = (self.config.get("collections") or {}).get(collection) or {}
        slug = generate_slug(frontmatter, relative)
        date = self._resolve_date(frontmatter.get("date"), path)

        return Page(
            id=generate_page_id(relative),
            source_path=path,
            relative_path=relative,
            slug=slug,
            title=str(frontmatter.get("title") or relative.stem),
            content=document.body,
            html=document.html,
            frontmatter=frontmatter,
            excerpt=document.excerpt,
            word_count=document.word_count,
            reading_time=document.reading_time,
            toc=document.toc,
            template=str(
                frontmatter.get("template")
                or options.get("template")
                or self.config.get("default_template", "default")
            ),
            layout=str(frontmatter.get("layout") or self.config.get("default_layout", "default")),
            date=date,
            draft=parse_draft(frontmatter.get("draft", False)),
            tags=normalize_list(frontmatter.get("tags")),
            categories=normalize_list(frontmatter.get("categories")),
            collection=collection,
            url=page_url(slug, collection, date, options.get("permalink")),
        )

    def _resolve_date(self, value: Any, path: Path) -> datetime:
        if value:
            parsed = coerce_datetime(value)
            if parsed is not None:
                return parsed
            logger.warning("Unrecognized date %r in %s; using file time", value, path)
        try:
            return datetime.fromtimestamp(path.stat().st_mtime)
        except OSError:
            return datetime.now()


class ContentCatalog:
    """Discovers content and keeps the resulting pages and collections.

    A catalog instance holds one build's view of the content. Rebuilding
    means creating a new catalog, not patching this one.

    Attributes:
        input_dir: Directory containing content.
        config: Normalized site configuration.
        pages: Pages keyed by id.
        collections: Collection name to sorted pages.
        failures: Files that could not be loaded.
    """

    def __init__(
        self,
        config: dict[str, Any],
        content_loader: ContentLoader | None = None,
        page_builder: PageBuilder | None = None,
    ):
        self.config = config
        self.input_dir = Path(config["input_dir"])
        self._content_loader = content_loader or FileContentLoader(self.input_dir)
        self._page_builder = page_builder or DefaultPageBuilder(self.input_dir, config)
        self.pages: dict[str, Page] = {}
        self.collections: dict[str, list[Page]] = {}
        self.failures: list[LoadResult] = []

    def load_file(self, path: Path) -> LoadResult:
        """Load one file, converting any failure into a LoadResult."""
        try:
            page = self._page_builder.build(path)
        except Exception as exc:
            logger.error("Error loading content file %s: %s", path, exc)
            return LoadResult(path=path, error=f"{type(exc).__name__}: {exc}")
        return LoadResult(path=path, page=page)

    def discover(self) -> list[Page]:
        """Load every content file and organize collections.

        Files that fail to load are logged, recorded in ``failures`` and
        left out.

        Returns:
            Loaded pages in discovery order.

        Raises:
            FileNotFoundError: If the input directory is missing.
            NotADirectoryError: If the input path is not a directory.
        """
        pages: dict[str, Page] = {}
        failures: list[LoadResult] = []
        for path in self._content_loader.iter_files():
            result = self.load_file(path)
            if result.ok:
                pages[result.page.id] = result.page
            else:
                failures.append(result)
        self.pages = pages
        self.failures = failures
        self.collections = self.organize(pages.values())
        logger.info("Discovered %d pages (%d failed)", len(pages), len(failures))
        return list(pages.values())

    def organize(self, pages) -> dict[str, list[Page]]:
        """Group pages into collections sorted per the collection settings."""
        return organize_collections(pages, self.config.get("collections"))
