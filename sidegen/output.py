"""Output path resolution and writing for SideGen.

Every page is written as ``<dir>/index.html`` so it can be served as a
clean URL. The literal slug ``index`` maps to the site root.

Key functions:
- page_url: Public URL path for a page.
Key classes:
- OutputWriter: Resolves output paths and writes rendered files.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from .utils import ensure_clean_dir, slugify

if TYPE_CHECKING:
    from .content import Page

logger = logging.getLogger(__name__)

INDEX_SLUG = "index"
_MULTI_SLASH_RE = re.compile(r"/{2,}")


def page_url(
    slug: str,
    collection: str,
    date: datetime,
    permalink: str | None = None,
) -> str:
    """Compute the public URL path for a page.

    Args:
        slug: Page slug.
        collection: Collection name (for the ``:collection`` token).
        date: Page date (for ``:year``, ``:month`` and ``:day``).
        permalink: Optional collection permalink pattern such as
            ``/posts/:slug/``.

    Returns:
        URL path with leading and trailing slashes, ``/`` for the index.

    Examples:
        >>> page_url("hello", "posts", datetime(2024, 1, 1))
        '/hello/'
        >>> page_url("hello", "posts", datetime(2024, 1, 1), "/:collection/:year/:slug/")
        '/posts/2024/hello/'
    """
    if slug == INDEX_SLUG:
        return "/"
    if not permalink:
        return f"/{slug}/"
    path = (
        permalink.replace(":collection", collection)
        .replace(":year", f"{date.year:04d}")
        .replace(":month", f"{date.month:02d}")
        .replace(":day", f"{date.day:02d}")
        .replace(":slug", slug)
    )
    path = _MULTI_SLASH_RE.sub("/", f"/{path.strip('/')}/")
    return path


class OutputPathError(ValueError):
    """A computed output path falls outside the output directory."""


class OutputWriter:
    """Maps pages and index pages to files under the output directory.

    Attributes:
        output_dir: Root of the generated site.
    """

    def __init__(self, output_dir: Path):
        self.output_dir = output_dir

    def output_path_for(self, page: Page) -> Path:
        """Return the file a page is written to."""
        return self._path_for_url(page.url)

    def collection_path(self, name: str) -> Path:
        return self._inside(self.output_dir / name / "index.html")

    def tag_path(self, tag: str) -> Path:
        return self._inside(self.output_dir / "tags" / slugify(tag) / "index.html")

    def category_path(self, category: str) -> Path:
        return self._inside(self.output_dir / "categories" / slugify(category) / "index.html")

    def _path_for_url(self, url: str) -> Path:
        relative = url.strip("/")
        if not relative:
            return self.output_dir / "index.html"
        return self._inside(self.output_dir / relative / "index.html")

    def _inside(self, path: Path) -> Path:
        """Return ``path`` unchanged, or raise if it leaves the output directory.

        Raises:
            OutputPathError: For absolute components or ``..`` escapes.
        """
        root = self.output_dir.resolve()
        resolved = path.resolve()
        if not resolved.is_relative_to(root):
            raise OutputPathError(f"{path} is outside the output directory {self.output_dir}")
        return path

    def clean(self) -> None:
        """Remove everything under the output directory."""
        ensure_clean_dir(self.output_dir)

    def write(self, path: Path, html: str) -> Path:
        """Write a rendered document, creating parent directories as needed.

        Raises:
            OSError: If the file cannot be written.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(html, encoding="utf-8")
        logger.debug("Generated %s", path)
        return path
