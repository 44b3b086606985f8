"""Site feeds: ``sitemap.xml`` and ``rss.xml``.

Feeds are rendered from the XML templates in ``builtin/feeds`` after
every page has been written. Links in a feed must be absolute, so the
template feeds are skipped while ``base_url`` is unset.

Extra feeds are added by subclassing ``FeedGenerator`` and registering
an instance on the ``FeedRegistry`` passed to the site builder.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from jinja2 import Environment, FileSystemLoader

if TYPE_CHECKING:
    from .content import Page

logger = logging.getLogger(__name__)

FEED_TEMPLATE_DIR = Path(__file__).parent / "builtin" / "feeds"
RFC822_FORMAT = "%a, %d %b %Y %H:%M:%S +0000"


def rfc822(value: datetime) -> str:
    return value.strftime(RFC822_FORMAT)


_feed_env = Environment(
    loader=FileSystemLoader(str(FEED_TEMPLATE_DIR)),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True,
)
_feed_env.filters["rfc822"] = rfc822


class FeedGenerator(ABC):
    """A file written to the output root from the published pages."""

    @property
    @abstractmethod
    def filename(self) -> str: ...

    @abstractmethod
    def generate(self, pages: Iterable[Page], config: dict[str, Any]) -> str | None:
        """Return the feed text, or None to skip writing it."""
        ...

    def write(self, output_dir: Path, pages: Iterable[Page], config: dict[str, Any]) -> bool:
        text = self.generate(pages, config)
        if text is None:
            logger.debug("Skipped %s", self.filename)
            return False
        (output_dir / self.filename).write_text(text, encoding="utf-8")
        logger.debug("Wrote %s", self.filename)
        return True


class TemplateFeed(FeedGenerator):
    """Renders ``<filename>.jinja`` with the site's absolute base URL."""

    def generate(self, pages: Iterable[Page], config: dict[str, Any]) -> str | None:
        base_url = str(config.get("base_url") or "").rstrip("/")
        if not base_url:
            return None
        template = _feed_env.get_template(f"{self.filename}.jinja")
        return template.render(base_url=base_url, **self.context(list(pages), config))

    def context(self, pages: list[Page], config: dict[str, Any]) -> dict[str, Any]:
        return {"pages": pages}


class SitemapGenerator(TemplateFeed):
    """Every page with its last modification date."""

    @property
    def filename(self) -> str:
        return "sitemap.xml"


class RSSGenerator(TemplateFeed):
    """RSS 2.0 channel with the newest pages first.

    ``build_time`` pins ``lastBuildDate``; it defaults to the moment the
    feed is rendered.
    """

    def __init__(self, build_time: datetime | None = None):
        self.build_time = build_time

    @property
    def filename(self) -> str:
        return "rss.xml"

    def context(self, pages: list[Page], config: dict[str, Any]) -> dict[str, Any]:
        return {
            "pages": sorted(pages, key=lambda page: page.date, reverse=True),
            "title": config.get("title") or "SideGen Feed",
            "description": config.get("description") or "",
            "build_time": self.build_time or datetime.now(timezone.utc),
        }


class FeedRegistry:
    """Ordered feed generators run at the end of a build."""

    def __init__(self) -> None:
        self._generators: list[FeedGenerator] = []

    def register(self, generator: FeedGenerator) -> None:
        self._generators.append(generator)

    def generate_all(
        self, output_dir: Path, pages: Iterable[Page], config: dict[str, Any]
    ) -> list[str]:
        """Write each feed and return the filenames that were written."""
        pages = list(pages)
        return [
            generator.filename
            for generator in self._generators
            if generator.write(output_dir, pages, config)
        ]


def create_default_feed_registry(config: dict[str, Any]) -> FeedRegistry:
    """Sitemap and RSS, each unless switched off in ``config``."""
    registry = FeedRegistry()
    if config.get("generate_sitemap", True):
        registry.register(SitemapGenerator())
    if config.get("generate_rss", True):
        registry.register(RSSGenerator())
    return registry
