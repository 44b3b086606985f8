"""Site building for SideGen.

A full build runs these stages in order: discover and organize content,
clear the output directory, render every published page, render the
collection/tag/category index pages, process assets, copy public files
and write the feeds. Failures of single items are collected on the
BuildResult; only problems that make the whole build meaningless raise
BuildError.

Key functions:
- build_site: Build a site from a normalized configuration.
Key classes:
- SiteGenerator: Runs the build stages.
- BuildResult: Summary of a finished build.
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .assets import AssetManifest, AssetPipeline
from .collections import PageCollection, build_taxonomy
from .content import DEFAULT_COLLECTION, ContentCatalog, Page, SiteContext
from .feeds import FeedRegistry, create_default_feed_registry
from .output import OutputPathError, OutputWriter
from .templates import TemplateRenderer

logger = logging.getLogger(__name__)

STAGE_CONTENT = "content"
STAGE_RENDER = "render"
STAGE_ASSETS = "assets"
STAGE_PUBLIC = "public"
STAGE_FEEDS = "feeds"


class BuildError(Exception):
    """Fatal build error with file context.

    Attributes:
        source_path: Path that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


@dataclass(frozen=True)
class BuildFailure:
    """A single item that failed without stopping the build.

    Attributes:
        stage: Build stage the failure happened in.
        source: Source file, asset path or index name.
        message: Error description.
    """

    stage: str
    source: str
    message: str


@dataclass
class BuildResult:
    """Result of a site build.

    Attributes:
        pages: Pages that were generated (drafts excluded unless requested).
        output_dir: Directory where the site was built.
        collections: Collections of the generated pages.
        written: Every HTML file written, in write order.
        failures: Per-item failures collected during the build.
        manifest: Processed assets.
        catalog: The catalog the build was made from.
        feeds: Feed filenames written.
    """

    pages: list[Page]
    output_dir: Path
    collections: dict[str, list[Page]]
    written: list[Path] = field(default_factory=list)
    failures: list[BuildFailure] = field(default_factory=list)
    manifest: AssetManifest | None = None
    catalog: ContentCatalog | None = None
    feeds: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class SiteGenerator:
    """Builds a site from a normalized configuration.

    Attributes:
        config: Normalized site configuration.
        include_drafts: Whether draft pages are generated.
        catalog: Content catalog for this build.
        renderer: Template renderer.
        writer: Output writer.
        asset_pipeline: Asset pipeline.
        feed_registry: Feed generators.
    """

    def __init__(
        self,
        config: dict[str, Any],
        include_drafts: bool | None = None,
        catalog: ContentCatalog | None = None,
        renderer: TemplateRenderer | None = None,
        asset_pipeline: AssetPipeline | None = None,
        feed_registry: FeedRegistry | None = None,
    ):
        self.config = config
        if include_drafts is None:
            include_drafts = bool(config.get("development"))
        self.include_drafts = include_drafts
        self.output_dir = Path(config["output_dir"])
        self.catalog = catalog or ContentCatalog(config)
        self.renderer = renderer or TemplateRenderer(config)
        self.writer = OutputWriter(self.output_dir)
        self.asset_pipeline = asset_pipeline or AssetPipeline(config)
        self.feed_registry = feed_registry or create_default_feed_registry(config)

    def filter_pages(self, pages: list[Page]) -> list[Page]:
        """Drop drafts unless drafts are included."""
        if self.include_drafts:
            return list(pages)
        return [page for page in pages if not page.draft]

    def build(self) -> BuildResult:
        """Run every build stage.

        Returns:
            BuildResult describing what was generated.

        Raises:
            BuildError: If the input directory cannot be read or the
                output directory cannot be written.
        """
        started = time.perf_counter()
        try:
            pages = self.catalog.discover()
        except OSError as exc:
            raise BuildError(self.catalog.input_dir, str(exc), exc) from exc

        failures = [
            BuildFailure(STAGE_CONTENT, str(result.path), result.error or "")
            for result in self.catalog.failures
        ]

        try:
            self.writer.clean()
        except OSError as exc:
            raise BuildError(
                self.output_dir, f"Cannot clear output directory: {exc}", exc
            ) from exc

        published = self.filter_pages(pages)
        collections = self.catalog.organize(published)
        site = SiteContext.from_config(self.config, published, collections, datetime.now())
        result = BuildResult(
            pages=published,
            output_dir=self.output_dir,
            collections=collections,
            failures=failures,
            catalog=self.catalog,
        )

        for page in published:
            source = str(page.source_path)
            path = self._resolve_path(self.writer.output_path_for, page, source, result)
            if path is None:
                continue
            data = {"page": page, "site": site, "collections": site.collections}
            self._render_to(page.template, data, path, source, result)

        self._render_indexes(site, collections, result)

        result.manifest = self.asset_pipeline.process()
        result.failures.extend(
            BuildFailure(STAGE_ASSETS, source, message)
            for source, message in self.asset_pipeline.failures
        )

        self._copy_public_files(result)
        self._write_feeds(published, result)

        logger.info(
            "Built %d pages in %.2fs (%d failures)",
            len(published),
            time.perf_counter() - started,
            len(result.failures),
        )
        return result

    def _render_to(
        self,
        template_name: str,
        data: dict[str, Any],
        path: Path,
        source: str,
        result: BuildResult,
    ) -> None:
        rendered = self.renderer.render_result(template_name, data)
        if not rendered.ok:
            result.failures.append(BuildFailure(STAGE_RENDER, source, rendered.error or ""))
        try:
            self.writer.write(path, rendered.html)
        except OSError as exc:
            raise BuildError(path, f"Cannot write output file: {exc}", exc) from exc
        result.written.append(path)

    def _render_indexes(
        self, site: SiteContext, collections: dict[str, list[Page]], result: BuildResult
    ) -> None:
        base = {"site": site, "collections": site.collections}

        for name, members in collections.items():
            if name == DEFAULT_COLLECTION:
                continue
            source = f"collection:{name}"
            path = self._resolve_path(self.writer.collection_path, name, source, result)
            if path is None:
                continue
            data = {
                **base,
                "collection": name,
                "title": name.replace("-", " ").title(),
                "pages": PageCollection(members),
                "url": self._url_of(path),
            }
            self._render_to("collection", data, path, source, result)

        for tag, members in build_taxonomy(result.pages, "tags").items():
            path = self._resolve_path(self.writer.tag_path, tag, f"tag:{tag}", result)
            if path is None:
                continue
            data = {
                **base,
                "tag": tag,
                "title": tag,
                "pages": PageCollection(members),
                "url": self._url_of(path),
            }
            self._render_to("tag", data, path, f"tag:{tag}", result)

        for category, members in build_taxonomy(result.pages, "categories").items():
            path = self._resolve_path(
                self.writer.category_path, category, f"category:{category}", result
            )
            if path is None:
                continue
            data = {
                **base,
                "category": category,
                "title": category,
                "pages": PageCollection(members),
                "url": self._url_of(path),
            }
            self._render_to("category", data, path, f"category:{category}", result)

    def _resolve_path(self, resolve, key, source: str, result: BuildResult) -> Path | None:
        try:
            return resolve(key)
        except OutputPathError as exc:
            logger.error("Skipping %s: %s", source, exc)
            result.failures.append(BuildFailure(STAGE_RENDER, source, str(exc)))
            return None

    def _url_of(self, index_file: Path) -> str:
        return "/" + index_file.parent.relative_to(self.output_dir).as_posix() + "/"

    def _copy_public_files(self, result: BuildResult) -> None:
        public_dir = Path(self.config["public_dir"])
        if not public_dir.is_dir():
            return
        try:
            shutil.copytree(public_dir, self.output_dir, dirs_exist_ok=True)
        except OSError as exc:
            logger.error("Error copying public files from %s: %s", public_dir, exc)
            result.failures.append(BuildFailure(STAGE_PUBLIC, str(public_dir), str(exc)))

    def _write_feeds(self, pages: list[Page], result: BuildResult) -> None:
        if not self.config.get("base_url"):
            return
        try:
            result.feeds = self.feed_registry.generate_all(self.output_dir, pages, self.config)
        except OSError as exc:
            logger.error("Error writing feeds: %s", exc)
            result.failures.append(BuildFailure(STAGE_FEEDS, str(self.output_dir), str(exc)))


def build_site(config: dict[str, Any], include_drafts: bool | None = None) -> BuildResult:
    """Build the entire static site.

    Args:
        config: Normalized configuration from ``load_config``/``make_config``.
        include_drafts: Generate draft pages; defaults to ``development``.

    Returns:
        BuildResult for the finished build.

    Raises:
        BuildError: On fatal input or output errors.
    """
    return SiteGenerator(config, include_drafts=include_drafts).build()
