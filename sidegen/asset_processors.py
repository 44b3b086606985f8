"""Asset processors for SideGen.

Each processor handles one kind of asset and writes it to the
destination chosen by the pipeline. A processor raises on failure; the
pipeline decides what a failure means for the build.

Key classes:
- ImageProcessor: Bounds, re-encodes and adds WebP siblings with Pillow.
- StylesheetProcessor: Runs stylesheets through the Tailwind CSS CLI.
- ScriptProcessor: Copies or minifies JavaScript with rjsmin.
- StaticAssetProcessor: Copies everything else.
- AssetProcessorRegistry: Picks the processor for a file by priority.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from PIL import Image
from rjsmin import jsmin

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE = (1920, 1080)
IMAGE_QUALITY = 85
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".svg"}
WEBP_SOURCE_EXTENSIONS = {".jpg", ".jpeg", ".png"}
TAILWIND_CONFIG_FILES = (
    "tailwind.config.js",
    "tailwind.config.cjs",
    "tailwind.config.mjs",
    "tailwind.config.ts",
)

CATEGORY_CSS = "css"
CATEGORY_JS = "js"
CATEGORY_IMAGES = "images"


class AssetProcessingError(Exception):
    """An asset could not be processed."""


def find_node_binary(name: str, project_root: Path | None = None) -> str | None:
    """Locate a Node CLI on PATH, then in the project's ``node_modules/.bin``."""
    found = shutil.which(name)
    if found or project_root is None:
        return found
    local = project_root / "node_modules" / ".bin" / name
    return str(local) if local.is_file() else None


class BaseAssetProcessor(ABC):
    """Base class for asset processors.

    Attributes:
        category: Output folder under ``assets/`` (None keeps the source path).
    """

    category: str | None = None

    @property
    @abstractmethod
    def priority(self) -> int:
        """Return processor priority (higher = checked first)."""
        ...

    @abstractmethod
    def can_process(self, path: Path) -> bool:
        """Check if this processor can handle the given asset."""
        ...

    @abstractmethod
    def process(self, source: Path, dest: Path) -> bool:
        """Process ``source`` into ``dest``.

        Returns:
            True once the output has been written.

        Raises:
            AssetProcessingError: If the asset cannot be processed.
            OSError: If reading or writing fails.
        """
        ...

    def ensure_dest_dir(self, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)


class ImageProcessor(BaseAssetProcessor):
    """Optimizes images with Pillow.

    Raster images are bounded to ``max_size`` keeping their aspect ratio
    (never upscaled) and re-encoded; JPEG and PNG sources also get a
    ``.webp`` sibling. SVGs and animated GIFs are copied unchanged, as is
    everything when optimization is turned off.
    """

    category = CATEGORY_IMAGES

    def __init__(
        self,
        optimize: bool = True,
        max_size: tuple[int, int] = MAX_IMAGE_SIZE,
        quality: int = IMAGE_QUALITY,
    ):
        self.optimize = optimize
        self.max_size = max_size
        self.quality = quality

    @property
    def priority(self) -> int:
        return 100

    def can_process(self, path: Path) -> bool:
        return path.suffix.lower() in IMAGE_EXTENSIONS

    def process(self, source: Path, dest: Path) -> bool:
        self.ensure_dest_dir(dest)
        suffix = source.suffix.lower()

        if not self.optimize or suffix == ".svg":
            shutil.copy2(source, dest)
            return True

        with Image.open(source) as img:
            if getattr(img, "is_animated", False):
                shutil.copy2(source, dest)
                return True
            image = img.copy()

        image.thumbnail(self.max_size)
        self._save(image, dest, suffix)
        if suffix in WEBP_SOURCE_EXTENSIONS:
            image.save(dest.with_suffix(".webp"), "WEBP", quality=self.quality)
        logger.debug("Optimized image %s (%dx%d)", dest, *image.size)
        return True

    def _save(self, image: Image.Image, dest: Path, suffix: str) -> None:
        if suffix in (".jpg", ".jpeg"):
            if image.mode not in ("RGB", "L", "CMYK"):
                image = image.convert("RGB")
            image.save(dest, "JPEG", quality=self.quality, optimize=True)
        elif suffix == ".png":
            image.save(dest, "PNG", optimize=True)
        elif suffix == ".webp":
            image.save(dest, "WEBP", quality=self.quality)
        else:
            image.save(dest)


class StylesheetProcessor(BaseAssetProcessor):
    """Processes stylesheets with the Tailwind CSS CLI.

    When the CLI is not installed stylesheets are copied unchanged and a
    warning is logged once per processor.
    """

    category = CATEGORY_CSS

    def __init__(
        self,
        project_root: Path,
        minify: bool = True,
        content_globs: list[str] | None = None,
    ):
        self.project_root = project_root
        self.minify = minify
        self.content_globs = content_globs or []
        self._warned_missing = False

    @property
    def priority(self) -> int:
        return 90

    def can_process(self, path: Path) -> bool:
        return path.suffix.lower() == ".css"

    def process(self, source: Path, dest: Path) -> bool:
        self.ensure_dest_dir(dest)

        tailwind_bin = find_node_binary("tailwindcss", self.project_root)
        if not tailwind_bin:
            if not self._warned_missing:
                logger.warning(
                    "Tailwind CSS CLI not found; copying stylesheets unprocessed. "
                    "Install with `npm install -D tailwindcss`."
                )
                self._warned_missing = True
            shutil.copy2(source, dest)
            return True

        cmd = [tailwind_bin, "-i", str(source), "-o", str(dest)]
        if self.minify:
            cmd.append("--minify")
        if self.content_globs and not self._has_tailwind_config():
            cmd.extend(["--content", ",".join(self.content_globs)])

        result = subprocess.run(
            cmd, capture_output=True, text=True, cwd=str(self.project_root)
        )
        if result.returncode != 0:
            raise AssetProcessingError(
                f"Tailwind CSS failed for {source.name}: {result.stderr.strip()}"
            )
        return True

    def _has_tailwind_config(self) -> bool:
        return any((self.project_root / name).exists() for name in TAILWIND_CONFIG_FILES)


class ScriptProcessor(BaseAssetProcessor):
    """Copies JavaScript files, minifying them with rjsmin when enabled."""

    category = CATEGORY_JS

    def __init__(self, minify: bool = False):
        self.minify = minify

    @property
    def priority(self) -> int:
        return 80

    def can_process(self, path: Path) -> bool:
        return path.suffix.lower() == ".js"

    def process(self, source: Path, dest: Path) -> bool:
        self.ensure_dest_dir(dest)
        if not self.minify:
            shutil.copy2(source, dest)
            return True
        dest.write_text(jsmin(source.read_text(encoding="utf-8")), encoding="utf-8")
        return True


class StaticAssetProcessor(BaseAssetProcessor):
    """Copies any file unchanged; the fallback processor."""

    @property
    def priority(self) -> int:
        return 0

    def can_process(self, path: Path) -> bool:
        return True

    def process(self, source: Path, dest: Path) -> bool:
        self.ensure_dest_dir(dest)
        shutil.copy2(source, dest)
        return True


class AssetProcessorRegistry:
    """Selects the processor for a file, highest priority first."""

    def __init__(self):
        self._processors: list[BaseAssetProcessor] = []

    def register(self, processor: BaseAssetProcessor) -> None:
        self._processors.append(processor)
        self._processors.sort(key=lambda p: p.priority, reverse=True)

    def get_processor(self, path: Path) -> BaseAssetProcessor | None:
        for processor in self._processors:
            if processor.can_process(path):
                return processor
        return None


def create_default_registry(config: dict[str, Any]) -> AssetProcessorRegistry:
    """Create a registry with the standard processors configured from ``config``.

    Args:
        config: Normalized site configuration.

    Returns:
        Configured AssetProcessorRegistry.
    """
    project_root = Path(config.get("project_root") or Path.cwd())
    content_globs = [
        str(Path(config["input_dir"]) / "**" / "*.md"),
        str(Path(config["templates_dir"]) / "**" / "*.html"),
        str(Path(config["templates_dir"]) / "**" / "*.jinja"),
        str(Path(config["assets_dir"]) / "**" / "*.js"),
    ]
    registry = AssetProcessorRegistry()
    registry.register(ImageProcessor(optimize=bool(config.get("optimize_images", True))))
    registry.register(
        StylesheetProcessor(
            project_root,
            minify=bool(config.get("minify_css", True)),
            content_globs=content_globs,
        )
    )
    registry.register(ScriptProcessor(minify=bool(config.get("minify_js", False))))
    registry.register(StaticAssetProcessor())
    return registry
