"""Asset pipeline for SideGen.

Walks the assets directory, hands every file to the matching processor
from the registry and records what was produced in an AssetManifest.
Also writes the built-in ``main.css`` and ``main.js`` unless the project
ships its own.

Key classes:
- AssetPipeline: Runs the processors and builds the manifest.
- AssetManifest: Source asset path to processed output path.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterator, Mapping
from pathlib import Path, PurePosixPath
from typing import Any

from .asset_processors import (
    CATEGORY_CSS,
    CATEGORY_JS,
    AssetProcessorRegistry,
    create_default_registry,
)
from .protocols import AssetProcessor

logger = logging.getLogger(__name__)

BUILTIN_DIR = Path(__file__).parent / "builtin"
ASSETS_FOLDER = "assets"
SYNTHESIZED_ASSETS = (
    (CATEGORY_CSS, "main.css"),
    (CATEGORY_JS, "main.js"),
)


class AssetManifest(Mapping[str, Path]):
    """Read-only mapping of source asset path to processed output path.

    Keys are POSIX paths relative to the assets directory. Only assets
    that were processed successfully are present, plus the built-in
    ``css/main.css`` and ``js/main.js`` when the project ships none.

    Attributes:
        output_dir: Root of the generated site, for public URLs.
    """

    def __init__(self, entries: Mapping[str, Path], output_dir: Path):
        self._entries = dict(entries)
        self.output_dir = output_dir

    def __getitem__(self, key: str) -> Path:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def public_url(self, key: str) -> str:
        """Return the site URL of a processed asset.

        Raises:
            KeyError: If the asset is not in the manifest.
        """
        relative = self._entries[key].relative_to(self.output_dir)
        return "/" + relative.as_posix()


class AssetPipeline:
    """Processes every file under the assets directory.

    Attributes:
        assets_dir: Directory containing source assets.
        output_dir: Root of the generated site.
        registry: Processor registry used to pick a processor per file.
    """

    def __init__(
        self,
        config: dict[str, Any],
        registry: AssetProcessorRegistry | None = None,
    ):
        self.assets_dir = Path(config["assets_dir"])
        self.output_dir = Path(config["output_dir"])
        self.registry = registry or create_default_registry(config)
        self.failures: list[tuple[str, str]] = []

    def destination_for(self, relative: PurePosixPath, processor: AssetProcessor) -> Path:
        """Compute where a processed asset goes.

        Categorized assets land in ``assets/<category>/``; a leading
        folder already named after the category is not repeated.
        Uncategorized files keep their path under ``assets/``.
        """
        target = self.output_dir / ASSETS_FOLDER
        category = getattr(processor, "category", None)
        if category is None:
            return target.joinpath(*relative.parts)
        parts = relative.parts
        if len(parts) > 1 and parts[0] == category:
            parts = parts[1:]
        return target.joinpath(category, *parts)

    def iter_sources(self) -> list[Path]:
        if not self.assets_dir.is_dir():
            return []
        return sorted(path for path in self.assets_dir.rglob("*") if path.is_file())

    def process(self) -> AssetManifest:
        """Process all assets and write the built-in ones.

        A file whose processor raises is logged and left out of the
        manifest; the remaining files are still processed.

        Returns:
            Manifest of successfully processed assets.
        """
        entries: dict[str, Path] = {}
        self.failures = []
        for source in self.iter_sources():
            relative = PurePosixPath(source.relative_to(self.assets_dir).as_posix())
            processor = self.registry.get_processor(source)
            if processor is None:
                continue
            dest = self.destination_for(relative, processor)
            try:
                processed = processor.process(source, dest)
            except Exception as exc:
                logger.error("Error processing asset %s: %s", source, exc)
                self.failures.append((relative.as_posix(), f"{type(exc).__name__}: {exc}"))
                continue
            if processed:
                entries[relative.as_posix()] = dest
                logger.debug("Processed asset %s -> %s", relative, dest)

        self.write_builtin_assets(entries)
        logger.info("Processed %d assets", len(entries))
        return AssetManifest(entries, self.output_dir)

    def write_builtin_assets(self, entries: dict[str, Path]) -> list[Path]:
        """Write the built-in ``main.css`` and ``main.js`` into free output slots.

        A slot is taken when a processed asset already wrote the same output
        file. Each built-in written is added to ``entries``.

        Returns:
            Paths of the files written.
        """
        written = []
        for category, name in SYNTHESIZED_ASSETS:
            dest = self.output_dir / ASSETS_FOLDER / category / name
            if dest in entries.values():
                continue
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(BUILTIN_DIR / name, dest)
            entries[f"{category}/{name}"] = dest
            written.append(dest)
            logger.debug("Generated %s", dest)
        return written
