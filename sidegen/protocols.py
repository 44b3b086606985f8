"""Protocol definitions for SideGen.

The interfaces the pipeline depends on, so that components can be
swapped or faked in tests without subclassing the defaults.
"""

from __future__ import annotations

from abc import abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .content import Page


@runtime_checkable
class ContentLoader(Protocol):
    """Discovers content files."""

    @abstractmethod
    def iter_files(self) -> list[Path]:
        """Return every content file to load, in a stable order."""
        ...


@runtime_checkable
class PageBuilder(Protocol):
    """Builds Page objects from source files."""

    @abstractmethod
    def build(self, path: Path) -> Page:
        """Build a Page from a source file.

        Raises:
            Exception: Any failure; the catalog records it per file.
        """
        ...


@runtime_checkable
class AssetProcessor(Protocol):
    """Processes one kind of asset file."""

    category: str | None

    @abstractmethod
    def can_process(self, path: Path) -> bool:
        """Check if this processor can handle the given asset."""
        ...

    @abstractmethod
    def process(self, source: Path, dest: Path) -> bool:
        """Process ``source`` into ``dest``.

        Returns:
            True once the output has been written.
        """
        ...

    @property
    @abstractmethod
    def priority(self) -> int:
        """Return processor priority (higher = checked first)."""
        ...


@runtime_checkable
class Broadcaster(Protocol):
    """Delivers live-reload messages to connected clients."""

    @abstractmethod
    async def broadcast(self, message: dict[str, Any]) -> None:
        """Send ``message`` to every client; failed clients are dropped."""
        ...
