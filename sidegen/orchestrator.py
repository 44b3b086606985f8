"""Rebuild orchestration for the SideGen development loop.

BuildOrchestrator is a two-state machine (idle/building) living on one
asyncio event loop. File change notifications are debounced into a
single rebuild; the synchronous build runs in a worker thread; the
outcome is broadcast to live-reload clients. A rebuild requested while
another one is running is dropped.

Key classes:
- BuildOrchestrator: Debounces change events and runs rebuilds.
- BuildState: The orchestrator's state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from .protocols import Broadcaster

if TYPE_CHECKING:
    from .build import BuildResult
    from .content import ContentCatalog

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.1


class BuildState(str, Enum):
    IDLE = "idle"
    BUILDING = "building"


class BuildOrchestrator:
    """Runs rebuilds on behalf of file watchers and HTTP endpoints.

    Every method except ``notify_change_threadsafe`` must be called on
    the event loop the orchestrator is bound to.

    Attributes:
        state: Current BuildState.
        debounce: Quiet period before a change triggers a rebuild.
        catalog: Catalog of the last successful build.
        last_result: Last successful BuildResult.
        last_error: Message of the last failed build, None after a success.
    """

    def __init__(
        self,
        build: Callable[[], BuildResult],
        broadcaster: Broadcaster | None = None,
        debounce: float = DEBOUNCE_SECONDS,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            build: Synchronous callable running a full build.
            broadcaster: Receives ``reload``/``error`` messages.
            debounce: Debounce window in seconds.
            loop: Event loop to schedule on; defaults to the running loop.
        """
        self._build = build
        self.broadcaster = broadcaster
        self.debounce = debounce
        self._loop = loop
        self.state = BuildState.IDLE
        self.catalog: ContentCatalog | None = None
        self.last_result: BuildResult | None = None
        self.last_error: str | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None

    @property
    def building(self) -> bool:
        return self.state is BuildState.BUILDING

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    async def rebuild(self) -> BuildResult | None:
        """Run one full build unless a build is already in progress.

        Returns:
            The BuildResult, or None if the request was dropped or the
            build failed.
        """
        if self.building:
            logger.debug("Build already in progress; rebuild request dropped")
            return None

        self.state = BuildState.BUILDING
        try:
            result = await asyncio.to_thread(self._build)
        except Exception as exc:
            self.last_error = str(exc) or type(exc).__name__
            logger.error("Rebuild failed: %s", self.last_error)
            await self._broadcast({"type": "error", "message": self.last_error})
            return None
        finally:
            self.state = BuildState.IDLE

        self.last_result = result
        self.catalog = getattr(result, "catalog", None)
        self.last_error = None
        logger.info("Rebuild complete")
        await self._broadcast({"type": "reload"})
        return result

    def notify_change(self, path: Any = None) -> None:
        """Record a file change; a rebuild starts after the debounce window.

        Each notification restarts the window, so a burst of changes
        produces a single rebuild.
        """
        if path is not None:
            logger.debug("Change detected: %s", path)
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._get_loop().call_later(self.debounce, self._start_rebuild)

    def notify_change_threadsafe(self, path: Any = None) -> None:
        """Forward a change from another thread (e.g. a watchdog observer)."""
        if self._loop is None:
            raise RuntimeError("BuildOrchestrator is not bound to an event loop")
        self._loop.call_soon_threadsafe(self.notify_change, path)

    def _start_rebuild(self) -> None:
        self._timer = None
        self._task = self._get_loop().create_task(self.rebuild())

    async def wait_idle(self) -> None:
        """Wait for a pending debounce timer and the rebuild it starts."""
        while self._timer is not None or (self._task is not None and not self._task.done()):
            if self._task is not None and not self._task.done():
                await self._task
            else:
                await asyncio.sleep(self.debounce / 2 or 0.01)

    def cancel(self) -> None:
        """Cancel a pending debounce timer."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _broadcast(self, message: dict[str, Any]) -> None:
        if self.broadcaster is None:
            return
        try:
            await self.broadcaster.broadcast(message)
        except Exception as exc:
            logger.error("Error broadcasting %s message: %s", message.get("type"), exc)
