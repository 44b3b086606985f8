import asyncio
import threading
from types import SimpleNamespace

import pytest

from sidegen.orchestrator import BuildOrchestrator, BuildState
from sidegen.protocols import Broadcaster


class RecordingBroadcaster:
    def __init__(self):
        self.messages = []

    async def broadcast(self, message):
        self.messages.append(message)


def test_recording_broadcaster_matches_protocol():
    assert isinstance(RecordingBroadcaster(), Broadcaster)


def test_rebuild_success_broadcasts_reload():
    broadcaster = RecordingBroadcaster()
    result = SimpleNamespace(catalog="catalog")
    orchestrator = BuildOrchestrator(lambda: result, broadcaster=broadcaster)

    assert asyncio.run(orchestrator.rebuild()) is result
    assert broadcaster.messages == [{"type": "reload"}]
    assert orchestrator.catalog == "catalog"
    assert orchestrator.last_result is result
    assert orchestrator.last_error is None
    assert orchestrator.state is BuildState.IDLE


def test_rebuild_failure_broadcasts_error():
    broadcaster = RecordingBroadcaster()

    def build():
        raise RuntimeError("boom")

    orchestrator = BuildOrchestrator(build, broadcaster=broadcaster)
    orchestrator.catalog = "previous"

    assert asyncio.run(orchestrator.rebuild()) is None
    assert broadcaster.messages == [{"type": "error", "message": "boom"}]
    assert orchestrator.last_error == "boom"
    assert orchestrator.catalog == "previous"
    assert orchestrator.state is BuildState.IDLE


def test_request_while_building_is_dropped():
    calls = []
    release = threading.Event()

    def build():
        calls.append(1)
        release.wait(5)
        return SimpleNamespace(catalog=None)

    broadcaster = RecordingBroadcaster()
    orchestrator = BuildOrchestrator(build, broadcaster=broadcaster)

    async def scenario():
        first = asyncio.create_task(orchestrator.rebuild())
        await asyncio.sleep(0)
        assert orchestrator.building
        assert await orchestrator.rebuild() is None
        release.set()
        return await first

    assert asyncio.run(scenario()) is not None
    assert calls == [1]
    assert broadcaster.messages == [{"type": "reload"}]


def test_burst_of_changes_is_debounced_into_one_build():
    calls = []
    orchestrator = BuildOrchestrator(
        lambda: calls.append(1) or SimpleNamespace(catalog=None), debounce=0.05
    )

    async def scenario():
        for index in range(5):
            orchestrator.notify_change(f"file{index}.md")
        await orchestrator.wait_idle()
        assert len(calls) == 1
        orchestrator.notify_change("again.md")
        await orchestrator.wait_idle()

    asyncio.run(scenario())
    assert len(calls) == 2


def test_cancel_drops_pending_change():
    calls = []
    orchestrator = BuildOrchestrator(lambda: calls.append(1), debounce=0.02)

    async def scenario():
        orchestrator.notify_change("a.md")
        orchestrator.cancel()
        await asyncio.sleep(0.1)

    asyncio.run(scenario())
    assert calls == []


def test_threadsafe_notification_requires_loop():
    orchestrator = BuildOrchestrator(lambda: None)
    with pytest.raises(RuntimeError):
        orchestrator.notify_change_threadsafe("a.md")


def test_threadsafe_notification_schedules_build():
    calls = []
    orchestrator = BuildOrchestrator(
        lambda: calls.append(1) or SimpleNamespace(catalog=None), debounce=0.02
    )

    async def scenario():
        orchestrator.bind(asyncio.get_running_loop())
        worker = threading.Thread(target=orchestrator.notify_change_threadsafe, args=("a.md",))
        worker.start()
        worker.join()
        await asyncio.sleep(0)
        await orchestrator.wait_idle()

    asyncio.run(scenario())
    assert calls == [1]


def test_broadcast_errors_are_logged(caplog):
    class FailingBroadcaster:
        async def broadcast(self, message):
            raise ConnectionError("gone")

    orchestrator = BuildOrchestrator(
        lambda: SimpleNamespace(catalog=None), broadcaster=FailingBroadcaster()
    )
    assert asyncio.run(orchestrator.rebuild()) is not None
    assert "Error broadcasting reload message" in caplog.text
