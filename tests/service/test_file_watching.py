"""
Service-level tests for watching real files.

These use the real watchdog observers against a temporary directory, so they
exercise the whole path from an OS notification to subscriber delivery.
"""

import asyncio

import pytest

from app.utils.config import Settings
from domains.source_registry.handlers.file import FileHandler, path_to_uri
from domains.source_registry.registry import HandlerRegistry
from domains.source_registry.watch_manager import WatchManager

EVENT_TIMEOUT = 5.0


class CountingFileHandler(FileHandler):
    """File handler that counts the OS watches it creates."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.watches = []

    def watch(self, uri, on_event, on_error):
        handle = super().watch(uri, on_event, on_error)
        self.watches.append(handle)
        return handle


def _manager(**overrides):
    settings = Settings(watch_debounce_ms=200, watch_join_timeout=2.0, **overrides)
    handler = CountingFileHandler(settings)
    registry = HandlerRegistry()
    registry.register("file", handler)
    return WatchManager(registry), handler


async def _next(queue: asyncio.Queue):
    return await asyncio.wait_for(queue.get(), EVENT_TIMEOUT)


@pytest.mark.asyncio
async def test_two_subscribers_one_observer(tmp_path):
    target = tmp_path / "a.txt"
    target.write_text("one")
    uri = path_to_uri(target)
    manager, handler = _manager()
    first, second = asyncio.Queue(), asyncio.Queue()

    try:
        await manager.start_watch(uri, "first", first.put_nowait)
        await manager.start_watch(uri, "second", second.put_nowait)
        assert len(handler.watches) == 1

        await asyncio.sleep(0.2)
        target.write_text("two")

        event_a = await _next(first)
        event_b = await _next(second)
        assert (event_a.event, event_b.event) == ("change", "change")
        assert event_a.uri == event_b.uri == uri
    finally:
        await manager.shutdown()

    assert all(watch.closed for watch in handler.watches)


@pytest.mark.asyncio
async def test_delete_is_reported(tmp_path):
    target = tmp_path / "doomed.txt"
    target.write_text("bye")
    uri = path_to_uri(target)
    manager, _ = _manager()
    inbox = asyncio.Queue()

    try:
        await manager.start_watch(uri, "sub", inbox.put_nowait)
        await asyncio.sleep(0.2)
        target.unlink()

        event = await _next(inbox)
        assert event.event == "delete"
        assert manager.is_watching(uri)
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_directory_watch_sees_new_children(tmp_path):
    folder = tmp_path / "inbox"
    folder.mkdir()
    manager, _ = _manager()
    inbox = asyncio.Queue()

    try:
        await manager.start_watch(path_to_uri(folder), "sub", inbox.put_nowait)
        await asyncio.sleep(0.2)
        (folder / "new.txt").write_text("hello")

        event = await _next(inbox)
        assert event.event == "change"
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_polling_observer(tmp_path):
    target = tmp_path / "polled.txt"
    target.write_text("short")
    manager, _ = _manager(watch_use_polling=True, watch_polling_interval=0.1)
    inbox = asyncio.Queue()

    try:
        await manager.start_watch(path_to_uri(target), "sub", inbox.put_nowait)
        await asyncio.sleep(0.3)
        target.write_text("a much longer body")

        event = await _next(inbox)
        assert event.event == "change"
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_nothing_delivered_after_last_stop(tmp_path):
    target = tmp_path / "quiet.txt"
    target.write_text("x")
    uri = path_to_uri(target)
    manager, handler = _manager()
    inbox = asyncio.Queue()

    await manager.start_watch(uri, "sub", inbox.put_nowait)
    await manager.stop_watch(uri, "sub")
    target.write_text("changed after stop")
    await asyncio.sleep(0.5)

    assert inbox.empty()
    assert handler.watches[0].closed
