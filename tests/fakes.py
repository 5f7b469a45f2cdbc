"""Test doubles shared by the unit and service tests."""

import asyncio
import time
from typing import Callable, Dict, Tuple

from app.utils.helpers import now_iso
from domains.source_registry.errors import SourceIOError
from domains.source_registry.handlers.base import SourceHandler
from domains.source_registry.models import Capabilities, MetadataRecord


class FakeWatch:
    """Watch handle that records how often it was closed."""

    def __init__(self, owner: "MemoryHandler", uri: str, fail_close: bool = False):
        self.owner = owner
        self.uri = uri
        self.fail_close = fail_close
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        time.sleep(self.owner.close_delay)
        self.closed = True
        self.owner.closed += 1
        if self.fail_close:
            raise OSError(f"cannot release {self.uri}")


class MemoryHandler(SourceHandler):
    """In-memory handler whose watches are driven by the test."""

    scheme = "mem"
    capabilities = Capabilities(can_watch=True)

    def __init__(self, setup_delay: float = 0.01, close_delay: float = 0.0):
        self.setup_delay = setup_delay
        self.close_delay = close_delay
        self.created = 0
        self.closed = 0
        self.fail_setup = False
        self.fail_close_for = set()
        self.watches: Dict[str, Tuple[Callable, Callable, FakeWatch]] = {}

    async def extract_metadata(self, uri: str) -> MetadataRecord:
        stamp = now_iso()
        return MetadataRecord(name=uri.rsplit("/", 1)[-1], size=0, created_at=stamp, modified_at=stamp)

    async def get_content_hash(self, uri: str) -> str:
        return "sha256:" + "0" * 64

    def watch(self, uri, on_event, on_error):
        # Runs in a worker thread; the delay widens the window for racing starts.
        time.sleep(self.setup_delay)
        if self.fail_setup:
            raise SourceIOError("watch", uri, "permission denied")
        self.created += 1
        handle = FakeWatch(self, uri, fail_close=uri in self.fail_close_for)
        self.watches[uri] = (on_event, on_error, handle)
        return handle

    def fire(self, uri: str, kind: str) -> None:
        on_event, _, _ = self.watches[uri]
        on_event(kind)

    def break_watch(self, uri: str, message: str) -> None:
        _, on_error, _ = self.watches[uri]
        on_error(message)


class StaticHandler(SourceHandler):
    """Handler without any optional capability."""

    scheme = "static"

    def __init__(self):
        self.watch_calls = 0
        self.open_calls = 0

    async def extract_metadata(self, uri: str) -> MetadataRecord:
        stamp = now_iso()
        return MetadataRecord(name="static", size=1, created_at=stamp, modified_at=stamp)

    async def open(self, uri: str) -> None:
        self.open_calls += 1

    def watch(self, uri, on_event, on_error):
        self.watch_calls += 1
        raise AssertionError("watch must not be reached without can_watch")


async def wait_until(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` on the event loop until it holds or time runs out."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


