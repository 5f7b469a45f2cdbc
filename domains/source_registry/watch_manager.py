"""
Watch manager for the source registry.

Owns the table of active watch registrations, keyed by URI:
- one OS watch per URI, however many subscribers ask for it
- events are fanned out to whoever is subscribed *now*, by URI
- registrations are torn down when the last subscriber stops, when the
  watch breaks, or on shutdown

All bookkeeping happens on the event loop. OS callbacks arrive on watchdog
threads and are handed over with ``call_soon_threadsafe``. A registration is
removed from the table before its handle is closed, and the dispatcher only
delivers for the registration currently in the table, so nothing reaches a
subscriber after the stop that removed the registration has returned.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from functools import partial
from typing import AsyncIterator, Callable, Dict, List, Optional, Set, Union

from loguru import logger

from app.utils.helpers import now_iso
from domains.source_registry.errors import SourceIOError
from domains.source_registry.handlers.base import WatchHandle
from domains.source_registry.models import (
    WatchError,
    WatchEvent,
    WatchKind,
    WatchRegistrationInfo,
)
from domains.source_registry.registry import HandlerRegistry, get_registry


WatchMessage = Union[WatchEvent, WatchError]
Sink = Callable[[WatchMessage], None]


@dataclass
class _Subscription:
    sink: Sink
    count: int = 0


@dataclass
class WatchRegistration:
    """A URI tied to its OS watch handle and the subscribers interested in it."""

    uri: str
    handle: Optional[WatchHandle] = None
    subscribers: Dict[str, _Subscription] = field(default_factory=dict)

    @property
    def subscriber_count(self) -> int:
        return sum(sub.count for sub in self.subscribers.values())

    def add(self, subscriber_id: str, sink: Sink) -> None:
        subscription = self.subscribers.get(subscriber_id)
        if subscription is None:
            subscription = self.subscribers[subscriber_id] = _Subscription(sink)
        else:
            subscription.sink = sink
        subscription.count += 1

    def remove(self, subscriber_id: str, everything: bool = False) -> bool:
        """Drop one (or every) start made by a subscriber."""
        subscription = self.subscribers.get(subscriber_id)
        if subscription is None:
            return False

        subscription.count = 0 if everything else subscription.count - 1
        if subscription.count <= 0:
            del self.subscribers[subscriber_id]
        return True

    def snapshot(self) -> WatchRegistrationInfo:
        return WatchRegistrationInfo(uri=self.uri, subscriber_count=self.subscriber_count)


@dataclass
class _UriGuard:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class WatchManager:
    """Lifecycle-scoped owner of every active watch registration."""

    def __init__(self, registry: Optional[HandlerRegistry] = None):
        self.registry = registry or get_registry()
        self._registrations: Dict[str, WatchRegistration] = {}
        self._guards: Dict[str, _UriGuard] = {}
        self._tasks: Set[asyncio.Task] = set()

    @asynccontextmanager
    async def _guard(self, uri: str) -> AsyncIterator[None]:
        """Serialize start/stop/teardown for one URI only."""
        guard = self._guards.get(uri)
        if guard is None:
            guard = self._guards[uri] = _UriGuard()
        guard.users += 1
        try:
            async with guard.lock:
                yield
        finally:
            guard.users -= 1
            if guard.users == 0:
                del self._guards[uri]

    # Public API -------------------------------------------------------------------

    async def start_watch(self, uri: str, subscriber_id: str, sink: Sink) -> WatchRegistrationInfo:
        """
        Subscribe ``sink`` to changes of ``uri``.

        The first subscriber creates the OS watch; later ones join the
        existing registration.

        Raises:
            InvalidUri, UnknownScheme: if the URI cannot be resolved
            UnsupportedCapability: if the handler cannot watch
            SourceIOError: if the OS watch cannot be established
        """
        self.registry.check_watchable(uri)
        loop = asyncio.get_running_loop()

        async with self._guard(uri):
            registration = self._registrations.get(uri)

            if registration is None:
                registration = WatchRegistration(uri=uri)
                setup = asyncio.ensure_future(
                    asyncio.to_thread(
                        self.registry.watch,
                        uri,
                        partial(self._on_os_event, loop, registration),
                        partial(self._on_os_error, loop, registration),
                    )
                )
                try:
                    registration.handle = await asyncio.shield(setup)
                except asyncio.CancelledError:
                    # The worker thread finishes regardless; close what it opens.
                    setup.add_done_callback(partial(self._discard_orphan, uri))
                    raise
                except SourceIOError as e:
                    logger.warning(f"Watch setup failed for {uri}: {e}")
                    self._send(sink, WatchError(uri=uri, error=str(e)))
                    raise

                self._registrations[uri] = registration
                logger.info(f"Watch registered: {uri}")

            registration.add(subscriber_id, sink)
            logger.debug(
                f"Subscriber {subscriber_id} watching {uri} "
                f"({registration.subscriber_count} total)"
            )
            return registration.snapshot()

    async def stop_watch(self, uri: str, subscriber_id: str) -> int:
        """
        Drop one subscription of ``subscriber_id`` to ``uri``.

        Stopping a URI that is not watched is a no-op.

        Returns:
            Remaining subscriber count for the URI
        """
        return await self._release(uri, subscriber_id, everything=False)

    async def stop_subscriber(self, subscriber_id: str) -> None:
        """
        Drop every subscription held by ``subscriber_id``.

        The sweep runs as its own task: cancelling the caller does not stop it
        halfway, so a disconnecting subscriber never leaves watches behind.
        """
        task = self._track(asyncio.get_running_loop().create_task(self._sweep(subscriber_id)))
        await asyncio.shield(task)

    async def shutdown(self) -> None:
        """
        Tear down every registration, whatever its subscriber count.

        Best effort: a handle that fails to close is logged and the sweep
        continues. Safe to call repeatedly.
        """
        uris = list(self._registrations)
        failures = 0

        for uri in uris:
            try:
                async with self._guard(uri):
                    registration = self._registrations.pop(uri, None)
                    if registration is not None:
                        await self._close(registration)
            except Exception as e:
                failures += 1
                logger.error(f"Failed to tear down watch for {uri}: {e}")

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        if uris:
            logger.info(f"Watch manager shut down ({len(uris)} watches, {failures} failures)")

    def active_watches(self) -> List[WatchRegistrationInfo]:
        """Snapshot of the active registrations."""
        return [registration.snapshot() for registration in self._registrations.values()]

    def is_watching(self, uri: str) -> bool:
        return uri in self._registrations

    # Teardown -----------------------------------------------------------------------

    async def _sweep(self, subscriber_id: str) -> None:
        uris = [
            uri
            for uri, registration in self._registrations.items()
            if subscriber_id in registration.subscribers
        ]
        for uri in uris:
            try:
                await self._release(uri, subscriber_id, everything=True)
            except Exception as e:
                logger.error(f"Failed to release {uri} for {subscriber_id}: {e}")

    async def _release(self, uri: str, subscriber_id: str, everything: bool) -> int:
        async with self._guard(uri):
            registration = self._registrations.get(uri)
            if registration is None or not registration.remove(subscriber_id, everything):
                return registration.subscriber_count if registration else 0

            remaining = registration.subscriber_count
            if remaining > 0:
                return remaining

            del self._registrations[uri]
            await self._close(registration)
            logger.info(f"Watch removed: {uri}")
            return 0

    async def _close(self, registration: WatchRegistration) -> None:
        handle, registration.handle = registration.handle, None
        if handle is not None:
            await asyncio.to_thread(handle.close)

    async def _fail(self, registration: WatchRegistration, message: str) -> None:
        """Report a broken watch once and revert the URI to unwatched."""
        uri = registration.uri
        async with self._guard(uri):
            if self._registrations.get(uri) is not registration:
                return
            del self._registrations[uri]

            error = WatchError(uri=uri, error=message)
            for subscription in list(registration.subscribers.values()):
                self._send(subscription.sink, error)

            try:
                await self._close(registration)
            except Exception as e:
                logger.error(f"Failed to close broken watch for {uri}: {e}")

        logger.warning(f"Watch for {uri} ended: {message}")

    # Delivery -----------------------------------------------------------------------

    def _on_os_event(self, loop: asyncio.AbstractEventLoop, registration: WatchRegistration, kind: WatchKind) -> None:
        timestamp = now_iso()
        try:
            loop.call_soon_threadsafe(self._deliver, registration, kind, timestamp)
        except RuntimeError:
            # Loop already closed; nobody is left to deliver to.
            logger.debug(f"Dropped {kind} event for {registration.uri}: loop closed")

    def _on_os_error(self, loop: asyncio.AbstractEventLoop, registration: WatchRegistration, message: str) -> None:
        try:
            loop.call_soon_threadsafe(self._schedule_failure, registration, message)
        except RuntimeError:
            logger.debug(f"Dropped watch error for {registration.uri}: loop closed")

    def _schedule_failure(self, registration: WatchRegistration, message: str) -> None:
        self._track(asyncio.get_running_loop().create_task(self._fail(registration, message)))

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _discard_orphan(self, uri: str, setup: asyncio.Future) -> None:
        """Close a handle whose start was cancelled before it was registered."""
        if setup.cancelled() or setup.exception() is not None:
            return
        handle = setup.result()
        self._track(asyncio.get_running_loop().create_task(self._close_orphan(uri, handle)))

    async def _close_orphan(self, uri: str, handle: WatchHandle) -> None:
        try:
            await asyncio.to_thread(handle.close)
        except Exception as e:
            logger.error(f"Failed to close abandoned watch for {uri}: {e}")
        else:
            logger.info(f"Closed abandoned watch for {uri}")

    def _deliver(self, registration: WatchRegistration, kind: WatchKind, timestamp: str) -> None:
        if self._registrations.get(registration.uri) is not registration:
            return

        event = WatchEvent(uri=registration.uri, event=kind, timestamp=timestamp)
        for subscription in list(registration.subscribers.values()):
            self._send(subscription.sink, event)

    @staticmethod
    def _send(sink: Sink, message: WatchMessage) -> None:
        try:
            sink(message)
        except Exception as e:
            logger.error(f"Subscriber delivery failed for {message.uri}: {e}")
