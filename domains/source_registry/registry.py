"""
Registry for source handlers.

Maps URI schemes to handlers and dispatches operations to the handler
responsible for a URI. Callers go through the registry, never to a handler
directly.

The handler table is copy-on-write: ``register``/``unregister`` build a new
mapping under a lock and publish it with a single assignment, so readers
(``resolve``, ``info``, ...) never need to lock.
"""

import threading
from functools import lru_cache
from types import MappingProxyType
from typing import List, Mapping

from loguru import logger

from domains.source_registry.errors import DuplicateScheme, SourceError, UnknownScheme
from domains.source_registry.handlers.base import (
    ErrorCallback,
    EventCallback,
    SourceHandler,
    WatchHandle,
)
from domains.source_registry.handlers.file import FileHandler
from domains.source_registry.models import HandlerInfo, MetadataRecord, RegistryInfo
from domains.source_registry.uri import parse_uri


class HandlerRegistry:
    """Scheme → handler table with URI based dispatch."""

    def __init__(self):
        self._handlers: Mapping[str, SourceHandler] = MappingProxyType({})
        self._write_lock = threading.Lock()

    def register(self, scheme: str, handler: SourceHandler) -> None:
        """
        Register a handler for a scheme.

        Raises:
            DuplicateScheme: if the scheme already has a handler
        """
        scheme = scheme.lower()
        with self._write_lock:
            if scheme in self._handlers:
                raise DuplicateScheme(scheme)
            updated = dict(self._handlers)
            updated[scheme] = handler
            self._handlers = MappingProxyType(updated)

        logger.info(f"Registered handler for scheme: {scheme}")

    def unregister(self, scheme: str) -> None:
        """Remove the handler for a scheme. Unknown schemes are ignored."""
        scheme = scheme.lower()
        with self._write_lock:
            if scheme not in self._handlers:
                return
            updated = dict(self._handlers)
            del updated[scheme]
            self._handlers = MappingProxyType(updated)

        logger.info(f"Unregistered handler for scheme: {scheme}")

    def resolve(self, uri: str) -> SourceHandler:
        """
        Find the handler for a URI.

        Raises:
            InvalidUri: if the URI has no parseable scheme
            UnknownScheme: if no handler is registered for the scheme
        """
        scheme = parse_uri(uri).scheme
        handler = self._handlers.get(scheme)
        if handler is None:
            raise UnknownScheme(scheme)
        return handler

    def can_handle(self, uri: str) -> bool:
        """Check if a registered handler accepts the URI. Never raises."""
        try:
            return self.resolve(uri).can_handle(uri)
        except SourceError:
            return False
        except Exception as e:
            logger.warning(f"Handler check failed for {uri!r}: {e}")
            return False

    def _validated(self, uri: str) -> SourceHandler:
        handler = self.resolve(uri)
        handler.validate(uri)
        return handler

    def _require(self, handler: SourceHandler, capability: str) -> None:
        if not handler.capabilities.supports(capability):
            raise handler.unsupported(capability)

    async def extract_metadata(self, uri: str) -> MetadataRecord:
        """Extract metadata from source."""
        return await self._validated(uri).extract_metadata(uri)

    async def get_content_hash(self, uri: str) -> str:
        """Get content hash in the form ``sha256:<hex>``."""
        return await self._validated(uri).get_content_hash(uri)

    async def get_content(self, uri: str) -> bytes:
        """Get full content."""
        return await self._validated(uri).get_content(uri)

    async def open(self, uri: str) -> None:
        """Open source in its native application."""
        handler = self._validated(uri)
        self._require(handler, "open")
        await handler.open(uri)

    def watch(self, uri: str, on_event: EventCallback, on_error: ErrorCallback) -> WatchHandle:
        """Create an OS-level watch through the responsible handler."""
        handler = self._validated(uri)
        self._require(handler, "watch")
        return handler.watch(uri, on_event, on_error)

    def check_watchable(self, uri: str) -> None:
        """Raise unless ``uri`` resolves to a handler able to watch it."""
        self._require(self._validated(uri), "watch")

    def get_schemes(self) -> List[str]:
        """Get all registered schemes."""
        return list(self._handlers.keys())

    def info(self) -> RegistryInfo:
        """Snapshot of the registered schemes and their capabilities."""
        handlers = self._handlers
        return RegistryInfo(
            schemes=list(handlers.keys()),
            handlers=[
                HandlerInfo(scheme=scheme, capabilities=handler.capabilities)
                for scheme, handler in handlers.items()
            ],
        )


def create_default_registry() -> HandlerRegistry:
    """Build a registry with the built-in handlers."""
    registry = HandlerRegistry()
    registry.register(FileHandler.scheme, FileHandler())
    return registry


@lru_cache()
def get_registry() -> HandlerRegistry:
    """Get the process-wide registry, populated on first use."""
    return create_default_registry()
