"""
Source handler architecture.

Defines the interface for handling different source types (file://,
https://, ...). Each handler supports one URI scheme and declares its
capabilities once, at construction time.
"""

from abc import ABC, abstractmethod
from typing import Callable, Protocol

from domains.source_registry.errors import InvalidUri, UnsupportedCapability
from domains.source_registry.models import Capabilities, MetadataRecord, WatchKind
from domains.source_registry.uri import parse_uri


EventCallback = Callable[[WatchKind], None]
ErrorCallback = Callable[[str], None]


class WatchHandle(Protocol):
    """An OS-level watch that can be released. ``close`` must be idempotent."""

    def close(self) -> None:
        ...


class SourceHandler(ABC):
    """
    Abstract base class for source handlers.

    Concrete handlers override the operations they support. The default
    implementations raise ``UnsupportedCapability`` so a partial handler
    (e.g. a future network scheme) fails loudly instead of silently.
    """

    scheme: str = ""
    capabilities: Capabilities = Capabilities()

    def can_handle(self, uri: str) -> bool:
        """Check if this handler can process ``uri``."""
        try:
            self.validate(uri)
        except InvalidUri:
            return False
        return True

    def validate(self, uri: str) -> None:
        """
        Validate URI format for this scheme.

        Raises:
            InvalidUri: if the URI does not belong to this handler
        """
        parsed = parse_uri(uri)
        if parsed.scheme != self.scheme:
            raise InvalidUri(uri, f"expected {self.scheme}:// URI")

    def unsupported(self, capability: str) -> UnsupportedCapability:
        return UnsupportedCapability(self.scheme, capability)

    @abstractmethod
    async def extract_metadata(self, uri: str) -> MetadataRecord:
        """Extract metadata from the source."""

    async def get_content_hash(self, uri: str) -> str:
        """Get content hash in the form ``sha256:<hex>``."""
        raise self.unsupported("hash")

    async def get_content(self, uri: str) -> bytes:
        """Get the full content of the source."""
        raise self.unsupported("content")

    async def open(self, uri: str) -> None:
        """Open the source in its native application."""
        raise self.unsupported("open")

    def watch(self, uri: str, on_event: EventCallback, on_error: ErrorCallback) -> WatchHandle:
        """
        Start an OS-level watch for ``uri``.

        Callbacks may be invoked from a background thread.

        Returns:
            Handle whose ``close`` releases the watch
        """
        raise self.unsupported("watch")
