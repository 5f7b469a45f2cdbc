"""
Error taxonomy for the source registry.

Every failure raised by the registry, the scheme handlers and the watch
manager derives from ``SourceError`` so the transport layer can turn it into
a tagged failure instead of an unstructured crash.
"""

from typing import Optional


class SourceError(Exception):
    """Base class for all source registry failures."""

    @property
    def error_type(self) -> str:
        """Taxonomy name reported to callers."""
        return type(self).__name__


class InvalidUri(SourceError):
    """URI cannot be parsed (empty string, no scheme delimiter, bad format)."""

    def __init__(self, uri: str, reason: Optional[str] = None):
        self.uri = uri
        self.reason = reason
        message = f"Invalid URI format: {uri!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class UnknownScheme(SourceError):
    """No handler registered for the parsed scheme."""

    def __init__(self, scheme: str):
        self.scheme = scheme
        super().__init__(f"No handler registered for scheme: {scheme}")


class UnsupportedCapability(SourceError):
    """Handler exists but does not support the requested operation."""

    def __init__(self, scheme: str, capability: str):
        self.scheme = scheme
        self.capability = capability
        super().__init__(f"Handler for {scheme} does not support {capability}")


class DuplicateScheme(SourceError):
    """A handler is already registered for the scheme."""

    def __init__(self, scheme: str):
        self.scheme = scheme
        super().__init__(f"Handler already registered for scheme: {scheme}")


class SourceIOError(SourceError):
    """
    Underlying OS operation failed.

    The message always carries the path and the original OS error so the
    caller can tell a missing file from a permission problem.
    """

    def __init__(self, action: str, path: str, cause: object = None):
        self.action = action
        self.path = path
        self.cause = cause
        detail = _describe_cause(cause)
        message = f"Failed to {action} {path}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


def _describe_cause(cause: object) -> str:
    if cause is None:
        return ""
    if isinstance(cause, OSError) and cause.strerror:
        return cause.strerror
    return str(cause)
