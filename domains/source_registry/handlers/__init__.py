"""
Scheme handlers.

- base.py - SourceHandler interface and watch callback types
- file.py - file:// handler (metadata, hash, content, open, watch)
"""

from domains.source_registry.handlers.base import SourceHandler, WatchHandle
from domains.source_registry.handlers.file import FileHandler, path_to_uri

__all__ = ["FileHandler", "SourceHandler", "WatchHandle", "path_to_uri"]
