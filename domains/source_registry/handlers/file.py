"""
File source handler.

Handles file:// URIs and provides:
- Metadata extraction
- Content hashing
- Content reads
- Change watching via watchdog
- Opening in the platform's default application
"""

import asyncio
import errno
import os
import stat as stat_module
import subprocess
import sys
import threading
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from app.utils.config import Settings, get_settings
from app.utils.helpers import format_bytes
from domains.source_registry.errors import InvalidUri, SourceIOError
from domains.source_registry.handlers.base import ErrorCallback, EventCallback, SourceHandler
from domains.source_registry.hasher import hash_file
from domains.source_registry.metadata import extract_file_metadata
from domains.source_registry.models import Capabilities, MetadataRecord, WatchKind


def path_to_uri(path) -> str:
    """Convert a filesystem path to an absolute file:// URI."""
    return Path(path).expanduser().absolute().as_uri()


def _missing(path: str) -> FileNotFoundError:
    return FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)


def _path_key(path: str) -> str:
    """Comparable form of ``path`` with its parent directory resolved."""
    parent, name = os.path.split(os.path.abspath(path))
    return os.path.normcase(os.path.join(os.path.realpath(parent), name))


def launch_default_application(path: str) -> None:
    """Open ``path`` with whatever the desktop associates with it."""
    if sys.platform.startswith("win"):
        os.startfile(path)  # noqa: S606
        return

    command = "open" if sys.platform == "darwin" else "xdg-open"
    subprocess.Popen(
        [command, path],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


class SourceEventHandler(FileSystemEventHandler):
    """
    Watchdog handler that narrows directory events down to one source.

    Watchdog reports created/modified/deleted/moved events for everything in
    the watched directory; this handler keeps the ones about ``target`` and
    maps them onto the ``change``/``delete`` vocabulary.
    """

    def __init__(
        self,
        target: str,
        is_directory: bool,
        on_event: EventCallback,
        on_error: ErrorCallback,
        debounce: float = 0.0,
    ) -> None:
        super().__init__()
        self.target = os.path.normcase(target)
        self.is_directory = is_directory
        self.on_event = on_event
        self.on_error = on_error
        self.debounce = debounce
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

    def is_target(self, path: Optional[str]) -> bool:
        """Check if ``path`` names the watched source."""
        if not path:
            return False
        return _path_key(os.fsdecode(path)) == self.target

    def is_inside_target(self, path: Optional[str]) -> bool:
        """Check if ``path`` is a direct child of a watched directory."""
        if not path or not self.is_directory:
            return False
        parent = os.path.dirname(os.path.abspath(os.fsdecode(path)))
        return os.path.normcase(os.path.realpath(parent)) == self.target

    def emit(self, kind: WatchKind) -> None:
        """
        Forward an event.

        Changes are debounced on the trailing edge: each notification restarts
        the timer and one ``change`` goes out once the source has been quiet
        for ``debounce`` seconds. A delete flushes any pending change first and
        is forwarded immediately.
        """
        if kind == "delete" or self.debounce <= 0:
            self.flush()
            self.on_event(kind)
            return

        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> None:
        """Deliver a pending change now, if there is one."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.cancel()
        self.on_event("change")

    def cancel(self) -> None:
        """Drop a pending change without delivering it."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def on_created(self, event: FileSystemEvent) -> None:
        if self.is_target(event.src_path) or self.is_inside_target(event.src_path):
            self.emit("change")

    def on_modified(self, event: FileSystemEvent) -> None:
        if self.is_target(event.src_path) or self.is_inside_target(event.src_path):
            self.emit("change")

    def on_deleted(self, event: FileSystemEvent) -> None:
        if self.is_target(event.src_path):
            self.emit("delete")
            if self.is_directory:
                self.on_error(f"Watched directory removed: {self.target}")
        elif self.is_inside_target(event.src_path):
            self.emit("change")
        elif event.is_directory and _path_key(os.fsdecode(event.src_path)) == _path_key(
            os.path.dirname(self.target)
        ):
            # Parent directory of a watched file disappeared; the watch is dead.
            self.emit("delete")
            self.on_error(f"Watched directory removed: {os.path.dirname(self.target)}")

    def on_moved(self, event: FileSystemEvent) -> None:
        dest = getattr(event, "dest_path", None)

        if self.is_target(event.src_path):
            self.emit("delete")
        elif self.is_target(dest):
            self.emit("change")
        elif self.is_inside_target(event.src_path) or self.is_inside_target(dest):
            self.emit("change")


class FileWatch:
    """OS watch handle: one watchdog observer dedicated to one source."""

    def __init__(
        self,
        path: str,
        observer,
        join_timeout: float,
        event_handler: Optional[SourceEventHandler] = None,
    ):
        self.path = path
        self._observer = observer
        self._event_handler = event_handler
        self._join_timeout = join_timeout
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop the observer thread. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._observer.stop()
        if threading.current_thread() is not self._observer and self._observer.is_alive():
            self._observer.join(self._join_timeout)
        if self._event_handler is not None:
            self._event_handler.cancel()

        logger.info(f"Stopped watching: {self.path}")


class FileHandler(SourceHandler):
    """
    File source handler.

    Watching a file schedules its parent directory (non-recursive) so that
    deletes, atomic-save renames and re-creations are all visible.
    Symlinks are followed: the watch is placed on the link target.
    """

    scheme = "file"

    capabilities = Capabilities(
        can_watch=True,
        can_open=True,
        can_preview=False,
        can_cache=False,
    )

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def validate(self, uri: str) -> None:
        super().validate(uri)
        self.uri_to_path(uri)

    def uri_to_path(self, uri: str) -> str:
        """
        Convert a file:// URI to a filesystem path.

        Raises:
            InvalidUri: if the URI is not a local file URI
        """
        try:
            parsed = urlparse(uri)
        except ValueError as e:
            raise InvalidUri(uri, str(e)) from e

        if parsed.scheme.lower() != self.scheme:
            raise InvalidUri(uri, "expected file:// URI")

        if parsed.netloc not in ("", "localhost"):
            raise InvalidUri(uri, f"remote host not supported: {parsed.netloc}")

        if not parsed.path:
            raise InvalidUri(uri, "missing path")

        path = url2pathname(parsed.path)
        if "\x00" in path:
            raise InvalidUri(uri, "path contains a NUL byte")
        return path

    async def extract_metadata(self, uri: str) -> MetadataRecord:
        """Extract metadata from file."""
        return await extract_file_metadata(self.uri_to_path(uri))

    async def get_content_hash(self, uri: str) -> str:
        """Get content hash (SHA-256)."""
        return await hash_file(self.uri_to_path(uri), self.settings.hash_chunk_size)

    async def get_content(self, uri: str) -> bytes:
        """Read the whole file, refusing anything above the configured limit."""
        path = self.uri_to_path(uri)
        limit = self.settings.max_content_bytes

        def _read() -> bytes:
            try:
                size = os.stat(path).st_size
                if size > limit:
                    raise SourceIOError(
                        "read",
                        path,
                        f"file size {format_bytes(size)} exceeds limit of {format_bytes(limit)}",
                    )
                return Path(path).read_bytes()
            except OSError as e:
                raise SourceIOError("read", path, e) from e

        return await asyncio.to_thread(_read)

    async def open(self, uri: str) -> None:
        """Open file in native application."""
        path = self.uri_to_path(uri)

        if not os.path.exists(path):
            raise SourceIOError("open", path, _missing(path))

        try:
            await asyncio.to_thread(launch_default_application, path)
        except OSError as e:
            raise SourceIOError("open", path, e) from e

        logger.info(f"Opened in default application: {path}")

    def _create_observer(self):
        if self.settings.watch_use_polling:
            return PollingObserver(timeout=self.settings.watch_polling_interval)
        return Observer()

    def watch(self, uri: str, on_event: EventCallback, on_error: ErrorCallback) -> FileWatch:
        """
        Start watching a file or directory.

        Raises:
            SourceIOError: if the path is missing or the OS refuses the watch
        """
        path = self.uri_to_path(uri)

        try:
            stats = os.stat(path)
        except OSError as e:
            raise SourceIOError("watch", path, e) from e

        target = os.path.realpath(path)
        is_directory = stat_module.S_ISDIR(stats.st_mode)
        watch_dir = target if is_directory else os.path.dirname(target)

        event_handler = SourceEventHandler(
            target=target,
            is_directory=is_directory,
            on_event=on_event,
            on_error=on_error,
            debounce=self.settings.watch_debounce_seconds,
        )

        observer = self._create_observer()
        observer.daemon = True

        try:
            observer.schedule(event_handler, watch_dir, recursive=False)
            observer.start()
        except OSError as e:
            observer.stop()
            raise SourceIOError("watch", path, e) from e

        logger.info(f"Started watching: {path}")
        return FileWatch(path, observer, self.settings.watch_join_timeout, event_handler)
