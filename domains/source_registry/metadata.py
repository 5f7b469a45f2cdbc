"""
Filesystem metadata extraction.

Stat-follow policy: ``is_symlink`` comes from ``lstat`` (the link itself),
every other field comes from ``stat`` (the link target). A dangling symlink
has no target, so its fields fall back to the ``lstat`` values.
"""

import asyncio
import mimetypes
import os
import stat as stat_module
from pathlib import Path
from typing import Union

from app.utils.helpers import timestamp_to_iso
from domains.source_registry.errors import SourceIOError
from domains.source_registry.models import MetadataRecord

DEFAULT_MIME_TYPE = "application/octet-stream"


def guess_mime_type(name: str) -> str:
    """Look up the MIME type registered for the file extension."""
    mime_type, _ = mimetypes.guess_type(name, strict=False)
    return mime_type or DEFAULT_MIME_TYPE


def _created_timestamp(stats: os.stat_result) -> float:
    # st_birthtime exists on macOS/BSD and Windows (3.12+), not on Linux
    return getattr(stats, "st_birthtime", None) or stats.st_ctime


def extract_file_metadata_sync(path: Union[str, os.PathLike]) -> MetadataRecord:
    """
    Build a metadata record for ``path``.

    Raises:
        SourceIOError: if the path does not exist or cannot be stat-ed
    """
    path_obj = Path(path)

    try:
        link_stats = os.lstat(path_obj)
    except OSError as e:
        raise SourceIOError("extract metadata from", os.fspath(path), e) from e

    is_symlink = stat_module.S_ISLNK(link_stats.st_mode)
    stats = link_stats
    if is_symlink:
        try:
            stats = os.stat(path_obj)
        except FileNotFoundError:
            stats = link_stats
        except OSError as e:
            raise SourceIOError("extract metadata from", os.fspath(path), e) from e

    record = MetadataRecord(
        name=path_obj.name,
        size=stats.st_size,
        mime_type=guess_mime_type(path_obj.name),
        extension=path_obj.suffix,
        is_directory=stat_module.S_ISDIR(stats.st_mode),
        is_file=stat_module.S_ISREG(stats.st_mode),
        is_symlink=is_symlink,
        permissions=stats.st_mode,
        created_at=timestamp_to_iso(_created_timestamp(stats)),
        modified_at=timestamp_to_iso(stats.st_mtime),
    )

    if os.name == "posix":
        record.uid = stats.st_uid
        record.gid = stats.st_gid

    return record


async def extract_file_metadata(path: Union[str, os.PathLike]) -> MetadataRecord:
    """Extract metadata without blocking the event loop."""
    return await asyncio.to_thread(extract_file_metadata_sync, path)
