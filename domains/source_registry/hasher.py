"""
Streaming content hasher.

Produces ``sha256:<hex>`` identifiers that depend only on the bytes of a
file, never on its path or metadata.

The file is read in fixed-size chunks, so memory use does not grow with the
file. Nothing stops another process from writing to the file while it is
being read: in that case the digest reflects whatever mix of old and new
bytes was read (a torn read). Callers needing a stable identifier must hash
a file that is not being modified.
"""

import asyncio
import hashlib
import os
from typing import Union

from loguru import logger

from domains.source_registry.errors import SourceIOError

HASH_PREFIX = "sha256:"
DEFAULT_CHUNK_SIZE = 64 * 1024


def hash_file_sync(path: Union[str, os.PathLike], chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """
    Hash a file with SHA-256, reading it in chunks.

    Args:
        path: Path to an existing regular file
        chunk_size: Bytes per read

    Returns:
        Content hash in the form ``sha256:<64 hex chars>``

    Raises:
        SourceIOError: if the file cannot be opened or a read fails
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    digest = hashlib.sha256()
    try:
        with open(path, "rb") as handle:
            while True:
                chunk = handle.read(chunk_size)
                if not chunk:
                    break
                digest.update(chunk)
    except OSError as e:
        raise SourceIOError("hash", os.fspath(path), e) from e

    return f"{HASH_PREFIX}{digest.hexdigest()}"


async def hash_file(path: Union[str, os.PathLike], chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Hash a file without blocking the event loop."""
    content_hash = await asyncio.to_thread(hash_file_sync, path, chunk_size)
    logger.debug(f"Hashed {os.fspath(path)}: {content_hash}")
    return content_hash
