"""
Helper utilities for the source index service.

Common functions used across domains.
"""

from datetime import datetime, timezone
from uuid import uuid4


def generate_uuid() -> str:
    """Generate a unique identifier."""
    return str(uuid4())


def now_iso() -> str:
    """Get current timestamp as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def timestamp_to_iso(ts: float) -> str:
    """Convert a POSIX timestamp to an ISO string in UTC."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def format_bytes(bytes_count: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024.0:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024.0
    return f"{bytes_count:.1f} PB"
