#!/usr/bin/env python3
"""Command line access to the source registry.

Subcommands:
- ``info`` - registered schemes and capabilities
- ``metadata URI`` - metadata record as JSON
- ``hash URI`` - content hash
- ``watch URI [URI ...]`` - print change/delete events until interrupted

Paths are accepted wherever a URI is expected and converted to file:// URIs.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

sys.path.insert(0, str(Path(__file__).parent.parent))

from domains.source_registry.errors import SourceError
from domains.source_registry.handlers.file import path_to_uri
from domains.source_registry.registry import get_registry
from domains.source_registry.uri import SCHEME_PATTERN
from domains.source_registry.watch_manager import WatchManager


def as_uri(value: str) -> str:
    """Accept either a URI or a local path."""
    if SCHEME_PATTERN.match(value):
        return value
    return path_to_uri(value)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(
        description="Inspect, hash and watch sources through the source registry.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level for diagnostic output (default: WARNING).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("info", help="Show registered schemes and capabilities.")

    metadata = commands.add_parser("metadata", help="Print the metadata record of a source.")
    metadata.add_argument("uri", type=as_uri)

    hashing = commands.add_parser("hash", help="Print the content hash of a source.")
    hashing.add_argument("uri", type=as_uri)

    watch = commands.add_parser("watch", help="Print change events until interrupted.")
    watch.add_argument("uris", type=as_uri, nargs="+")

    return parser.parse_args(argv)


async def run_watch(uris: list[str]) -> int:
    """Watch ``uris`` and print one JSON line per event."""

    manager = WatchManager(get_registry())
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _print(message) -> None:
        print(message.model_dump_json(), flush=True)

    def _signal_handler(signum, frame=None):  # noqa: D401
        logger.info(f"Received signal {signum}, shutting down.")
        loop.call_soon_threadsafe(stop_event.set)

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        for uri in uris:
            await manager.start_watch(uri, "cli", _print)
            logger.info(f"Watching {uri}")

        await stop_event.wait()
    finally:
        await manager.shutdown()

    return 0


async def run(args: argparse.Namespace) -> int:
    registry = get_registry()

    if args.command == "info":
        print(json.dumps(registry.info().model_dump(by_alias=True), indent=2))
    elif args.command == "metadata":
        metadata = await registry.extract_metadata(args.uri)
        print(json.dumps(metadata.to_payload(), indent=2, sort_keys=True))
    elif args.command == "hash":
        print(await registry.get_content_hash(args.uri))
    elif args.command == "watch":
        return await run_watch(args.uris)

    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)

    logger.remove()
    logger.add(sys.stderr, level=args.log_level.upper())

    try:
        return asyncio.run(run(args))
    except SourceError as e:
        logger.error(str(e))
        print(f"{e.error_type}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
