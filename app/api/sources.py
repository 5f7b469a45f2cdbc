"""
Source endpoints.

Invoke-style operations go through ``POST /sources``; watching needs a
long-lived channel and goes through the ``/sources/watch`` WebSocket, where
each connection is one subscriber.
"""

import asyncio
import json
from typing import Any, Dict

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from loguru import logger
from pydantic import ValidationError

from app.models.schemas import WATCH_OPS, SourceRequest, SourceResponse
from app.utils.helpers import generate_uuid
from domains.source_registry.models import WatchAck, WatchError
from domains.source_registry.service import SourceService

router = APIRouter()


def get_source_service(request: Request) -> SourceService:
    """Get the service created by the application lifespan."""
    return request.app.state.source_service


@router.post("")
async def invoke(body: SourceRequest, request: Request) -> Dict[str, Any]:
    """
    Execute a source operation.

    Examples:
        - {"op": "getHash", "uri": "file:///tmp/a.txt"}
        - {"op": "extractMetadata", "uri": "file:///tmp/a.txt"}
        - {"op": "getRegistryInfo"}

    Returns:
        ``{success, data?, error?, errorType?}``
    """
    response = await get_source_service(request).handle(body)
    return response.to_payload()


@router.get("/registry")
async def registry_info(request: Request) -> Dict[str, Any]:
    """Registered schemes and their capabilities."""
    return get_source_service(request).registry.info().model_dump(by_alias=True)


def _watch_reply(request: SourceRequest, response: SourceResponse) -> Dict[str, Any]:
    if request.op not in WATCH_OPS:
        return {"type": "response", "op": request.op, **response.to_payload()}

    if response.success:
        ack = WatchAck(
            type="watch-started" if request.op == "watchStart" else "watch-stopped",
            uri=request.uri,
            subscriber_count=response.data["subscriberCount"],
        )
        return ack.model_dump(by_alias=True)

    return WatchError(uri=request.uri, error=response.error).model_dump()


@router.websocket("/watch")
async def watch_channel(websocket: WebSocket):
    """
    Watch channel.

    Client messages are request envelopes (usually ``watchStart`` /
    ``watchStop``). Server messages are ``watch-started``, ``watch-stopped``,
    ``watch-event``, ``watch-error`` and ``response``. Closing the socket
    drops every watch the connection holds.
    """
    await websocket.accept()
    service: SourceService = websocket.app.state.source_service
    subscriber_id = generate_uuid()
    outbox: asyncio.Queue = asyncio.Queue()

    def sink(message) -> None:
        if sender.done():
            return
        outbox.put_nowait(message.model_dump(by_alias=True))

    async def pump() -> None:
        while True:
            payload = await outbox.get()
            await websocket.send_json(payload)

    def pump_stopped(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Watch channel {subscriber_id} stopped sending: {task.exception()}")

    sender = asyncio.create_task(pump())
    sender.add_done_callback(pump_stopped)
    logger.info(f"Watch channel opened: {subscriber_id}")

    try:
        while True:
            text = await websocket.receive_text()
            raw = None
            try:
                raw = json.loads(text)
                request = SourceRequest.model_validate(raw)
            except (json.JSONDecodeError, ValidationError) as e:
                uri = raw.get("uri") if isinstance(raw, dict) else None
                outbox.put_nowait(WatchError(uri=uri, error=f"Invalid request: {e}").model_dump())
                continue

            response = await service.handle(request, subscriber_id, sink)

            # The watch manager already pushed setup failures to this sink.
            if (
                request.op == "watchStart"
                and not response.success
                and response.error_type == "SourceIOError"
            ):
                continue

            outbox.put_nowait(_watch_reply(request, response))

    except WebSocketDisconnect:
        logger.info(f"Watch channel closed: {subscriber_id}")

    finally:
        sender.cancel()
        await service.watch_manager.stop_subscriber(subscriber_id)
        await asyncio.gather(sender, return_exceptions=True)
