"""
Source service: the boundary between the transport and the registry.

Turns request envelopes into registry / watch manager calls and turns every
outcome, including failures, into a tagged ``SourceResponse``. Nothing raised
here escapes to the transport.
"""

from typing import Any, Optional

from loguru import logger

from app.models.schemas import SourceRequest, SourceResponse
from domains.source_registry.errors import InvalidUri, SourceError
from domains.source_registry.registry import HandlerRegistry
from domains.source_registry.watch_manager import Sink, WatchManager


class SourceService:
    """Dispatches request envelopes for one registry and watch manager."""

    def __init__(self, registry: HandlerRegistry, watch_manager: WatchManager):
        self.registry = registry
        self.watch_manager = watch_manager

    async def handle(
        self,
        request: SourceRequest,
        subscriber_id: Optional[str] = None,
        sink: Optional[Sink] = None,
    ) -> SourceResponse:
        """
        Execute a request.

        Args:
            request: Operation envelope
            subscriber_id: Identity of the calling channel (watch ops only)
            sink: Delivery target for watch messages (watch ops only)

        Returns:
            Tagged success/failure response
        """
        try:
            data = await self._dispatch(request, subscriber_id, sink)
        except SourceError as e:
            logger.warning(f"{request.op} failed for {request.uri!r}: {e}")
            return SourceResponse.failure(str(e), e.error_type)
        except ValueError as e:
            logger.warning(f"Rejected {request.op} request: {e}")
            return SourceResponse.failure(str(e), "InvalidRequest")
        except Exception as e:
            logger.exception(f"Unexpected error in {request.op} for {request.uri!r}")
            return SourceResponse.failure(str(e) or type(e).__name__, "InternalError")

        return SourceResponse.ok(data)

    @staticmethod
    def _require_uri(request: SourceRequest) -> str:
        if not request.uri:
            raise InvalidUri("", "URI is required")
        return request.uri

    async def _dispatch(
        self,
        request: SourceRequest,
        subscriber_id: Optional[str],
        sink: Optional[Sink],
    ) -> Any:
        op = request.op

        if op == "getRegistryInfo":
            return self.registry.info().model_dump(by_alias=True)

        if op == "canHandle":
            return self.registry.can_handle(request.uri or "")

        uri = self._require_uri(request)

        if op == "extractMetadata":
            metadata = await self.registry.extract_metadata(uri)
            return metadata.to_payload()

        if op == "getHash":
            return await self.registry.get_content_hash(uri)

        if op == "open":
            await self.registry.open(uri)
            return None

        if subscriber_id is None or sink is None:
            raise ValueError(f"{op} requires a watch channel")

        if op == "watchStart":
            registration = await self.watch_manager.start_watch(uri, subscriber_id, sink)
            return registration.model_dump(by_alias=True)

        if op == "watchStop":
            remaining = await self.watch_manager.stop_watch(uri, subscriber_id)
            return {"uri": uri, "subscriberCount": remaining}

        raise ValueError(f"Unknown operation: {op}")
