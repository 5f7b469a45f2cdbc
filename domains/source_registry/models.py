"""
Pydantic models shared by the registry, the handlers and the watch manager.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


WatchKind = Literal["change", "delete"]


# =====================================================
# Handler Models
# =====================================================

class Capabilities(BaseModel):
    """Capability flags declared by a scheme handler. Never mutated."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    can_watch: bool = Field(False, alias="canWatch")
    can_open: bool = Field(False, alias="canOpen")
    can_preview: bool = Field(False, alias="canPreview")
    can_cache: bool = Field(False, alias="canCache")

    def supports(self, capability: str) -> bool:
        """Check a capability by short name (watch, open, preview, cache)."""
        return bool(getattr(self, f"can_{capability}", False))


class HandlerInfo(BaseModel):
    """Registry introspection entry for one handler."""
    scheme: str
    capabilities: Capabilities


class RegistryInfo(BaseModel):
    """Snapshot of the registry contents."""
    schemes: List[str] = []
    handlers: List[HandlerInfo] = []


class MetadataRecord(BaseModel):
    """
    Normalized metadata for a source.

    Extra keys are allowed so scheme handlers can attach their own fields.
    ``uid``/``gid`` stay ``None`` when the source does not expose them and
    are dropped from the serialized form.
    """
    model_config = ConfigDict(extra="allow")

    name: str
    size: int = Field(ge=0)
    mime_type: str = "application/octet-stream"
    extension: str = ""
    is_directory: bool = False
    is_file: bool = False
    is_symlink: bool = False
    permissions: int = Field(0, ge=0)
    created_at: str
    modified_at: str
    uid: Optional[int] = None
    gid: Optional[int] = None

    def to_payload(self) -> dict:
        """Serialize for the transport, omitting absent ownership fields."""
        payload = self.model_dump()
        for key in ("uid", "gid"):
            if payload.get(key) is None:
                payload.pop(key, None)
        return payload


# =====================================================
# Watch Models
# =====================================================

class WatchEvent(BaseModel):
    """Change notification delivered to subscribers."""
    type: Literal["watch-event"] = "watch-event"
    uri: str
    event: WatchKind
    timestamp: str


class WatchError(BaseModel):
    """One-shot notification that a watch could not be kept alive."""
    type: Literal["watch-error"] = "watch-error"
    uri: Optional[str] = None
    error: str


class WatchAck(BaseModel):
    """Acknowledgement of a watch start/stop request."""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["watch-started", "watch-stopped"]
    uri: str
    subscriber_count: int = Field(0, alias="subscriberCount")


class WatchRegistrationInfo(BaseModel):
    """Read-only view of an active watch registration."""
    model_config = ConfigDict(populate_by_name=True)

    uri: str
    subscriber_count: int = Field(alias="subscriberCount")
