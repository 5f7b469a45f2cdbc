"""
Pydantic models for the transport layer.

Request/response envelopes exchanged with callers on the other side of the
process boundary.
"""

from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


SourceOp = Literal[
    "extractMetadata",
    "open",
    "getHash",
    "watchStart",
    "watchStop",
    "canHandle",
    "getRegistryInfo",
]

WATCH_OPS = ("watchStart", "watchStop")


# =====================================================
# Envelope Models
# =====================================================

class SourceRequest(BaseModel):
    """Operation request from a caller."""
    op: SourceOp
    uri: Optional[str] = None


class SourceResponse(BaseModel):
    """Tagged result returned for every request."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_type: Optional[str] = Field(None, alias="errorType")

    @classmethod
    def ok(cls, data: Any = None) -> "SourceResponse":
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, error_type: str) -> "SourceResponse":
        return cls(success=False, error=error, error_type=error_type)

    def to_payload(self) -> dict:
        """Wire form: camelCase keys, absent fields dropped."""
        return self.model_dump(by_alias=True, exclude_none=True)
