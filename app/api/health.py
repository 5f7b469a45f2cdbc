"""
Health check endpoint.
"""

from fastapi import APIRouter, Request
from pydantic import BaseModel
from datetime import datetime
from typing import List

from app.utils.config import get_settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime
    version: str
    schemes: List[str]
    active_watches: int


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Health check endpoint.

    Verifies:
    - API is running
    - At least one scheme handler is registered
    """
    settings = get_settings()
    service = request.app.state.source_service
    schemes = service.registry.get_schemes()

    return HealthResponse(
        status="healthy" if schemes else "degraded",
        timestamp=datetime.now(),
        version=settings.api_version,
        schemes=schemes,
        active_watches=len(service.watch_manager.active_watches())
    )
