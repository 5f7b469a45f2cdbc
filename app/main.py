"""
Source Index - Main FastAPI Application

Transport for the source registry:
- Metadata extraction and content hashing for source URIs
- Registry introspection (schemes, capabilities)
- Live change notifications over a WebSocket watch channel
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
import sys

from app.utils.config import get_settings
from app.api import health, sources
from domains.source_registry.registry import get_registry
from domains.source_registry.service import SourceService
from domains.source_registry.watch_manager import WatchManager


# Configure logging
logger.remove()
logger.add(
    sys.stdout,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
    level=get_settings().log_level
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(f"Starting {settings.api_title} v{settings.api_version}")

    registry = get_registry()
    watch_manager = WatchManager(registry)
    app.state.source_service = SourceService(registry, watch_manager)
    logger.success(f"Source registry ready: {', '.join(registry.get_schemes())}")

    yield

    # Cleanup
    logger.info("Shutting down application...")
    await watch_manager.shutdown()
    logger.success("Application shut down complete")


# Create FastAPI app
settings = get_settings()
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="Source registry, content hashing and change watching",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.log_level == "DEBUG" else "An error occurred"
        }
    )


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(sources.router, prefix="/sources", tags=["Sources"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Source Index",
        "version": settings.api_version,
        "status": "operational",
        "docs": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower()
    )
