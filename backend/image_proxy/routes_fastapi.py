"""
Image Proxy API Routes

Provides endpoints for:
- Serving transformed images (GET /pictures/{filename})
- Cache statistics
- Memory tier management
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from .config import ImageProxyConfig
from .errors import (
    DecodeError,
    ImageProxyError,
    InvalidParameters,
    OperationTimeout,
    SourceNotFound,
    StoreUnavailable,
)
from .models import TransformParameters
from .orchestrator import CacheOrchestrator

logger = logging.getLogger(__name__)

# ============================================
# Orchestrator
# ============================================

_orchestrator: Optional[CacheOrchestrator] = None


def get_orchestrator() -> CacheOrchestrator:
    """Process-wide orchestrator, built from the environment on first use."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = ImageProxyConfig.from_env().build_orchestrator()
    return _orchestrator


async def shutdown_image_proxy() -> None:
    """Flush outstanding durable write-backs."""
    if _orchestrator is not None:
        await _orchestrator.drain()


# Most specific class first
ERROR_STATUS = [
    (InvalidParameters, 400),
    (SourceNotFound, 404),
    (OperationTimeout, 504),
    (StoreUnavailable, 503),
    (DecodeError, 500),
]


def status_for_error(error: ImageProxyError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


# ============================================
# Router
# ============================================

router = APIRouter(tags=["Image Proxy"])


# ============================================
# Endpoints
# ============================================

@router.get("/pictures/{filename:path}")
async def get_picture(
    filename: str,
    request: Request,
    orchestrator: CacheOrchestrator = Depends(get_orchestrator),
):
    """
    Serve an image, transformed on demand.

    Query parameters (long or short names):
        width|w, height|h, format|fm (jpeg, png, webp),
        quality|q (1-100), grayscale|gray (0/1)

    Example:
        GET /pictures/cat.jpg?w=300&fm=webp&q=70
    """
    try:
        params = TransformParameters.from_query(request.query_params)
        image, tier = await orchestrator.resolve(filename, params)
    except SourceNotFound:
        raise HTTPException(status_code=404, detail="Error: The specified key does not exist.")
    except InvalidParameters as e:
        raise HTTPException(status_code=400, detail=e.message)
    except ImageProxyError as e:
        logger.error(f"[ImageProxy] Error processing image {filename}: {e}")
        raise HTTPException(
            status_code=status_for_error(e),
            detail=f"Error processing image: {e.message}",
        )

    return Response(
        content=image.data,
        media_type=image.content_type,
        headers={
            "X-Cache": tier.header_value,
            "Cache-Control": "public, max-age=86400",  # Browser cache 24h
        },
    )


@router.get("/api/image-proxy/stats")
async def get_cache_stats(orchestrator: CacheOrchestrator = Depends(get_orchestrator)):
    """
    Get cache statistics.

    Returns hit counters per tier, transform count, write-back failures
    and memory tier usage.
    """
    return JSONResponse(content={
        "success": True,
        "stats": orchestrator.stats(),
    })


@router.post("/api/image-proxy/clear-memory")
async def clear_memory_cache(orchestrator: CacheOrchestrator = Depends(get_orchestrator)):
    """
    Drop every entry of the in-process tier.

    The durable store is untouched; entries are reloaded from it on demand.
    """
    removed = orchestrator.memory.clear()
    return JSONResponse(content={
        "success": True,
        "removed_entries": removed,
        "message": "Memory cache cleared successfully",
    })


@router.get("/api/image-proxy/health")
async def health_check(orchestrator: CacheOrchestrator = Depends(get_orchestrator)):
    """Health check endpoint."""
    return JSONResponse(content={
        "status": "healthy",
        "service": "image-proxy",
        "cache_stats": orchestrator.stats(),
    })
