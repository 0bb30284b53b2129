"""
Health Check Endpoint for Songsmith Server.

Endpoints:
- GET /api/health - Basic health check (also reports the tool backend)
"""

from datetime import datetime

from fastapi import APIRouter, Request

from songsmith import __version__
from songsmith.server.models import HealthResponse
from songsmith.server.session import get_settings

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """
    Basic health check endpoint.

    Example:
        GET /api/health
        {
            "status": "healthy",
            "timestamp": "2026-01-15T10:30:00",
            "version": "0.1.0",
            "backend": "sample"
        }
    """
    settings = get_settings(request)
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        version=__version__,
        backend="sample" if settings.use_sample_backend() else "live",
    )


__all__ = ["router"]
