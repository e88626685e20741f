"""
Health check endpoints.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from escrow_auth import __version__
from escrow_auth.config import Settings
from escrow_auth.middleware.auth import get_app_settings, get_session_registry
from escrow_auth.services.session import SessionRegistry

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    backend: str
    environment: str
    timestamp: str
    sessions: int


@router.get("/health", response_model=HealthResponse)
async def health_check(
    registry: SessionRegistry = Depends(get_session_registry),
    settings: Settings = Depends(get_app_settings),
):
    """
    Health check endpoint.
    Returns server status and the number of sessions held in memory.
    """
    return HealthResponse(
        status="ok",
        version=__version__,
        backend="python-fastapi",
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc).isoformat(),
        sessions=len(registry),
    )


@router.get("/api/health")
async def api_health_check(
    registry: SessionRegistry = Depends(get_session_registry),
    settings: Settings = Depends(get_app_settings),
):
    """
    API prefixed health check (for consistency with /api/* routes).
    """
    return await health_check(registry, settings)
