"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/sink", status_code=status.HTTP_200_OK)
def health_sink() -> dict:
    """Report which location sink playback will use."""
    return {
        "sink": "http-bridge" if settings.sink_bridge_url else "logging",
        "bridge_url": settings.sink_bridge_url,
        "providers": [provider.name for provider in settings.providers],
    }
