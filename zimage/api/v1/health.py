"""Health check endpoint."""

from fastapi import APIRouter
import platform
import sys

from zimage.config import settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Service liveness and provider configuration status."""
    missing = settings.missing_provider_settings()
    return {
        "status": "healthy",
        "provider_configured": not missing,
        "missing_settings": missing,
        "poll_interval_seconds": settings.poll_interval_seconds,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
