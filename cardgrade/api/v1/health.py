"""Health check endpoint."""

import platform
import sys

from fastapi import APIRouter

from cardgrade.config import settings

router = APIRouter()

# Set by main.py during lifespan
_dispatcher = None


def set_dispatcher(dispatcher):
    global _dispatcher
    _dispatcher = dispatcher


@router.get("/health")
async def health_check():
    """Service health, job counts, and system info."""
    jobs = None
    if _dispatcher is not None:
        jobs = {
            "active": _dispatcher.active_jobs,
            "stored": len(_dispatcher.store),
            "by_status": _dispatcher.store.counts(),
        }

    return {
        "status": "healthy",
        "dispatcher_ready": _dispatcher is not None,
        "model_configured": bool(settings.anthropic_api_key),
        "jobs": jobs,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
