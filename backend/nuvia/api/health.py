"""
Health check endpoints for production monitoring
"""
from fastapi import APIRouter, Request
from datetime import datetime, timezone
from typing import Dict, Any

from nuvia.core.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health", response_model=Dict[str, Any])
async def basic_health_check():
    """
    Basic health check endpoint for load balancers
    """
    settings = get_settings()
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.app_name,
        "version": settings.app_version
    }


@router.get("/health/ready", response_model=Dict[str, Any])
async def readiness_check(request: Request):
    """
    Readiness check: the collaboration server is attached and its sweeper is running
    """
    server = getattr(request.app.state, "collaboration", None)
    sweeper = server.coordinator.sweep_task if server else None
    ready = server is not None and sweeper is not None and not sweeper.done()

    return {
        "status": "ready" if ready else "not_ready",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "collaboration_server": server is not None,
            "session_sweeper": sweeper is not None and not sweeper.done()
        }
    }
