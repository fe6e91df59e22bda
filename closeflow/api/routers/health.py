"""Health check endpoints for closeflow.

- /health: Basic health check
- /health/live: Liveness probe (is the app running?)
- /health/ready: Readiness probe (can the app serve batches?)
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from closeflow import __version__
from closeflow.api.deps import get_app_settings, get_facade
from closeflow.core.config import Settings
from closeflow.core.orchestration import OrchestrationFacade

router = APIRouter(tags=["health"])


def check_audit_store(facade: OrchestrationFacade) -> Dict[str, Any]:
    """Check the audit store answers a read."""
    try:
        facade.audit.history("__health__")
        return {"status": "healthy", "store": type(facade.audit.store).__name__}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


def check_notifier(facade: OrchestrationFacade) -> Dict[str, Any]:
    """Notifications are optional; a stopped worker only degrades delivery."""
    notifier = facade.notifier
    if notifier is None:
        return {"status": "disabled"}
    return {
        "status": "healthy" if notifier.running else "stopped",
        "channels": [channel.name for channel in notifier.channels],
        "failed": len(notifier.failed_deliveries()),
    }


@router.get("/health")
async def health_check():
    """Returns 200 if the application is running."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/live")
async def liveness_probe():
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "alive",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@router.get("/health/ready")
async def readiness_probe(facade: OrchestrationFacade = Depends(get_facade)):
    """
    Returns 200 if the audit store is reachable.

    Failure means traffic should not be routed to this instance.
    """
    checks = {
        "audit_store": check_audit_store(facade),
        "notifications": check_notifier(facade),
    }
    ready = checks["audit_store"]["status"] == "healthy"
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "not_ready",
            "checks": checks,
            "batches": len(facade.list_batches()),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@router.get("/")
async def root(settings: Settings = Depends(get_app_settings)):
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
