"""
Status and health check endpoints.

WHAT: Health monitoring for the database and the realtime hub
WHY: Quick diagnostics for frontend and ops
HOW: FastAPI endpoints calling database ping and hub stats
"""

from fastapi import APIRouter, Depends

from ....core.config import settings
from ....core.database import ping_database
from ....core.realtime import RealtimeHub
from ...deps import get_hub

router = APIRouter()


@router.get("/status")
def status(hub: RealtimeHub = Depends(get_hub)):
    """
    Component status.

    Returns:
        JSON with database ping result and hub counters
    """
    return {
        "database": ping_database(),
        "realtime": hub.stats(),
    }


@router.get("/health")
def health_check(hub: RealtimeHub = Depends(get_hub)):
    """
    Overall application health check.

    WHAT: Summary status including version
    WHY: Ops and monitoring tools need a simple health endpoint
    HOW: Healthy when the database answers and the hub is running
    """
    db_available = ping_database()["available"]
    healthy = db_available and hub.is_running
    return {
        "status": "healthy" if healthy else "degraded",
        "version": settings.APP_VERSION,
        "app_name": settings.APP_NAME,
        "components": {
            "database": {"available": db_available},
            "realtime": {"running": hub.is_running},
        },
    }
