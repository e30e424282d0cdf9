"""
Pulse Health Check Routes
"""
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request
from sqlalchemy import text

router = APIRouter(prefix="/api/health", tags=["health"])

START_TIME = datetime.now(timezone.utc)


def get_uptime() -> str:
    """Get uptime as human-readable string"""
    delta = datetime.now(timezone.utc) - START_TIME
    hours, remainder = divmod(delta.seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    if delta.days > 0:
        return f"{delta.days}d {hours}h {minutes}m"
    elif hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    else:
        return f"{minutes}m {seconds}s"


def check_database(session_factory) -> Dict[str, Any]:
    try:
        with session_factory() as session:
            session.execute(text("SELECT 1"))
        return {"status": "healthy"}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


@router.get("")
async def health_live(request: Request):
    """
    Liveness probe plus scheduler and database state.
    """
    service = request.app.state.generation_service
    db = check_database(request.app.state.session_factory)
    healthy = db["status"] == "healthy"
    return {
        "ok": healthy,
        "status": "healthy" if healthy else "unhealthy",
        "version": request.app.version,
        "uptime": get_uptime(),
        "checks": {
            "database": db["status"],
            "scheduler": "running" if service.runner.running else "stopped",
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
