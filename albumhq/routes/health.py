"""
AlbumHQ Health Check Routes
Database, worker heartbeat and storage checks
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from datetime import datetime, timezone
from pathlib import Path
import psutil
from typing import Dict, Any

from sqlalchemy import text
from sqlalchemy.orm import Session

from ..config import get_settings
from ..database import get_db
from ..logging_config import api_logger
from ..storage import get_upload_root
from ..worker.heartbeat import check_worker_heartbeat

router = APIRouter(prefix="/api/health", tags=["health"])

START_TIME = datetime.now(timezone.utc)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def get_uptime() -> str:
    """Get process uptime as human-readable string"""
    delta = datetime.now(timezone.utc) - START_TIME
    hours, remainder = divmod(delta.seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    if delta.days > 0:
        return f"{delta.days}d {hours}h {minutes}m"
    elif hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    else:
        return f"{minutes}m {seconds}s"


def check_database(db: Session) -> Dict[str, Any]:
    try:
        db.execute(text("SELECT 1"))
        return {"ok": True}
    except Exception as e:
        api_logger.error("Database health check failed", error=e)
        return {"ok": False, "message": str(e)}


def check_worker() -> Dict[str, Any]:
    settings = get_settings()
    if not settings.worker_enabled:
        return {"ok": True, "enabled": False}

    result = check_worker_heartbeat(Path(settings.worker_health_file), settings.worker_heartbeat_max_age)
    result["enabled"] = True
    return result


def check_storage() -> Dict[str, Any]:
    """Disk usage of the upload root (informational)"""
    root = get_upload_root()
    if not root.exists():
        return {"ok": True, "path": str(root), "exists": False}

    try:
        usage = psutil.disk_usage(str(root))
    except OSError as e:
        return {"ok": True, "path": str(root), "message": str(e)}

    return {
        "ok": True,
        "path": str(root),
        "exists": True,
        "total_gb": round(usage.total / (1024**3), 2),
        "free_gb": round(usage.free / (1024**3), 2),
        "free_percent": round(100 - usage.percent, 1),
    }


# ============================================================
# ROUTES
# ============================================================

@router.get("")
def health(db: Session = Depends(get_db)):
    """
    Readiness check for the reverse proxy and container orchestrator.
    Returns 503 when the database or an enabled worker is unhealthy.
    """
    checks = {
        "database": check_database(db),
        "worker": check_worker(),
        "storage": check_storage(),
    }
    ok = checks["database"]["ok"] and checks["worker"]["ok"]

    return JSONResponse(
        status_code=200 if ok else 503,
        content={"ok": ok, "timestamp": _timestamp(), "checks": checks},
    )


@router.get("/live")
async def health_live():
    """
    Liveness probe - is the service running?
    """
    return {
        "ok": True,
        "status": "alive",
        "uptime": get_uptime(),
        "timestamp": _timestamp(),
    }
