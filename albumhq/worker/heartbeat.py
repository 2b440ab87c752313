"""
Worker heartbeat file, written by the worker and read by the health check.
"""
import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from ..database import utcnow

STALE_MESSAGE = "Worker heartbeat is stale."


def write_heartbeat_file(path: Path, status: str, active_count: int, is_shutting_down: bool):
    """Replace the heartbeat file atomically so readers never see half a document."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "updatedAt": utcnow().isoformat() + "Z",
        "status": status,
        "activeCount": active_count,
        "isShuttingDown": is_shutting_down,
    }

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def read_heartbeat_file(path: Path) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return None


def _parse_updated_at(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - (parsed.utcoffset())
    return parsed


def check_worker_heartbeat(path: Path, max_age_seconds: float, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Health check entry: ``{"ok": bool, ...}`` from the heartbeat file."""
    heartbeat = read_heartbeat_file(path)
    if heartbeat is None:
        return {"ok": False, "message": "Worker heartbeat file not found."}

    updated_at = _parse_updated_at(heartbeat.get("updatedAt"))
    if updated_at is None:
        return {"ok": False, "message": "Worker heartbeat has an invalid timestamp.", "heartbeat": heartbeat}

    age = ((now or utcnow()) - updated_at).total_seconds()
    result = {
        "ok": age <= max_age_seconds,
        "age_seconds": round(age, 1),
        "heartbeat": heartbeat,
    }
    if not result["ok"]:
        result["message"] = STALE_MESSAGE
    return result
