"""
AlbumHQ Real-time Events (SSE)
Per-connection notification stream backed by polling the notifications table
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from typing import AsyncGenerator, Awaitable, Callable, Dict, List, Optional, Tuple
import asyncio
import json
import time
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, or_

from ..auth import get_stream_user
from ..config import get_settings
from ..database import get_session_factory, utcnow
from ..logging_config import api_logger
from ..models.notification import Notification
from ..models.user import User

router = APIRouter(prefix="/api/events", tags=["events"])

POLL_LIMIT = 100


# ============================================================
# EVENT TYPES
# ============================================================

@dataclass
class Event:
    """Server-sent event structure"""
    type: str
    data: Dict
    id: Optional[str] = None

    def to_sse(self) -> str:
        """Format as SSE message"""
        lines = []
        if self.id:
            lines.append(f"id: {self.id}")
        lines.append(f"event: {self.type}")
        lines.append(f"data: {json.dumps(self.data, default=str)}")
        return "\n".join(lines) + "\n\n"


# ============================================================
# POLLING
# ============================================================

Cursor = Tuple[datetime, int]


def fetch_notifications_since(session_factory, user_id: int, cursor: Cursor) -> List[Tuple[Cursor, Dict]]:
    """Notifications after ``cursor`` in (created_at, id) order, at most POLL_LIMIT."""
    created_at, last_id = cursor
    db = session_factory()
    try:
        rows = (
            db.query(Notification)
            .filter(
                Notification.user_id == user_id,
                or_(
                    Notification.created_at > created_at,
                    and_(Notification.created_at == created_at, Notification.id > last_id),
                ),
            )
            .order_by(Notification.created_at.asc(), Notification.id.asc())
            .limit(POLL_LIMIT)
            .all()
        )
        return [((n.created_at, n.id), n.to_dict()) for n in rows]
    finally:
        db.close()


async def notification_stream(
    user_id: int,
    session_factory,
    is_disconnected: Callable[[], Awaitable[bool]],
    poll_interval: float,
    heartbeat_interval: float,
    clock: Callable[[], float] = time.monotonic,
) -> AsyncGenerator[str, None]:
    """
    Yield SSE frames for ``user_id`` until the client goes away.

    Only notifications created after the connection opened are sent. A failed
    poll is reported as an ``error`` event and the loop carries on.
    """
    cursor: Cursor = (utcnow(), 0)
    yield Event(type="connected", data={"serverTime": cursor[0].isoformat() + "Z"}).to_sse()
    last_heartbeat = clock()

    while True:
        if await is_disconnected():
            break

        try:
            rows = await asyncio.to_thread(fetch_notifications_since, session_factory, user_id, cursor)
        except Exception as e:
            api_logger.error("Notification poll failed", error=e, user_id=user_id)
            yield Event(type="error", data={"message": "Failed to load notifications"}).to_sse()
        else:
            for row_cursor, data in rows:
                yield Event(type="notification", data=data, id=str(data["id"])).to_sse()
                cursor = row_cursor

        now = clock()
        if now - last_heartbeat >= heartbeat_interval:
            yield Event(type="heartbeat", data={"serverTime": utcnow().isoformat() + "Z"}).to_sse()
            last_heartbeat = now

        await asyncio.sleep(poll_interval)


# ============================================================
# SSE ROUTES
# ============================================================

@router.get("/stream")
async def sse_stream(
    request: Request,
    user: User = Depends(get_stream_user),
    session_factory=Depends(get_session_factory),
):
    """
    SSE endpoint for notifications.

    EventSource cannot set headers, so the access token may be passed as
    ``?token=``.

    Example:
    ```
    const source = new EventSource(`/api/events/stream?token=${accessToken}`);
    source.addEventListener('notification', (event) => {
        const data = JSON.parse(event.data);
        console.log(data.type, data.message);
    });
    ```
    """
    settings = get_settings()
    return StreamingResponse(
        notification_stream(
            user.id,
            session_factory,
            request.is_disconnected,
            poll_interval=settings.sse_poll_interval,
            heartbeat_interval=settings.sse_heartbeat_interval,
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        }
    )
