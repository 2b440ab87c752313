"""
Notification inbox and the client-side upload summary.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import get_required_user
from ..database import get_db, utcnow
from ..models.album import Album
from ..models.notification import Notification, NotificationType
from ..models.user import User
from ..notifications import actor_name, create_notifications_for_other_users
from ..schemas.media import UploadSummary

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=List[dict])
def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Newest notifications for the current user."""
    query = db.query(Notification).filter(Notification.user_id == current_user.id)
    if unread_only:
        query = query.filter(Notification.read_at.is_(None))
    items = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    return [n.to_dict() for n in items]


@router.post("/read-all")
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == current_user.id, Notification.read_at.is_(None))
        .update({Notification.read_at: utcnow()}, synchronize_session=False)
    )
    db.commit()
    return {"updated": updated}


@router.post("/upload-summary", status_code=201)
def upload_summary(
    summary: UploadSummary,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """
    Announce a finished batch upload.

    The client calls this once per batch so other users get one notification
    instead of one per file.
    """
    album = db.get(Album, summary.album_id)
    if not album:
        raise HTTPException(status_code=404, detail="Album not found")

    noun = "file" if summary.uploaded_count == 1 else "files"
    created = create_notifications_for_other_users(
        db,
        current_user.id,
        NotificationType.MEDIA_UPLOADED,
        f'{actor_name(current_user)} uploaded {summary.uploaded_count} {noun} to "{album.name}"',
        album_id=album.id,
    )
    db.commit()
    return {"notified": created}


@router.post("/{notification_id}/read")
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == current_user.id,
    ).first()
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")

    if notification.read_at is None:
        notification.read_at = utcnow()
        db.commit()
        db.refresh(notification)
    return notification.to_dict()
