"""
Fan-out of activity notifications to other family members.
"""
from typing import Optional

from sqlalchemy.orm import Session

from .models.notification import Notification, NotificationType
from .models.user import User


def actor_name(user: User) -> str:
    return (user.display_name or user.username or "").strip() or "Someone"


def create_notifications_for_other_users(
    db: Session,
    actor_user_id: Optional[int],
    type: NotificationType,
    message: str,
    album_id: Optional[str] = None,
    media_id: Optional[str] = None,
) -> int:
    """
    Add one notification per user except the actor.

    Rows are added to the caller's session and committed with the caller's
    transaction. Returns the number of notifications created.
    """
    if not type or not message:
        return 0

    query = db.query(User.id)
    if actor_user_id is not None:
        query = query.filter(User.id != actor_user_id)
    recipients = [row.id for row in query.all()]

    for user_id in recipients:
        db.add(Notification(
            user_id=user_id,
            type=NotificationType(type).value,
            message=message,
            album_id=album_id,
            media_id=media_id,
        ))

    return len(recipients)
