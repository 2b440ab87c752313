"""
Presence ping: clients call this while open to keep ``last_seen_at`` fresh.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_required_user
from ..database import get_db, utcnow
from ..models.user import User

router = APIRouter(prefix="/api/presence", tags=["presence"])


@router.post("")
def update_presence(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    current_user.last_seen_at = utcnow()
    db.commit()
    return {"last_seen_at": current_user.last_seen_at.isoformat() + "Z"}
