"""
Public profile list for the login screen.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..database import get_db
from ..limiter import limiter
from ..models.user import User
from .users import avatar_file, build_avatar_url

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


@router.get("")
@limiter.limit("30/minute")
def list_profiles(request: Request, db: Session = Depends(get_db)):
    """
    Active family members with a signed avatar URL.

    Users whose avatar is unset or missing on disk are flagged
    ``is_placeholder`` so the client can draw initials instead.
    """
    users = db.query(User).filter(User.is_active.is_(True)).order_by(User.username.asc()).all()

    profiles = []
    for user in users:
        has_avatar = avatar_file(user) is not None
        profiles.append({
            "id": user.id,
            "username": user.username,
            "display_name": user.display_name or user.username,
            "avatar_url": build_avatar_url(user) if has_avatar else None,
            "is_placeholder": not has_avatar,
        })
    return profiles
