"""
Family member listing, admin user creation and avatars.
"""
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth import get_admin_user, get_asset_access, get_password_hash, get_required_user
from ..config import get_settings
from ..database import get_db
from ..logging_config import api_logger
from ..login_rate_limit import normalize_username
from ..models.user import User, UserRole
from ..schemas.auth import UserCreate, UserResponse, password_policy_errors
from ..signed_url import build_signed_url
from ..storage import build_avatar_relative_path, resolve_upload_path
from .upload import resolve_mime_type, save_upload

settings = get_settings()

router = APIRouter(prefix="/api/users", tags=["users"])

AVATAR_MIME_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}


def avatar_file(user: User) -> Optional[Path]:
    """The user's avatar on disk, or None when unset or missing."""
    if not user.avatar_path:
        return None
    try:
        path = resolve_upload_path(user.avatar_path)
    except ValueError:
        return None
    return path if path.is_file() else None


def build_avatar_url(user: User) -> Optional[str]:
    return build_signed_url(f"/api/users/{user.id}/avatar") if user.avatar_path else None


@router.get("", response_model=List[UserResponse])
def list_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    return db.query(User).order_by(User.username.asc()).all()


@router.post("", response_model=UserResponse, status_code=201)
def create_user(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    """Create a family member account (admin only)."""
    username = normalize_username(user_data.username)
    if not username:
        raise HTTPException(status_code=400, detail="Username is required")

    if user_data.role not in (UserRole.USER, UserRole.ADMIN):
        raise HTTPException(status_code=400, detail="Invalid role")

    errors = password_policy_errors(user_data.password)
    if errors:
        raise HTTPException(status_code=400, detail=" ".join(errors))

    existing = db.query(User).filter(func.lower(User.username) == username).first()
    if existing:
        raise HTTPException(status_code=400, detail="Username already taken")

    user = User(
        username=username,
        hashed_password=get_password_hash(user_data.password),
        display_name=user_data.display_name or user_data.username.strip(),
        role=user_data.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.put("/{user_id}/avatar")
def upload_avatar(
    user_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Replace a profile picture. Users change their own, admins anyone's."""
    if current_user.id != user_id and not current_user.is_admin:
        raise HTTPException(status_code=403, detail="You can only change your own picture")

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    mime_type = resolve_mime_type(file.content_type, file.filename)
    if mime_type not in AVATAR_MIME_TYPES:
        raise HTTPException(status_code=400, detail="Avatar must be a JPEG, PNG, WebP or GIF image")

    relative_path = build_avatar_relative_path(user.id, Path(file.filename or "").suffix)
    save_upload(file, resolve_upload_path(relative_path), settings.max_avatar_bytes)

    previous = user.avatar_path
    if previous and previous != relative_path:
        try:
            resolve_upload_path(previous).unlink(missing_ok=True)
        except (OSError, ValueError) as e:
            api_logger.warning("Could not remove previous avatar", user_id=user.id, error_message=str(e))

    user.avatar_path = relative_path
    db.commit()

    api_logger.info("Avatar updated", user_id=user.id, changed_by=current_user.id)
    return {"avatar_url": build_avatar_url(user)}


@router.api_route("/{user_id}/avatar", methods=["GET", "HEAD"])
def get_avatar(
    user_id: int,
    db: Session = Depends(get_db),
    viewer: Optional[User] = Depends(get_asset_access),
):
    user = db.get(User, user_id)
    path = avatar_file(user) if user else None
    if not path:
        raise HTTPException(status_code=404, detail="Avatar not found")
    return FileResponse(path, content_disposition_type="inline", filename=path.name)
