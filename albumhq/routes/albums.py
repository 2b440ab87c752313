"""
Album routes: listing, CRUD, cover image and bulk deletion.
"""
import math
import shutil
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ..auth import get_asset_access, get_required_user
from ..config import get_settings
from ..database import get_db
from ..logging_config import api_logger
from ..metadata import is_valid_coordinate
from ..models.album import Album, AlbumCategory
from ..models.notification import NotificationType
from ..models.user import User
from ..notifications import actor_name, create_notifications_for_other_users
from ..schemas.albums import AlbumBulkDelete, AlbumCreate, AlbumUpdate
from ..signed_url import build_signed_url
from ..storage import (
    build_album_cover_relative_path,
    build_album_relative_dir,
    resolve_upload_path,
    slugify,
)
from .media import media_to_dict
from .upload import resolve_mime_type, save_upload

settings = get_settings()

router = APIRouter(prefix="/api/albums", tags=["albums"])

NAME_MAX_LENGTH = 50
COVER_MIME_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif", "image/heic", "image/heif"}


def album_to_dict(album: Album, include_media: bool = False) -> dict:
    data = {
        "id": album.id,
        "name": album.name,
        "info_text": album.info_text,
        "category": album.category,
        "cover_url": build_signed_url(f"/api/albums/{album.id}/cover") if album.cover_image else None,
        "latitude": album.latitude,
        "longitude": album.longitude,
        "location_name": album.location_name,
        "created_at": album.created_at.isoformat() + "Z" if album.created_at else None,
        "updated_at": album.updated_at.isoformat() + "Z" if album.updated_at else None,
    }
    if include_media:
        data["media"] = [media_to_dict(m) for m in album.media]
    return data


def _validate_fields(name: str, category: str, latitude: Optional[float], longitude: Optional[float]) -> str:
    name = (name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")
    if len(name) > NAME_MAX_LENGTH:
        raise HTTPException(status_code=400, detail=f"Name must be at most {NAME_MAX_LENGTH} characters")
    if category not in {c.value for c in AlbumCategory}:
        raise HTTPException(status_code=400, detail="Invalid category")
    if (latitude is not None or longitude is not None) and not is_valid_coordinate(latitude, longitude):
        raise HTTPException(status_code=400, detail="Invalid coordinates")
    return name


def unique_album_id(db: Session, name: str) -> str:
    """Slug of ``name``, suffixed -2, -3, ... until unused."""
    base = slugify(name) or "album"
    candidate = base
    suffix = 2
    while db.get(Album, candidate) is not None:
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


def _get_album_or_404(db: Session, album_id: str) -> Album:
    album = db.get(Album, album_id)
    if not album:
        raise HTTPException(status_code=404, detail="Album not found")
    return album


def _remove_album_dir(album_id: str):
    try:
        album_dir = resolve_upload_path(build_album_relative_dir(album_id))
    except ValueError:
        return
    if not album_dir.exists():
        return
    try:
        shutil.rmtree(album_dir)
    except OSError as e:
        api_logger.warning("Could not remove album directory", album_id=album_id, error_message=str(e))


@router.get("")
def list_albums(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    summary: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Albums, newest first. ``summary=1`` returns only id, name and category."""
    query = db.query(Album)
    total = query.count()
    albums = (
        query.order_by(Album.created_at.desc(), Album.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    if summary:
        items = [{"id": a.id, "name": a.name, "category": a.category} for a in albums]
    else:
        items = [album_to_dict(a) for a in albums]

    return {
        "albums": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    }


@router.post("", status_code=201)
def create_album(
    album_data: AlbumCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Create an album and tell everyone else about it."""
    name = _validate_fields(album_data.name, album_data.category, album_data.latitude, album_data.longitude)

    album = Album(
        id=unique_album_id(db, name),
        name=name,
        info_text=album_data.info_text,
        category=album_data.category,
        latitude=album_data.latitude,
        longitude=album_data.longitude,
        location_name=album_data.location_name,
    )
    db.add(album)
    create_notifications_for_other_users(
        db,
        current_user.id,
        NotificationType.ALBUM_CREATED,
        f'{actor_name(current_user)} created the album "{name}"',
        album_id=album.id,
    )
    db.commit()
    db.refresh(album)

    api_logger.info("Album created", album_id=album.id, user_id=current_user.id)
    return album_to_dict(album)


@router.post("/bulk-delete")
def bulk_delete_albums(
    payload: AlbumBulkDelete,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Delete several albums (with their media) at once."""
    album_ids = list(dict.fromkeys(i for i in payload.album_ids if i))
    if not album_ids:
        raise HTTPException(status_code=400, detail="album_ids must not be empty")

    albums = db.query(Album).filter(Album.id.in_(album_ids)).all()
    deleted_ids = [album.id for album in albums]
    for album in albums:
        create_notifications_for_other_users(
            db,
            current_user.id,
            NotificationType.ALBUM_DELETED,
            f'{actor_name(current_user)} deleted the album "{album.name}"',
            album_id=album.id,
        )
        db.delete(album)
    db.commit()

    for deleted_id in deleted_ids:
        _remove_album_dir(deleted_id)

    return {"deleted": len(deleted_ids)}


@router.get("/{album_id}")
def get_album(
    album_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Album with its media list."""
    return album_to_dict(_get_album_or_404(db, album_id), include_media=True)


@router.patch("/{album_id}")
def update_album(
    album_id: str,
    album_data: AlbumUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    album = _get_album_or_404(db, album_id)
    name = _validate_fields(album_data.name, album_data.category, album_data.latitude, album_data.longitude)

    album.name = name
    album.category = album_data.category
    update_data = album_data.model_dump(exclude_unset=True, exclude={"name", "category"})
    for key, value in update_data.items():
        setattr(album, key, value)

    create_notifications_for_other_users(
        db,
        current_user.id,
        NotificationType.ALBUM_UPDATED,
        f'{actor_name(current_user)} updated the album "{name}"',
        album_id=album.id,
    )
    db.commit()
    db.refresh(album)
    return album_to_dict(album)


@router.put("/{album_id}/cover")
def upload_album_cover(
    album_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Replace the album's cover image."""
    album = _get_album_or_404(db, album_id)

    mime_type = resolve_mime_type(file.content_type, file.filename)
    if mime_type not in COVER_MIME_TYPES:
        raise HTTPException(status_code=400, detail="Cover must be an image")

    extension = Path(file.filename or "").suffix or ".jpg"
    relative_path = build_album_cover_relative_path(album.id, extension)
    destination = resolve_upload_path(relative_path)
    save_upload(file, destination, settings.max_cover_bytes)

    previous = album.cover_image
    if previous and previous != relative_path:
        try:
            resolve_upload_path(previous).unlink(missing_ok=True)
        except (OSError, ValueError) as e:
            api_logger.warning("Could not remove previous cover", album_id=album.id, error_message=str(e))

    album.cover_image = relative_path
    db.commit()
    db.refresh(album)
    return album_to_dict(album)


@router.get("/{album_id}/cover")
def get_album_cover(
    album_id: str,
    db: Session = Depends(get_db),
    viewer: Optional[User] = Depends(get_asset_access),
):
    album = _get_album_or_404(db, album_id)
    if not album.cover_image:
        raise HTTPException(status_code=404, detail="Album has no cover")
    try:
        path = resolve_upload_path(album.cover_image)
    except ValueError:
        raise HTTPException(status_code=404, detail="Album has no cover")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Album has no cover")
    return FileResponse(path)


@router.delete("/{album_id}")
def delete_album(
    album_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Delete an album, its media rows and its directory."""
    album = _get_album_or_404(db, album_id)

    create_notifications_for_other_users(
        db,
        current_user.id,
        NotificationType.ALBUM_DELETED,
        f'{actor_name(current_user)} deleted the album "{album.name}"',
        album_id=album.id,
    )
    db.delete(album)
    db.commit()
    _remove_album_dir(album_id)

    api_logger.info("Album deleted", album_id=album_id, user_id=current_user.id)
    return {"message": "Album deleted"}
