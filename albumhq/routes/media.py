"""
Media routes: metadata, file delivery (signed or authenticated), ZIP downloads and deletion.
"""
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse, StreamingResponse
from sqlalchemy.orm import Session
from starlette.background import BackgroundTask

from ..archive import build_archive_filename, collect_entries, iter_zip
from ..auth import get_asset_access, get_required_user
from ..database import get_db
from ..logging_config import media_logger
from ..media_tools import CommandError, convert_heic_to_jpeg
from ..models.album import Album
from ..models.media import Media
from ..models.notification import NotificationType
from ..models.user import User
from ..notifications import actor_name, create_notifications_for_other_users
from ..schemas.media import MediaBulkDelete, MediaBulkDownload
from ..signed_url import HEIC_MIME_TYPES, build_signed_media_url, build_signed_url
from ..storage import resolve_upload_path

router = APIRouter(prefix="/api/media", tags=["media"])


def media_to_dict(media: Media) -> dict:
    """Convert a Media model to a dictionary response with signed URLs."""
    return {
        "id": media.id,
        "album_id": media.album_id,
        "url": build_signed_media_url(media.url, media.mime_type),
        "original_url": build_signed_url(media.url),
        "preview_url": build_signed_url(f"/api/media/{media.id}/preview") if media.preview_path else None,
        "mime_type": media.mime_type,
        "original_name": media.original_name,
        "size_bytes": media.size_bytes,
        "is_video": media.is_video,
        "has_converted": bool(media.converted_path),
        "metadata_status": media.metadata_status,
        "captured_at": media.captured_at.isoformat() + "Z" if media.captured_at else None,
        "location": {
            "lat": media.location_auto_lat,
            "lng": media.location_auto_lng,
            "source": media.location_source,
        } if media.location_auto_lat is not None and media.location_auto_lng is not None else None,
        "uploaded_by": media.uploaded_by.display_name or media.uploaded_by.username if media.uploaded_by else None,
        "created_at": media.created_at.isoformat() + "Z" if media.created_at else None,
    }


def _get_media_or_404(db: Session, media_id: str) -> Media:
    media = db.get(Media, media_id)
    if not media:
        raise HTTPException(status_code=404, detail="Media not found")
    return media


def _existing_file(relative_path: Optional[str]) -> Optional[Path]:
    if not relative_path:
        return None
    try:
        path = resolve_upload_path(relative_path)
    except ValueError:
        return None
    return path if path.is_file() else None


def delete_media_files(media: Media):
    """Remove the original and derived files. Missing files are only logged."""
    for relative_path in (media.storage_path, media.converted_path, media.preview_path):
        if not relative_path:
            continue
        try:
            resolve_upload_path(relative_path).unlink()
        except FileNotFoundError:
            media_logger.warning("Media file already missing", media_id=media.id, path=relative_path)
        except (OSError, ValueError) as e:
            media_logger.warning(
                "Could not remove media file",
                media_id=media.id,
                path=relative_path,
                error_message=str(e),
            )


@router.get("/recent", response_model=List[dict])
def get_recent_media(
    take: int = Query(12, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Newest uploads across all albums."""
    items = db.query(Media).order_by(Media.created_at.desc(), Media.id.desc()).limit(take).all()
    return [media_to_dict(m) for m in items]


@router.post("/bulk-delete")
def bulk_delete_media(
    payload: MediaBulkDelete,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Delete several media items at once."""
    media_ids = list(dict.fromkeys(i for i in payload.media_ids if i))
    if not media_ids:
        raise HTTPException(status_code=400, detail="media_ids must not be empty")

    items = db.query(Media).filter(Media.id.in_(media_ids)).all()
    for media in items:
        delete_media_files(media)
        db.delete(media)

    if items:
        album_id = items[0].album_id if len({m.album_id for m in items}) == 1 else None
        create_notifications_for_other_users(
            db,
            current_user.id,
            NotificationType.MEDIA_DELETED,
            f"{actor_name(current_user)} deleted {len(items)} file(s)",
            album_id=album_id,
        )
    db.commit()

    return {"deleted": len(items)}


@router.post("/bulk-download")
def bulk_download_media(
    payload: MediaBulkDownload,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """ZIP of selected media from one album, or of the whole album."""
    album = db.get(Album, payload.album_id)
    if not album:
        raise HTTPException(status_code=404, detail="Album not found")

    query = db.query(Media).filter(Media.album_id == album.id)
    if payload.media_ids is not None:
        media_ids = list(dict.fromkeys(i for i in payload.media_ids if i))
        if not media_ids:
            raise HTTPException(status_code=400, detail="media_ids must not be empty")
        query = query.filter(Media.id.in_(media_ids))

    items = query.order_by(Media.created_at.asc(), Media.id.asc()).all()
    entries = collect_entries(items)
    if not entries:
        raise HTTPException(status_code=404, detail="No media found")

    filename = build_archive_filename(album.name)
    media_logger.info(
        "Album download started",
        album_id=album.id,
        files=len(entries),
        user_id=current_user.id,
    )
    return StreamingResponse(
        iter_zip(entries),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{media_id}", response_model=dict)
def get_media_item(
    media_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Get a single media item by ID."""
    return media_to_dict(_get_media_or_404(db, media_id))


@router.get("/{media_id}/file")
async def get_media_file(
    media_id: str,
    format: Optional[str] = None,
    db: Session = Depends(get_db),
    viewer: Optional[User] = Depends(get_asset_access),
):
    """
    Serve the original upload.

    ``?format=jpeg`` on a HEIC/HEIF item serves the worker's converted JPEG,
    or converts on the fly if the worker has not got to it yet.
    """
    media = _get_media_or_404(db, media_id)
    source = _existing_file(media.storage_path)

    if format == "jpeg" and (media.mime_type or "").lower() in HEIC_MIME_TYPES:
        converted = _existing_file(media.converted_path)
        if converted:
            return FileResponse(converted, media_type="image/jpeg")

        if not source:
            raise HTTPException(status_code=404, detail="File not found")

        tmp_dir = tempfile.mkdtemp(prefix="albumhq-heic-")
        output = Path(tmp_dir) / f"{media.id}.jpg"
        try:
            await convert_heic_to_jpeg(source, output)
        except CommandError as e:
            shutil.rmtree(tmp_dir, ignore_errors=True)
            media_logger.error("On-the-fly HEIC conversion failed", error=e, media_id=media.id)
            raise HTTPException(status_code=500, detail="Could not convert image")

        return FileResponse(
            output,
            media_type="image/jpeg",
            background=BackgroundTask(shutil.rmtree, tmp_dir, ignore_errors=True),
        )

    if not source:
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(
        source,
        media_type=media.mime_type or "application/octet-stream",
        filename=media.original_name or source.name,
        content_disposition_type="inline",
    )


@router.get("/{media_id}/preview")
def get_media_preview(
    media_id: str,
    db: Session = Depends(get_db),
    viewer: Optional[User] = Depends(get_asset_access),
):
    """Poster frame for a video, available once the worker generated it."""
    media = _get_media_or_404(db, media_id)
    preview = _existing_file(media.preview_path)
    if not preview:
        raise HTTPException(status_code=404, detail="Preview not available")
    return FileResponse(preview, media_type="image/jpeg")


@router.delete("/{media_id}")
def delete_media(
    media_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Delete a media item and its files."""
    media = _get_media_or_404(db, media_id)

    delete_media_files(media)
    album_id = media.album_id
    db.delete(media)
    create_notifications_for_other_users(
        db,
        current_user.id,
        NotificationType.MEDIA_DELETED,
        f"{actor_name(current_user)} deleted a file",
        album_id=album_id,
        media_id=media_id,
    )
    db.commit()

    return {"message": "Media deleted"}
