"""
Media upload. Stores the file, creates the Media row and queues processing jobs.
"""
import uuid
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from sqlalchemy.orm import Session

from ..auth import get_required_user
from ..config import get_settings
from ..database import get_db
from ..limiter import limiter
from ..logging_config import media_logger
from ..models.album import Album
from ..models.job import JobType
from ..models.media import Media
from ..models.user import User
from ..storage import (
    build_media_relative_path,
    get_month_folder,
    is_safe_id,
    resolve_upload_path,
    sanitize_filename,
)
from ..signed_url import HEIC_MIME_TYPES
from ..worker.queue import enqueue_job
from .media import media_to_dict

settings = get_settings()

router = APIRouter(prefix="/api", tags=["upload"])

CHUNK_SIZE = 1024 * 1024

ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/heic",
    "image/heif",
    "video/mp4",
    "video/webm",
    "video/quicktime",
}

EXTENSION_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".mp4": "video/mp4",
    ".m4v": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
}


def resolve_mime_type(content_type: Optional[str], filename: Optional[str]) -> Optional[str]:
    """Trust an allowed content type, otherwise go by the file extension."""
    declared = (content_type or "").split(";")[0].strip().lower()
    if declared in ALLOWED_MIME_TYPES:
        return declared
    return EXTENSION_MIME_TYPES.get(Path(filename or "").suffix.lower())


def save_upload(upload: UploadFile, destination: Path, max_bytes: int) -> int:
    """Stream ``upload`` to disk. Returns the size, or raises 413 and removes the partial file."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    size = 0
    with open(destination, "wb") as out:
        while True:
            chunk = upload.file.read(CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > max_bytes:
                break
            out.write(chunk)

    if size > max_bytes:
        destination.unlink(missing_ok=True)
        raise HTTPException(status_code=413, detail=f"File is larger than {max_bytes // (1024 * 1024)} MB")
    if size == 0:
        destination.unlink(missing_ok=True)
        raise HTTPException(status_code=400, detail="File is empty")
    return size


def jobs_for_upload(mime_type: str):
    jobs = [JobType.EXTRACT_METADATA]
    if mime_type in HEIC_MIME_TYPES:
        jobs.append(JobType.CONVERT_HEIC)
    elif mime_type.startswith("video/"):
        jobs.append(JobType.GENERATE_VIDEO_PREVIEW)
    return jobs


@router.post("/upload", status_code=201)
@limiter.limit("120/minute")
def upload_media(
    request: Request,
    album_id: str = Form(...),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Upload one image or video into an album."""
    if not is_safe_id(album_id):
        raise HTTPException(status_code=400, detail="Invalid album id")

    album = db.get(Album, album_id)
    if not album:
        raise HTTPException(status_code=404, detail="Album not found")

    mime_type = resolve_mime_type(file.content_type, file.filename)
    if not mime_type:
        raise HTTPException(status_code=400, detail="Unsupported file type")

    media_id = str(uuid.uuid4())
    original_name = file.filename or "upload"
    filename = f"{media_id}-{sanitize_filename(original_name)}"
    relative_path = build_media_relative_path(album.id, get_month_folder(), filename)
    destination = resolve_upload_path(relative_path)

    size = save_upload(file, destination, settings.max_upload_bytes)

    media = Media(
        id=media_id,
        album_id=album.id,
        uploaded_by_id=current_user.id,
        url=f"/api/media/{media_id}/file",
        mime_type=mime_type,
        original_name=original_name,
        size_bytes=size,
        filename=filename,
        storage_path=relative_path,
    )

    try:
        db.add(media)
        job_types = jobs_for_upload(mime_type)
        for job_type in job_types:
            enqueue_job(db, job_type, {"media_id": media_id})
        db.commit()
    except Exception as e:
        db.rollback()
        destination.unlink(missing_ok=True)
        media_logger.error("Upload could not be saved", error=e, album_id=album.id, media_id=media_id)
        raise

    db.refresh(media)
    media_logger.info(
        "Media uploaded",
        media_id=media_id,
        album_id=album.id,
        mime_type=mime_type,
        size_bytes=size,
        jobs=[j.value for j in job_types],
    )
    return media_to_dict(media)
