"""
Housekeeping for media rows that point at files no longer on disk.
"""
from typing import List

from sqlalchemy.orm import Session

from .logging_config import media_logger
from .models.media import Media
from .storage import resolve_upload_path


def has_original_file(media: Media) -> bool:
    if not media.storage_path:
        return False
    try:
        return resolve_upload_path(media.storage_path).is_file()
    except ValueError:
        return False


def find_media_with_missing_files(db: Session) -> List[Media]:
    """Media without a storage path, with a path outside the upload root, or whose file is gone."""
    return [media for media in db.query(Media).order_by(Media.id.asc()) if not has_original_file(media)]


def delete_media_with_missing_files(db: Session, dry_run: bool = False) -> List[str]:
    """Delete those rows and return their ids. ``dry_run`` only reports them."""
    missing = find_media_with_missing_files(db)
    media_ids = [media.id for media in missing]
    if dry_run or not missing:
        return media_ids

    for media in missing:
        db.delete(media)
    db.commit()

    media_logger.info("Removed media rows with missing files", count=len(media_ids))
    return media_ids
