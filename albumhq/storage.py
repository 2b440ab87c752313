"""
Upload storage layout and path sanitisation.

Every path stored in the database is relative to the upload root and uses
forward slashes. ``resolve_upload_path`` is the only way to turn one into an
absolute filesystem path.
"""
import posixpath
import re
import unicodedata
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import get_settings

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


def get_upload_root() -> Path:
    configured = (get_settings().upload_root or "").strip()
    return Path(configured or "/uploads").resolve()


def resolve_upload_path(relative_path: str) -> Path:
    """Resolve a stored relative path, refusing anything outside the upload root."""
    root = get_upload_root()
    resolved = (root / relative_path).resolve()

    if resolved != root and root not in resolved.parents:
        raise ValueError("Resolved path is outside of the upload root.")

    return resolved


def is_safe_id(value) -> bool:
    return isinstance(value, str) and bool(_SAFE_ID.match(value))


def get_month_folder(date: Optional[datetime] = None) -> str:
    date = date or datetime.now()
    return f"{date.year}-{date.month:02d}"


def sanitize_extension(extension: str) -> str:
    trimmed = extension.strip().lower()
    if not trimmed:
        return ""

    cleaned = re.sub(r"[^a-z0-9.]+", "", trimmed)
    if not cleaned:
        return ""

    return cleaned if cleaned.startswith(".") else f".{cleaned}"


def sanitize_filename(name: str) -> str:
    """ASCII slug of the base name (max 60 chars) plus the lower-cased extension."""
    base = posixpath.basename(name.replace("\\", "/"))
    stem, dot, ext = base.rpartition(".")
    if not dot or not stem:
        stem, ext = base, ""
    extension = f".{ext.lower()}" if ext else ""

    normalized = unicodedata.normalize("NFKD", stem)
    normalized = "".join(ch for ch in normalized if not unicodedata.combining(ch))
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", normalized).strip("-")[:60]

    return f"{slug or 'file'}{extension}"


def build_media_relative_path(album_id: str, month_folder: str, filename: str) -> str:
    return posixpath.join("albums", album_id, "original", month_folder, filename)


def build_converted_relative_path(album_id: str, media_id: str, extension: str = ".jpg") -> str:
    safe_extension = sanitize_extension(extension) or ".jpg"
    return posixpath.join("albums", album_id, "converted", f"{media_id}{safe_extension}")


def build_preview_relative_path(album_id: str, media_id: str, extension: str = ".jpg") -> str:
    safe_extension = sanitize_extension(extension) or ".jpg"
    return posixpath.join("albums", album_id, "derived", "previews", f"{media_id}-poster{safe_extension}")


def build_album_cover_relative_path(album_id: str, extension: str) -> str:
    safe_extension = sanitize_extension(extension) or ".jpg"
    return posixpath.join("albums", album_id, "cover", f"{album_id}-cover{safe_extension}")


def build_album_relative_dir(album_id: str) -> str:
    return posixpath.join("albums", album_id)


def build_avatar_relative_path(user_id: int, extension: str) -> str:
    safe_extension = sanitize_extension(extension) or ".jpg"
    return posixpath.join("avatars", f"{user_id}-avatar{safe_extension}")


def slugify(value: str, max_length: int = 80) -> str:
    """Lower-case ASCII slug for album ids."""
    normalized = unicodedata.normalize("NFKD", value)
    normalized = "".join(ch for ch in normalized if not unicodedata.combining(ch))
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug[:max_length].strip("-")
