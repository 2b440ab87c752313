"""
ZIP downloads of album media.

The archive is produced while it is sent: ``zipfile`` writes into a buffer
that is drained after every chunk, so nothing is staged on disk.
"""
import io
import posixpath
import re
import unicodedata
import zipfile
from datetime import date
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set, Tuple

from .logging_config import media_logger
from .storage import resolve_upload_path

CHUNK_SIZE = 1024 * 1024

_UNSAFE_ENTRY_CHARS = re.compile(r'[\\/:*?"<>|]+')


def safe_entry_name(name: str) -> str:
    base = posixpath.basename((name or "").replace("\\", "/"))
    cleaned = _UNSAFE_ENTRY_CHARS.sub("-", base).strip()
    return cleaned or "media"


def unique_entry_name(name: str, used: Set[str]) -> str:
    """Safe entry name, suffixed -2, -3, ... before the extension when taken."""
    safe = safe_entry_name(name)
    if safe not in used:
        used.add(safe)
        return safe

    stem, ext = posixpath.splitext(safe)
    counter = 2
    while f"{stem}-{counter}{ext}" in used:
        counter += 1
    unique = f"{stem}-{counter}{ext}"
    used.add(unique)
    return unique


def build_archive_filename(album_name: str, day: Optional[date] = None) -> str:
    day = day or date.today()
    normalized = unicodedata.normalize("NFKD", album_name or "")
    normalized = "".join(ch for ch in normalized if not unicodedata.combining(ch))
    safe_name = re.sub(r"[^a-zA-Z0-9]+", "-", normalized).strip("-")
    return f"{safe_name or 'album'}-{day.isoformat()}.zip"


def collect_entries(items: Iterable) -> List[Tuple[Path, str]]:
    """
    ``(absolute path, entry name)`` for every media item whose original is on
    disk. Items without a readable file are skipped.
    """
    entries = []
    used: Set[str] = set()
    for media in items:
        if not media.storage_path:
            continue
        try:
            path = resolve_upload_path(media.storage_path)
        except ValueError:
            media_logger.warning("Skipping media outside the upload root", media_id=media.id)
            continue
        if not path.is_file():
            media_logger.warning("Skipping media with missing file", media_id=media.id, path=media.storage_path)
            continue
        entries.append((path, unique_entry_name(media.original_name or media.filename or media.id, used)))
    return entries


class _DrainBuffer(io.RawIOBase):
    """Write-only sink; ``zipfile`` sees it as unseekable and streams."""

    def __init__(self):
        self._chunks: List[bytes] = []

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def iter_zip(entries: List[Tuple[Path, str]], chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield a ZIP archive of ``entries`` piece by piece."""
    buffer = _DrainBuffer()
    # Photos and videos are already compressed
    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_STORED) as archive:
        for path, name in entries:
            info = zipfile.ZipInfo.from_file(path, arcname=name, strict_timestamps=False)
            info.compress_type = zipfile.ZIP_STORED
            with open(path, "rb") as source, archive.open(info, mode="w") as target:
                while True:
                    chunk = source.read(chunk_size)
                    if not chunk:
                        break
                    target.write(chunk)
                    data = buffer.drain()
                    if data:
                        yield data
            data = buffer.drain()
            if data:
                yield data
    yield buffer.drain()
