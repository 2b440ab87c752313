"""
Capture time and GPS location from photo EXIF and video container tags.
"""
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from PIL import Image, UnidentifiedImageError
from pillow_heif import register_heif_opener

from .media_tools import CommandRunner, probe_media

register_heif_opener()

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".heic", ".heif"}
VIDEO_EXTENSIONS = {".mp4", ".webm", ".mov", ".m4v"}

# EXIF tag ids
TAG_DATETIME = 306
TAG_EXIF_IFD = 0x8769
TAG_GPS_IFD = 0x8825
TAG_DATETIME_ORIGINAL = 36867
TAG_DATETIME_DIGITIZED = 36868
GPS_LATITUDE_REF = 1
GPS_LATITUDE = 2
GPS_LONGITUDE_REF = 3
GPS_LONGITUDE = 4

VIDEO_LOCATION_TAGS = (
    "location",
    "LOCATION",
    "com.apple.quicktime.location.ISO6709",
    "com.apple.quicktime.location.iso6709",
    "com.apple.quicktime.location",
)
VIDEO_DATE_TAGS = (
    "creation_time",
    "com.apple.quicktime.creationdate",
    "com.apple.quicktime.creationDate",
)

_EXIF_DATE = re.compile(r"^(\d{4}):(\d{2}):(\d{2})(?:[ T](\d{2}):(\d{2}):(\d{2}))?")
_ISO6709 = re.compile(r"([+-]\d+(?:\.\d+)?)([+-]\d+(?:\.\d+)?)")
_LAT_LNG_PAIR = re.compile(r"(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)")


@dataclass
class ExtractedMetadata:
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    captured_at: Optional[datetime] = None


def infer_media_kind(mime_type: Optional[str], filename: Optional[str]) -> str:
    """'image', 'video' or 'unknown' from the MIME type, else the extension."""
    mime = (mime_type or "").lower()
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"

    extension = Path(filename or "").suffix.lower()
    if extension in IMAGE_EXTENSIONS:
        return "image"
    if extension in VIDEO_EXTENSIONS:
        return "video"
    return "unknown"


def to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    return number if math.isfinite(number) else None


def normalize_exif_coordinate(value: Any, ref: Optional[str] = None) -> Optional[float]:
    """Decimal degrees from a number or a (deg, min[, sec]) tuple; S/W refs negate."""
    numeric = to_number(value)
    if numeric is None and isinstance(value, (tuple, list)) and len(value) >= 2:
        parts = [to_number(part) for part in value[:3]]
        deg, minutes = parts[0], parts[1]
        if deg is None or minutes is None:
            return None
        seconds = parts[2] if len(parts) > 2 and parts[2] is not None else 0.0
        sign = -1 if deg < 0 else 1
        numeric = sign * (abs(deg) + minutes / 60 + seconds / 3600)

    if numeric is None:
        return None
    if isinstance(ref, bytes):
        ref = ref.decode("ascii", errors="ignore")
    if ref and ref.strip().upper() in ("S", "W"):
        numeric = -abs(numeric)
    return numeric


def is_valid_coordinate(lat: Optional[float], lng: Optional[float]) -> bool:
    return (
        lat is not None
        and lng is not None
        and math.isfinite(lat)
        and math.isfinite(lng)
        and -90 <= lat <= 90
        and -180 <= lng <= 180
    )


def normalize_captured_at(value: Any) -> Optional[datetime]:
    """Parse EXIF ('2023:07:14 18:02:11') or ISO timestamps into naive UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip().rstrip("\x00")
        match = _EXIF_DATE.match(text)
        if match:
            year, month, day, hour, minute, second = (int(g) if g else 0 for g in match.groups())
            try:
                return datetime(year, month, day, hour, minute, second)
            except ValueError:
                return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_iso6709(value: Any) -> Optional[Tuple[float, float]]:
    if not isinstance(value, str):
        return None
    match = _ISO6709.search(value)
    if not match:
        return None
    lat, lng = to_number(match.group(1)), to_number(match.group(2))
    if lat is None or lng is None:
        return None
    return lat, lng


def parse_lat_lng_pair(value: Any) -> Optional[Tuple[float, float]]:
    if not isinstance(value, str):
        return None
    match = _LAT_LNG_PAIR.search(value)
    if not match:
        return None
    lat, lng = to_number(match.group(1)), to_number(match.group(2))
    if lat is None or lng is None:
        return None
    return lat, lng


def extract_video_location(tags: Dict[str, Any]) -> Optional[Tuple[float, float]]:
    for key in VIDEO_LOCATION_TAGS:
        candidate = tags.get(key)
        location = parse_iso6709(candidate) or parse_lat_lng_pair(candidate)
        if location:
            return location
    return None


def extract_image_metadata(path: Path) -> ExtractedMetadata:
    """Read EXIF GPS and capture time with Pillow."""
    try:
        with Image.open(path) as image:
            exif = image.getexif()
    except UnidentifiedImageError:
        return ExtractedMetadata()

    gps = exif.get_ifd(TAG_GPS_IFD) or {}
    exif_ifd = exif.get_ifd(TAG_EXIF_IFD) or {}

    latitude = normalize_exif_coordinate(gps.get(GPS_LATITUDE), gps.get(GPS_LATITUDE_REF))
    longitude = normalize_exif_coordinate(gps.get(GPS_LONGITUDE), gps.get(GPS_LONGITUDE_REF))
    captured_at = normalize_captured_at(
        exif_ifd.get(TAG_DATETIME_ORIGINAL)
        or exif_ifd.get(TAG_DATETIME_DIGITIZED)
        or exif.get(TAG_DATETIME)
    )
    return ExtractedMetadata(latitude=latitude, longitude=longitude, captured_at=captured_at)


async def extract_video_metadata(path: Path, runner: CommandRunner) -> ExtractedMetadata:
    """Read location/creation tags from the container and its streams via ffprobe."""
    probe = await probe_media(path, runner)
    tags = dict((probe.get("format") or {}).get("tags") or {})
    for stream in probe.get("streams") or []:
        tags.update(stream.get("tags") or {})

    location = extract_video_location(tags)
    captured_at = None
    for key in VIDEO_DATE_TAGS:
        captured_at = normalize_captured_at(tags.get(key))
        if captured_at:
            break

    return ExtractedMetadata(
        latitude=location[0] if location else None,
        longitude=location[1] if location else None,
        captured_at=captured_at,
    )
