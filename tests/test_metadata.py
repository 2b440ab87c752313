"""
Tests for EXIF and video tag parsing.
"""
import asyncio
import json
from datetime import datetime

import pytest
from PIL import Image

from albumhq.metadata import (
    extract_image_metadata,
    extract_video_location,
    extract_video_metadata,
    infer_media_kind,
    is_valid_coordinate,
    normalize_captured_at,
    normalize_exif_coordinate,
    parse_iso6709,
    parse_lat_lng_pair,
    to_number,
)


class TestMediaKind:
    @pytest.mark.parametrize("mime, filename, kind", [
        ("image/jpeg", None, "image"),
        ("VIDEO/MP4", None, "video"),
        ("application/octet-stream", "IMG_1.HEIC", "image"),
        (None, "clip.M4V", "video"),
        (None, "notes.txt", "unknown"),
        (None, None, "unknown"),
    ])
    def test_infer(self, mime, filename, kind):
        assert infer_media_kind(mime, filename) == kind


class TestCoordinates:
    def test_to_number(self):
        assert to_number("12.5") == 12.5
        assert to_number(True) is None
        assert to_number("nan") is None
        assert to_number(None) is None

    def test_decimal_with_ref(self):
        assert normalize_exif_coordinate(57.72, "N") == 57.72
        assert normalize_exif_coordinate(10.5, "W") == -10.5
        assert normalize_exif_coordinate(33.9, b"S") == -33.9

    def test_degrees_minutes_seconds(self):
        assert normalize_exif_coordinate((57, 43, 12), "N") == pytest.approx(57.72)
        assert normalize_exif_coordinate((10, 30), "E") == pytest.approx(10.5)

    def test_garbage(self):
        assert normalize_exif_coordinate("north") is None
        assert normalize_exif_coordinate(("a", "b")) is None
        assert normalize_exif_coordinate(None) is None

    def test_valid_range(self):
        assert is_valid_coordinate(0.0, 0.0)
        assert is_valid_coordinate(-90, 180)
        assert not is_valid_coordinate(90.1, 0)
        assert not is_valid_coordinate(0, -180.5)
        assert not is_valid_coordinate(None, 10)
        assert not is_valid_coordinate(float("inf"), 10)


class TestCapturedAt:
    def test_exif_format(self):
        assert normalize_captured_at("2023:07:14 18:02:11") == datetime(2023, 7, 14, 18, 2, 11)
        assert normalize_captured_at("2023:07:14") == datetime(2023, 7, 14)

    def test_iso_with_offset_becomes_utc(self):
        assert normalize_captured_at("2024-07-02T11:15:00+02:00") == datetime(2024, 7, 2, 9, 15)
        assert normalize_captured_at("2024-07-02T09:15:00Z") == datetime(2024, 7, 2, 9, 15)

    def test_invalid(self):
        assert normalize_captured_at("2023:13:45 00:00:00") is None
        assert normalize_captured_at("last summer") is None
        assert normalize_captured_at("") is None
        assert normalize_captured_at(12345) is None


class TestVideoLocation:
    def test_iso6709(self):
        assert parse_iso6709("+57.7200+010.5800+012.000/") == (57.72, 10.58)
        assert parse_iso6709("-33.8688+151.2093/") == (-33.8688, 151.2093)
        assert parse_iso6709("nowhere") is None

    def test_lat_lng_pair(self):
        assert parse_lat_lng_pair("57.72, 10.58") == (57.72, 10.58)
        assert parse_lat_lng_pair("57.72") is None

    def test_tag_priority(self):
        tags = {"com.apple.quicktime.location.ISO6709": "+1.0+2.0/", "location": "+3.0+4.0/"}
        assert extract_video_location(tags) == (3.0, 4.0)
        assert extract_video_location({}) is None


class TestExtraction:
    def test_image_without_exif(self, tmp_path):
        path = tmp_path / "plain.png"
        Image.new("RGB", (4, 4)).save(path)
        result = extract_image_metadata(path)
        assert (result.latitude, result.longitude, result.captured_at) == (None, None, None)

    def test_not_an_image(self, tmp_path):
        path = tmp_path / "fake.jpg"
        path.write_bytes(b"definitely not an image")
        assert extract_image_metadata(path).captured_at is None

    def test_video_from_stream_tags(self, tmp_path):
        class Runner:
            async def run(self, args, timeout=None):
                return json.dumps({
                    "format": {"tags": {}},
                    "streams": [{"tags": {"creation_time": "2024-01-05T10:00:00Z", "location": "48.85, 2.35"}}],
                }).encode()

        result = asyncio.run(extract_video_metadata(tmp_path / "clip.mp4", Runner()))
        assert result.captured_at == datetime(2024, 1, 5, 10, 0)
        assert (result.latitude, result.longitude) == (48.85, 2.35)
