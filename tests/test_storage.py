"""
Tests for storage paths and signed URLs.
"""
import pytest

from albumhq import signed_url
from albumhq.signed_url import append_query, build_signed_media_url, build_signed_url, is_signed_request
from albumhq.storage import (
    build_album_cover_relative_path,
    build_converted_relative_path,
    build_media_relative_path,
    build_preview_relative_path,
    get_month_folder,
    is_safe_id,
    resolve_upload_path,
    sanitize_extension,
    sanitize_filename,
    slugify,
)


class TestStoragePaths:
    def test_layout(self):
        assert build_media_relative_path("trip", "2024-07", "x.jpg") == "albums/trip/original/2024-07/x.jpg"
        assert build_converted_relative_path("trip", "m1") == "albums/trip/converted/m1.jpg"
        assert build_preview_relative_path("trip", "m1") == "albums/trip/derived/previews/m1-poster.jpg"
        assert build_album_cover_relative_path("trip", ".PNG") == "albums/trip/cover/trip-cover.png"
        assert build_album_cover_relative_path("trip", "") == "albums/trip/cover/trip-cover.jpg"

    def test_month_folder(self):
        from datetime import datetime
        assert get_month_folder(datetime(2024, 3, 9)) == "2024-03"

    def test_resolve_inside_root(self, upload_root):
        assert resolve_upload_path("albums/trip/x.jpg") == upload_root.resolve() / "albums/trip/x.jpg"

    @pytest.mark.parametrize("relative", ["../secret", "albums/../../secret", "/etc/passwd"])
    def test_resolve_rejects_escape(self, relative):
        with pytest.raises(ValueError):
            resolve_upload_path(relative)

    def test_safe_ids(self):
        assert is_safe_id("summer-2024_a")
        assert not is_safe_id("../etc")
        assert not is_safe_id("")
        assert not is_safe_id(None)


class TestSanitize:
    def test_filename(self):
        assert sanitize_filename("Strand Dag.JPG") == "Strand-Dag.jpg"
        assert sanitize_filename("C:\\photos\\Æble kage!.HEIC") == "ble-kage.heic"
        assert sanitize_filename("Crème brûlée.png") == "Creme-brulee.png"
        assert sanitize_filename("!!!.jpg") == "file.jpg"
        assert sanitize_filename("noext") == "noext"
        assert sanitize_filename(".bashrc") == "bashrc"

    def test_filename_is_truncated(self):
        assert sanitize_filename("a" * 100 + ".jpg") == "a" * 60 + ".jpg"

    def test_extension(self):
        assert sanitize_extension("JPG") == ".jpg"
        assert sanitize_extension(".we/bp") == ".webp"
        assert sanitize_extension("   ") == ""

    def test_slugify(self):
        assert slugify("Summer in Skagen") == "summer-in-skagen"
        assert slugify("  Åland -- 2024!  ") == "aland-2024"
        assert slugify("???") == ""
        assert slugify("a" * 100, max_length=10) == "a" * 10


class TestSignedUrls:
    def test_round_trip(self):
        url = build_signed_url("/api/media/m1/file")
        assert url.startswith("/api/media/m1/file?exp=")
        assert is_signed_request(url)

    def test_query_order_does_not_matter(self):
        url = build_signed_url("/api/media/m1/file?format=jpeg&a=1")
        path, query = url.split("?")
        reordered = "&".join(reversed(query.split("&")))
        assert is_signed_request(f"{path}?{reordered}")

    def test_changed_path_or_params_fail(self):
        url = build_signed_url("/api/media/m1/file?format=jpeg")
        assert not is_signed_request(url.replace("m1", "m2"))
        assert not is_signed_request(url.replace("format=jpeg", "format=png"))

    def test_expired(self):
        assert not is_signed_request(build_signed_url("/api/media/m1/file", expires_in=-10))

    def test_missing_or_garbage_params(self):
        assert not is_signed_request("/api/media/m1/file")
        assert not is_signed_request("/api/media/m1/file?exp=soon&sig=abc")

    def test_other_secret_rejected(self, test_settings, monkeypatch):
        url = build_signed_url("/api/media/m1/file")
        monkeypatch.setattr(test_settings, "secret_key", "rotated")
        assert not is_signed_request(url)

    def test_heic_media_asks_for_jpeg(self):
        url = build_signed_media_url("/api/media/m1/file", "image/HEIC")
        assert "format=jpeg" in url
        assert "format=jpeg" not in build_signed_media_url("/api/media/m1/file", "image/png")

    def test_append_query(self):
        assert append_query("/x?a=1", {"b": "2", "c": None}) == "/x?a=1&b=2"

    def test_requires_secret(self, test_settings, monkeypatch):
        monkeypatch.setattr(test_settings, "secret_key", "")
        with pytest.raises(RuntimeError):
            signed_url.build_signed_url("/x")
