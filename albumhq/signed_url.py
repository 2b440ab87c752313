"""
HMAC-signed asset URLs.

Lets ``<img>``/``<video>`` tags and downloads fetch media without a bearer
token. A URL is signed over its path and sorted query (minus ``sig``/``exp``)
together with the expiry timestamp.
"""
import base64
import hashlib
import hmac
import time
from typing import Dict, Optional
from urllib.parse import urlencode, urlsplit, parse_qsl

from .config import get_settings

HEIC_MIME_TYPES = {"image/heic", "image/heif"}


def _secret() -> bytes:
    secret = get_settings().secret_key
    if not secret:
        raise RuntimeError("SECRET_KEY must be set to sign asset URLs.")
    return secret.encode("utf-8")


def _canonicalize(pathname: str, params) -> str:
    entries = sorted((k, v) for k, v in params if k not in ("sig", "exp"))
    query = urlencode(entries)
    return f"{pathname}?{query}" if query else pathname


def _sign(canonical: str, exp: int) -> str:
    digest = hmac.new(_secret(), f"{canonical}|{exp}".encode("utf-8"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def _with_query(pathname: str, params) -> str:
    query = urlencode(params)
    return f"{pathname}?{query}" if query else pathname


def append_query(url: str, extra: Dict[str, Optional[str]]) -> str:
    parts = urlsplit(url)
    params = dict(parse_qsl(parts.query, keep_blank_values=True))
    for key, value in extra.items():
        if value is not None:
            params[key] = str(value)
    return _with_query(parts.path, list(params.items()))


def build_signed_url(path: str, expires_in: Optional[int] = None) -> str:
    """Return ``path`` with ``exp`` and ``sig`` query parameters appended."""
    if expires_in is None:
        expires_in = get_settings().signed_url_expire_seconds

    parts = urlsplit(path)
    params = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in ("sig", "exp")]

    exp = int(time.time()) + expires_in
    sig = _sign(_canonicalize(parts.path, params), exp)

    params.append(("exp", str(exp)))
    params.append(("sig", sig))
    return _with_query(parts.path, params)


def build_signed_media_url(url: str, mime_type: Optional[str]) -> str:
    """Sign a media URL, asking for a JPEG rendition of HEIC/HEIF originals."""
    if (mime_type or "").lower() in HEIC_MIME_TYPES:
        url = append_query(url, {"format": "jpeg"})
    return build_signed_url(url)


def is_signed_request(url: str) -> bool:
    """Check ``exp``/``sig`` on a request URL (path + query, host ignored)."""
    parts = urlsplit(url)
    params = parse_qsl(parts.query, keep_blank_values=True)
    lookup = dict(params)

    exp = lookup.get("exp")
    sig = lookup.get("sig")
    if not exp or not sig:
        return False

    try:
        exp_num = int(exp)
    except ValueError:
        return False

    if exp_num < int(time.time()):
        return False

    expected = _sign(_canonicalize(parts.path, params), exp_num)
    return hmac.compare_digest(expected.encode("ascii"), sig.encode("ascii", errors="replace"))
