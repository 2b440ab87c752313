"""
Custom middleware for security headers and request logging.
"""
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .logging_config import api_logger

# Polled every few seconds or held open for minutes
QUIET_PATHS = ("/api/health", "/api/events/stream", "/api/presence")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Geolocation stays enabled for the album location picker
        response.headers["Permissions-Policy"] = "microphone=(), camera=()"

        # Media is served from this origin or as blob: URLs after download
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "img-src 'self' data: blob:; "
            "media-src 'self' blob:; "
            "connect-src 'self'; "
            "frame-ancestors 'none';"
        )

        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per request and tag the response with ``X-Request-ID``."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        path = request.url.path
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            api_logger.error(
                f"{request.method} {path} -> 500",
                error=e,
                request_id=request_id,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise

        response.headers["X-Request-ID"] = request_id
        if path.startswith(QUIET_PATHS) and response.status_code < 400:
            return response

        status = response.status_code
        log = api_logger.info if status < 400 else api_logger.warning if status < 500 else api_logger.error
        log(
            f"{request.method} {path} -> {status}",
            request_id=request_id,
            status_code=status,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return response
