"""
AlbumHQ API - FastAPI application entry point.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .database import engine, Base
from .middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from .limiter import limiter
from .logging_config import api_logger
from . import models  # noqa: F401  (registers tables)
from .routes import (
    auth_router,
    users_router,
    albums_router,
    media_router,
    upload_router,
    notifications_router,
    events_router,
    jobs_router,
    health_router,
    profiles_router,
    presence_router,
)

settings = get_settings()

# Create tables (in production, use Alembic migrations instead)
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown"""
    api_logger.info(
        "API starting",
        environment=settings.environment,
        worker_expected=settings.worker_enabled,
    )

    yield  # App is running

    api_logger.info("API stopped")


app = FastAPI(
    title="AlbumHQ API",
    description="Backend API for the family photo and video albums",
    version="1.0.0",
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

# Request logging middleware (only in debug mode)
if settings.debug:
    app.add_middleware(RequestLoggingMiddleware)

# CORS - Properly configured with specific methods
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "Accept",
        "Origin",
        "Range",
        "X-Requested-With",
    ],
    expose_headers=["Content-Range", "Accept-Ranges", "Retry-After"],
    max_age=3600,  # Cache preflight requests for 1 hour
)

# Routes
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(albums_router)
app.include_router(media_router)
app.include_router(upload_router)
app.include_router(notifications_router)
app.include_router(events_router)
app.include_router(jobs_router)
app.include_router(health_router)
app.include_router(profiles_router)
app.include_router(presence_router)


@app.get("/")
def root():
    """Root endpoint redirects to API docs."""
    return {
        "message": "AlbumHQ API",
        "docs": "/api/docs" if settings.debug else "Disabled in production",
    }
