from .auth import router as auth_router
from .users import router as users_router
from .albums import router as albums_router
from .media import router as media_router
from .upload import router as upload_router
from .notifications import router as notifications_router
from .events import router as events_router
from .jobs import router as jobs_router
from .health import router as health_router
from .profiles import router as profiles_router
from .presence import router as presence_router

__all__ = [
    "auth_router",
    "users_router",
    "albums_router",
    "media_router",
    "upload_router",
    "notifications_router",
    "events_router",
    "jobs_router",
    "health_router",
    "profiles_router",
    "presence_router",
]
