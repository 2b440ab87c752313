from .user import User, UserRole
from .album import Album, AlbumCategory
from .media import Media, MetadataStatus, LocationSource
from .notification import Notification, NotificationType
from .job import Job, JobType, JobStatus

__all__ = [
    "User",
    "UserRole",
    "Album",
    "AlbumCategory",
    "Media",
    "MetadataStatus",
    "LocationSource",
    "Notification",
    "NotificationType",
    "Job",
    "JobType",
    "JobStatus",
]
