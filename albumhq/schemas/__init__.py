from .auth import UserCreate, UserLogin, UserResponse, TokenResponse, RefreshRequest, PasswordChange
from .albums import AlbumCreate, AlbumUpdate, AlbumBulkDelete
from .media import MediaBulkDelete, MediaBulkDownload, UploadSummary

__all__ = [
    "UserCreate", "UserLogin", "UserResponse", "TokenResponse", "RefreshRequest", "PasswordChange",
    "AlbumCreate", "AlbumUpdate", "AlbumBulkDelete",
    "MediaBulkDelete", "MediaBulkDownload", "UploadSummary",
]
