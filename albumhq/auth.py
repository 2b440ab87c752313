"""
Authentication utilities for JWT tokens and password hashing.

Tokens carry the user's ``session_version`` in the ``sv`` claim. Bumping the
column (password change, logout) invalidates every token issued before.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import func
from sqlalchemy.orm import Session

from .database import get_db
from .models.user import User
from .config import get_settings
from .login_rate_limit import LoginRateLimiter, normalize_username
from .signed_url import is_signed_request

settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

login_limiter = LoginRateLimiter(
    max_failures=settings.login_max_failures,
    window_seconds=settings.login_failure_window_seconds,
    block_seconds=settings.login_block_seconds,
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password for storage."""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_refresh_token(data: dict) -> str:
    """Create a JWT refresh token with longer expiration."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(days=settings.refresh_token_expire_days)
    to_encode.update({"exp": expire, "type": "refresh"})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_tokens(user: User) -> Tuple[str, str]:
    """Create both access and refresh tokens for a user."""
    data = {"sub": str(user.id), "sv": user.session_version or 0}
    return create_access_token(data), create_refresh_token(data)


def verify_token(token: str, expected_type: str = "access") -> Optional[dict]:
    """Verify a JWT token and return its payload."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        if payload.get("type", "access") != expected_type:
            return None
        return payload
    except JWTError:
        return None


def _user_from_payload(payload: Optional[dict], db: Session) -> Optional[User]:
    if not payload:
        return None

    try:
        user_id = int(payload.get("sub"))
    except (ValueError, TypeError):
        return None

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        return None

    # Token issued before the last password change / logout
    if payload.get("sv", 0) != (user.session_version or 0):
        return None

    return user


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
    """Look up a user case-insensitively and check the password."""
    user = db.query(User).filter(func.lower(User.username) == normalize_username(username)).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """Get the current user from the JWT token (optional auth)."""
    if not token:
        return None
    return _user_from_payload(verify_token(token, "access"), db)


def get_required_user(
    current_user: Optional[User] = Depends(get_current_user)
) -> User:
    """Get the current user, raising 401 if not authenticated."""
    if not current_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return current_user


def get_admin_user(current_user: User = Depends(get_required_user)) -> User:
    """Require an authenticated admin."""
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


def get_stream_user(
    header_token: Optional[str] = Depends(oauth2_scheme),
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
) -> User:
    """Auth for EventSource connections, which cannot send headers."""
    raw = header_token or token
    user = _user_from_payload(verify_token(raw, "access"), db) if raw else None
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def refresh_access_token(refresh_token: str, db: Session) -> Optional[Tuple[str, str]]:
    """Use a refresh token to get new access and refresh tokens."""
    user = _user_from_payload(verify_token(refresh_token, "refresh"), db)
    if not user:
        return None
    return create_tokens(user)


def bump_session_version(user: User, db: Session):
    """Invalidate every outstanding token for ``user``."""
    user.session_version = (user.session_version or 0) + 1
    db.commit()
    db.refresh(user)


def get_asset_access(
    request: Request,
    current_user: Optional[User] = Depends(get_current_user),
) -> Optional[User]:
    """Allow a file download with a valid signed URL or a bearer token."""
    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    if is_signed_request(url):
        return current_user
    if current_user:
        return current_user
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )
