"""
Authentication routes for login, token refresh, password change and logout.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.user import User
from ..schemas.auth import (
    UserLogin,
    UserResponse,
    TokenResponse,
    RefreshRequest,
    PasswordChange,
    password_policy_errors,
)
from ..auth import (
    authenticate_user,
    bump_session_version,
    create_tokens,
    get_password_hash,
    get_required_user,
    login_limiter,
    refresh_access_token,
    verify_password,
)
from ..config import get_settings
from ..limiter import limiter
from ..logging_config import api_logger
from ..login_rate_limit import build_login_keys, extract_client_ip, normalize_username

settings = get_settings()

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _login(request: Request, db: Session, username: str, password: str) -> TokenResponse:
    client_host = request.client.host if request.client else None
    keys = build_login_keys(username, extract_client_ip(request.headers, client_host))

    decision = login_limiter.check(keys)
    if decision.blocked:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many failed login attempts. Try again later.",
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )

    user = authenticate_user(db, username, password)
    if not user:
        login_limiter.record_failure(keys)
        api_logger.warning("Failed login", username=normalize_username(username))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    login_limiter.clear(keys)
    access_token, refresh_token = create_tokens(user)
    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.login_rate_limit)
def login(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """Login with OAuth2 form (username/password)."""
    return _login(request, db, form_data.username, form_data.password)


@router.post("/login/json", response_model=TokenResponse)
@limiter.limit(settings.login_rate_limit)
def login_json(request: Request, credentials: UserLogin, db: Session = Depends(get_db)):
    """Login with JSON body (username/password)."""
    return _login(request, db, credentials.username, credentials.password)


@router.post("/refresh", response_model=TokenResponse)
@limiter.limit("10/minute")
def refresh_tokens(request: Request, refresh_request: RefreshRequest, db: Session = Depends(get_db)):
    """Get new access and refresh tokens using a valid refresh token."""
    tokens = refresh_access_token(refresh_request.refresh_token, db)
    if not tokens:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    access_token, refresh_token = tokens
    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_required_user)):
    """Get current authenticated user."""
    return current_user


@router.post("/password", response_model=TokenResponse)
@limiter.limit("5/minute")
def change_password(
    request: Request,
    payload: PasswordChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """
    Change the current user's password.

    Every token issued before the change stops working; the response carries
    a fresh pair for the caller.
    """
    if not verify_password(payload.current_password, current_user.hashed_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    if payload.new_password != payload.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")

    errors = password_policy_errors(payload.new_password)
    if errors:
        raise HTTPException(status_code=400, detail=" ".join(errors))

    if verify_password(payload.new_password, current_user.hashed_password):
        raise HTTPException(status_code=400, detail="New password must differ from the current password")

    current_user.hashed_password = get_password_hash(payload.new_password)
    bump_session_version(current_user, db)
    api_logger.info("Password changed", user_id=current_user.id)

    access_token, refresh_token = create_tokens(current_user)
    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


@router.post("/logout")
def logout(current_user: User = Depends(get_required_user), db: Session = Depends(get_db)):
    """Logout everywhere by revoking all outstanding tokens."""
    bump_session_version(current_user, db)
    return {"message": "Successfully logged out"}
