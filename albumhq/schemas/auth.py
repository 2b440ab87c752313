import re
from datetime import datetime
from pydantic import BaseModel
from typing import List, Optional

PASSWORD_MIN_LENGTH = 12
_SPECIAL = re.compile(r"[^A-Za-z0-9]")


class UserCreate(BaseModel):
    username: str
    password: str
    display_name: Optional[str] = None
    role: str = "USER"


class UserLogin(BaseModel):
    username: str
    password: str


class UserResponse(BaseModel):
    id: int
    username: str
    display_name: Optional[str]
    role: str
    is_active: bool
    last_seen_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """Response with both access and refresh tokens."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    """Request to refresh tokens."""
    refresh_token: str


class PasswordChange(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


def password_policy_errors(password: str) -> List[str]:
    """Everything the password is missing. Empty means it is acceptable."""
    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters.")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain an uppercase letter.")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain a lowercase letter.")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain a digit.")
    if not _SPECIAL.search(password):
        errors.append("Password must contain a special character.")
    return errors
