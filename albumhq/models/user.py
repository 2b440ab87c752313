"""
User model for authentication and ownership.
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship

from ..database import Base, utcnow


class UserRole:
    USER = "USER"
    ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    display_name = Column(String(100))
    role = Column(String(20), default=UserRole.USER, nullable=False)
    session_version = Column(Integer, default=0, nullable=False)  # bumped to revoke all tokens
    avatar_path = Column(String(500), nullable=True)  # relative to the upload root
    last_seen_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")
    uploads = relationship("Media", back_populates="uploaded_by")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
