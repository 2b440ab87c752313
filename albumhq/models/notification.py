"""
Notification model for activity from other family members.
"""
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base, utcnow


class NotificationType(str, Enum):
    ALBUM_CREATED = "ALBUM_CREATED"
    ALBUM_UPDATED = "ALBUM_UPDATED"
    ALBUM_DELETED = "ALBUM_DELETED"
    MEDIA_UPLOADED = "MEDIA_UPLOADED"
    MEDIA_DELETED = "MEDIA_DELETED"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(30), nullable=False)
    message = Column(Text, nullable=False)
    # Plain references: the album or media may be deleted after the notification is sent
    album_id = Column(String(120), nullable=True)
    media_id = Column(String(36), nullable=True)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    # Relationships
    user = relationship("User", back_populates="notifications")

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "album_id": self.album_id,
            "media_id": self.media_id,
            "read_at": self.read_at.isoformat() + "Z" if self.read_at else None,
            "created_at": self.created_at.isoformat() + "Z" if self.created_at else None,
        }
