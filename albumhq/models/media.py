"""
Media model for uploaded images and videos.
"""
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, BigInteger, Float, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base, utcnow


class MetadataStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    FAILED = "FAILED"


class LocationSource(str, Enum):
    NONE = "NONE"
    EXIF = "EXIF"
    VIDEO_META = "VIDEO_META"


class Media(Base):
    __tablename__ = "media"

    id = Column(String(36), primary_key=True, index=True)  # uuid4
    album_id = Column(String(120), ForeignKey("albums.id", ondelete="CASCADE"), nullable=True, index=True)
    uploaded_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    url = Column(String(1000), nullable=False)
    mime_type = Column(String(100), nullable=True)
    original_name = Column(String(255), nullable=True)
    size_bytes = Column(BigInteger, default=0)
    filename = Column(String(255), nullable=True)

    # Paths are relative to the upload root
    storage_path = Column(String(1000), nullable=True)
    converted_path = Column(String(1000), nullable=True)
    preview_path = Column(String(1000), nullable=True)

    metadata_status = Column(String(20), default=MetadataStatus.PENDING.value, nullable=False)
    captured_at = Column(DateTime, nullable=True)
    location_auto_lat = Column(Float, nullable=True)
    location_auto_lng = Column(Float, nullable=True)
    location_source = Column(String(20), default=LocationSource.NONE.value, nullable=False)
    created_at = Column(DateTime, default=utcnow, index=True)

    # Relationships
    album = relationship("Album", back_populates="media")
    uploaded_by = relationship("User", back_populates="uploads")

    @property
    def is_video(self) -> bool:
        return (self.mime_type or "").lower().startswith("video/")
