"""
Job model for background media processing.
"""
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Index

from ..database import Base, utcnow


class JobType(str, Enum):
    EXTRACT_METADATA = "EXTRACT_METADATA"
    CONVERT_HEIC = "CONVERT_HEIC"
    GENERATE_VIDEO_PREVIEW = "GENERATE_VIDEO_PREVIEW"


class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    FAILED = "FAILED"


class Job(Base):
    __tablename__ = "jobs"
    __table_args__ = (
        Index("ix_jobs_claim", "status", "type", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(40), nullable=False)
    payload = Column(JSON, nullable=True)  # e.g. {"media_id": "..."}
    status = Column(String(20), default=JobStatus.PENDING.value, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    next_eligible_at = Column(DateTime, nullable=True)  # retry back-off
    lease_expires_at = Column(DateTime, nullable=True)  # set while PROCESSING
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def media_id(self):
        return (self.payload or {}).get("media_id")

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            "id": self.id,
            "type": self.type,
            "status": self.status,
            "payload": self.payload,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "next_eligible_at": self.next_eligible_at.isoformat() + "Z" if self.next_eligible_at else None,
            "lease_expires_at": self.lease_expires_at.isoformat() + "Z" if self.lease_expires_at else None,
            "created_at": self.created_at.isoformat() + "Z" if self.created_at else None,
            "updated_at": self.updated_at.isoformat() + "Z" if self.updated_at else None,
        }
