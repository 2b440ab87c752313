"""
Album model. Albums are grouped by category on the overview page.
"""
from enum import Enum

from sqlalchemy import Column, String, DateTime, Text, Float
from sqlalchemy.orm import relationship

from ..database import Base, utcnow


class AlbumCategory(str, Enum):
    GAME_NIGHT = "GAME_NIGHT"
    TRAVEL = "TRAVEL"
    CHRISTMAS_PARTY = "CHRISTMAS_PARTY"


class Album(Base):
    __tablename__ = "albums"

    id = Column(String(120), primary_key=True, index=True)  # slug derived from name
    name = Column(String(50), nullable=False)
    info_text = Column(Text, nullable=True)
    category = Column(String(30), nullable=False, index=True)
    cover_image = Column(String(500), nullable=True)  # relative to upload root
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    media = relationship(
        "Media",
        back_populates="album",
        cascade="all, delete-orphan",
        order_by="Media.created_at",
    )
