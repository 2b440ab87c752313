from pydantic import BaseModel
from typing import List, Optional


class AlbumCreate(BaseModel):
    name: str
    info_text: Optional[str] = None
    category: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_name: Optional[str] = None


class AlbumUpdate(BaseModel):
    name: str
    category: str
    info_text: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_name: Optional[str] = None


class AlbumBulkDelete(BaseModel):
    album_ids: List[str]
