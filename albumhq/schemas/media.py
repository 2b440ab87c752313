from pydantic import BaseModel, Field
from typing import List, Optional


class MediaBulkDelete(BaseModel):
    media_ids: List[str]


class MediaBulkDownload(BaseModel):
    """Selected media of one album, or the whole album when ``media_ids`` is omitted."""
    album_id: str
    media_ids: Optional[List[str]] = None


class UploadSummary(BaseModel):
    album_id: str
    uploaded_count: int = Field(ge=1, le=500)
