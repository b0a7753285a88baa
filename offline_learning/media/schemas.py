"""Pydantic schemas for the media cache."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .models import MediaCacheEntry


class UpsertMediaCacheRequest(BaseModel):
    """Request to insert or replace a media cache entry."""

    media_id: str = Field(..., min_length=1)
    course_id: str = Field(..., min_length=1)
    filename: str | None = None
    media_type: str | None = None
    local_file_path: str | None = None
    size_bytes: int | None = Field(None, ge=0)
    downloaded_at: datetime | None = None
    presigned_url: str | None = None
    presigned_url_expires_at: datetime | None = None
    is_downloaded: bool = False
    download_progress: int = Field(0, ge=0, le=100)


class MediaCacheResponse(BaseModel):
    """Media cache entry response."""

    model_config = ConfigDict(from_attributes=True)

    media_id: str
    course_id: str
    filename: str | None = None
    media_type: str | None = None
    local_file_path: str | None = None
    size_bytes: int | None = None
    downloaded_at: datetime | None = None
    presigned_url: str | None = None
    presigned_url_expires_at: datetime | None = None
    is_downloaded: bool = False
    download_progress: int = 0

    @classmethod
    def from_entity(cls, entity: MediaCacheEntry) -> "MediaCacheResponse":
        """Create response from entity."""
        return cls.model_validate(entity)


class CourseMediaSummary(BaseModel):
    """Download completeness for a course's media."""

    course_id: str
    total_media: int = 0
    downloaded_media: int = 0
    total_size_bytes: int = 0
    average_progress: float = Field(0.0, description="Mean download progress, 0-100")
    is_complete: bool = Field(False, description="Every tracked asset downloaded")
