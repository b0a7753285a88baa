"""Pydantic schemas for offline sessions."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from .models import (
    DEFAULT_PACKAGE_VERSION,
    DEFAULT_PRESIGNED_URL_EXPIRY_DAYS,
    OfflineSession,
)


class CreateOfflineSessionRequest(BaseModel):
    """Request to register a downloaded package.

    ``expires_at`` defaults to ``downloaded_at`` plus the configured TTL.
    """

    id: str | None = Field(None, min_length=1, description="Session id")
    student_id: str = Field(..., min_length=1)
    course_id: str = Field(..., min_length=1)
    downloaded_at: datetime | None = None
    expires_at: datetime | None = None
    package_version: str = Field(DEFAULT_PACKAGE_VERSION, min_length=1)
    presigned_url_expiry_days: int = Field(DEFAULT_PRESIGNED_URL_EXPIRY_DAYS, ge=1)

    @model_validator(mode="after")
    def check_expiry_after_download(self) -> "CreateOfflineSessionRequest":
        if (
            self.downloaded_at is not None
            and self.expires_at is not None
            and self.expires_at < self.downloaded_at
        ):
            raise ValueError("expires_at must not precede downloaded_at")
        return self


class OfflineSessionResponse(BaseModel):
    """Offline session with its derived validity flags."""

    id: str
    student_id: str
    course_id: str
    downloaded_at: datetime
    expires_at: datetime
    package_version: str
    presigned_url_expiry_days: int
    last_synced_at: datetime | None = None
    sync_count: int = 0
    is_deleted: bool = False
    is_expired: bool = Field(description="Evaluated at response time")
    is_valid: bool = Field(description="Not deleted and not expired")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_entity(
        cls, entity: OfflineSession, now: datetime
    ) -> "OfflineSessionResponse":
        """Create response from entity, evaluating expiry at ``now``."""
        return cls(
            id=entity.id,
            student_id=entity.student_id,
            course_id=entity.course_id,
            downloaded_at=entity.downloaded_at,
            expires_at=entity.expires_at,
            package_version=entity.package_version,
            presigned_url_expiry_days=entity.presigned_url_expiry_days,
            last_synced_at=entity.last_synced_at,
            sync_count=entity.sync_count,
            is_deleted=entity.is_deleted,
            is_expired=entity.is_expired(now),
            is_valid=entity.is_valid(now),
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )


class OfflineStatisticsResponse(BaseModel):
    """Aggregate counts across offline sessions, media and batches."""

    total_sessions: int = Field(0, description="Sessions not soft-deleted")
    active_sessions: int = 0
    expired_sessions: int = 0
    total_media_cached: int = 0
    media_downloaded: int = 0
    unsynced_batches: int = 0
