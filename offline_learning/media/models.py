"""Database models for cached media assets."""

from datetime import datetime
from typing import Any

from offline_learning.core.timestamps import from_iso


# ==============================================================================
# SQL Table Definitions
# ==============================================================================

MEDIA_CACHE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS media_cache (
    media_id TEXT PRIMARY KEY,
    course_id TEXT NOT NULL,
    filename TEXT,
    media_type TEXT,
    local_file_path TEXT,
    size_bytes INTEGER,
    downloaded_at TEXT,
    presigned_url TEXT,
    presigned_url_expires_at TEXT,
    is_downloaded BOOLEAN NOT NULL DEFAULT 0,
    download_progress INTEGER NOT NULL DEFAULT 0
        CHECK(download_progress BETWEEN 0 AND 100)
)
"""

MEDIA_CACHE_BY_COURSE_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_media_cache_course
ON media_cache (course_id)
"""

MEDIA_TABLES_SQL = [
    MEDIA_CACHE_TABLE_SQL,
    MEDIA_CACHE_BY_COURSE_INDEX_SQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class MediaCacheEntry:
    """Download bookkeeping for one media asset."""

    def __init__(
        self,
        media_id: str,
        course_id: str,
        filename: str | None = None,
        media_type: str | None = None,
        local_file_path: str | None = None,
        size_bytes: int | None = None,
        downloaded_at: datetime | None = None,
        presigned_url: str | None = None,
        presigned_url_expires_at: datetime | None = None,
        is_downloaded: bool = False,
        download_progress: int = 0,
    ):
        self.media_id = media_id
        self.course_id = course_id
        self.filename = filename
        self.media_type = media_type
        self.local_file_path = local_file_path
        self.size_bytes = size_bytes
        self.downloaded_at = downloaded_at
        self.presigned_url = presigned_url
        self.presigned_url_expires_at = presigned_url_expires_at
        self.is_downloaded = is_downloaded
        self.download_progress = download_progress

    @classmethod
    def from_row(cls, row: Any) -> "MediaCacheEntry":
        """Create MediaCacheEntry instance from a database row."""
        return cls(
            media_id=row.media_id,
            course_id=row.course_id,
            filename=row.filename,
            media_type=row.media_type,
            local_file_path=row.local_file_path,
            size_bytes=row.size_bytes,
            downloaded_at=from_iso(row.downloaded_at),
            presigned_url=row.presigned_url,
            presigned_url_expires_at=from_iso(row.presigned_url_expires_at),
            is_downloaded=bool(row.is_downloaded),
            download_progress=row.download_progress or 0,
        )

    def __repr__(self) -> str:
        return f"<MediaCacheEntry {self.media_id} {self.download_progress}%>"
