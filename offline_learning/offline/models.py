"""Database models for downloaded offline course packages.

Lifecycle of a session:
- Active: not deleted and not past ``expires_at``
- Expired: computed from the clock, never stored
- Soft deleted: ``is_deleted = 1``, hidden from listings
- Purged: row removed
"""

from datetime import datetime
from typing import Any

from offline_learning.core.timestamps import ensure_utc_aware, from_iso


DEFAULT_PACKAGE_VERSION = "v1"
DEFAULT_PRESIGNED_URL_EXPIRY_DAYS = 7


# ==============================================================================
# SQL Table Definitions
# ==============================================================================

OFFLINE_SESSIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS offline_sessions (
    id TEXT PRIMARY KEY,
    student_id TEXT NOT NULL,
    course_id TEXT NOT NULL,
    downloaded_at TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    package_version TEXT NOT NULL DEFAULT 'v1',
    presigned_url_expiry_days INTEGER NOT NULL DEFAULT 7,
    last_synced_at TEXT,
    sync_count INTEGER NOT NULL DEFAULT 0,
    is_deleted BOOLEAN NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

OFFLINE_SESSIONS_BY_STUDENT_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_offline_sessions_student
ON offline_sessions (student_id, course_id, is_deleted)
"""

OFFLINE_TABLES_SQL = [
    OFFLINE_SESSIONS_TABLE_SQL,
    OFFLINE_SESSIONS_BY_STUDENT_INDEX_SQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class OfflineSession:
    """A course package downloaded for offline use.

    Attributes:
        id: Session id
        student_id: Student who downloaded the package
        course_id: Course in the package
        downloaded_at: Download timestamp
        expires_at: Package expiry
        package_version: Package format version
        presigned_url_expiry_days: Lifetime of the media URLs in the package
        last_synced_at: Last successful sync
        sync_count: Number of syncs performed
        is_deleted: Soft-delete flag
    """

    def __init__(
        self,
        id: str,
        student_id: str,
        course_id: str,
        downloaded_at: datetime,
        expires_at: datetime,
        package_version: str = DEFAULT_PACKAGE_VERSION,
        presigned_url_expiry_days: int = DEFAULT_PRESIGNED_URL_EXPIRY_DAYS,
        last_synced_at: datetime | None = None,
        sync_count: int = 0,
        is_deleted: bool = False,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id
        self.student_id = student_id
        self.course_id = course_id
        self.downloaded_at = downloaded_at
        self.expires_at = expires_at
        self.package_version = package_version
        self.presigned_url_expiry_days = presigned_url_expiry_days
        self.last_synced_at = last_synced_at
        self.sync_count = sync_count
        self.is_deleted = is_deleted
        self.created_at = created_at
        self.updated_at = updated_at

    def is_expired(self, now: datetime) -> bool:
        """Check if the package is past its expiry."""
        return ensure_utc_aware(now) > self.expires_at

    def is_valid(self, now: datetime) -> bool:
        """Check if the package can still be used."""
        return not self.is_deleted and not self.is_expired(now)

    @classmethod
    def from_row(cls, row: Any) -> "OfflineSession":
        """Create OfflineSession instance from a database row."""
        return cls(
            id=row.id,
            student_id=row.student_id,
            course_id=row.course_id,
            downloaded_at=from_iso(row.downloaded_at),
            expires_at=from_iso(row.expires_at),
            package_version=row.package_version or DEFAULT_PACKAGE_VERSION,
            presigned_url_expiry_days=row.presigned_url_expiry_days,
            last_synced_at=from_iso(row.last_synced_at),
            sync_count=row.sync_count or 0,
            is_deleted=bool(row.is_deleted),
            created_at=from_iso(row.created_at),
            updated_at=from_iso(row.updated_at),
        )

    def __repr__(self) -> str:
        return f"<OfflineSession {self.id} course={self.course_id} deleted={self.is_deleted}>"
