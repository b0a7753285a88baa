"""Media cache tracker.

Per-asset download bookkeeping. Progress only moves forward and
``is_downloaded`` is terminal until the course's cache is deleted.
"""

from typing import TYPE_CHECKING

from sqlalchemy import text

from offline_learning.core.errors import InvalidInputError, NotFoundError
from offline_learning.core.logging import get_logger
from offline_learning.core.timestamps import Clock, to_iso, utc_now

from .models import MediaCacheEntry
from .schemas import CourseMediaSummary, MediaCacheResponse, UpsertMediaCacheRequest


if TYPE_CHECKING:
    from offline_learning.core.database import Database


logger = get_logger(__name__)


class MediaCacheService:
    """Service for media download bookkeeping."""

    def __init__(self, database: "Database", clock: Clock = utc_now):
        self.database = database
        self.clock = clock
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Build SQL statements once."""
        self._upsert_entry = text("""
            INSERT INTO media_cache
            (media_id, course_id, filename, media_type, local_file_path, size_bytes,
             downloaded_at, presigned_url, presigned_url_expires_at, is_downloaded,
             download_progress)
            VALUES (:media_id, :course_id, :filename, :media_type, :local_file_path,
                    :size_bytes, :downloaded_at, :presigned_url,
                    :presigned_url_expires_at, :is_downloaded, :download_progress)
            ON CONFLICT(media_id) DO UPDATE SET
                course_id = excluded.course_id,
                filename = excluded.filename,
                media_type = excluded.media_type,
                local_file_path = excluded.local_file_path,
                size_bytes = excluded.size_bytes,
                downloaded_at = COALESCE(excluded.downloaded_at, media_cache.downloaded_at),
                presigned_url = excluded.presigned_url,
                presigned_url_expires_at = excluded.presigned_url_expires_at,
                is_downloaded = MAX(media_cache.is_downloaded, excluded.is_downloaded),
                download_progress = MAX(media_cache.download_progress,
                                        excluded.download_progress)
        """)

        self._get_entry = text("SELECT * FROM media_cache WHERE media_id = :media_id")

        self._list_by_course = text("""
            SELECT * FROM media_cache
            WHERE course_id = :course_id
            ORDER BY filename ASC, media_id ASC
        """)

        # A finished download pins progress at 100
        self._update_progress = text("""
            UPDATE media_cache
            SET download_progress = CASE
                    WHEN :is_downloaded OR is_downloaded THEN 100
                    ELSE MAX(download_progress, :progress)
                END,
                is_downloaded = MAX(is_downloaded, :is_downloaded),
                downloaded_at = CASE
                    WHEN :is_downloaded THEN COALESCE(downloaded_at, :now)
                    ELSE downloaded_at
                END
            WHERE media_id = :media_id
        """)

        self._delete_by_course = text("DELETE FROM media_cache WHERE course_id = :course_id")

        self._course_summary = text("""
            SELECT
                COUNT(*) AS total_media,
                COALESCE(SUM(CASE WHEN is_downloaded = 1 THEN 1 ELSE 0 END), 0)
                    AS downloaded_media,
                COALESCE(SUM(size_bytes), 0) AS total_size_bytes,
                COALESCE(AVG(download_progress), 0.0) AS average_progress
            FROM media_cache
            WHERE course_id = :course_id
        """)

    def upsert(self, request: UpsertMediaCacheRequest) -> MediaCacheResponse:
        """Insert or update an entry without moving its progress backwards."""
        downloaded_at = request.downloaded_at
        if request.is_downloaded and downloaded_at is None:
            downloaded_at = self.clock()
        progress = 100 if request.is_downloaded else request.download_progress

        with self.database.transaction() as conn:
            conn.execute(
                self._upsert_entry,
                {
                    "media_id": request.media_id,
                    "course_id": request.course_id,
                    "filename": request.filename,
                    "media_type": request.media_type,
                    "local_file_path": request.local_file_path,
                    "size_bytes": request.size_bytes,
                    "downloaded_at": to_iso(downloaded_at),
                    "presigned_url": request.presigned_url,
                    "presigned_url_expires_at": to_iso(request.presigned_url_expires_at),
                    "is_downloaded": request.is_downloaded,
                    "download_progress": progress,
                },
            )
            row = conn.execute(self._get_entry, {"media_id": request.media_id}).one()

        entry = MediaCacheEntry.from_row(row)
        logger.debug(
            "media_cache_saved",
            media_id=entry.media_id,
            course_id=entry.course_id,
            progress=entry.download_progress,
            presigned_url=entry.presigned_url,
        )
        return MediaCacheResponse.from_entity(entry)

    def get_by_media(self, media_id: str) -> MediaCacheResponse:
        """Get entry by media id.

        Raises:
            NotFoundError: If the media is not tracked.
        """
        with self.database.connect() as conn:
            row = conn.execute(self._get_entry, {"media_id": media_id}).one_or_none()
        if row is None:
            raise NotFoundError(f"Media {media_id} not cached")
        return MediaCacheResponse.from_entity(MediaCacheEntry.from_row(row))

    def list_by_course(self, course_id: str) -> list[MediaCacheResponse]:
        """List entries for a course."""
        with self.database.connect() as conn:
            rows = conn.execute(self._list_by_course, {"course_id": course_id}).all()
        return [MediaCacheResponse.from_entity(MediaCacheEntry.from_row(r)) for r in rows]

    def update_progress(
        self, media_id: str, progress: int, is_downloaded: bool = False
    ) -> MediaCacheResponse:
        """Record download progress.

        Lower values than the stored progress are ignored.

        Raises:
            InvalidInputError: If progress is outside 0-100.
            NotFoundError: If the media is not tracked.
        """
        if not 0 <= progress <= 100:
            raise InvalidInputError("progress must be between 0 and 100")

        with self.database.transaction() as conn:
            result = conn.execute(
                self._update_progress,
                {
                    "media_id": media_id,
                    "progress": progress,
                    "is_downloaded": is_downloaded,
                    "now": to_iso(self.clock()),
                },
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Media {media_id} not cached")
            row = conn.execute(self._get_entry, {"media_id": media_id}).one()

        entry = MediaCacheEntry.from_row(row)
        if is_downloaded:
            logger.info("media_downloaded", media_id=media_id, course_id=entry.course_id)
        return MediaCacheResponse.from_entity(entry)

    def delete_by_course(self, course_id: str) -> int:
        """Forget every entry of a course.

        Returns:
            Number of entries removed
        """
        with self.database.transaction() as conn:
            deleted = conn.execute(
                self._delete_by_course, {"course_id": course_id}
            ).rowcount
        logger.info("media_cache_cleared", course_id=course_id, count=deleted)
        return deleted

    def course_summary(self, course_id: str) -> CourseMediaSummary:
        """Aggregate download completeness for a course."""
        with self.database.connect() as conn:
            row = conn.execute(self._course_summary, {"course_id": course_id}).one()
        return CourseMediaSummary(
            course_id=course_id,
            total_media=row.total_media,
            downloaded_media=row.downloaded_media,
            total_size_bytes=row.total_size_bytes,
            average_progress=round(float(row.average_progress), 2),
            is_complete=row.total_media > 0 and row.downloaded_media == row.total_media,
        )
