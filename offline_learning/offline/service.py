"""Offline session manager.

Tracks downloaded course packages through their lifecycle: validity checks,
sync bookkeeping, soft delete and purge. Expiry is never stored; it is always
derived from the clock, so every query compares ``expires_at`` against the
current time.
"""

import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import text

from offline_learning.core.errors import InvalidInputError, NotFoundError
from offline_learning.core.logging import get_logger
from offline_learning.core.timestamps import Clock, to_iso, utc_now

from .models import OfflineSession
from .schemas import (
    CreateOfflineSessionRequest,
    OfflineSessionResponse,
    OfflineStatisticsResponse,
)


if TYPE_CHECKING:
    from offline_learning.core.database import Database


logger = get_logger(__name__)


def _check_days(days: int, name: str) -> None:
    if days < 0:
        raise InvalidInputError(f"{name} must not be negative")


class OfflineSessionService:
    """Service for offline session lifecycle."""

    def __init__(
        self,
        database: "Database",
        ttl_days: int = 7,
        clock: Clock = utc_now,
    ):
        self.database = database
        self.ttl_days = ttl_days
        self.clock = clock
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Build SQL statements once."""
        # Re-creating an id is the only way back from a soft delete
        self._replace_session = text("""
            INSERT OR REPLACE INTO offline_sessions
            (id, student_id, course_id, downloaded_at, expires_at, package_version,
             presigned_url_expiry_days, last_synced_at, sync_count, is_deleted,
             created_at, updated_at)
            VALUES (:id, :student_id, :course_id, :downloaded_at, :expires_at,
                    :package_version, :presigned_url_expiry_days, NULL, 0, 0,
                    :now, :now)
        """)

        self._get_session = text("SELECT * FROM offline_sessions WHERE id = :session_id")

        self._list_sessions = text("""
            SELECT * FROM offline_sessions
            WHERE student_id = :student_id
              AND is_deleted = 0
              AND (:course_id IS NULL OR course_id = :course_id)
              AND (:active_only = 0 OR expires_at >= :now)
            ORDER BY downloaded_at DESC, id ASC
        """)

        self._touch_sync = text("""
            UPDATE offline_sessions
            SET last_synced_at = :now, sync_count = sync_count + 1, updated_at = :now
            WHERE id = :session_id
        """)

        self._soft_delete = text("""
            UPDATE offline_sessions SET is_deleted = 1, updated_at = :now
            WHERE id = :session_id AND is_deleted = 0
        """)

        self._hard_delete = text("DELETE FROM offline_sessions WHERE id = :session_id")

        self._purge_expired = text("""
            DELETE FROM offline_sessions
            WHERE is_deleted = 1 AND expires_at < :cutoff
        """)

        self._expire_stale = text("""
            UPDATE offline_sessions SET is_deleted = 1, updated_at = :now
            WHERE is_deleted = 0 AND expires_at < :cutoff
        """)

        self._count_active = text("""
            SELECT COUNT(*) FROM offline_sessions
            WHERE is_deleted = 0
              AND expires_at >= :now
              AND (:student_id IS NULL OR student_id = :student_id)
        """)

        self._statistics = text("""
            SELECT
                (SELECT COUNT(*) FROM offline_sessions WHERE is_deleted = 0)
                    AS total_sessions,
                (SELECT COUNT(*) FROM offline_sessions
                 WHERE is_deleted = 0 AND expires_at >= :now) AS active_sessions,
                (SELECT COUNT(*) FROM offline_sessions
                 WHERE is_deleted = 0 AND expires_at < :now) AS expired_sessions,
                (SELECT COUNT(*) FROM media_cache) AS total_media_cached,
                (SELECT COUNT(*) FROM media_cache WHERE is_downloaded = 1)
                    AS media_downloaded,
                (SELECT COUNT(*) FROM offline_progress_batch WHERE synced = 0)
                    AS unsynced_batches
        """)

    # ==========================================================================
    # Session Operations
    # ==========================================================================

    def create(self, request: CreateOfflineSessionRequest) -> OfflineSessionResponse:
        """Register a downloaded package, replacing any session with the same id."""
        now = self.clock()
        session_id = request.id or str(uuid.uuid4())
        downloaded_at = request.downloaded_at or now
        expires_at = request.expires_at or downloaded_at + timedelta(days=self.ttl_days)

        with self.database.transaction() as conn:
            conn.execute(
                self._replace_session,
                {
                    "id": session_id,
                    "student_id": request.student_id,
                    "course_id": request.course_id,
                    "downloaded_at": to_iso(downloaded_at),
                    "expires_at": to_iso(expires_at),
                    "package_version": request.package_version,
                    "presigned_url_expiry_days": request.presigned_url_expiry_days,
                    "now": to_iso(now),
                },
            )
            row = conn.execute(self._get_session, {"session_id": session_id}).one()

        logger.info(
            "offline_session_created",
            session_id=session_id,
            student_id=request.student_id,
            course_id=request.course_id,
            expires_at=to_iso(expires_at),
        )
        return OfflineSessionResponse.from_entity(OfflineSession.from_row(row), now)

    def get(self, session_id: str) -> OfflineSessionResponse:
        """Get session by id, soft-deleted sessions included.

        Raises:
            NotFoundError: If the session does not exist.
        """
        with self.database.connect() as conn:
            row = conn.execute(
                self._get_session, {"session_id": session_id}
            ).one_or_none()
        if row is None:
            raise NotFoundError(f"Offline session {session_id} not found")
        return OfflineSessionResponse.from_entity(OfflineSession.from_row(row), self.clock())

    def list(
        self,
        student_id: str,
        course_id: str | None = None,
        active_only: bool = False,
    ) -> list[OfflineSessionResponse]:
        """List a student's sessions, newest download first.

        Soft-deleted sessions are never listed; ``active_only`` also drops
        expired ones.
        """
        now = self.clock()
        with self.database.connect() as conn:
            rows = conn.execute(
                self._list_sessions,
                {
                    "student_id": student_id,
                    "course_id": course_id,
                    "active_only": active_only,
                    "now": to_iso(now),
                },
            ).all()
        return [
            OfflineSessionResponse.from_entity(OfflineSession.from_row(row), now)
            for row in rows
        ]

    def touch_sync(self, session_id: str) -> OfflineSessionResponse:
        """Record a sync: bump ``sync_count`` and refresh ``last_synced_at``.

        Raises:
            NotFoundError: If the session does not exist.
        """
        now = self.clock()
        with self.database.transaction() as conn:
            result = conn.execute(
                self._touch_sync, {"session_id": session_id, "now": to_iso(now)}
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Offline session {session_id} not found")
            row = conn.execute(self._get_session, {"session_id": session_id}).one()

        session = OfflineSession.from_row(row)
        logger.info(
            "offline_session_synced",
            session_id=session_id,
            sync_count=session.sync_count,
        )
        return OfflineSessionResponse.from_entity(session, now)

    def soft_delete(self, session_id: str) -> bool:
        """Flag a session deleted. Missing or already deleted sessions are a no-op.

        Returns:
            True if a session was flagged by this call
        """
        with self.database.transaction() as conn:
            result = conn.execute(
                self._soft_delete,
                {"session_id": session_id, "now": to_iso(self.clock())},
            )
            deleted = result.rowcount > 0
        logger.info("offline_session_soft_deleted", session_id=session_id, changed=deleted)
        return deleted

    def hard_delete(self, session_id: str) -> bool:
        """Remove a session row. Missing sessions are a no-op.

        Returns:
            True if a row was removed
        """
        with self.database.transaction() as conn:
            result = conn.execute(self._hard_delete, {"session_id": session_id})
            deleted = result.rowcount > 0
        logger.info("offline_session_hard_deleted", session_id=session_id, changed=deleted)
        return deleted

    # ==========================================================================
    # Maintenance
    # ==========================================================================

    def purge_expired(self, older_than_days: int) -> int:
        """Remove soft-deleted sessions that expired before the retention window.

        Sessions that are expired but not soft-deleted are left alone.

        Returns:
            Number of rows removed
        """
        _check_days(older_than_days, "older_than_days")
        cutoff = self.clock() - timedelta(days=older_than_days)
        with self.database.transaction() as conn:
            result = conn.execute(self._purge_expired, {"cutoff": to_iso(cutoff)})
            purged = result.rowcount
        logger.info("offline_sessions_purged", count=purged, older_than_days=older_than_days)
        return purged

    def expire_stale(self, days_old: int) -> int:
        """Soft-delete sessions whose expiry passed more than ``days_old`` days ago.

        Returns:
            Number of sessions flagged
        """
        _check_days(days_old, "days_old")
        now = self.clock()
        cutoff = now - timedelta(days=days_old)
        with self.database.transaction() as conn:
            result = conn.execute(
                self._expire_stale, {"cutoff": to_iso(cutoff), "now": to_iso(now)}
            )
            expired = result.rowcount
        logger.info("offline_sessions_expired", count=expired, days_old=days_old)
        return expired

    def count_active(self, student_id: str | None = None) -> int:
        """Count valid sessions, optionally for one student."""
        with self.database.connect() as conn:
            return conn.execute(
                self._count_active,
                {"student_id": student_id, "now": to_iso(self.clock())},
            ).scalar_one()

    def statistics(self) -> OfflineStatisticsResponse:
        """Aggregate counts over sessions, cached media and progress batches."""
        with self.database.connect() as conn:
            row = conn.execute(
                self._statistics, {"now": to_iso(self.clock())}
            ).one()
        return OfflineStatisticsResponse(
            total_sessions=row.total_sessions,
            active_sessions=row.active_sessions,
            expired_sessions=row.expired_sessions,
            total_media_cached=row.total_media_cached,
            media_downloaded=row.media_downloaded,
            unsynced_batches=row.unsynced_batches,
        )
