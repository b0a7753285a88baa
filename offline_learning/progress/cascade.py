"""Completion cascade engine.

Recomputes a module's aggregate progress from its content progress rows and
decides whether the module auto-completes. The engine never opens its own
transaction: it runs on the caller's connection so the triggering write, the
aggregate update, the optional completion and the enrollment bump commit or
roll back together.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from sqlalchemy import text

from offline_learning.catalog.models import QuizType
from offline_learning.core.logging import get_logger
from offline_learning.core.timestamps import to_iso

from .models import ModuleProgress, ModuleProgressStatus, QuizAttemptStatus


if TYPE_CHECKING:
    from sqlalchemy.engine import Connection

    from offline_learning.catalog.store import CatalogStore
    from offline_learning.enrollments.resolver import EnrollmentResolver


logger = get_logger(__name__)


def module_progress_id(enrollment_id: str, module_id: str) -> str:
    """Deterministic id for a module progress row."""
    return f"mp_{enrollment_id}_{module_id}"


def completion_percentage(completed: int, total: int) -> int:
    """Whole-number percentage, rounded half up. Zero for empty modules."""
    if total <= 0:
        return 0
    ratio = Decimal(completed) * 100 / Decimal(total)
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))


@dataclass
class CascadeResult:
    """Outcome of one cascade evaluation."""

    progress: ModuleProgress
    module_has_quiz: bool
    quiz_passed: bool
    started: bool = False
    auto_completed: bool = False

    @property
    def module_completed(self) -> bool:
        return self.progress.is_completed


class CompletionCascadeEngine:
    """Propagates content and quiz completion into module progress."""

    def __init__(
        self,
        catalog: "CatalogStore",
        enrollments: "EnrollmentResolver",
    ):
        self.catalog = catalog
        self.enrollments = enrollments
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Build SQL statements once."""
        self._count_completed_content = text("""
            SELECT COUNT(*)
            FROM content_progress cp
            JOIN content_blocks cb ON cb.id = cp.content_id
            WHERE cp.enrollment_id = :enrollment_id
              AND cb.module_id = :module_id
              AND cp.is_completed = 1
        """)

        self._get_module_progress = text("""
            SELECT * FROM module_progress
            WHERE enrollment_id = :enrollment_id AND module_id = :module_id
        """)

        self._upsert_module_progress = text("""
            INSERT INTO module_progress
            (id, enrollment_id, module_id, status, started_at, completed_at,
             auto_completed, completed_content_count, total_content_count,
             content_completion_percentage, created_at, updated_at)
            VALUES (:id, :enrollment_id, :module_id, :status, :started_at,
                    :completed_at, :auto_completed, :completed_content_count,
                    :total_content_count, :content_completion_percentage,
                    :now, :now)
            ON CONFLICT(enrollment_id, module_id) DO UPDATE SET
                status = excluded.status,
                started_at = excluded.started_at,
                completed_at = excluded.completed_at,
                auto_completed = excluded.auto_completed,
                completed_content_count = excluded.completed_content_count,
                total_content_count = excluded.total_content_count,
                content_completion_percentage = excluded.content_completion_percentage,
                updated_at = excluded.updated_at
        """)

        self._has_passed_attempt = text("""
            SELECT 1 FROM quiz_attempts qa
            JOIN quizzes q ON q.id = qa.quiz_id
            WHERE q.module_id = :module_id
              AND COALESCE(q.quiz_type, :quiz_type) = :quiz_type
              AND qa.student_id = :student_id
              AND qa.status = :status
              AND qa.passed = 1
            LIMIT 1
        """)

    def tally(
        self, conn: "Connection", enrollment_id: str, module_id: str
    ) -> tuple[int, int]:
        """Return (completed, total) content counts, completed clamped to total."""
        total = self.catalog.content_count_for_module(conn, module_id)
        completed = conn.execute(
            self._count_completed_content,
            {"enrollment_id": enrollment_id, "module_id": module_id},
        ).scalar_one()
        return min(completed, total), total

    def evaluate(
        self,
        conn: "Connection",
        enrollment_id: str,
        module_id: str,
        now: datetime,
    ) -> CascadeResult:
        """Recompute module aggregates and auto-complete when conditions hold.

        Args:
            conn: Connection with an open write transaction
            enrollment_id: Enrollment owning the progress
            module_id: Module to re-evaluate
            now: Timestamp applied to every write of this evaluation

        Returns:
            CascadeResult with the stored module progress

        Raises:
            NotFoundError: If the enrollment does not exist.
        """
        enrollment = self.enrollments.get(conn, enrollment_id)

        completed, total = self.tally(conn, enrollment_id, module_id)
        percentage = completion_percentage(completed, total)

        progress = self.load(conn, enrollment_id, module_id, now)
        progress.completed_content_count = completed
        progress.total_content_count = total
        progress.content_completion_percentage = percentage

        started = False
        if progress.status == ModuleProgressStatus.NOT_STARTED.value and completed > 0:
            progress.status = ModuleProgressStatus.IN_PROGRESS.value
            progress.started_at = progress.started_at or now
            started = True

        has_quiz = self.catalog.module_has_quiz(conn, module_id)
        quiz_passed = has_quiz and self._quiz_passed(
            conn, module_id, enrollment.student_id
        )

        auto_completed = False
        all_content_complete = completed >= total
        if (
            all_content_complete
            and (not has_quiz or quiz_passed)
            and not progress.is_completed
        ):
            progress.status = ModuleProgressStatus.COMPLETED.value
            progress.started_at = progress.started_at or now
            progress.completed_at = now
            progress.auto_completed = True
            auto_completed = True

        self.save(conn, progress, now)
        self.enrollments.touch(conn, enrollment_id, now)

        if auto_completed:
            logger.info(
                "module_auto_completed",
                enrollment_id=enrollment_id,
                module_id=module_id,
                completed_content_count=completed,
                total_content_count=total,
                quiz_gated=has_quiz,
            )
        else:
            logger.debug(
                "module_progress_recomputed",
                enrollment_id=enrollment_id,
                module_id=module_id,
                status=progress.status,
                percentage=percentage,
            )

        return CascadeResult(
            progress=progress,
            module_has_quiz=has_quiz,
            quiz_passed=quiz_passed,
            started=started,
            auto_completed=auto_completed,
        )

    def load(
        self,
        conn: "Connection",
        enrollment_id: str,
        module_id: str,
        now: datetime,
    ) -> ModuleProgress:
        """Load the module progress row, or a fresh not_started one."""
        row = conn.execute(
            self._get_module_progress,
            {"enrollment_id": enrollment_id, "module_id": module_id},
        ).one_or_none()
        if row is not None:
            return ModuleProgress.from_row(row)
        return ModuleProgress(
            id=module_progress_id(enrollment_id, module_id),
            enrollment_id=enrollment_id,
            module_id=module_id,
            created_at=now,
        )

    def save(self, conn: "Connection", progress: ModuleProgress, now: datetime) -> None:
        """Insert or update the module progress row."""
        progress.updated_at = now
        conn.execute(
            self._upsert_module_progress,
            {
                "id": progress.id,
                "enrollment_id": progress.enrollment_id,
                "module_id": progress.module_id,
                "status": progress.status,
                "started_at": to_iso(progress.started_at),
                "completed_at": to_iso(progress.completed_at),
                "auto_completed": progress.auto_completed,
                "completed_content_count": progress.completed_content_count,
                "total_content_count": progress.total_content_count,
                "content_completion_percentage": progress.content_completion_percentage,
                "now": to_iso(now),
            },
        )

    def _quiz_passed(
        self, conn: "Connection", module_id: str, student_id: str
    ) -> bool:
        """Check for a completed, passed attempt at any of the module's quizzes.

        A quiz that is flagged on the module but missing locally counts as
        not passed.
        """
        row = conn.execute(
            self._has_passed_attempt,
            {
                "module_id": module_id,
                "quiz_type": QuizType.MODULE_QUIZ.value,
                "student_id": student_id,
                "status": QuizAttemptStatus.COMPLETED.value,
            },
        ).first()
        return row is not None
