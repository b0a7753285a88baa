"""Learner progress service layer.

Business logic for:
- Content view and completion (with the completion cascade)
- Explicit module status changes
- Quiz attempts, answers and scoring
- Progress reads and course summaries

Every write runs in one database transaction. Writes that can move a module's
aggregates also hold the per-(enrollment, module) lock for the whole unit.
With an outbox attached, the sync entries for every changed row are written
in that same transaction.
"""

import uuid
from contextlib import nullcontext
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel
from sqlalchemy import text

from offline_learning.core.database import KeyedLock
from offline_learning.core.errors import InvalidInputError, NotFoundError
from offline_learning.core.logging import get_logger
from offline_learning.core.timestamps import Clock, to_iso, utc_now
from offline_learning.sync.models import SyncOperation
from offline_learning.sync.service import operation_for

from .cascade import CascadeResult, CompletionCascadeEngine, completion_percentage
from .models import (
    ContentProgress,
    ModuleProgress,
    ModuleProgressStatus,
    QuizAnswer,
    QuizAttempt,
    QuizAttemptStatus,
    content_progress_id,
)
from .schemas import (
    AttemptScoreResponse,
    ContentCompletionResponse,
    ContentProgressResponse,
    CourseProgressSummary,
    ModuleProgressResponse,
    QuizAnswerResponse,
    QuizAttemptResponse,
    QuizAttemptResultResponse,
    RecordQuizAnswerRequest,
    RecordQuizAttemptRequest,
)


if TYPE_CHECKING:
    from sqlalchemy.engine import Connection

    from offline_learning.catalog.models import ContentBlock, Module, Quiz
    from offline_learning.catalog.store import CatalogStore
    from offline_learning.core.database import Database
    from offline_learning.enrollments.models import Enrollment
    from offline_learning.enrollments.resolver import EnrollmentResolver
    from offline_learning.sync.service import SyncOutbox


logger = get_logger(__name__)


def _require(value: str | None, name: str) -> str:
    if not value or not value.strip():
        raise InvalidInputError(f"{name} is required")
    return value


# ==============================================================================
# Progress Service
# ==============================================================================


class ProgressService:
    """Service for learner progress tracking."""

    def __init__(
        self,
        database: "Database",
        catalog: "CatalogStore",
        enrollments: "EnrollmentResolver",
        cascade: CompletionCascadeEngine | None = None,
        locks: KeyedLock | None = None,
        clock: Clock = utc_now,
        outbox: "SyncOutbox | None" = None,
    ):
        """Initialize with the database and its collaborators."""
        self.database = database
        self.catalog = catalog
        self.enrollments = enrollments
        self.cascade = cascade or CompletionCascadeEngine(catalog, enrollments)
        self.locks = locks or KeyedLock()
        self.clock = clock
        self.outbox = outbox
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Build SQL statements once."""
        # Content Progress
        self._get_content_progress = text("""
            SELECT * FROM content_progress
            WHERE enrollment_id = :enrollment_id AND content_id = :content_id
        """)

        self._list_content_progress = text("""
            SELECT * FROM content_progress
            WHERE enrollment_id = :enrollment_id
            ORDER BY created_at ASC, id ASC
        """)

        # Viewing never touches is_completed or completed_at
        self._upsert_content_viewed = text("""
            INSERT INTO content_progress
            (id, enrollment_id, content_id, is_completed, viewed_at, completed_at,
             created_at, updated_at)
            VALUES (:id, :enrollment_id, :content_id, 0, :now, NULL, :now, :now)
            ON CONFLICT(enrollment_id, content_id) DO UPDATE SET
                viewed_at = excluded.viewed_at,
                updated_at = excluded.updated_at
        """)

        self._upsert_content_completed = text("""
            INSERT INTO content_progress
            (id, enrollment_id, content_id, is_completed, viewed_at, completed_at,
             created_at, updated_at)
            VALUES (:id, :enrollment_id, :content_id, 1, :now, :now, :now, :now)
            ON CONFLICT(enrollment_id, content_id) DO UPDATE SET
                is_completed = 1,
                viewed_at = COALESCE(content_progress.viewed_at, excluded.viewed_at),
                completed_at = excluded.completed_at,
                updated_at = excluded.updated_at
        """)

        # Module Progress
        self._get_module_progress = text("""
            SELECT * FROM module_progress
            WHERE enrollment_id = :enrollment_id AND module_id = :module_id
        """)

        self._list_module_progress = text("""
            SELECT mp.* FROM module_progress mp
            LEFT JOIN modules m ON m.id = mp.module_id
            WHERE mp.enrollment_id = :enrollment_id
            ORDER BY m.order_index ASC, mp.module_id ASC
        """)

        self._course_summary = text("""
            SELECT
                COUNT(*) AS total_modules,
                COALESCE(SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END), 0)
                    AS completed_modules,
                COALESCE(SUM(CASE WHEN status = 'in_progress' THEN 1 ELSE 0 END), 0)
                    AS in_progress_modules,
                COALESCE(SUM(CASE WHEN status = 'not_started' THEN 1 ELSE 0 END), 0)
                    AS not_started_modules
            FROM module_progress
            WHERE enrollment_id = :enrollment_id
        """)

        # Quiz Attempts
        self._get_attempt = text("SELECT * FROM quiz_attempts WHERE id = :attempt_id")

        self._list_attempts = text("""
            SELECT * FROM quiz_attempts
            WHERE quiz_id = :quiz_id AND student_id = :student_id
            ORDER BY attempt_number DESC
        """)

        self._max_attempt_number = text("""
            SELECT MAX(attempt_number) FROM quiz_attempts
            WHERE quiz_id = :quiz_id AND student_id = :student_id
        """)

        self._best_score = text("""
            SELECT MAX(score) FROM quiz_attempts
            WHERE quiz_id = :quiz_id AND student_id = :student_id
              AND status = :status
        """)

        self._upsert_attempt = text("""
            INSERT INTO quiz_attempts
            (id, student_id, quiz_id, attempt_number, status, started_at,
             completed_at, score, passed, time_remaining_seconds,
             created_at, updated_at)
            VALUES (:id, :student_id, :quiz_id, :attempt_number, :status,
                    :started_at, :completed_at, :score, :passed,
                    :time_remaining_seconds, :now, :now)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                completed_at = excluded.completed_at,
                score = excluded.score,
                passed = excluded.passed,
                time_remaining_seconds = excluded.time_remaining_seconds,
                updated_at = excluded.updated_at
        """)

        # Quiz Answers
        self._upsert_answer = text("""
            INSERT INTO quiz_answers
            (id, attempt_id, question_id, selected_option_id, is_correct,
             points_earned, created_at, updated_at)
            VALUES (:id, :attempt_id, :question_id, :selected_option_id,
                    :is_correct, :points_earned, :now, :now)
            ON CONFLICT(attempt_id, question_id) DO UPDATE SET
                selected_option_id = excluded.selected_option_id,
                is_correct = excluded.is_correct,
                points_earned = excluded.points_earned,
                updated_at = excluded.updated_at
        """)

        self._get_answer = text("""
            SELECT * FROM quiz_answers
            WHERE attempt_id = :attempt_id AND question_id = :question_id
        """)

        self._list_answers = text("""
            SELECT qa.* FROM quiz_answers qa
            LEFT JOIN questions q ON q.id = qa.question_id
            WHERE qa.attempt_id = :attempt_id
            ORDER BY q.order_index ASC, qa.created_at ASC
        """)

        self._answer_totals = text("""
            SELECT
                COUNT(*) AS total_questions,
                COALESCE(SUM(CASE WHEN is_correct = 1 THEN 1 ELSE 0 END), 0)
                    AS correct_answers,
                COALESCE(SUM(points_earned), 0.0) AS points_earned
            FROM quiz_answers
            WHERE attempt_id = :attempt_id
        """)

        self._points_possible = text("""
            SELECT COALESCE(SUM(points), 0.0) FROM questions WHERE quiz_id = :quiz_id
        """)

    # ==========================================================================
    # Resolution helpers
    # ==========================================================================

    def _resolve_content(
        self, conn: "Connection", enrollment_id: str, content_id: str
    ) -> tuple["Enrollment", "ContentBlock"]:
        """Check that the content exists and belongs to the enrollment's course."""
        enrollment = self.enrollments.get(conn, enrollment_id)
        content = self.catalog.get_content_block(conn, content_id)
        if content is None:
            raise NotFoundError(f"Content {content_id} not found")
        self._resolve_module(conn, enrollment, content.module_id)
        return enrollment, content

    def _resolve_module(
        self, conn: "Connection", enrollment: "Enrollment", module_id: str
    ) -> "Module":
        module = self.catalog.get_module(conn, module_id)
        if module is None:
            raise NotFoundError(f"Module {module_id} not found")
        if module.course_id != enrollment.course_id:
            raise InvalidInputError(
                f"Module {module_id} does not belong to course {enrollment.course_id}"
            )
        return module

    def _content_module_id(self, enrollment_id: str, content_id: str) -> str:
        """Module owning the content, read ahead of the write lock."""
        with self.database.connect() as conn:
            _, content = self._resolve_content(conn, enrollment_id, content_id)
        return content.module_id

    def _quiz_cascade_key(self, quiz_id: str, student_id: str) -> tuple[str, str] | None:
        """(enrollment, module) a module quiz feeds into, None for final exams."""
        with self.database.connect() as conn:
            quiz = self._get_quiz_or_raise(conn, quiz_id)
            if not quiz.is_module_quiz:
                return None
            module = self.catalog.get_module(conn, quiz.module_id)
            if module is None:
                raise NotFoundError(f"Module {quiz.module_id} not found")
            enrollment_id = self.enrollments.resolve(conn, module.course_id, student_id)
        return enrollment_id, module.id

    def _get_quiz_or_raise(self, conn: "Connection", quiz_id: str) -> "Quiz":
        quiz = self.catalog.get_quiz(conn, quiz_id)
        if quiz is None:
            raise NotFoundError(f"Quiz {quiz_id} not found")
        return quiz

    def _load_attempt(self, conn: "Connection", attempt_id: str) -> QuizAttempt:
        row = conn.execute(self._get_attempt, {"attempt_id": attempt_id}).one_or_none()
        if row is None:
            raise NotFoundError(f"Quiz attempt {attempt_id} not found")
        return QuizAttempt.from_row(row)

    def _load_content_progress(
        self, conn: "Connection", enrollment_id: str, content_id: str
    ) -> ContentProgress:
        row = conn.execute(
            self._get_content_progress,
            {"enrollment_id": enrollment_id, "content_id": content_id},
        ).one()
        return ContentProgress.from_row(row)

    # ==========================================================================
    # Outbox feed
    # ==========================================================================

    def _queue(
        self, conn: "Connection", table_name: str, record_id: str, response: BaseModel
    ) -> None:
        if self.outbox is None:
            return
        self.outbox.enqueue(
            operation_for(response),
            table_name,
            record_id,
            response.model_dump(mode="json"),
            conn=conn,
        )

    def _queue_cascade(self, conn: "Connection", module: ModuleProgressResponse) -> None:
        """Queue the module row and the enrollment the cascade touched."""
        if self.outbox is None:
            return
        self._queue(conn, "module_progress", module.id, module)
        enrollment = self.enrollments.get(conn, module.enrollment_id)
        self.outbox.enqueue(
            SyncOperation.UPDATE,
            "enrollments",
            enrollment.id,
            enrollment.to_dict(),
            conn=conn,
        )

    # ==========================================================================
    # Content Progress Operations
    # ==========================================================================

    def record_content_viewed(
        self, enrollment_id: str, content_id: str
    ) -> ContentProgressResponse:
        """Record that the learner opened a content block.

        A prior completion is preserved; only ``viewed_at`` and
        ``updated_at`` move.

        Raises:
            NotFoundError: If enrollment, content or module is missing.
            InvalidInputError: If the content is outside the enrollment's course.
        """
        _require(enrollment_id, "enrollment_id")
        _require(content_id, "content_id")
        now = self.clock()

        with self.database.transaction() as conn:
            self._resolve_content(conn, enrollment_id, content_id)
            conn.execute(
                self._upsert_content_viewed,
                {
                    "id": content_progress_id(enrollment_id, content_id),
                    "enrollment_id": enrollment_id,
                    "content_id": content_id,
                    "now": to_iso(now),
                },
            )
            progress = self._load_content_progress(conn, enrollment_id, content_id)
            response = ContentProgressResponse.from_entity(progress)
            self._queue(conn, "content_progress", response.id, response)

        logger.debug(
            "content_viewed",
            enrollment_id=enrollment_id,
            content_id=content_id,
            is_completed=progress.is_completed,
        )
        return response

    def record_content_completed(
        self, enrollment_id: str, content_id: str
    ) -> ContentCompletionResponse:
        """Mark a content block completed and run the completion cascade.

        Idempotent: repeating the call refreshes ``completed_at`` but never
        clears the completion. The content write, the module recomputation
        and the enrollment bump share one transaction.

        Raises:
            NotFoundError: If enrollment, content or module is missing.
            InvalidInputError: If the content is outside the enrollment's course.
        """
        _require(enrollment_id, "enrollment_id")
        _require(content_id, "content_id")
        module_id = self._content_module_id(enrollment_id, content_id)

        with self.locks.hold((enrollment_id, module_id)):
            now = self.clock()
            with self.database.transaction() as conn:
                self._resolve_content(conn, enrollment_id, content_id)
                conn.execute(
                    self._upsert_content_completed,
                    {
                        "id": content_progress_id(enrollment_id, content_id),
                        "enrollment_id": enrollment_id,
                        "content_id": content_id,
                        "now": to_iso(now),
                    },
                )
                result = self.cascade.evaluate(conn, enrollment_id, module_id, now)
                progress = self._load_content_progress(conn, enrollment_id, content_id)
                response = ContentCompletionResponse(
                    content=ContentProgressResponse.from_entity(progress),
                    module=ModuleProgressResponse.from_entity(result.progress),
                    module_auto_completed=result.auto_completed,
                )
                self._queue(
                    conn, "content_progress", response.content.id, response.content
                )
                self._queue_cascade(conn, response.module)

        logger.info(
            "content_completed",
            enrollment_id=enrollment_id,
            content_id=content_id,
            module_id=module_id,
            module_status=result.progress.status,
            percentage=result.progress.content_completion_percentage,
        )
        return response

    def get_content_progress(
        self, enrollment_id: str, content_id: str
    ) -> ContentProgressResponse:
        """Get progress on one content block.

        Raises:
            NotFoundError: If the content was never viewed or completed.
        """
        with self.database.connect() as conn:
            row = conn.execute(
                self._get_content_progress,
                {"enrollment_id": enrollment_id, "content_id": content_id},
            ).one_or_none()
        if row is None:
            raise NotFoundError(f"No progress for content {content_id}")
        return ContentProgressResponse.from_entity(ContentProgress.from_row(row))

    def list_content_progress(self, enrollment_id: str) -> list[ContentProgressResponse]:
        """List content progress rows for an enrollment."""
        with self.database.connect() as conn:
            rows = conn.execute(
                self._list_content_progress, {"enrollment_id": enrollment_id}
            ).all()
        return [
            ContentProgressResponse.from_entity(ContentProgress.from_row(row))
            for row in rows
        ]

    # ==========================================================================
    # Module Progress Operations
    # ==========================================================================

    def record_module_status(
        self,
        enrollment_id: str,
        module_id: str,
        status: ModuleProgressStatus,
        allow_regression: bool = False,
    ) -> ModuleProgressResponse:
        """Set a module's status explicitly.

        Forward moves are always accepted. Moving backwards is an override
        and must be requested with ``allow_regression``.

        Raises:
            NotFoundError: If enrollment or module is missing.
            InvalidInputError: On an unrequested regression or a module
                outside the enrollment's course.
        """
        _require(enrollment_id, "enrollment_id")
        _require(module_id, "module_id")
        status = ModuleProgressStatus(status)

        with self.locks.hold((enrollment_id, module_id)):
            now = self.clock()
            with self.database.transaction() as conn:
                enrollment = self.enrollments.get(conn, enrollment_id)
                self._resolve_module(conn, enrollment, module_id)

                progress = self.cascade.load(conn, enrollment_id, module_id, now)
                current = ModuleProgressStatus(progress.status)
                if status.rank < current.rank and not allow_regression:
                    raise InvalidInputError(
                        f"Module status cannot move from {current.value} to {status.value}"
                    )

                completed, total = self.cascade.tally(conn, enrollment_id, module_id)
                progress.completed_content_count = completed
                progress.total_content_count = total
                progress.content_completion_percentage = completion_percentage(
                    completed, total
                )

                if status != current:
                    progress.status = status.value
                    if status == ModuleProgressStatus.NOT_STARTED:
                        progress.started_at = None
                        progress.completed_at = None
                        progress.auto_completed = False
                    elif status == ModuleProgressStatus.IN_PROGRESS:
                        progress.started_at = progress.started_at or now
                        progress.completed_at = None
                        progress.auto_completed = False
                    else:
                        progress.started_at = progress.started_at or now
                        progress.completed_at = now
                        progress.auto_completed = False

                self.cascade.save(conn, progress, now)
                self.enrollments.touch(conn, enrollment_id, now)
                response = ModuleProgressResponse.from_entity(progress)
                self._queue_cascade(conn, response)

        logger.info(
            "module_status_recorded",
            enrollment_id=enrollment_id,
            module_id=module_id,
            previous_status=current.value,
            status=status.value,
            regression=status.rank < current.rank,
        )
        return response

    def get_module_progress(
        self, enrollment_id: str, module_id: str
    ) -> ModuleProgressResponse:
        """Get progress for one module.

        Raises:
            NotFoundError: If no progress exists for the module.
        """
        with self.database.connect() as conn:
            row = conn.execute(
                self._get_module_progress,
                {"enrollment_id": enrollment_id, "module_id": module_id},
            ).one_or_none()
        if row is None:
            raise NotFoundError(f"No progress for module {module_id}")
        return ModuleProgressResponse.from_entity(ModuleProgress.from_row(row))

    def list_module_progress(self, enrollment_id: str) -> list[ModuleProgressResponse]:
        """List module progress for an enrollment, in module order."""
        with self.database.connect() as conn:
            rows = conn.execute(
                self._list_module_progress, {"enrollment_id": enrollment_id}
            ).all()
        return [ModuleProgressResponse.from_entity(ModuleProgress.from_row(r)) for r in rows]

    def get_course_progress_summary(self, enrollment_id: str) -> CourseProgressSummary:
        """Count modules per status for an enrollment."""
        with self.database.connect() as conn:
            self.enrollments.get(conn, enrollment_id)
            row = conn.execute(
                self._course_summary, {"enrollment_id": enrollment_id}
            ).one()

        percentage = 0.0
        if row.total_modules:
            percentage = round(row.completed_modules / row.total_modules * 100, 2)

        return CourseProgressSummary(
            enrollment_id=enrollment_id,
            total_modules=row.total_modules,
            completed_modules=row.completed_modules,
            in_progress_modules=row.in_progress_modules,
            not_started_modules=row.not_started_modules,
            completion_percentage=percentage,
        )

    # ==========================================================================
    # Quiz Attempt Operations
    # ==========================================================================

    def record_quiz_attempt(
        self, request: RecordQuizAttemptRequest
    ) -> QuizAttemptResultResponse:
        """Insert or update a quiz attempt.

        When the attempt is completed and belongs to a module quiz, the
        completion cascade re-evaluates that module in the same transaction,
        so passing the quiz can complete an otherwise finished module.

        Raises:
            NotFoundError: If the quiz, its module or the enrollment is missing.
            InvalidInputError: If ``attempt_number`` does not increase.
        """
        cascade_key = None
        if request.status == QuizAttemptStatus.COMPLETED:
            cascade_key = self._quiz_cascade_key(request.quiz_id, request.student_id)

        lock = self.locks.hold(cascade_key) if cascade_key else nullcontext()
        with lock:
            now = self.clock()
            with self.database.transaction() as conn:
                attempt = self._write_attempt(conn, request, now)
                result = None
                if cascade_key is not None:
                    enrollment_id, module_id = cascade_key
                    result = self.cascade.evaluate(conn, enrollment_id, module_id, now)
                response = self._attempt_result(attempt, result)
                self._queue(conn, "quiz_attempts", response.attempt.id, response.attempt)
                if response.module is not None:
                    self._queue_cascade(conn, response.module)

        logger.info(
            "quiz_attempt_recorded",
            attempt_id=attempt.id,
            quiz_id=attempt.quiz_id,
            attempt_number=attempt.attempt_number,
            status=attempt.status,
            passed=attempt.passed,
        )
        return response

    def _write_attempt(
        self, conn: "Connection", request: RecordQuizAttemptRequest, now: datetime
    ) -> QuizAttempt:
        self._get_quiz_or_raise(conn, request.quiz_id)

        existing = None
        if request.id:
            row = conn.execute(self._get_attempt, {"attempt_id": request.id}).one_or_none()
            existing = QuizAttempt.from_row(row) if row else None

        if existing is not None:
            if (existing.student_id, existing.quiz_id) != (
                request.student_id,
                request.quiz_id,
            ):
                raise InvalidInputError(
                    f"Attempt {existing.id} belongs to another student or quiz"
                )
            if request.attempt_number not in (None, existing.attempt_number):
                raise InvalidInputError("attempt_number cannot change")
            attempt_number = existing.attempt_number
            started_at = existing.started_at
        else:
            highest = conn.execute(
                self._max_attempt_number,
                {"quiz_id": request.quiz_id, "student_id": request.student_id},
            ).scalar_one()
            highest = highest or 0
            attempt_number = request.attempt_number or highest + 1
            if attempt_number <= highest:
                raise InvalidInputError(
                    f"attempt_number must be greater than {highest}"
                )
            started_at = request.started_at or now

        completed_at = request.completed_at
        if request.status == QuizAttemptStatus.COMPLETED and completed_at is None:
            completed_at = now

        attempt_id = request.id or str(uuid.uuid4())
        conn.execute(
            self._upsert_attempt,
            {
                "id": attempt_id,
                "student_id": request.student_id,
                "quiz_id": request.quiz_id,
                "attempt_number": attempt_number,
                "status": request.status.value,
                "started_at": to_iso(started_at),
                "completed_at": to_iso(completed_at),
                "score": request.score,
                "passed": request.passed,
                "time_remaining_seconds": request.time_remaining_seconds,
                "now": to_iso(now),
            },
        )
        return self._load_attempt(conn, attempt_id)

    @staticmethod
    def _attempt_result(
        attempt: QuizAttempt, result: CascadeResult | None
    ) -> QuizAttemptResultResponse:
        if result is None:
            return QuizAttemptResultResponse(
                attempt=QuizAttemptResponse.from_entity(attempt)
            )
        return QuizAttemptResultResponse(
            attempt=QuizAttemptResponse.from_entity(attempt),
            module=ModuleProgressResponse.from_entity(result.progress),
            module_auto_completed=result.auto_completed,
        )

    def complete_quiz_attempt(
        self, attempt_id: str, score: float, passed: bool
    ) -> QuizAttemptResultResponse:
        """Submit an attempt with its final score.

        Raises:
            NotFoundError: If the attempt does not exist.
        """
        attempt = self.get_quiz_attempt(attempt_id)
        return self.record_quiz_attempt(
            RecordQuizAttemptRequest(
                id=attempt.id,
                student_id=attempt.student_id,
                quiz_id=attempt.quiz_id,
                status=QuizAttemptStatus.COMPLETED,
                score=score,
                passed=passed,
                time_remaining_seconds=attempt.time_remaining_seconds,
            )
        )

    def update_quiz_attempt_status(
        self, attempt_id: str, status: QuizAttemptStatus
    ) -> QuizAttemptResultResponse:
        """Change an attempt's status, keeping its score and result."""
        attempt = self.get_quiz_attempt(attempt_id)
        status = QuizAttemptStatus(status)
        return self.record_quiz_attempt(
            RecordQuizAttemptRequest(
                id=attempt.id,
                student_id=attempt.student_id,
                quiz_id=attempt.quiz_id,
                status=status,
                completed_at=(
                    attempt.completed_at
                    if status == QuizAttemptStatus.COMPLETED
                    else None
                ),
                score=attempt.score,
                passed=attempt.passed,
                time_remaining_seconds=attempt.time_remaining_seconds,
            )
        )

    def get_quiz_attempt(self, attempt_id: str) -> QuizAttemptResponse:
        """Get attempt by id.

        Raises:
            NotFoundError: If the attempt does not exist.
        """
        with self.database.connect() as conn:
            attempt = self._load_attempt(conn, attempt_id)
        return QuizAttemptResponse.from_entity(attempt)

    def list_quiz_attempts(
        self, quiz_id: str, student_id: str
    ) -> list[QuizAttemptResponse]:
        """List a student's attempts at a quiz, newest attempt first."""
        with self.database.connect() as conn:
            rows = conn.execute(
                self._list_attempts, {"quiz_id": quiz_id, "student_id": student_id}
            ).all()
        return [QuizAttemptResponse.from_entity(QuizAttempt.from_row(r)) for r in rows]

    def get_best_quiz_score(self, quiz_id: str, student_id: str) -> float | None:
        """Highest score over completed attempts, None if there are none."""
        with self.database.connect() as conn:
            return conn.execute(
                self._best_score,
                {
                    "quiz_id": quiz_id,
                    "student_id": student_id,
                    "status": QuizAttemptStatus.COMPLETED.value,
                },
            ).scalar_one()

    # ==========================================================================
    # Quiz Answer Operations
    # ==========================================================================

    def record_quiz_answer(self, request: RecordQuizAnswerRequest) -> QuizAnswerResponse:
        """Insert or update the answer to one question of an attempt.

        Raises:
            NotFoundError: If the attempt does not exist.
            ConstraintViolationError: If the question does not exist.
        """
        now = self.clock()
        with self.database.transaction() as conn:
            self._load_attempt(conn, request.attempt_id)
            conn.execute(
                self._upsert_answer,
                {
                    "id": request.id or str(uuid.uuid4()),
                    "attempt_id": request.attempt_id,
                    "question_id": request.question_id,
                    "selected_option_id": request.selected_option_id,
                    "is_correct": request.is_correct,
                    "points_earned": request.points_earned,
                    "now": to_iso(now),
                },
            )
            row = conn.execute(
                self._get_answer,
                {"attempt_id": request.attempt_id, "question_id": request.question_id},
            ).one()
            answer = QuizAnswer.from_row(row)
            response = QuizAnswerResponse.from_entity(answer)
            self._queue(conn, "quiz_answers", response.id, response)

        logger.debug(
            "quiz_answer_recorded",
            attempt_id=answer.attempt_id,
            question_id=answer.question_id,
            is_correct=answer.is_correct,
        )
        return response

    def list_attempt_answers(self, attempt_id: str) -> list[QuizAnswerResponse]:
        """List answers of an attempt in question order."""
        with self.database.connect() as conn:
            rows = conn.execute(self._list_answers, {"attempt_id": attempt_id}).all()
        return [QuizAnswerResponse.from_entity(QuizAnswer.from_row(r)) for r in rows]

    def calculate_attempt_score(self, attempt_id: str) -> AttemptScoreResponse:
        """Score an attempt from its stored answers.

        Raises:
            NotFoundError: If the attempt does not exist.
        """
        with self.database.connect() as conn:
            attempt = self._load_attempt(conn, attempt_id)
            totals = conn.execute(self._answer_totals, {"attempt_id": attempt_id}).one()
            possible = conn.execute(
                self._points_possible, {"quiz_id": attempt.quiz_id}
            ).scalar_one()

        percentage = 0.0
        if possible:
            percentage = round(totals.points_earned / possible * 100, 2)

        return AttemptScoreResponse(
            attempt_id=attempt_id,
            total_questions=totals.total_questions,
            correct_answers=totals.correct_answers,
            points_earned=totals.points_earned,
            points_possible=possible,
            percentage=percentage,
        )
