"""Database models for learner progress tracking.

SQLite table definitions for:
- Content progress: viewed/completed flags per content block
- Module progress: aggregated progress per module (maintained by the cascade)
- Quiz attempts and answers

All rows hang off an enrollment; quiz attempts are keyed by student because a
quiz can be retaken independently of the enrollment that unlocked it.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from offline_learning.core.timestamps import from_iso


class ModuleProgressStatus(str, Enum):
    """Module progress status.

    Transitions are monotonic (not_started -> in_progress -> completed)
    unless an explicit override allows regression.
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        """Position in the forward progression."""
        return _STATUS_RANK[self]


_STATUS_RANK = {
    ModuleProgressStatus.NOT_STARTED: 0,
    ModuleProgressStatus.IN_PROGRESS: 1,
    ModuleProgressStatus.COMPLETED: 2,
}


class QuizAttemptStatus(str, Enum):
    """Quiz attempt status."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


def content_progress_id(enrollment_id: str, content_id: str) -> str:
    """Deterministic id for a content progress row."""
    return f"cp_{enrollment_id}_{content_id}"


# ==============================================================================
# SQL Table Definitions
# ==============================================================================

# Aggregate cache per (enrollment, module), rewritten by the cascade
MODULE_PROGRESS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS module_progress (
    id TEXT PRIMARY KEY,
    enrollment_id TEXT NOT NULL,
    module_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'not_started'
        CHECK(status IN ('not_started', 'in_progress', 'completed')),
    started_at TEXT,
    completed_at TEXT,
    auto_completed BOOLEAN NOT NULL DEFAULT 0,
    completed_content_count INTEGER NOT NULL DEFAULT 0,
    total_content_count INTEGER NOT NULL DEFAULT 0,
    content_completion_percentage INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (enrollment_id) REFERENCES enrollments(id) ON DELETE CASCADE,
    FOREIGN KEY (module_id) REFERENCES modules(id) ON DELETE CASCADE,
    UNIQUE(enrollment_id, module_id),
    CHECK(completed_content_count <= total_content_count)
)
"""

CONTENT_PROGRESS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS content_progress (
    id TEXT PRIMARY KEY,
    enrollment_id TEXT NOT NULL,
    content_id TEXT NOT NULL,
    is_completed BOOLEAN NOT NULL DEFAULT 0,
    viewed_at TEXT,
    completed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (enrollment_id) REFERENCES enrollments(id) ON DELETE CASCADE,
    FOREIGN KEY (content_id) REFERENCES content_blocks(id) ON DELETE CASCADE,
    UNIQUE(enrollment_id, content_id)
)
"""

QUIZ_ATTEMPTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS quiz_attempts (
    id TEXT PRIMARY KEY,
    student_id TEXT NOT NULL,
    quiz_id TEXT NOT NULL,
    attempt_number INTEGER NOT NULL DEFAULT 1,
    status TEXT NOT NULL DEFAULT 'in_progress'
        CHECK(status IN ('in_progress', 'completed', 'abandoned')),
    started_at TEXT NOT NULL,
    completed_at TEXT,
    score REAL,
    passed BOOLEAN,
    time_remaining_seconds INTEGER,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (quiz_id) REFERENCES quizzes(id) ON DELETE CASCADE,
    UNIQUE(student_id, quiz_id, attempt_number)
)
"""

QUIZ_ANSWERS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS quiz_answers (
    id TEXT PRIMARY KEY,
    attempt_id TEXT NOT NULL,
    question_id TEXT NOT NULL,
    selected_option_id TEXT,
    is_correct BOOLEAN NOT NULL DEFAULT 0,
    points_earned REAL NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (attempt_id) REFERENCES quiz_attempts(id) ON DELETE CASCADE,
    FOREIGN KEY (question_id) REFERENCES questions(id) ON DELETE CASCADE,
    UNIQUE(attempt_id, question_id)
)
"""

CONTENT_PROGRESS_BY_ENROLLMENT_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_content_progress_enrollment
ON content_progress (enrollment_id, is_completed)
"""

QUIZ_ATTEMPTS_BY_STUDENT_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_quiz_attempts_student_quiz
ON quiz_attempts (student_id, quiz_id, status)
"""

PROGRESS_TABLES_SQL = [
    MODULE_PROGRESS_TABLE_SQL,
    CONTENT_PROGRESS_TABLE_SQL,
    QUIZ_ATTEMPTS_TABLE_SQL,
    QUIZ_ANSWERS_TABLE_SQL,
    CONTENT_PROGRESS_BY_ENROLLMENT_INDEX_SQL,
    QUIZ_ATTEMPTS_BY_STUDENT_INDEX_SQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class ContentProgress:
    """Progress on a single content block for an enrollment.

    Attributes:
        id: Row id (cp_<enrollment>_<content>)
        enrollment_id: Owning enrollment
        content_id: Content block id
        is_completed: Completion flag, never reset once true
        viewed_at: Last view timestamp
        completed_at: Last completion timestamp
    """

    def __init__(
        self,
        id: str,
        enrollment_id: str,
        content_id: str,
        is_completed: bool = False,
        viewed_at: datetime | None = None,
        completed_at: datetime | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id
        self.enrollment_id = enrollment_id
        self.content_id = content_id
        self.is_completed = is_completed
        self.viewed_at = viewed_at
        self.completed_at = completed_at
        self.created_at = created_at
        self.updated_at = updated_at

    @classmethod
    def from_row(cls, row: Any) -> "ContentProgress":
        """Create ContentProgress instance from a database row."""
        return cls(
            id=row.id,
            enrollment_id=row.enrollment_id,
            content_id=row.content_id,
            is_completed=bool(row.is_completed),
            viewed_at=from_iso(row.viewed_at),
            completed_at=from_iso(row.completed_at),
            created_at=from_iso(row.created_at),
            updated_at=from_iso(row.updated_at),
        )

    def __repr__(self) -> str:
        return f"<ContentProgress {self.content_id} completed={self.is_completed}>"


class ModuleProgress:
    """Aggregated progress for a module within an enrollment.

    Attributes:
        id: Row id
        enrollment_id: Owning enrollment
        module_id: Module id
        status: not_started, in_progress or completed
        started_at: First time any content was completed
        completed_at: Completion timestamp
        auto_completed: True when the cascade completed the module
        completed_content_count: Completed content blocks
        total_content_count: Content blocks in the module
        content_completion_percentage: 0-100, rounded half up
    """

    def __init__(
        self,
        id: str,
        enrollment_id: str,
        module_id: str,
        status: str = ModuleProgressStatus.NOT_STARTED.value,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        auto_completed: bool = False,
        completed_content_count: int = 0,
        total_content_count: int = 0,
        content_completion_percentage: int = 0,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id
        self.enrollment_id = enrollment_id
        self.module_id = module_id
        self.status = status
        self.started_at = started_at
        self.completed_at = completed_at
        self.auto_completed = auto_completed
        self.completed_content_count = completed_content_count
        self.total_content_count = total_content_count
        self.content_completion_percentage = content_completion_percentage
        self.created_at = created_at
        self.updated_at = updated_at

    @property
    def is_completed(self) -> bool:
        """Check if module is completed."""
        return self.status == ModuleProgressStatus.COMPLETED.value

    @classmethod
    def from_row(cls, row: Any) -> "ModuleProgress":
        """Create ModuleProgress instance from a database row."""
        return cls(
            id=row.id,
            enrollment_id=row.enrollment_id,
            module_id=row.module_id,
            status=row.status,
            started_at=from_iso(row.started_at),
            completed_at=from_iso(row.completed_at),
            auto_completed=bool(row.auto_completed),
            completed_content_count=row.completed_content_count or 0,
            total_content_count=row.total_content_count or 0,
            content_completion_percentage=row.content_completion_percentage or 0,
            created_at=from_iso(row.created_at),
            updated_at=from_iso(row.updated_at),
        )

    def __repr__(self) -> str:
        return (
            f"<ModuleProgress {self.module_id} {self.status} "
            f"{self.completed_content_count}/{self.total_content_count}>"
        )


class QuizAttempt:
    """One attempt by a student at a quiz."""

    def __init__(
        self,
        id: str,
        student_id: str,
        quiz_id: str,
        attempt_number: int = 1,
        status: str = QuizAttemptStatus.IN_PROGRESS.value,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        score: float | None = None,
        passed: bool | None = None,
        time_remaining_seconds: int | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id
        self.student_id = student_id
        self.quiz_id = quiz_id
        self.attempt_number = attempt_number
        self.status = status
        self.started_at = started_at
        self.completed_at = completed_at
        self.score = score
        self.passed = passed
        self.time_remaining_seconds = time_remaining_seconds
        self.created_at = created_at
        self.updated_at = updated_at

    @property
    def is_completed(self) -> bool:
        """Check if attempt was submitted."""
        return self.status == QuizAttemptStatus.COMPLETED.value

    @classmethod
    def from_row(cls, row: Any) -> "QuizAttempt":
        """Create QuizAttempt instance from a database row."""
        return cls(
            id=row.id,
            student_id=row.student_id,
            quiz_id=row.quiz_id,
            attempt_number=row.attempt_number,
            status=row.status,
            started_at=from_iso(row.started_at),
            completed_at=from_iso(row.completed_at),
            score=row.score,
            passed=None if row.passed is None else bool(row.passed),
            time_remaining_seconds=row.time_remaining_seconds,
            created_at=from_iso(row.created_at),
            updated_at=from_iso(row.updated_at),
        )

    def __repr__(self) -> str:
        return f"<QuizAttempt {self.id} #{self.attempt_number} {self.status}>"


class QuizAnswer:
    """Answer to one question within an attempt."""

    def __init__(
        self,
        id: str,
        attempt_id: str,
        question_id: str,
        selected_option_id: str | None = None,
        is_correct: bool = False,
        points_earned: float = 0.0,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id
        self.attempt_id = attempt_id
        self.question_id = question_id
        self.selected_option_id = selected_option_id
        self.is_correct = is_correct
        self.points_earned = points_earned
        self.created_at = created_at
        self.updated_at = updated_at

    @classmethod
    def from_row(cls, row: Any) -> "QuizAnswer":
        """Create QuizAnswer instance from a database row."""
        return cls(
            id=row.id,
            attempt_id=row.attempt_id,
            question_id=row.question_id,
            selected_option_id=row.selected_option_id,
            is_correct=bool(row.is_correct),
            points_earned=row.points_earned or 0.0,
            created_at=from_iso(row.created_at),
            updated_at=from_iso(row.updated_at),
        )

    def __repr__(self) -> str:
        return f"<QuizAnswer {self.question_id} correct={self.is_correct}>"
