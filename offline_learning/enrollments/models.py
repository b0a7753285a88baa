"""Database models for course enrollments.

An enrollment binds a student to a course and is the root of every progress
row. Enrollments are created by the host application; the progress core only
refreshes ``updated_at`` as a "last activity" signal.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from offline_learning.core.timestamps import from_iso


class EnrollmentStatus(str, Enum):
    """Course enrollment status."""

    ACTIVE = "active"
    COMPLETED = "completed"
    DROPPED = "dropped"


# ==============================================================================
# SQL Table Definitions
# ==============================================================================

ENROLLMENTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS enrollments (
    id TEXT PRIMARY KEY,
    student_id TEXT NOT NULL,
    course_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active'
        CHECK(status IN ('active', 'completed', 'dropped')),
    enrolled_at TEXT NOT NULL,
    completed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (course_id) REFERENCES courses(id) ON DELETE CASCADE,
    UNIQUE(student_id, course_id)
)
"""

# Lookup by course for resolve()
ENROLLMENTS_BY_COURSE_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_enrollments_course
ON enrollments (course_id, student_id)
"""

ENROLLMENT_TABLES_SQL = [
    ENROLLMENTS_TABLE_SQL,
    ENROLLMENTS_BY_COURSE_INDEX_SQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Enrollment:
    """Course enrollment entity.

    Attributes:
        id: Enrollment id
        student_id: Student id
        course_id: Course id
        status: Enrollment status (active, completed, dropped)
        enrolled_at: Enrollment timestamp
        completed_at: Course completion timestamp
        created_at: Row creation timestamp
        updated_at: Last learner activity
    """

    def __init__(
        self,
        id: str,
        student_id: str,
        course_id: str,
        status: str = EnrollmentStatus.ACTIVE.value,
        enrolled_at: datetime | None = None,
        completed_at: datetime | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id
        self.student_id = student_id
        self.course_id = course_id
        self.status = status
        self.enrolled_at = enrolled_at
        self.completed_at = completed_at
        self.created_at = created_at
        self.updated_at = updated_at

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment instance from a database row."""
        return cls(
            id=row.id,
            student_id=row.student_id,
            course_id=row.course_id,
            status=row.status,
            enrolled_at=from_iso(row.enrolled_at),
            completed_at=from_iso(row.completed_at),
            created_at=from_iso(row.created_at),
            updated_at=from_iso(row.updated_at),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "student_id": self.student_id,
            "course_id": self.course_id,
            "status": self.status,
            "enrolled_at": self.enrolled_at.isoformat() if self.enrolled_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Enrollment {self.id} student={self.student_id} course={self.course_id}>"
