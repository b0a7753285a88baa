"""Identity/Enrollment Resolver collaborator.

Maps a (student, course) pair to its enrollment. The read methods take the
caller's open connection so they run inside the caller's transaction.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import text

from offline_learning.core.errors import NotFoundError
from offline_learning.core.logging import get_logger
from offline_learning.core.timestamps import Clock, to_iso, utc_now

from .models import Enrollment, EnrollmentStatus


if TYPE_CHECKING:
    from sqlalchemy.engine import Connection

    from offline_learning.core.database import Database


logger = get_logger(__name__)


class EnrollmentResolver:
    """Enrollment lookups backed by the local enrollments table."""

    def __init__(self, database: "Database", clock: Clock = utc_now):
        self.database = database
        self.clock = clock
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Build SQL statements once."""
        self._get_enrollment = text(
            "SELECT * FROM enrollments WHERE id = :enrollment_id"
        )

        self._get_by_student_course = text("""
            SELECT * FROM enrollments
            WHERE course_id = :course_id AND student_id = :student_id
        """)

        self._insert_enrollment = text("""
            INSERT INTO enrollments
            (id, student_id, course_id, status, enrolled_at, completed_at,
             created_at, updated_at)
            VALUES (:id, :student_id, :course_id, :status, :now, NULL, :now, :now)
        """)

        self._touch_enrollment = text("""
            UPDATE enrollments SET updated_at = :now WHERE id = :enrollment_id
        """)

    def enroll(
        self,
        student_id: str,
        course_id: str,
        enrollment_id: str | None = None,
    ) -> Enrollment:
        """Create an enrollment for the student.

        Raises:
            ConstraintViolationError: If the student is already enrolled or
                the course does not exist locally.
        """
        enrollment_id = enrollment_id or str(uuid.uuid4())
        with self.database.transaction() as conn:
            conn.execute(
                self._insert_enrollment,
                {
                    "id": enrollment_id,
                    "student_id": student_id,
                    "course_id": course_id,
                    "status": EnrollmentStatus.ACTIVE.value,
                    "now": to_iso(self.clock()),
                },
            )
            enrollment = self.get(conn, enrollment_id)

        logger.info(
            "student_enrolled",
            enrollment_id=enrollment_id,
            student_id=student_id,
            course_id=course_id,
        )
        return enrollment

    def resolve(self, conn: "Connection", course_id: str, student_id: str) -> str:
        """Resolve the enrollment id for a student in a course.

        Raises:
            NotFoundError: If the student is not enrolled.
        """
        row = conn.execute(
            self._get_by_student_course,
            {"course_id": course_id, "student_id": student_id},
        ).one_or_none()
        if row is None:
            raise NotFoundError(
                f"Student {student_id} is not enrolled in course {course_id}"
            )
        return row.id

    def get(self, conn: "Connection", enrollment_id: str) -> Enrollment:
        """Get enrollment by id.

        Raises:
            NotFoundError: If the enrollment does not exist.
        """
        row = conn.execute(
            self._get_enrollment, {"enrollment_id": enrollment_id}
        ).one_or_none()
        if row is None:
            raise NotFoundError(f"Enrollment {enrollment_id} not found")
        return Enrollment.from_row(row)

    def touch(self, conn: "Connection", enrollment_id: str, now: datetime) -> None:
        """Bump the enrollment's last-activity timestamp."""
        result = conn.execute(
            self._touch_enrollment,
            {"enrollment_id": enrollment_id, "now": to_iso(now)},
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Enrollment {enrollment_id} not found")
