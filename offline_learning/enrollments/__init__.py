"""Identity/Enrollment Resolver collaborator."""

from .models import ENROLLMENT_TABLES_SQL, Enrollment, EnrollmentStatus


__all__ = [
    "ENROLLMENT_TABLES_SQL",
    "Enrollment",
    "EnrollmentStatus",
]
