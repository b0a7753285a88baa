"""Operation context management using contextvars.

Every store operation can run inside an ``OperationContext`` that carries an
operation id plus the learner identifiers it concerns. The logging processors
read these values so each log line is scoped to the operation that emitted it,
without threading the identifiers through every call.
"""

from contextvars import ContextVar
from typing import Any
from uuid import uuid4


operation_id_var: ContextVar[str] = ContextVar("operation_id", default="")
student_id_var: ContextVar[str | None] = ContextVar("student_id", default=None)
enrollment_id_var: ContextVar[str | None] = ContextVar("enrollment_id", default=None)


def generate_operation_id() -> str:
    """Generate a new unique operation ID."""
    return str(uuid4())


def get_operation_id() -> str:
    """Get the current operation ID."""
    return operation_id_var.get()


def set_operation_id(operation_id: str | None = None) -> str:
    """Set the operation ID for the current context.

    Args:
        operation_id: Optional operation ID. If not provided, generates a new one.

    Returns:
        The operation ID that was set.
    """
    oid = operation_id or generate_operation_id()
    operation_id_var.set(oid)
    return oid


def get_student_id() -> str | None:
    """Get the current student ID."""
    return student_id_var.get()


def set_student_id(student_id: str | None) -> None:
    """Set the student ID for the current context."""
    student_id_var.set(student_id)


def get_enrollment_id() -> str | None:
    """Get the current enrollment ID."""
    return enrollment_id_var.get()


def set_enrollment_id(enrollment_id: str | None) -> None:
    """Set the enrollment ID for the current context."""
    enrollment_id_var.set(enrollment_id)


def get_context() -> dict[str, Any]:
    """Get all context variables as a dictionary.

    Returns:
        Dictionary with whichever of operation_id, student_id and
        enrollment_id are set.
    """
    context: dict[str, Any] = {}

    operation_id = get_operation_id()
    if operation_id:
        context["operation_id"] = operation_id

    student_id = get_student_id()
    if student_id:
        context["student_id"] = student_id

    enrollment_id = get_enrollment_id()
    if enrollment_id:
        context["enrollment_id"] = enrollment_id

    return context


def clear_context() -> None:
    """Clear all context variables."""
    operation_id_var.set("")
    student_id_var.set(None)
    enrollment_id_var.set(None)


class OperationContext:
    """Context manager for a single store operation.

    Usage:
        with OperationContext(enrollment_id="enr-1"):
            log.info("content_completed")  # includes operation_id, enrollment_id
    """

    def __init__(
        self,
        operation_id: str | None = None,
        student_id: str | None = None,
        enrollment_id: str | None = None,
    ) -> None:
        self.operation_id = operation_id
        self.student_id = student_id
        self.enrollment_id = enrollment_id
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "OperationContext":
        """Enter context and set variables."""
        self._tokens["operation_id"] = operation_id_var.set(
            self.operation_id or generate_operation_id()
        )

        if self.student_id is not None:
            self._tokens["student_id"] = student_id_var.set(self.student_id)

        if self.enrollment_id is not None:
            self._tokens["enrollment_id"] = enrollment_id_var.set(self.enrollment_id)

        return self

    def __exit__(self, *_: object) -> None:
        """Exit context and restore previous values."""
        for var_name, token in self._tokens.items():
            if var_name == "operation_id":
                operation_id_var.reset(token)
            elif var_name == "student_id":
                student_id_var.reset(token)
            elif var_name == "enrollment_id":
                enrollment_id_var.reset(token)
