# Core infrastructure
from offline_learning.core.context import (
    OperationContext,
    clear_context,
    get_context,
    get_enrollment_id,
    get_operation_id,
    get_student_id,
    set_enrollment_id,
    set_operation_id,
    set_student_id,
)
from offline_learning.core.errors import (
    ConstraintViolationError,
    InvalidInputError,
    NotFoundError,
    StorageUnavailableError,
    StoreError,
)
from offline_learning.core.logging import configure_structlog, get_logger


__all__ = [
    "ConstraintViolationError",
    "InvalidInputError",
    "NotFoundError",
    "OperationContext",
    "StorageUnavailableError",
    "StoreError",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_enrollment_id",
    "get_logger",
    "get_operation_id",
    "get_student_id",
    "set_enrollment_id",
    "set_operation_id",
    "set_student_id",
]
