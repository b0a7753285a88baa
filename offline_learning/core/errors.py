"""Error taxonomy shared by every store component.

Each error carries a machine-readable ``code`` next to the human message so
callers (UI/controller code) can branch without parsing strings.
"""


class StoreError(Exception):
    """Base error for the local data core."""

    def __init__(self, message: str, code: str = "store_error"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        """Serialize for the calling layer."""
        return {"code": self.code, "message": self.message}


class NotFoundError(StoreError):
    """Enrollment, module, content, session or queue item is absent."""

    def __init__(self, message: str = "Record not found"):
        super().__init__(message, "not_found")


class InvalidInputError(StoreError):
    """Malformed payload or missing required field."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, "invalid_input")


class ConstraintViolationError(StoreError):
    """Uniqueness or foreign-key violation."""

    def __init__(self, message: str = "Constraint violation"):
        super().__init__(message, "constraint_violation")


class StorageUnavailableError(StoreError):
    """The underlying database cannot be opened or written."""

    def __init__(self, message: str = "Storage unavailable"):
        super().__init__(message, "storage_unavailable")
