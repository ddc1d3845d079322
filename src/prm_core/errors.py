"""Error taxonomy shared by the repository, service and HTTP layers.

Every error raised on purpose by the core is a ``PRMError`` subclass. The
HTTP layer renders them as ``ErrorResponse {code, message, details}`` using
the status codes below.
"""
from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    NOT_FOUND = "NOT_FOUND"
    DUPLICATE_KEY = "DUPLICATE_KEY"
    FOREIGN_KEY = "FOREIGN_KEY"
    VALIDATION = "VALIDATION"
    CONFLICT = "CONFLICT"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INTERNAL = "INTERNAL"


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.DUPLICATE_KEY: 409,
    ErrorCode.FOREIGN_KEY: 400,
    ErrorCode.VALIDATION: 400,
    ErrorCode.CONFLICT: 409,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.INTERNAL: 500,
}


class PRMError(Exception):
    """Base exception for domain errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        details: Optional structured context (field names, valid values, ...)
        status_code: HTTP status code (derived from code)
    """

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details
        self.status_code = ERROR_CODE_TO_STATUS.get(self.code, 500)
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(PRMError):
    """Missing entity or reference."""

    code = ErrorCode.NOT_FOUND


class DuplicateKeyError(PRMError):
    """Unique constraint violation."""

    code = ErrorCode.DUPLICATE_KEY


class ForeignKeyError(PRMError):
    """Reference to a parent row that does not exist."""

    code = ErrorCode.FOREIGN_KEY


class ValidationError(PRMError):
    """Field constraint, status machine or inline anchor violation."""

    code = ErrorCode.VALIDATION

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        valid_values: Optional[list[str]] = None,
    ):
        self.valid_values = valid_values
        if valid_values is not None:
            details = dict(details or {})
            details["valid_values"] = valid_values
        super().__init__(message, details)


class StatusValidationError(ValidationError):
    """Rejected status value or transition."""

    def __init__(
        self,
        message: str,
        current_status: Optional[str],
        requested_status: str,
        valid_values: list[str],
    ):
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            message,
            details={"current_status": current_status, "requested_status": requested_status},
            valid_values=valid_values,
        )


class ConflictError(PRMError):
    """Operation conflicts with current state (dependents, existing link)."""

    code = ErrorCode.CONFLICT


class UnauthorizedError(PRMError):
    """Missing or invalid credential."""

    code = ErrorCode.UNAUTHORIZED

    def __init__(self, message: str = "Authentication required", details: Optional[dict[str, Any]] = None):
        super().__init__(message, details)


class ForbiddenError(PRMError):
    """Caller's role lacks the capability."""

    code = ErrorCode.FORBIDDEN

    def __init__(self, message: str = "Insufficient permissions", details: Optional[dict[str, Any]] = None):
        super().__init__(message, details)


class InternalError(PRMError):
    """Unclassified failure."""

    code = ErrorCode.INTERNAL
