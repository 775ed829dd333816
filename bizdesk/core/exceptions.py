"""Custom exceptions for the bizdesk data layer."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

# Exception type → safe user-facing message mapping
_SAFE_MESSAGES: dict[str, str] = {
    "NotFoundError": "The requested record was not found.",
    "ValidationError": "The provided record is invalid. Please check and try again.",
    "DatabaseError": "The record could not be saved. Please try again.",
    "SchemaMismatchError": "The remote schema is out of date.",
    "ExternalServiceError": "The data backend is temporarily unavailable.",
    "CircuitBreakerOpen": "The data backend is temporarily unavailable. Please try again in a moment.",
    "ConfigurationError": "The data backend is not configured correctly.",
    "InvalidStageTransitionError": "This stage transition is not allowed.",
    "ValueError": "The provided value is invalid.",
}

_DEFAULT_MESSAGE = "An error occurred. Please try again."


def sanitize_error(e: Exception) -> str:
    """Map an exception to a safe, user-facing error message.

    Callers that surface write failures to a person should show this
    message and log the original exception instead.

    Args:
        e: The exception to sanitize.

    Returns:
        A safe, generic error message string.
    """
    # Walk the MRO to find the most specific matching type
    for cls in type(e).__mro__:
        safe_msg = _SAFE_MESSAGES.get(cls.__name__)
        if safe_msg:
            return safe_msg

    return _DEFAULT_MESSAGE


class BizdeskException(Exception):
    """Base exception for all bizdesk errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize bizdesk exception.

        Args:
            message: Human-readable error message.
            code: Machine-readable error code.
            status_code: HTTP-style status code for callers that expose one.
            details: Additional error details.
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for logging."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(BizdeskException):
    """Record not found error (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        """Initialize not found error.

        Args:
            resource: Name of the entity type that was not found.
            resource_id: Optional ID of the record.
        """
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' not found"
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=404,
            details={"resource": resource, "resource_id": resource_id},
        )


class ValidationError(BizdeskException):
    """Record validation error (400)."""

    def __init__(
        self, message: str, field: str | None = None, details: dict[str, Any] | None = None
    ) -> None:
        """Initialize validation error.

        Args:
            message: Error message.
            field: Name of the invalid field.
            details: Additional validation details.
        """
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=400,
            details=error_details,
        )


class DatabaseError(BizdeskException):
    """Remote database operation error (500)."""

    def __init__(self, message: str = "A database error occurred", table: str | None = None) -> None:
        super().__init__(
            message=message,
            code="DATABASE_ERROR",
            status_code=500,
            details={"table": table} if table else {},
        )


class SchemaMismatchError(DatabaseError):
    """Remote table lacks a column the request referenced.

    Raised inside the relational adapter only; the adapter recovers from it
    by retrying without the optional columns.
    """

    def __init__(self, table: str, message: str = "Undefined column") -> None:
        super().__init__(message=f"Schema mismatch on {table}: {message}", table=table)
        self.code = "SCHEMA_MISMATCH"


class ExternalServiceError(BizdeskException):
    """External backend error (502)."""

    def __init__(self, service: str, message: str | None = None) -> None:
        """Initialize external service error.

        Args:
            service: Name of the external service.
            message: Optional error message.
        """
        error_message = message or f"Error communicating with {service}"
        super().__init__(
            message=error_message,
            code="EXTERNAL_SERVICE_ERROR",
            status_code=502,
            details={"service": service},
        )


class ConfigurationError(BizdeskException):
    """Backend configuration is missing or invalid (500)."""

    def __init__(self, message: str, setting: str | None = None) -> None:
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            status_code=500,
            details={"setting": setting} if setting else {},
        )


class InvalidStageTransitionError(BizdeskException):
    """Pipeline stage transition not allowed (400)."""

    def __init__(self, current_stage: str, target_stage: str | None = None) -> None:
        """Initialize invalid stage transition error.

        Args:
            current_stage: The record's current status value.
            target_stage: The requested status value, if any.
        """
        if target_stage is None:
            message = f"Cannot advance past '{current_stage}'"
        else:
            message = f"Cannot transition from '{current_stage}' to '{target_stage}'"
        super().__init__(
            message=message,
            code="INVALID_STAGE_TRANSITION",
            status_code=400,
            details={"current_stage": current_stage, "target_stage": target_stage},
        )
