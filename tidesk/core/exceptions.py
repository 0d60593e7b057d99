"""
Custom exceptions for the TIDESK application.
Provides structured error handling with stable HTTP status codes and type signals.
"""

from typing import Any, Dict, Optional
from fastapi import HTTPException, status


class BusinessLogicError(Exception):
    """Base exception for business logic errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type: str = "business_logic_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BusinessLogicError):
    """Raised when input validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "validation_error"


class AuthenticationError(BusinessLogicError):
    """Raised when a credential is missing, malformed or expired."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_type = "authentication_failed"


class AuthorizationDenied(BusinessLogicError):
    """Raised when an authenticated principal lacks the required grant."""

    status_code = status.HTTP_403_FORBIDDEN
    error_type = "forbidden"

    def __init__(self, message: str, required: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if required:
            details.setdefault("required", required)
        self.required = required
        super().__init__(message, details)


class NotFoundError(BusinessLogicError):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"


class InvalidStateTransition(BusinessLogicError):
    """Raised when a guarded ticket transition is attempted from the wrong status."""

    status_code = status.HTTP_409_CONFLICT
    error_type = "invalid_state_transition"


class ConflictError(BusinessLogicError):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT
    error_type = "conflict"


class StorageFailure(BusinessLogicError):
    """Raised when the underlying store fails during a lookup or write."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type = "storage_failure"


def business_exception_to_http(exc: BusinessLogicError) -> HTTPException:
    """Convert business logic exceptions to appropriate HTTP exceptions."""

    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}

    return HTTPException(
        status_code=exc.status_code,
        detail={"message": exc.message, "type": exc.error_type, **exc.details},
        headers=headers,
    )


class ErrorHandler:
    """Centralized validation helpers."""

    @staticmethod
    def validate_positive_integer(value: Any, field_name: str) -> int:
        """Validate that a value is a positive integer."""
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValidationError(
                f"{field_name} must be a positive integer",
                {"field": field_name, "value": value}
            )
        return value

    @staticmethod
    def validate_required_text(value: Optional[str], field_name: str) -> str:
        """Validate that a text field is present and not blank."""
        if value is None or not str(value).strip():
            raise ValidationError(
                f"{field_name} is required",
                {"field": field_name}
            )
        return str(value).strip()
