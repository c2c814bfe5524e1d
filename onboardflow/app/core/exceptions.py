"""
Custom exception classes for Onboardflow.

This module defines the exception hierarchy used across the service:
- Standardized error codes for client-side handling
- HTTP status code mapping for API responses
- Structured error details for logging and debugging
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """
    Standardized error codes.

    Codes are grouped by family so callers can render friendly messages
    without parsing the technical message.
    """

    # Validation Errors (1xxx)
    VALIDATION_FAILED = "1001"
    MISSING_REQUIRED_FIELD = "1002"
    INVALID_VALUE = "1003"
    EMPTY_BATCH = "1004"

    # Database Errors (2xxx)
    DATABASE_CONNECTION_ERROR = "2001"
    DATABASE_OPERATION_FAILED = "2002"
    BULK_WRITE_FAILED = "2003"

    # Not Found Errors (3xxx)
    ENTITY_NOT_FOUND = "3001"
    CASE_NOT_FOUND = "3002"
    TASK_NOT_FOUND = "3003"
    STAGE_NOT_FOUND = "3004"
    GUIDE_STEP_NOT_FOUND = "3005"

    # Authorization Errors (4xxx)
    NOT_AUTHENTICATED = "4000"
    FORBIDDEN = "4001"
    NOT_TASK_ASSIGNEE = "4002"

    # Conflict Errors (5xxx)
    DUPLICATE_KEY = "5001"
    CASE_ID_DUPLICATE = "5002"
    USER_EMAIL_DUPLICATE = "5003"
    WORKFLOW_TYPE_DUPLICATE_PREFIX = "5004"
    WORKFLOW_TYPE_DUPLICATE_NAME = "5005"
    WORKFLOW_TYPE_IN_USE = "5006"
    GUIDE_ALREADY_LINKED = "5007"


class BaseCustomException(Exception):
    """
    Base exception class for all custom exceptions in Onboardflow.

    Provides common functionality for error tracking, context preservation,
    and structured error information.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: Optional[Dict[str, Any]] = None,
        http_status_code: int = 500,
        correlation_id: Optional[str] = None,
        user_message: Optional[str] = None
    ):
        """
        Initialize base exception with structured error information.

        Args:
            message: Technical error message for developers
            error_code: Standardized error code for identification
            details: Additional context and debugging information
            http_status_code: HTTP status code for API responses
            correlation_id: Request correlation ID for tracking
            user_message: User-friendly error message for display
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.http_status_code = http_status_code
        self.correlation_id = correlation_id
        self.user_message = user_message or self._generate_user_message()

    def _generate_user_message(self) -> str:
        """Generate a user-friendly error message based on the error code."""
        user_messages = {
            ErrorCode.CASE_ID_DUPLICATE: "A case with this identifier already exists.",
            ErrorCode.USER_EMAIL_DUPLICATE: "A user with this email address already exists.",
            ErrorCode.WORKFLOW_TYPE_DUPLICATE_PREFIX: "Another workflow type already uses this prefix.",
            ErrorCode.WORKFLOW_TYPE_DUPLICATE_NAME: "Another workflow type already uses this name.",
            ErrorCode.WORKFLOW_TYPE_IN_USE: "This workflow type is still used by onboarding cases.",
            ErrorCode.GUIDE_ALREADY_LINKED: "This guide is already linked to the case.",
            ErrorCode.NOT_TASK_ASSIGNEE: "You are not assigned to this task.",
            ErrorCode.DATABASE_CONNECTION_ERROR: "Unable to connect to the database. Please try again later.",
        }
        return user_messages.get(self.error_code, self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "error_code": self.error_code.value,
            "error_type": self.error_code.name,
            "message": self.message,
            "user_message": self.user_message,
            "details": self.details,
            "correlation_id": self.correlation_id,
        }

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"


class ValidationError(BaseCustomException):
    """Raised for missing or malformed input."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        field_errors: Optional[List[Dict[str, Any]]] = None,
        **kwargs
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details={"field_errors": field_errors or []},
            http_status_code=422,
            **kwargs
        )


class NotFoundError(BaseCustomException):
    """Raised when an id does not resolve to an entity."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.ENTITY_NOT_FOUND,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details={"entity_type": entity_type, "entity_id": entity_id},
            http_status_code=404,
            **kwargs
        )


class AuthenticationError(BaseCustomException):
    """Raised when a request does not identify its acting user."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.NOT_AUTHENTICATED, **kwargs):
        super().__init__(message=message, error_code=error_code, http_status_code=401, **kwargs)


class ForbiddenError(BaseCustomException):
    """Raised when the acting user is not permitted to perform an operation."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.FORBIDDEN,
        user_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details={"user_id": user_id},
            http_status_code=403,
            **kwargs
        )


class ConflictError(BaseCustomException):
    """Raised when a uniqueness constraint is violated."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DUPLICATE_KEY,
        entity_type: Optional[str] = None,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details={
                "entity_type": entity_type,
                "field": field,
                "value": str(value) if value is not None else None,
            },
            http_status_code=409,
            **kwargs
        )


class DatabaseError(BaseCustomException):
    """Raised for database-related errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DATABASE_OPERATION_FAILED,
        database_type: Optional[str] = None,
        collection_name: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details={
                "database_type": database_type,
                "collection_name": collection_name,
                "operation": operation,
            },
            http_status_code=500,
            **kwargs
        )


def get_exception_response_data(exception: BaseCustomException) -> Dict[str, Any]:
    """Build the API error payload for a custom exception."""
    return {
        "success": False,
        "error": exception.to_dict(),
    }


# Convenience function used by the repositories

def raise_database_error(
    message: str,
    database_type: str = "mongodb",
    operation: Optional[str] = None,
    collection_name: Optional[str] = None,
    error_code: ErrorCode = ErrorCode.DATABASE_OPERATION_FAILED
) -> None:
    """Raise a database error."""
    raise DatabaseError(
        message,
        error_code=error_code,
        database_type=database_type,
        operation=operation,
        collection_name=collection_name,
    )
