"""
Convo Backend — Custom Exception Hierarchy
===========================================

What:  Application-specific exceptions for the different error scenarios.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by the store, core and services layers; caught by global handlers.

Exception Hierarchy:
    ConvoError (base)
    ├── ValidationError          → 400 Bad Request (field-keyed details)
    ├── QueryStringError         → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    ├── PermissionDeniedError    → 403 Forbidden
    ├── NotFoundError            → 404 Not Found
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── DatabaseError            → 500 Internal Server Error
    └── TransactionError         → 500 Internal Server Error
"""

from typing import Any, Dict, List, Optional


class ConvoError(Exception):
    """
    Base exception for all Convo application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(ConvoError):
    """
    Raised when client input fails validation.

    HTTP:    400 Bad Request

    `errors` maps each offending field to a human-readable message and is
    returned to the client as the response details:
        {
            "error": "validation_error",
            "message": "Invalid input",
            "details": {"email": "value is not a valid email address"}
        }
    """

    def __init__(
        self,
        message: str = "Invalid input",
        errors: Optional[Dict[str, str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
        self.errors = errors or {}


class QueryStringError(ConvoError):
    """Raised when a search query cannot be parsed or turned back into a URL."""

    def __init__(
        self,
        message: str = "Invalid query string",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthenticationError(ConvoError):
    """
    Raised when the caller's tokens or credentials are missing or invalid.

    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        message: str = "Authentication failed.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PermissionDeniedError(ConvoError):
    """
    Raised when an authenticated profile acts on a resource it does not own.

    HTTP:    403 Forbidden
    """

    def __init__(
        self,
        message: str = "You are not allowed to perform this action.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(ConvoError):
    """
    Raised when a requested record or object does not exist.

    HTTP:    404 Not Found

    The store returns None for missing ids; the `*_or_raise` primitives and
    the mapper convert that into this exception.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class DatabaseError(ConvoError):
    """
    Raised when a record store primitive fails unexpectedly.

    HTTP:    500 Internal Server Error

    The message returned to the client is always generic; the driver error is
    kept in `context` and logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class TransactionError(ConvoError):
    """
    Raised when a multi-record operation fails part way.

    HTTP:    500 Internal Server Error

    Attributes:
        operation:        Name (or index) of the step that failed
        rollback_errors:  Compensating actions that failed themselves. An empty
                          list means the store was restored to its prior state.
    """

    def __init__(
        self,
        message: str = "The operation could not be completed.",
        operation: Optional[str] = None,
        rollback_errors: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if operation is not None:
            ctx["operation"] = operation
        self.rollback_errors = rollback_errors or []
        if self.rollback_errors:
            ctx["rollback_errors"] = list(self.rollback_errors)
        super().__init__(message=message, context=ctx)
        self.operation = operation

    @property
    def rolled_back(self) -> bool:
        return not self.rollback_errors


class RateLimitExceededError(ConvoError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
