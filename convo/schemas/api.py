"""
Convo Backend — Pydantic Request/Response Schemas
==================================================

What:  Pydantic models defining the HTTP contract of the API.
How:   FastAPI uses these to validate auth bodies, serialize responses and
       generate the OpenAPI document. Resource bodies (profiles, messages, ...)
       are validated by convo.core.validator instead, because their rules are
       segregated per physical table.
Who:   Route handlers (response_model) and the global exception handlers.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class ResultGroup(BaseModel):
    """
    What:  One page of a collection.
    Who:   Returned by every collection GET.

    Pagination:
        Offset-based: `page` and `size` come from the query string; the
        service loads one object more than `size` to know whether a next
        page exists. `previous`/`next` are ready-to-follow URLs that keep
        every other search parameter.
    """

    count: int = Field(description="Number of objects on this page")
    has_previous_page: bool = Field(description="Whether page - 1 exists")
    has_next_page: bool = Field(description="Whether page + 1 exists")
    previous: Optional[str] = Field(default=None, description="URL of the previous page")
    next: Optional[str] = Field(default=None, description="URL of the next page")
    results: List[Dict[str, Any]] = Field(description="Serialized objects")


class TokenResponse(BaseModel):
    """Tokens issued on login. The refresh token is also set as a cookie."""

    access: str = Field(description="Access JWT, sent back as 'Authorization: JWT <access>'")
    refresh: str = Field(description="Refresh JWT")
    expires_in: int = Field(description="Access token lifetime in seconds")
    profile: Dict[str, Any] = Field(description="The authenticated user profile")


class AccessTokenResponse(BaseModel):
    access: str = Field(description="New access JWT")
    expires_in: int = Field(description="Access token lifetime in seconds")


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """
    What:  Standardized error body for all API errors.

    Example:
        {
            "error": "validation_error",
            "message": "Invalid input",
            "details": {"email": "\\"email\\" is required"},
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=254)
    password: str = Field(min_length=1, max_length=128)
