"""Pydantic models used by the try-on router."""

from typing import List, Optional

from pydantic import BaseModel, Field


class FieldErrorDetail(BaseModel):
    field: str
    message: str


class ValidationErrorResponse(BaseModel):
    """Payload returned for rejected try-on requests."""

    error: str
    details: List[FieldErrorDetail] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Generic error payload."""

    error: str
    details: Optional[str] = None


class RateLimitResponse(BaseModel):
    """Rate limit status details for the requester."""

    allowed: bool
    remaining: int
    reset_at: str
    limit: int
    message: str
