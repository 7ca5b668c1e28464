"""
Error taxonomy and classification shared by the server and the client.

Every raw failure (an HTTP status code or an exception) is mapped exactly once
into a ClassifiedError; retry and recovery code only ever looks at that.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from tryon.config import ConfigError


class TryonError(Exception):
    """Base class for try-on pipeline failures."""


# --- server side ---


class TryonValidationError(TryonError):
    """Payload failed structural validation."""

    def __init__(self, details: List[Dict[str, str]]):
        self.details = details
        fields = ", ".join(item["field"] for item in details)
        super().__init__(f"Validation failed: {fields}")


class RateLimitExceeded(TryonError):
    """Client consumed its whole quota for the current window."""

    def __init__(self, client_key: str, limit: int, reset_at: str):
        self.client_key = client_key
        self.limit = limit
        self.reset_at = reset_at
        super().__init__(f"Rate limit exceeded for {client_key}")


class ProviderConfigError(TryonError):
    """Vision provider selection or credentials are unusable."""


class ProviderError(TryonError):
    """A vision provider failed to produce an image."""


# --- client side ---


class ImageInputError(TryonError):
    """Base class for local image preparation failures."""


class FileTypeNotSupportedError(ImageInputError):
    pass


class FileTooLargeError(ImageInputError):
    pass


class CompressionFailedError(ImageInputError):
    pass


class RequestTimeoutError(TryonError):
    """The request exceeded its deadline and was cancelled."""


class NetworkError(TryonError):
    """Transport-level failure (DNS, connection reset, ...)."""


class RequestCancelledError(TryonError):
    """The caller cancelled the operation."""


class HttpStatusError(TryonError):
    """Non-success HTTP status returned by the try-on endpoint."""

    def __init__(
        self,
        status_code: int,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}
        super().__init__(f"API request failed: {status_code}")


class UnexpectedResponseError(TryonError):
    """A success response did not contain the expected result field."""


# --- classification ---


class ErrorCategory(str, enum.Enum):
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    NETWORK = "network"
    PROVIDER_CONFIG = "provider_config"
    SERVER_UNEXPECTED = "server_unexpected"
    CANCELLED = "cancelled"


class ErrorSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


SEVERITY_BY_CATEGORY = {
    ErrorCategory.VALIDATION: ErrorSeverity.LOW,
    ErrorCategory.CANCELLED: ErrorSeverity.LOW,
    ErrorCategory.RATE_LIMIT: ErrorSeverity.MEDIUM,
    ErrorCategory.TIMEOUT: ErrorSeverity.MEDIUM,
    ErrorCategory.NETWORK: ErrorSeverity.HIGH,
    ErrorCategory.SERVER_UNEXPECTED: ErrorSeverity.HIGH,
    ErrorCategory.PROVIDER_CONFIG: ErrorSeverity.CRITICAL,
}

MESSAGE_INVALID_IMAGES = "Invalid images uploaded."
MESSAGE_RATE_LIMIT = "OpenAI rate limit reached, try later."
MESSAGE_SERVER_ERROR = "Server error, please try again."
MESSAGE_UNEXPECTED = "Unexpected error, please retry."
MESSAGE_TIMEOUT = "Request timed out, please retry."
MESSAGE_NETWORK = "Network error, please check your connection."
MESSAGE_PROVIDER_CONFIG = "Service is not configured correctly."

IMAGE_INPUT_MESSAGES = {
    FileTypeNotSupportedError: "Please select a valid image file (JPEG, PNG, WebP, or GIF).",
    FileTooLargeError: "Image file is too large. Please select an image under 5MB.",
    CompressionFailedError: "Image is too large even after compression. Please upload a smaller file.",
}


@dataclass(frozen=True)
class ClassifiedError:
    category: ErrorCategory
    user_message: str
    retryable: bool
    http_status: Optional[int] = None
    detail: str = field(default="", compare=False)
    # ISO timestamp of the quota window reset, for RATE_LIMIT errors
    reset_at: Optional[str] = field(default=None, compare=False)

    @property
    def severity(self) -> ErrorSeverity:
        return SEVERITY_BY_CATEGORY[self.category]

    @property
    def visible(self) -> bool:
        """Whether the presentation layer should surface this error at all."""
        return self.category is not ErrorCategory.CANCELLED


def parse_reset_at(value: Any) -> Optional[float]:
    """Epoch seconds for an ISO-8601 reset timestamp, or None when unparseable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _reset_at_from_response(failure: HttpStatusError) -> Optional[str]:
    if isinstance(failure.body, dict) and isinstance(failure.body.get("reset_at"), str):
        return failure.body["reset_at"]
    return failure.headers.get("X-RateLimit-Reset")


def classify_status(status: int) -> ClassifiedError:
    if status == 400:
        return ClassifiedError(ErrorCategory.VALIDATION, MESSAGE_INVALID_IMAGES, False, 400)
    if status == 429:
        return ClassifiedError(ErrorCategory.RATE_LIMIT, MESSAGE_RATE_LIMIT, True, 429)
    if status == 500:
        return ClassifiedError(
            ErrorCategory.SERVER_UNEXPECTED, MESSAGE_SERVER_ERROR, True, 500
        )
    return ClassifiedError(ErrorCategory.SERVER_UNEXPECTED, MESSAGE_UNEXPECTED, True, status)


def classify_error(failure: Union[int, BaseException]) -> ClassifiedError:
    """
    Map a raw failure into a ClassifiedError.

    Args:
        failure: An HTTP status code or an exception instance

    Returns:
        ClassifiedError; the same input always yields the same
        category, user message and retryable flag
    """
    if isinstance(failure, bool) or not isinstance(failure, (int, BaseException)):
        return ClassifiedError(ErrorCategory.SERVER_UNEXPECTED, MESSAGE_UNEXPECTED, True)

    if isinstance(failure, int):
        return classify_status(failure)

    detail = str(failure)

    if isinstance(failure, HttpStatusError):
        base = classify_status(failure.status_code)
        reset_at = _reset_at_from_response(failure) if failure.status_code == 429 else None
        return ClassifiedError(
            base.category, base.user_message, base.retryable, base.http_status, detail, reset_at
        )

    if isinstance(failure, TryonValidationError):
        return ClassifiedError(
            ErrorCategory.VALIDATION, MESSAGE_INVALID_IMAGES, False, 400, detail
        )

    if isinstance(failure, ImageInputError):
        message = MESSAGE_INVALID_IMAGES
        for error_type, text in IMAGE_INPUT_MESSAGES.items():
            if isinstance(failure, error_type):
                message = text
                break
        return ClassifiedError(ErrorCategory.VALIDATION, message, False, None, detail)

    if isinstance(failure, RateLimitExceeded):
        return ClassifiedError(
            ErrorCategory.RATE_LIMIT, MESSAGE_RATE_LIMIT, True, 429, detail, failure.reset_at
        )

    if isinstance(failure, RequestTimeoutError):
        return ClassifiedError(ErrorCategory.TIMEOUT, MESSAGE_TIMEOUT, True, None, detail)

    if isinstance(failure, NetworkError):
        return ClassifiedError(ErrorCategory.NETWORK, MESSAGE_NETWORK, True, None, detail)

    if isinstance(failure, (RequestCancelledError, asyncio.CancelledError)):
        return ClassifiedError(ErrorCategory.CANCELLED, "", False, None, detail)

    if isinstance(failure, (ProviderConfigError, ConfigError)):
        return ClassifiedError(
            ErrorCategory.PROVIDER_CONFIG, MESSAGE_PROVIDER_CONFIG, False, None, detail
        )

    if isinstance(failure, UnexpectedResponseError):
        return ClassifiedError(
            ErrorCategory.SERVER_UNEXPECTED, MESSAGE_UNEXPECTED, True, None, detail
        )

    return ClassifiedError(ErrorCategory.SERVER_UNEXPECTED, MESSAGE_UNEXPECTED, True, None, detail)


__all__ = [
    "TryonError",
    "TryonValidationError",
    "RateLimitExceeded",
    "ProviderConfigError",
    "ProviderError",
    "ImageInputError",
    "FileTypeNotSupportedError",
    "FileTooLargeError",
    "CompressionFailedError",
    "RequestTimeoutError",
    "NetworkError",
    "RequestCancelledError",
    "HttpStatusError",
    "UnexpectedResponseError",
    "ErrorCategory",
    "ErrorSeverity",
    "ClassifiedError",
    "classify_error",
    "classify_status",
    "parse_reset_at",
]
