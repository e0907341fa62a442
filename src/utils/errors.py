"""Error taxonomy and failure classification for ScholarCache.

Every failure seen by the retry policy lands in exactly one bucket:
- Validation: bad input, never retried
- Rate limited: upstream throttling, never retried, counted by the caller
- Retryable: timeouts, 5xx, dropped connections
- Unclassified: anything else, retried (upstream reads are idempotent)
"""

import asyncio
from enum import Enum
from typing import Optional

import aiohttp

RETRYABLE_STATUS_CODES = {500, 502, 503, 504}

_RATE_LIMIT_MARKERS = ("rate limit", "too many requests", "429")
_RETRYABLE_MARKERS = ("timeout", "timed out", "network", "connection")


class ErrorType(Enum):
    """Classification of errors for retry handling."""

    VALIDATION = "validation"
    RATE_LIMITED = "rate_limited"
    RETRYABLE = "retryable"
    UNCLASSIFIED = "unclassified"


class ServiceError(Exception):
    """Base exception for ScholarCache errors."""

    error_type = ErrorType.UNCLASSIFIED

    def __init__(self, message: str, context: Optional[dict] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.error_type.value}] {self.message}"

    def to_dict(self) -> dict:
        """Convert to dictionary for logs and API payloads."""
        return {
            "type": self.error_type.value,
            "message": self.message,
            "context": self.context,
        }


class ValidationError(ServiceError):
    """Raised for invalid input. Carries the offending field name."""

    error_type = ErrorType.VALIDATION

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["field"] = self.field
        return data


class RequestRejectedError(ValidationError):
    """Raised when the upstream rejects a request (HTTP 4xx other than 404/429)."""

    def __init__(self, message: str, status: int, **kwargs):
        super().__init__(message, **kwargs)
        self.status = status


class RateLimitError(ServiceError):
    """Raised when the upstream provider throttles us (HTTP 429)."""

    error_type = ErrorType.RATE_LIMITED

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class RetryableServiceError(ServiceError):
    """Raised for transient upstream failures: timeouts, 5xx, resets."""

    error_type = ErrorType.RETRYABLE

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status = status


class UnclassifiedError(ServiceError):
    """Raised for upstream failures that fit no other bucket (e.g. bad payloads)."""


class NotFoundError(ServiceError):
    """Raised when the upstream has no record for an identifier (HTTP 404)."""

    error_type = ErrorType.VALIDATION


class DurableCacheError(ServiceError):
    """Raised when the durable tier cannot be read or written.

    Recoverable: the orchestrator falls through to an upstream fetch.
    """


def classify_error(error: BaseException) -> ErrorType:
    """Map any exception onto exactly one ErrorType."""
    if isinstance(error, ServiceError):
        return error.error_type

    if isinstance(error, aiohttp.ClientResponseError):
        if error.status == 429:
            return ErrorType.RATE_LIMITED
        if error.status in RETRYABLE_STATUS_CODES or error.status >= 500:
            return ErrorType.RETRYABLE
        if 400 <= error.status < 500:
            return ErrorType.VALIDATION

    if isinstance(error, (asyncio.TimeoutError, aiohttp.ClientConnectionError, ConnectionError)):
        return ErrorType.RETRYABLE

    message = str(error).lower()
    if any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return ErrorType.RATE_LIMITED
    if any(marker in message for marker in _RETRYABLE_MARKERS):
        return ErrorType.RETRYABLE

    return ErrorType.UNCLASSIFIED


def is_rate_limit_error(error: BaseException) -> bool:
    return classify_error(error) is ErrorType.RATE_LIMITED


def is_retryable_error(error: BaseException) -> bool:
    """Retryable and unclassified failures are both retried."""
    return classify_error(error) in (ErrorType.RETRYABLE, ErrorType.UNCLASSIFIED)


__all__ = [
    "ErrorType",
    "ServiceError",
    "ValidationError",
    "RequestRejectedError",
    "RateLimitError",
    "RetryableServiceError",
    "UnclassifiedError",
    "NotFoundError",
    "DurableCacheError",
    "classify_error",
    "is_rate_limit_error",
    "is_retryable_error",
]
