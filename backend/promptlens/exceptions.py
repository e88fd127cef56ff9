"""
PromptLens Backend - Custom Exception Hierarchy
=================================================

What:  Defines application-specific exceptions and the closed error taxonomy
       shared by every image analyzer.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by analyzers, the retry helpers and the route layer; caught by
       global handlers.

Exception Hierarchy:
    PromptLensError (base)        → 500 INTERNAL_ERROR
    ├── ValidationError           → 400 VALIDATION_ERROR (bad form input)
    ├── ServiceError              → status_for_kind(kind)
    └── RetryableHTTPError        → raised by retry_api_request() only

Error kinds (ServiceError.kind) and their transport status:
    INVALID_API_KEY      → 503
    QUOTA_EXCEEDED       → 429
    IMAGE_TOO_LARGE      → 413
    UNSUPPORTED_FORMAT   → 415
    TIMEOUT              → 408
    SERVICE_UNAVAILABLE  → 503
    NETWORK_ERROR        → 502
    INVALID_RESPONSE     → 502
"""

from enum import Enum
from typing import Any, Dict, Optional


class PromptLensError(Exception):
    """
    Base exception for all PromptLens application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(PromptLensError):
    """
    Raised when client input at the HTTP boundary fails validation.

    When:    Unknown style/language value, temperature out of range, etc.
    HTTP:    400 Bad Request

    Image size and format problems are NOT ValidationErrors: they are
    analyzer decisions and surface as ServiceError(IMAGE_TOO_LARGE /
    UNSUPPORTED_FORMAT).
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class ErrorKind(str, Enum):
    """Closed set of analyzer failure kinds. The value is the wire code."""

    INVALID_API_KEY = "INVALID_API_KEY"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    IMAGE_TOO_LARGE = "IMAGE_TOO_LARGE"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    TIMEOUT = "TIMEOUT"


_KIND_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.INVALID_API_KEY: 503,
    ErrorKind.QUOTA_EXCEEDED: 429,
    ErrorKind.IMAGE_TOO_LARGE: 413,
    ErrorKind.UNSUPPORTED_FORMAT: 415,
    ErrorKind.TIMEOUT: 408,
    ErrorKind.SERVICE_UNAVAILABLE: 503,
    ErrorKind.NETWORK_ERROR: 502,
    ErrorKind.INVALID_RESPONSE: 502,
}


def status_for_kind(kind: Any) -> int:
    """
    Map an error kind to the HTTP status used at the system boundary.

    Pure function. Accepts an ErrorKind or its string code; anything
    unrecognized maps to 500.
    """
    try:
        return _KIND_STATUS[ErrorKind(kind)]
    except (ValueError, KeyError):
        return 500


class ServiceError(PromptLensError):
    """
    Tagged failure raised by image analyzers.

    What:    One of the eight ErrorKind values plus the provider that raised it.
    HTTP:    status_for_kind(kind)

    Only `kind` is used for branching (status mapping, retry eligibility).
    `message` and `cause` are for presentation and diagnostics.

    Attributes:
        kind:         ErrorKind member
        provider:     Name of the analyzer that raised the error
        cause:        Underlying exception, if any
        retry_after:  Server-specified seconds to wait before retrying
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        provider: str,
        cause: Optional[BaseException] = None,
        retry_after: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["provider"] = provider
        if retry_after is not None:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.kind = ErrorKind(kind)
        self.provider = provider
        self.cause = cause
        self.retry_after = retry_after

    @property
    def code(self) -> str:
        return self.kind.value

    @property
    def status_code(self) -> int:
        return status_for_kind(self.kind)

    def __repr__(self) -> str:
        return f"ServiceError(kind={self.kind.value}, provider={self.provider!r}, message={self.message!r})"


class RetryableHTTPError(PromptLensError):
    """
    Raised by retry_api_request() for a non-2xx HTTP response.

    What:    Carries the response status, the JSON error code (when the body
             has one) and the Retry-After header value in seconds.
    Who:     Consumed by the default retry predicate (status-based).
    """

    def __init__(
        self,
        message: str,
        status: int,
        code: Optional[str] = None,
        retry_after: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["status"] = status
        super().__init__(message=message, context=ctx)
        self.status = status
        self.code = code
        self.retry_after = retry_after
