"""Error taxonomy for the resume review pipeline.

Every failure that reaches an HTTP caller is one of the classes below. Lower
layers (PyMuPDF, pytesseract, redis, ollama) catch their library exceptions
and re-raise them as one of these so the API never leaks library shapes.
"""
from typing import Any, Optional


class ReviewError(Exception):
    """Base exception for all resume review errors.

    Attributes:
        message: Short, user-readable message
        error_code: Machine-distinguishable kind
        http_status: Status code the API answers with
        retryable: Whether the caller may retry without changing anything
        details: Additional context
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        http_status: int = 500,
        retryable: bool = False,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.http_status = http_status
        self.retryable = retryable
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
            **self.details,
        }


class ConfigurationError(ReviewError):
    """Missing credentials or model name. Fatal, never retried."""

    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR", http_status=500)


class ValidationError(ReviewError):
    """Oversized, empty or otherwise unusable input, rejected before any external call."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", http_status=400, details=details)
        self.field = field


class RateLimitError(ReviewError):
    """Admission denied by the rate limiter.

    Args:
        reset_time: Epoch milliseconds when the current window ends
        limit: Requests allowed per window
        now_ms: Limiter clock reading used to derive ``retry_after``
    """

    def __init__(self, reset_time: int, limit: int, now_ms: int):
        remaining_ms = max(0, reset_time - now_ms)
        retry_after = -(-remaining_ms // 1000)
        super().__init__(
            "Too many requests. Please try again later.",
            "RATE_LIMITED",
            http_status=429,
            retryable=True,
            details={"reset_time": reset_time, "limit": limit, "retry_after": retry_after},
        )
        self.reset_time = reset_time
        self.limit = limit
        self.retry_after = retry_after


class ExtractionError(ReviewError):
    """No usable text could be read from the document."""

    def __init__(self, message: str):
        super().__init__(message, "EXTRACTION_ERROR", http_status=422)


# UpstreamError kinds
INVALID_CREDENTIALS = "invalid_credentials"
UPSTREAM_RATE_LIMITED = "upstream_rate_limited"
UPSTREAM_ERROR = "upstream_error"
TIMEOUT = "timeout"
UNREACHABLE = "unreachable"
EMPTY_RESPONSE = "empty_response"
MALFORMED_RESPONSE = "malformed_response"

_UPSTREAM_MESSAGES = {
    INVALID_CREDENTIALS: "Invalid API key. Please check your LLM_API_KEY.",
    UPSTREAM_RATE_LIMITED: "Rate limit exceeded. Please try again later.",
    TIMEOUT: "Request timeout. Please try again.",
    UNREACHABLE: "Language model service is unreachable.",
    EMPTY_RESPONSE: "Empty response from language model.",
    MALFORMED_RESPONSE: "Language model returned an unusable response.",
}


class UpstreamError(ReviewError):
    """The model call failed.

    Timeouts, unreachable hosts and 5xx answers are retryable. Invalid
    credentials and upstream quota errors need user action first.
    """

    def __init__(
        self,
        kind: str,
        status: Optional[int] = None,
        body: Optional[str] = None,
        message: Optional[str] = None,
    ):
        if message is None:
            message = _UPSTREAM_MESSAGES.get(kind) or f"LLM API error ({status}): {body or ''}".strip()
        retryable = kind in (TIMEOUT, UNREACHABLE) or (
            kind == UPSTREAM_ERROR and status is not None and status >= 500
        )
        details: dict[str, Any] = {"kind": kind}
        if status is not None:
            details["status"] = status
        super().__init__(message, "UPSTREAM_ERROR", http_status=500, retryable=retryable, details=details)
        self.kind = kind
        self.status = status
        self.body = body


class ParseError(ReviewError):
    """Model output contained no locatable or repairable JSON object."""

    def __init__(self, message: str = "No JSON object found in model response."):
        super().__init__(message, "PARSE_ERROR", http_status=500)
