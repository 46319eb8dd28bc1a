"""
Error classification for external sources and the build pipeline.

Two layers:
- APIError hierarchy raised by HTTP clients (retryable vs fatal)
- ErrorCode taxonomy recorded in DataSourceResult / QA reports, so a
  failure becomes data instead of an exception past the adapter boundary
"""

from enum import Enum
from typing import Optional, Dict, Any, Tuple

import httpx


class ErrorCode(str, Enum):
    """Pipeline-level outcome codes."""
    API_ERROR = "API_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    NETWORK_ERROR = "NETWORK_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    IDENTITY_REJECTED = "IDENTITY_REJECTED"
    COST_GUARD = "COST_GUARD"


class APIError(Exception):
    """
    Base exception for all external API errors.

    Attributes:
        message: Human-readable error description
        source: Source name (e.g., 'exa', 'github', 'openalex')
        status_code: HTTP status code if applicable
        response_data: Raw response data for debugging
        retryable: Whether this error should trigger a retry
    """

    code: ErrorCode = ErrorCode.API_ERROR

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.source = source
        self.status_code = status_code
        self.response_data = response_data
        self.retryable = retryable

    def __str__(self) -> str:
        parts = [self.message]
        if self.source:
            parts.insert(0, f"[{self.source}]")
        if self.status_code:
            parts.append(f"(HTTP {self.status_code})")
        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code.value,
            "message": self.message,
            "source": self.source,
            "status_code": self.status_code,
            "retryable": self.retryable,
        }


class RetryableError(APIError):
    """
    Transient errors: 5xx responses, timeouts, dropped connections.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=status_code,
            response_data=response_data,
            retryable=True,
        )


class NetworkError(RetryableError):
    """The request never produced an HTTP response."""

    code = ErrorCode.NETWORK_ERROR


class RateLimitError(APIError):
    """
    Rate limiting error (HTTP 429 or API-specific throttling).

    Retryable after retry_after seconds.
    """

    code = ErrorCode.RATE_LIMIT

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        retry_after: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=429,
            response_data=response_data,
            retryable=True,
        )
        self.retry_after = retry_after or 60


class FatalError(APIError):
    """
    Non-retryable errors (401, 403, 404, 400 and friends).
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=status_code,
            response_data=response_data,
            retryable=False,
        )


class AuthenticationError(FatalError):
    """Authentication failed - invalid or missing API key."""

    def __init__(
        self,
        message: str = "Authentication failed - check API key",
        source: Optional[str] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message, source=source, status_code=401, response_data=response_data
        )


class NotFoundError(FatalError):
    """Requested resource not found."""

    def __init__(
        self,
        message: str = "Resource not found",
        source: Optional[str] = None,
        resource_id: Optional[str] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        if resource_id:
            message = f"{message}: {resource_id}"
        super().__init__(
            message=message, source=source, status_code=404, response_data=response_data
        )
        self.resource_id = resource_id


class ValidationError(FatalError):
    """
    Malformed request or malformed upstream payload.

    Raised both for HTTP 400 and when a 200 response cannot be parsed
    into the shape an adapter expects.
    """

    code = ErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str = "Invalid request parameters",
        source: Optional[str] = None,
        status_code: Optional[int] = 400,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message, source=source, status_code=status_code, response_data=response_data
        )


class ConfigurationError(FatalError):
    """
    Configuration error - missing required settings.

    Raised when a client is used without its API key.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        missing_config: Optional[str] = None,
    ):
        super().__init__(
            message=message, source=source, status_code=None, response_data=None
        )
        self.missing_config = missing_config


def classify_http_error(
    status_code: int, response_text: str = "", source: Optional[str] = None
) -> APIError:
    """
    Classify an HTTP error into the appropriate APIError subclass.

    Args:
        status_code: HTTP status code
        response_text: Response body text
        source: API source name

    Returns:
        Appropriate APIError subclass instance
    """
    snippet = response_text[:200]
    if status_code == 429:
        return RateLimitError(message=f"Rate limited: {snippet}", source=source)
    elif status_code == 401:
        return AuthenticationError(message=f"Authentication failed: {snippet}", source=source)
    elif status_code == 403:
        return FatalError(
            message=f"Access forbidden: {snippet}",
            source=source,
            status_code=403,
        )
    elif status_code == 404:
        return NotFoundError(message=f"Not found: {snippet}", source=source)
    elif status_code == 400:
        return ValidationError(message=f"Bad request: {snippet}", source=source)
    elif 500 <= status_code < 600:
        return RetryableError(
            message=f"Server error: {snippet}",
            source=source,
            status_code=status_code,
        )
    else:
        return APIError(
            message=f"HTTP error {status_code}: {snippet}",
            source=source,
            status_code=status_code,
            retryable=False,
        )


def error_code_for(exc: BaseException) -> Tuple[ErrorCode, bool]:
    """
    Map an exception to a pipeline error code and retryable flag.

    Args:
        exc: Exception raised inside an adapter

    Returns:
        (ErrorCode, retryable)
    """
    if isinstance(exc, APIError):
        return exc.code, exc.retryable
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return ErrorCode.NETWORK_ERROR, True
    if isinstance(exc, (ValueError, KeyError, TypeError)):
        return ErrorCode.VALIDATION_ERROR, False
    return ErrorCode.API_ERROR, True
