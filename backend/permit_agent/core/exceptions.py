from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class PermitAgentException(Exception):
    """Base exception for the permit agent."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class NetworkErrorKind(str, Enum):
    """Classified network failure kinds"""
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    DNS_ERROR = "dns_error"
    HTTP_ERROR = "http_error"
    ABORT_ERROR = "abort_error"
    UNKNOWN_ERROR = "unknown_error"


class NetworkError(PermitAgentException):
    """A classified outbound request failure."""

    kind: NetworkErrorKind = NetworkErrorKind.UNKNOWN_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code=self.kind.value.upper(), details=details)
        self.url = url
        self.status_code = status_code
        if retryable is not None:
            self.retryable = retryable


class RequestTimeoutError(NetworkError):
    """The remote end did not answer in time."""
    kind = NetworkErrorKind.TIMEOUT
    retryable = True


class NetworkConnectionError(NetworkError):
    """The connection could not be established or was dropped."""
    kind = NetworkErrorKind.CONNECTION_ERROR
    retryable = True


class DnsError(NetworkError):
    """The host name could not be resolved."""
    kind = NetworkErrorKind.DNS_ERROR
    retryable = True


class HttpError(NetworkError):
    """The server answered with a non-success status."""
    kind = NetworkErrorKind.HTTP_ERROR

    def __init__(self, status_code: int, url: Optional[str] = None, message: Optional[str] = None):
        super().__init__(
            message or f"HTTP {status_code}",
            url=url,
            status_code=status_code,
            retryable=status_code >= 500 or status_code == 429,
            details={"status_code": status_code},
        )


class RequestAbortedError(NetworkError):
    """The attempt was cancelled at its deadline."""
    kind = NetworkErrorKind.ABORT_ERROR
    retryable = True


class UnknownNetworkError(NetworkError):
    """Unclassified failure; never retried."""
    kind = NetworkErrorKind.UNKNOWN_ERROR
    retryable = False


class BreakerOpenError(PermitAgentException):
    """A circuit breaker rejected the call without invoking it."""

    def __init__(self, name: str, retry_after: float):
        super().__init__(
            f"Circuit breaker '{name}' is open",
            error_code="BREAKER_OPEN",
            details={"breaker": name, "retry_after_seconds": round(retry_after, 3)},
        )
        self.name = name
        self.retry_after = retry_after


class RateLimitTimeoutError(PermitAgentException):
    """Admission would have required waiting longer than allowed."""

    def __init__(self, name: str, wait_seconds: float):
        super().__init__(
            f"Rate limiter '{name}' would block for {wait_seconds:.1f}s",
            error_code="RATE_LIMITED",
            details={"limiter": name, "wait_seconds": round(wait_seconds, 3)},
        )
        self.wait_seconds = wait_seconds


class ExtractionInsufficientError(PermitAgentException):
    """Structured extraction produced too little to return."""
    pass


class AIUnavailableError(PermitAgentException):
    """AI supplementation could not be obtained."""
    pass


class ValidationException(PermitAgentException):
    """Exception for caller input errors."""
    pass


class ConfigurationException(PermitAgentException):
    """Exception for configuration-related errors."""
    pass


class DataUnavailableError(PermitAgentException):
    """Raised when a request cannot be resolved even through fallbacks."""
    pass


# HTTP Exception handlers
def create_http_exception(
    status_code: int,
    message: str,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> HTTPException:
    """Create an HTTP exception with structured error response."""

    error_detail = {
        "message": message,
        "error_code": error_code,
        "details": details or {}
    }

    return HTTPException(
        status_code=status_code,
        detail=error_detail
    )


def http_exception_from(exc: PermitAgentException) -> HTTPException:
    """Map a domain exception onto an HTTP exception."""
    if isinstance(exc, ValidationException):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, (BreakerOpenError, RateLimitTimeoutError)):
        status_code = status.HTTP_429_TOO_MANY_REQUESTS
    elif isinstance(exc, (DataUnavailableError, NetworkError)):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return create_http_exception(
        status_code=status_code,
        message=exc.message,
        error_code=exc.error_code or type(exc).__name__.upper(),
        details=exc.details,
    )


def not_found_exception(message: str = "Resource not found") -> HTTPException:
    return create_http_exception(
        status_code=status.HTTP_404_NOT_FOUND,
        message=message,
        error_code="RESOURCE_NOT_FOUND"
    )
