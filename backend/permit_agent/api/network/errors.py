"""
Error Classifier - Maps raw failures onto retryable or terminal network errors
"""

import asyncio
from typing import Optional

import httpx

from permit_agent.core.exceptions import (
    DnsError,
    HttpError,
    NetworkConnectionError,
    NetworkError,
    RequestAbortedError,
    RequestTimeoutError,
    UnknownNetworkError,
)

DNS_FAILURE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "temporary failure in name resolution",
    "no address associated with hostname",
    "name resolution",
    "enotfound",
)


def is_retryable_status(status_code: int) -> bool:
    """Server errors and throttling are worth another attempt; other 4xx are not."""
    return status_code >= 500 or status_code == 429


def _looks_like_dns_failure(exc: BaseException) -> bool:
    message = str(exc).lower()
    if any(marker in message for marker in DNS_FAILURE_MARKERS):
        return True
    cause = exc.__cause__ or exc.__context__
    if cause is not None and cause is not exc:
        return any(marker in str(cause).lower() for marker in DNS_FAILURE_MARKERS)
    return False


def classify_error(exc: BaseException, url: Optional[str] = None) -> NetworkError:
    """
    Classify a failure raised by an outbound operation

    Args:
        exc: The raised exception
        url: Target URL, attached to the classified error for logging

    Returns:
        A NetworkError subclass whose ``retryable`` flag drives the retry loop
    """
    if isinstance(exc, NetworkError):
        if url and not exc.url:
            exc.url = url
        return exc

    message = str(exc) or type(exc).__name__

    if isinstance(exc, httpx.TimeoutException):
        return RequestTimeoutError(f"Request timed out: {message}", url=url)

    if isinstance(exc, httpx.HTTPStatusError):
        return HttpError(exc.response.status_code, url=url or str(exc.request.url))

    if isinstance(exc, httpx.ConnectError):
        if _looks_like_dns_failure(exc):
            return DnsError(f"DNS resolution failed: {message}", url=url)
        return NetworkConnectionError(f"Connection failed: {message}", url=url)

    if isinstance(exc, httpx.TransportError):
        return NetworkConnectionError(f"Transport error: {message}", url=url)

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return RequestTimeoutError(f"Operation timed out: {message}", url=url)

    if isinstance(exc, (ConnectionError, OSError)):
        if _looks_like_dns_failure(exc):
            return DnsError(f"DNS resolution failed: {message}", url=url)
        return NetworkConnectionError(f"Connection failed: {message}", url=url)

    return UnknownNetworkError(f"{type(exc).__name__}: {message}", url=url)


def aborted_at_deadline(timeout_seconds: float, url: Optional[str] = None) -> RequestAbortedError:
    """Error for an attempt cancelled because its own deadline passed."""
    return RequestAbortedError(
        f"Attempt aborted after {timeout_seconds:.1f}s",
        url=url,
        details={"timeout_seconds": timeout_seconds},
    )
