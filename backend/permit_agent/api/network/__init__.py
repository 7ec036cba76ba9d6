"""
Network Resilience Package

Error classification, retrying HTTP execution, circuit breakers, rate limiting
and TTL caching for outbound calls to government sites and permitting APIs.
"""

from .cache import TTLCache, cached
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerState
from .errors import classify_error, is_retryable_status
from .http_client import (
    FetchOutcome,
    FetchRequest,
    FetchResult,
    HttpClient,
    extract_domain,
    is_valid_http_url,
    sanitize_url,
    timeout_for_url,
)
from .rate_limiter import RateLimitConfig, RateLimiter
from .registry import (
    AI_PROCESSING,
    JURISDICTION_DISCOVERY,
    WEB_SCRAPING,
    NetworkServices,
    build_network_services,
)
from .retry_handler import RetryConfig, RetryHandler, calculate_delay

__all__ = [
    "TTLCache",
    "cached",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "classify_error",
    "is_retryable_status",
    "FetchOutcome",
    "FetchRequest",
    "FetchResult",
    "HttpClient",
    "extract_domain",
    "is_valid_http_url",
    "sanitize_url",
    "timeout_for_url",
    "RateLimitConfig",
    "RateLimiter",
    "AI_PROCESSING",
    "JURISDICTION_DISCOVERY",
    "WEB_SCRAPING",
    "NetworkServices",
    "build_network_services",
    "RetryConfig",
    "RetryHandler",
    "calculate_delay",
]
