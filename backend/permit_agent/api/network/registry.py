"""
Network service registry - Constructs the shared breakers, caches, limiters and clients once
"""

import time
from typing import Any, Callable, Dict, Optional

import httpx
import structlog

from permit_agent.api.network.cache import TTLCache
from permit_agent.api.network.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from permit_agent.api.network.http_client import BROWSER_HEADERS, JSON_HEADERS, HttpClient
from permit_agent.api.network.rate_limiter import RateLimitConfig, RateLimiter
from permit_agent.api.network.retry_handler import RetryConfig
from permit_agent.core.config import Settings

logger = structlog.get_logger(__name__)

JURISDICTION_DISCOVERY = "jurisdiction_discovery"
WEB_SCRAPING = "web_scraping"
AI_PROCESSING = "ai_processing"


class NetworkServices:
    """
    Shared resilience state for one process.

    Built once at startup and passed to every consumer; each breaker, cache
    and limiter is owned here and guards only its own dependency.
    """

    def __init__(
        self,
        breakers: Dict[str, CircuitBreaker],
        jurisdiction_cache: TTLCache[Any],
        url_validation_cache: TTLCache[bool],
        permit_data_cache: TTLCache[Any],
        government_limiter: RateLimiter,
        api_limiter: RateLimiter,
        government_client: HttpClient,
        api_client: HttpClient
    ):
        self.breakers = breakers
        self.jurisdiction_cache = jurisdiction_cache
        self.url_validation_cache = url_validation_cache
        self.permit_data_cache = permit_data_cache
        self.government_limiter = government_limiter
        self.api_limiter = api_limiter
        self.government_client = government_client
        self.api_client = api_client

    def breaker(self, name: str) -> CircuitBreaker:
        return self.breakers[name]

    def get_status(self) -> Dict[str, Any]:
        return {
            "breakers": {name: breaker.get_status() for name, breaker in self.breakers.items()},
            "caches": {
                cache.name: cache.get_stats()
                for cache in (self.jurisdiction_cache, self.url_validation_cache, self.permit_data_cache)
            },
            "rate_limiters": {
                limiter.name: limiter.get_status()
                for limiter in (self.government_limiter, self.api_limiter)
            },
            "clients": {
                client.name: client.get_metrics()
                for client in (self.government_client, self.api_client)
            },
        }

    async def aclose(self) -> None:
        await self.government_client.aclose()
        await self.api_client.aclose()


def government_retry_config(settings: Settings) -> RetryConfig:
    return RetryConfig(
        max_retries=settings.government_max_retries,
        initial_delay_seconds=settings.GOVERNMENT_RETRY_DELAY,
        max_delay_seconds=settings.GOVERNMENT_MAX_RETRY_DELAY,
        backoff_multiplier=settings.GOVERNMENT_BACKOFF_FACTOR,
        timeout_seconds=settings.government_timeout,
    )


def api_retry_config(settings: Settings) -> RetryConfig:
    return RetryConfig(
        max_retries=settings.API_MAX_RETRIES,
        initial_delay_seconds=settings.API_RETRY_DELAY,
        max_delay_seconds=settings.API_MAX_RETRY_DELAY,
        backoff_multiplier=settings.API_BACKOFF_FACTOR,
        timeout_seconds=settings.API_REQUEST_TIMEOUT,
    )


def build_network_services(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Callable[[], float] = time.monotonic
) -> NetworkServices:
    """
    Build the process-wide network services from settings

    Args:
        settings: Application settings
        transport: Optional httpx transport shared by both clients (tests use MockTransport)
        clock: Monotonic clock for breakers, caches and limiters

    Returns:
        NetworkServices ready to inject
    """
    breakers = {
        JURISDICTION_DISCOVERY: CircuitBreaker(
            JURISDICTION_DISCOVERY,
            CircuitBreakerConfig(
                failure_threshold=settings.JURISDICTION_BREAKER_FAILURE_THRESHOLD,
                reset_timeout_seconds=settings.JURISDICTION_BREAKER_RESET_TIMEOUT,
            ),
            clock=clock,
        ),
        WEB_SCRAPING: CircuitBreaker(
            WEB_SCRAPING,
            CircuitBreakerConfig(
                failure_threshold=settings.SCRAPING_BREAKER_FAILURE_THRESHOLD,
                reset_timeout_seconds=settings.SCRAPING_BREAKER_RESET_TIMEOUT,
            ),
            clock=clock,
        ),
        AI_PROCESSING: CircuitBreaker(
            AI_PROCESSING,
            CircuitBreakerConfig(
                failure_threshold=settings.AI_BREAKER_FAILURE_THRESHOLD,
                reset_timeout_seconds=settings.AI_BREAKER_RESET_TIMEOUT,
            ),
            clock=clock,
        ),
    }

    government_client = HttpClient(
        "government",
        government_retry_config(settings),
        headers={"User-Agent": settings.GOVERNMENT_USER_AGENT, **BROWSER_HEADERS},
        transport=transport,
        rate_limit_timeout=settings.RATE_LIMIT_MAX_WAIT,
    )
    api_client = HttpClient(
        "api",
        api_retry_config(settings),
        headers={"User-Agent": settings.API_USER_AGENT, **JSON_HEADERS},
        transport=transport,
        rate_limit_timeout=settings.RATE_LIMIT_MAX_WAIT,
    )

    services = NetworkServices(
        breakers=breakers,
        jurisdiction_cache=TTLCache(
            "jurisdiction", settings.JURISDICTION_CACHE_TTL, settings.JURISDICTION_CACHE_MAX_SIZE, clock=clock
        ),
        url_validation_cache=TTLCache(
            "url_validation", settings.URL_VALIDATION_CACHE_TTL, settings.URL_VALIDATION_CACHE_MAX_SIZE, clock=clock
        ),
        permit_data_cache=TTLCache(
            "permit_data", settings.PERMIT_DATA_CACHE_TTL, settings.PERMIT_DATA_CACHE_MAX_SIZE, clock=clock
        ),
        government_limiter=RateLimiter(
            "government_sites",
            RateLimitConfig(
                requests_per_second=settings.GOVERNMENT_RATE_LIMIT_PER_SECOND,
                requests_per_minute=settings.GOVERNMENT_RATE_LIMIT_PER_MINUTE,
                requests_per_hour=settings.GOVERNMENT_RATE_LIMIT_PER_HOUR,
            ),
            clock=clock,
        ),
        api_limiter=RateLimiter(
            "third_party_apis",
            RateLimitConfig(
                requests_per_second=settings.API_RATE_LIMIT_PER_SECOND,
                requests_per_minute=settings.API_RATE_LIMIT_PER_MINUTE,
                requests_per_hour=settings.API_RATE_LIMIT_PER_HOUR,
            ),
            clock=clock,
        ),
        government_client=government_client,
        api_client=api_client,
    )

    logger.info("Network services initialized",
                breakers=list(breakers.keys()),
                serverless=settings.SERVERLESS_MODE)
    return services
