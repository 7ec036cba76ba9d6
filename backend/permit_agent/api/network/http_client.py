"""
HTTP Client - Retrying, rate-limited outbound requests over httpx
"""

import time
import uuid
from collections import deque
from typing import Any, Deque, Dict, Optional
from urllib.parse import urlparse, urlunparse

import httpx
import structlog
from pydantic import BaseModel, Field, computed_field

from permit_agent.api.network.rate_limiter import RateLimiter
from permit_agent.api.network.retry_handler import RetryConfig, RetryHandler
from permit_agent.core.exceptions import HttpError, NetworkError

logger = structlog.get_logger(__name__)

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

JSON_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}

MAX_TRACKED_OUTCOMES = 500


class FetchRequest(BaseModel):
    """One logical outbound request"""
    url: str
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    params: Dict[str, Any] = Field(default_factory=dict)
    json_body: Optional[Any] = None
    form_data: Optional[Dict[str, str]] = None
    timeout_seconds: Optional[float] = None  # overrides the retry config deadline
    admit_timeout: Optional[float] = None  # overrides the client rate-limit wait
    retry: Optional[RetryConfig] = None
    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex)


class FetchOutcome(BaseModel):
    """Result summary of a logical request, for logs and metrics"""
    request_id: str
    url: str
    success: bool
    status_code: Optional[int] = None
    error_kind: Optional[str] = None
    elapsed_seconds: float = 0.0
    attempts: int = 0

    @computed_field  # type: ignore[misc]
    @property
    def retries(self) -> int:
        return max(0, self.attempts - 1)


class FetchResult:
    """A successful response together with its outcome summary"""

    def __init__(self, response: httpx.Response, outcome: FetchOutcome):
        self.response = response
        self.outcome = outcome

    @property
    def text(self) -> str:
        return self.response.text

    def json(self) -> Any:
        return self.response.json()


class HttpClient:
    """Outbound HTTP with per-attempt deadlines, classified retries and optional admission control"""

    def __init__(
        self,
        name: str,
        retry_config: RetryConfig,
        headers: Optional[Dict[str, str]] = None,
        retry_handler: Optional[RetryHandler] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[httpx.AsyncClient] = None,
        rate_limit_timeout: Optional[float] = None
    ):
        self.name = name
        self.retry_config = retry_config
        self.retry_handler = retry_handler or RetryHandler(retry_config)
        self.rate_limit_timeout = rate_limit_timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers=headers or {},
            transport=transport,
            follow_redirects=True,
            timeout=httpx.Timeout(retry_config.timeout_seconds),
        )
        self.outcomes: Deque[FetchOutcome] = deque(maxlen=MAX_TRACKED_OUTCOMES)

    async def fetch(self, request: FetchRequest, limiter: Optional[RateLimiter] = None) -> FetchResult:
        """
        Perform one logical request

        Args:
            request: Request description
            limiter: Rate limiter every attempt must be admitted by

        Returns:
            FetchResult with the successful response and its outcome summary

        Raises:
            NetworkError: Classified failure after the retry budget is spent
        """
        config = request.retry or self.retry_config
        if request.timeout_seconds is not None:
            config = config.model_copy(update={"timeout_seconds": request.timeout_seconds})
        admit_timeout = self.rate_limit_timeout if request.admit_timeout is None else request.admit_timeout
        started = time.monotonic()

        async def admit() -> None:
            if limiter is not None:
                await limiter.admit(timeout=admit_timeout)

        async def attempt() -> httpx.Response:
            response = await self._client.request(
                request.method,
                request.url,
                headers=request.headers or None,
                params=request.params or None,
                json=request.json_body,
                data=request.form_data,
                timeout=config.timeout_seconds,
            )
            if limiter is not None:
                limiter.note_response(response.status_code, response.headers)
            if not response.is_success:
                raise HttpError(response.status_code, url=request.url)
            return response

        try:
            response = await self.retry_handler.execute_with_retry(
                attempt,
                request_id=request.request_id,
                config=config,
                url=request.url,
                before_attempt=admit,
            )
        except NetworkError as exc:
            outcome = self._record(request, started, success=False, status_code=exc.status_code,
                                   error_kind=exc.kind.value)
            logger.warning("Request failed",
                           client=self.name,
                           url=request.url,
                           attempts=outcome.attempts,
                           error_kind=outcome.error_kind,
                           status_code=outcome.status_code)
            raise

        outcome = self._record(request, started, success=True, status_code=response.status_code)
        logger.info("Request completed",
                    client=self.name,
                    url=request.url,
                    status_code=response.status_code,
                    attempts=outcome.attempts,
                    elapsed_seconds=round(outcome.elapsed_seconds, 3))
        return FetchResult(response=response, outcome=outcome)

    async def get_text(self, url: str, limiter: Optional[RateLimiter] = None, **kwargs: Any) -> str:
        result = await self.fetch(FetchRequest(url=url, **kwargs), limiter=limiter)
        return result.text

    async def get_json(self, url: str, limiter: Optional[RateLimiter] = None, **kwargs: Any) -> Any:
        result = await self.fetch(FetchRequest(url=url, **kwargs), limiter=limiter)
        return result.json()

    def _record(
        self,
        request: FetchRequest,
        started: float,
        success: bool,
        status_code: Optional[int] = None,
        error_kind: Optional[str] = None
    ) -> FetchOutcome:
        history = self.retry_handler.get_result(request.request_id)
        outcome = FetchOutcome(
            request_id=request.request_id,
            url=request.url,
            success=success,
            status_code=status_code,
            error_kind=error_kind,
            elapsed_seconds=time.monotonic() - started,
            attempts=history.total_attempts if history else 0,
        )
        self.outcomes.append(outcome)
        return outcome

    def get_metrics(self) -> Dict[str, Any]:
        """Aggregate metrics over recent requests"""
        outcomes = list(self.outcomes)
        total = len(outcomes)
        successes = sum(1 for outcome in outcomes if outcome.success)
        errors: Dict[str, int] = {}
        for outcome in outcomes:
            if outcome.error_kind:
                errors[outcome.error_kind] = errors.get(outcome.error_kind, 0) + 1

        return {
            "client": self.name,
            "total_requests": total,
            "successful_requests": successes,
            "failed_requests": total - successes,
            "total_attempts": sum(outcome.attempts for outcome in outcomes),
            "average_elapsed_seconds": (
                sum(outcome.elapsed_seconds for outcome in outcomes) / total if total else 0.0
            ),
            "errors_by_kind": errors,
        }

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def is_valid_http_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def sanitize_url(url: str) -> str:
    """Trim whitespace and drop the fragment"""
    parsed = urlparse(url.strip())
    return urlunparse(parsed._replace(fragment=""))


def extract_domain(url: str) -> str:
    try:
        return urlparse(url).hostname or ""
    except ValueError:
        return ""


def timeout_for_url(url: str) -> float:
    """Per-attempt timeout suited to the kind of host"""
    domain = extract_domain(url)
    if domain.endswith(".gov") or ".gov." in domain:
        return 20.0
    if "/api/" in url:
        return 30.0
    return 15.0
