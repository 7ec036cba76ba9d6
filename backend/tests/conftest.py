from typing import Callable, Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient

from permit_agent.core.config import Settings
from permit_agent.main import create_app
from permit_agent.service import PermitAgentService


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class RecordingHandler:
    """MockTransport handler answering from a per-URL queue of responses."""

    def __init__(self, routes: Dict[str, List[httpx.Response]], default: httpx.Response = None):
        self.routes = routes
        self.default = default or httpx.Response(404)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url).split("?")[0]
        queue = self.routes.get(url)
        if not queue:
            return self.default
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def calls_to(self, url: str) -> int:
        return sum(1 for request in self.requests if str(request.url).split("?")[0] == url)


PERMIT_PAGE = """
<html>
  <head><title>Building Permits</title><script>var x = 1;</script></head>
  <body>
    <h1>Building Department Permits</h1>
    <table>
      <thead><tr><th>Permit Type</th><th>Fee</th></tr></thead>
      <tbody>
        <tr><td>Electrical Permit</td><td>$75.00</td></tr>
        <tr><td>Plumbing Permit</td><td>$65.00</td></tr>
      </tbody>
    </table>
    <p>Call us at <a href="tel:5551234567">555-123-4567</a> or email
       <a href="mailto:permits@springfield.gov">permits@springfield.gov</a>.</p>
    <h2>Requirements</h2>
    <ul>
      <li>Completed application form</li>
      <li>Site plan showing property boundaries</li>
    </ul>
  </body>
</html>
"""


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings with instant retries, roomy rate limits and no AI backend."""
    return Settings(
        _env_file=None,
        LOG_FORMAT="console",
        OPENAI_API_KEY=None,
        GOVERNMENT_RETRY_DELAY=0.0,
        API_RETRY_DELAY=0.0,
        GOVERNMENT_RATE_LIMIT_PER_SECOND=None,
        GOVERNMENT_RATE_LIMIT_PER_MINUTE=1000,
        GOVERNMENT_RATE_LIMIT_PER_HOUR=10000,
        API_RATE_LIMIT_PER_SECOND=None,
        API_RATE_LIMIT_PER_MINUTE=1000,
        API_RATE_LIMIT_PER_HOUR=10000,
        TYLER_API_KEY="tyler-test-key",
        ENERGOV_ACCESS_TOKEN="energov-test-token",
        ACCELA_ACCESS_TOKEN="accela-test-token",
    )


@pytest.fixture
def permit_page() -> str:
    return PERMIT_PAGE


@pytest.fixture
def make_service(settings: Settings) -> Callable[..., PermitAgentService]:
    """Build a service whose every outbound request goes to ``handler``."""
    def factory(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> PermitAgentService:
        return PermitAgentService.from_settings(
            kwargs.pop("settings", settings),
            transport=httpx.MockTransport(handler),
            **kwargs,
        )
    return factory


@pytest.fixture
def mock_handler() -> RecordingHandler:
    return RecordingHandler({})


@pytest.fixture
def service(make_service, mock_handler) -> PermitAgentService:
    return make_service(mock_handler)


@pytest.fixture
def client(service: PermitAgentService):
    """Create a test client for the FastAPI application."""
    with TestClient(create_app(service=service)) as test_client:
        yield test_client
