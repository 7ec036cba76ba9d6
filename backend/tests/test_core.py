import pytest
from pydantic import SecretStr

from permit_agent.core.config import Settings
from permit_agent.core.exceptions import (
    BreakerOpenError,
    ConfigurationException,
    DataUnavailableError,
    HttpError,
    RateLimitTimeoutError,
    ValidationException,
    http_exception_from,
)
from permit_agent.core.logging import redact_secrets


def test_credentials_are_redacted_from_log_events():
    event = redact_secrets(None, "info", {
        "event": "Generated auth headers",
        "system": "tyler",
        "api_key": "k-123",
        "Authorization": "Bearer abc",
        "client_secret": "shh",
        "access_token": "t",
    })

    assert event["system"] == "tyler"
    assert {event[key] for key in ("api_key", "Authorization", "client_secret", "access_token")} == {"***"}


@pytest.mark.parametrize("exc, status_code", [
    (ValidationException("bad url", error_code="INVALID_URL"), 400),
    (BreakerOpenError("web_scraping", 12.0), 429),
    (RateLimitTimeoutError("government_sites", 45.0), 429),
    (DataUnavailableError("down", error_code="DATA_UNAVAILABLE"), 503),
    (HttpError(502, url="https://springfield.gov"), 503),
    (ConfigurationException("no key", error_code="MISSING_CREDENTIALS"), 500),
])
def test_exception_status_mapping(exc, status_code):
    http_exc = http_exception_from(exc)
    assert http_exc.status_code == status_code
    assert http_exc.detail["error_code"] == exc.error_code


def test_system_credentials_come_from_settings():
    settings = Settings(
        _env_file=None,
        TYLER_API_KEY="tyler-key",
        ENERGOV_USERNAME="inspector",
        ENERGOV_PASSWORD="pw",
    )

    tyler = settings.get_system_credentials("tyler")
    energov = settings.get_system_credentials("energov")

    assert tyler["api_key"].get_secret_value() == "tyler-key"
    assert "access_token" not in tyler
    assert isinstance(energov["username"], SecretStr)
    assert energov["password"].get_secret_value() == "pw"
    assert settings.get_system_credentials("permitpro") == {}


def test_serverless_mode_tightens_budgets():
    settings = Settings(_env_file=None, SERVERLESS_MODE=True, GOVERNMENT_REQUEST_TIMEOUT=20.0)
    assert settings.government_timeout == 10.0
    assert settings.government_max_retries == 1


def test_cors_origins():
    settings = Settings(_env_file=None, BACKEND_CORS_ORIGINS="https://a.example, https://b.example,")
    assert settings.get_cors_origins() == ["https://a.example", "https://b.example"]
