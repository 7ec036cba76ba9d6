"""
Authentication Handler - Builds request headers for each vendor authentication scheme
"""

import base64
import time
from typing import Any, Callable, Dict, Optional

import structlog
from pydantic import SecretStr

from permit_agent.api.network.http_client import FetchRequest, HttpClient
from permit_agent.core.exceptions import ConfigurationException, NetworkError
from permit_agent.models.integration import APIConfig, APICredentials, AuthMethod

logger = structlog.get_logger(__name__)

TOKEN_EXPIRY_MARGIN = 60.0  # seconds shaved off expires_in
DEFAULT_TOKEN_LIFETIME = 3600.0


def _secret(value: Optional[SecretStr]) -> Optional[str]:
    if value is None:
        return None
    return value.get_secret_value() or None


class AuthenticationHandler:
    """Produces auth headers; OAuth2 client-credentials tokens are cached until shortly before expiry"""

    def __init__(self, api_client: HttpClient, clock: Callable[[], float] = time.monotonic):
        self.api_client = api_client
        self._clock = clock
        self.cached_tokens: Dict[str, Dict[str, Any]] = {}

    async def headers_for(self, config: APIConfig, credentials: APICredentials) -> Dict[str, str]:
        """
        Get authentication headers for a permitting system

        Args:
            config: System configuration naming the scheme
            credentials: Secrets configured for the system

        Returns:
            Headers to merge into every request

        Raises:
            ConfigurationException: Required credentials are missing or the token exchange failed
        """
        method = config.authentication

        if method == AuthMethod.NONE:
            headers: Dict[str, str] = {}

        elif method == AuthMethod.API_KEY:
            api_key = _secret(credentials.api_key)
            if not api_key:
                raise self._missing(config, "api_key")
            headers = {config.api_key_header: api_key}

        elif method == AuthMethod.OAUTH2:
            token = _secret(credentials.access_token) or await self._get_oauth2_token(config, credentials)
            headers = {"Authorization": f"Bearer {token}"}

        elif method == AuthMethod.BASIC:
            username = _secret(credentials.username)
            password = _secret(credentials.password)
            if not (username and password):
                raise self._missing(config, "username/password")
            encoded = base64.b64encode(f"{username}:{password}".encode()).decode()
            headers = {"Authorization": f"Basic {encoded}"}

        elif method == AuthMethod.TOKEN:
            token = _secret(credentials.access_token) or _secret(credentials.api_key)
            if not token:
                raise self._missing(config, "access_token")
            headers = {"Authorization": f"Token {token}"}

        else:
            raise ConfigurationException(
                f"Unsupported authentication method: {method}",
                error_code="UNSUPPORTED_AUTH_METHOD",
                details={"system": config.name},
            )

        logger.debug("Generated auth headers", system=config.name, auth_method=method.value)
        return headers

    async def _get_oauth2_token(self, config: APIConfig, credentials: APICredentials) -> str:
        """Client-credentials exchange, cached per system"""
        cached = self.cached_tokens.get(config.name)
        if cached and self._clock() < cached["expires_at"]:
            return cached["token"]

        client_id = _secret(credentials.client_id)
        client_secret = _secret(credentials.client_secret)
        token_url = _secret(credentials.token_url)
        if not (client_id and client_secret and token_url):
            raise self._missing(config, "access_token or client_id/client_secret/token_url")

        request = FetchRequest(
            url=token_url,
            method="POST",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            form_data={
                "grant_type": "client_credentials",
                "client_id": client_id,
                "client_secret": client_secret,
            },
        )
        try:
            result = await self.api_client.fetch(request)
            token_response = result.json()
        except (NetworkError, ValueError) as e:
            logger.error("OAuth2 token exchange failed", system=config.name, error_type=type(e).__name__)
            raise ConfigurationException(
                "OAuth2 token exchange failed",
                error_code="AUTHENTICATION_FAILED",
                details={"system": config.name},
            ) from e

        access_token = token_response.get("access_token") if isinstance(token_response, dict) else None
        if not access_token:
            raise ConfigurationException(
                "OAuth2 token response carried no access_token",
                error_code="AUTHENTICATION_FAILED",
                details={"system": config.name},
            )

        try:
            expires_in = float(token_response.get("expires_in", DEFAULT_TOKEN_LIFETIME))
        except (TypeError, ValueError):
            expires_in = DEFAULT_TOKEN_LIFETIME

        self.cached_tokens[config.name] = {
            "token": access_token,
            "expires_at": self._clock() + max(0.0, expires_in - TOKEN_EXPIRY_MARGIN),
        }
        logger.info("OAuth2 token obtained", system=config.name, expires_in=expires_in)
        return access_token

    def invalidate(self, system: str) -> None:
        self.cached_tokens.pop(system, None)

    @staticmethod
    def _missing(config: APIConfig, what: str) -> ConfigurationException:
        logger.warning("Credentials not configured", system=config.name, missing=what)
        return ConfigurationException(
            f"Credentials not configured for {config.name}: {what}",
            error_code="MISSING_CREDENTIALS",
            details={"system": config.name, "missing": what},
        )
