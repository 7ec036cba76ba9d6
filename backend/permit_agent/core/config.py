"""
Application configuration
"""

from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SYSTEMS_CONFIG = Path(__file__).resolve().parent.parent / "api" / "integrations" / "permitting_systems.yaml"


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or console

    # API Settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Permit Agent"
    VERSION: str = "1.0.0"

    # CORS Settings
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8000"

    # Environment
    ENVIRONMENT: str = "development"  # development, staging, production
    SERVERLESS_MODE: bool = False  # Tighter budgets when running behind a platform request deadline

    # Circuit breakers (failures before opening, seconds before a probe is allowed)
    JURISDICTION_BREAKER_FAILURE_THRESHOLD: int = 5
    JURISDICTION_BREAKER_RESET_TIMEOUT: float = 60.0
    SCRAPING_BREAKER_FAILURE_THRESHOLD: int = 3
    SCRAPING_BREAKER_RESET_TIMEOUT: float = 30.0
    AI_BREAKER_FAILURE_THRESHOLD: int = 2
    AI_BREAKER_RESET_TIMEOUT: float = 120.0
    INTEGRATION_BREAKER_FAILURE_THRESHOLD: int = 5
    INTEGRATION_BREAKER_RESET_TIMEOUT: float = 60.0

    # Caches (seconds, entries)
    JURISDICTION_CACHE_TTL: float = 600.0
    JURISDICTION_CACHE_MAX_SIZE: int = 50
    URL_VALIDATION_CACHE_TTL: float = 300.0
    URL_VALIDATION_CACHE_MAX_SIZE: int = 200
    PERMIT_DATA_CACHE_TTL: float = 1800.0
    PERMIT_DATA_CACHE_MAX_SIZE: int = 100

    # Government site client
    GOVERNMENT_REQUEST_TIMEOUT: float = 15.0
    GOVERNMENT_MAX_RETRIES: int = 2
    GOVERNMENT_RETRY_DELAY: float = 0.5
    GOVERNMENT_MAX_RETRY_DELAY: float = 30.0
    GOVERNMENT_BACKOFF_FACTOR: float = 1.5
    GOVERNMENT_USER_AGENT: str = "PermitAgent/1.0 (Municipal Permit Research Tool)"

    # Third-party API client
    API_REQUEST_TIMEOUT: float = 30.0
    API_MAX_RETRIES: int = 3
    API_RETRY_DELAY: float = 0.5
    API_MAX_RETRY_DELAY: float = 30.0
    API_BACKOFF_FACTOR: float = 1.5
    API_USER_AGENT: str = "PermitAgent/1.0 (+https://permitagent.com)"

    # Rate limits
    GOVERNMENT_RATE_LIMIT_PER_SECOND: Optional[int] = 1
    GOVERNMENT_RATE_LIMIT_PER_MINUTE: int = 30
    GOVERNMENT_RATE_LIMIT_PER_HOUR: int = 1000
    API_RATE_LIMIT_PER_SECOND: Optional[int] = 5
    API_RATE_LIMIT_PER_MINUTE: int = 100
    API_RATE_LIMIT_PER_HOUR: int = 5000
    RATE_LIMIT_MAX_WAIT: float = 30.0

    # AI backend
    OPENAI_API_KEY: Optional[SecretStr] = None
    OPENAI_BASE_URL: Optional[str] = None
    AI_MODEL: str = "gpt-4-turbo-preview"
    AI_TEMPERATURE: float = 0.1
    AI_MAX_TOKENS: int = 4000
    AI_TIMEOUT: float = 30.0
    AI_HTML_CONTEXT_CHARS: int = 6000

    # Permitting system integrations
    PERMITTING_SYSTEMS_CONFIG_PATH: str = str(DEFAULT_SYSTEMS_CONFIG)
    FUZZY_MATCH_THRESHOLD: int = 90  # 0-100 similarity for vendor key drift
    HEALTH_PROBE_TIMEOUT: float = 5.0

    # Vendor credentials
    ACCELA_CLIENT_ID: Optional[str] = None
    ACCELA_CLIENT_SECRET: Optional[SecretStr] = None
    ACCELA_ACCESS_TOKEN: Optional[SecretStr] = None
    ACCELA_TOKEN_URL: str = "https://auth.accela.com/oauth2/token"
    TYLER_API_KEY: Optional[SecretStr] = None
    ENERGOV_ACCESS_TOKEN: Optional[SecretStr] = None
    ENERGOV_USERNAME: Optional[str] = None
    ENERGOV_PASSWORD: Optional[SecretStr] = None

    @property
    def government_timeout(self) -> float:
        """Per-attempt timeout for municipal sites, shortened in serverless mode"""
        if self.SERVERLESS_MODE:
            return min(self.GOVERNMENT_REQUEST_TIMEOUT, 10.0)
        return self.GOVERNMENT_REQUEST_TIMEOUT

    @property
    def government_max_retries(self) -> int:
        if self.SERVERLESS_MODE:
            return min(self.GOVERNMENT_MAX_RETRIES, 1)
        return self.GOVERNMENT_MAX_RETRIES

    def get_cors_origins(self) -> List[str]:
        """Return the list of allowed CORS origins"""
        return [origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def ai_enabled(self) -> bool:
        return self.OPENAI_API_KEY is not None and bool(self.OPENAI_API_KEY.get_secret_value())

    def get_system_credentials(self, system: str) -> Dict[str, Optional[SecretStr]]:
        """
        Collect credentials configured for a permitting system

        Args:
            system: System name (accela, tyler, energov)

        Returns:
            Mapping of credential field to secret value; unset fields are omitted
        """
        prefix = system.upper()
        candidates = {
            "api_key": f"{prefix}_API_KEY",
            "access_token": f"{prefix}_ACCESS_TOKEN",
            "client_id": f"{prefix}_CLIENT_ID",
            "client_secret": f"{prefix}_CLIENT_SECRET",
            "token_url": f"{prefix}_TOKEN_URL",
            "username": f"{prefix}_USERNAME",
            "password": f"{prefix}_PASSWORD",
        }

        credentials: Dict[str, Optional[SecretStr]] = {}
        for field_name, attribute in candidates.items():
            value = getattr(self, attribute, None)
            if value is None:
                continue
            if not isinstance(value, SecretStr):
                value = SecretStr(str(value))
            credentials[field_name] = value
        return credentials


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance"""
    return Settings()


# Create global settings instance
settings = get_settings()
