"""
Permitting API Integrator - Canonical permit data from vendor permitting systems
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Type
from urllib.parse import quote

import structlog

from permit_agent.api.integrations.authentication import AuthenticationHandler
from permit_agent.api.integrations.field_mapper import (
    FieldMapper,
    PermittingSystemsConfig,
    unwrap_single,
)
from permit_agent.api.network.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from permit_agent.api.network.http_client import FetchRequest, HttpClient
from permit_agent.api.network.rate_limiter import RateLimitConfig, RateLimiter
from permit_agent.api.network.retry_handler import RetryConfig
from permit_agent.core.config import Settings
from permit_agent.core.exceptions import (
    BreakerOpenError,
    ConfigurationException,
    DataUnavailableError,
    HttpError,
    NetworkError,
    RateLimitTimeoutError,
)
from permit_agent.models.integration import (
    APIApplication,
    APIConfig,
    APICredentials,
    APIDepartment,
    APIFee,
    APIInspection,
    APIPermit,
    APIPermitData,
    ApplicationStatus,
    AuthMethod,
    CanonicalRecord,
    IntegrationMetadata,
    PermitSearchQuery,
    VendorSignature,
)

logger = structlog.get_logger(__name__)

RECORD_MODELS: Dict[str, Type[CanonicalRecord]] = {
    "permits": APIPermit,
    "fees": APIFee,
    "applications": APIApplication,
    "inspections": APIInspection,
    "departments": APIDepartment,
}


def build_url(config: APIConfig, endpoint: str) -> str:
    return f"{config.base_url.rstrip('/')}/{config.version.strip('/')}{endpoint}"


def translate_params(values: Dict[str, Any], names: Dict[str, str]) -> Dict[str, str]:
    """Canonical parameter names -> vendor names; unknown names pass through"""
    return {names.get(key, key): str(value) for key, value in values.items() if value is not None}


def match_signatures(content: str, signatures: List[VendorSignature]) -> List[str]:
    lowered = content.lower()
    return [
        signature.system
        for signature in signatures
        if any(indicator in lowered for indicator in signature.indicators)
    ]


class PermittingAPIIntegrator:
    """
    Client for third-party permitting systems (Accela, Tyler, EnerGov).

    Each system gets its own rate limiter, sized from its configured budget,
    and its own circuit breaker. Requests go through the shared retrying
    HTTP client with the system's authentication headers, and vendor payloads
    are mapped to canonical records by the FieldMapper.
    """

    def __init__(
        self,
        http_client: HttpClient,
        settings: Settings,
        configs: Optional[Dict[str, APIConfig]] = None,
        signatures: Optional[List[VendorSignature]] = None,
        mapper: Optional[FieldMapper] = None,
        auth: Optional[AuthenticationHandler] = None,
        credentials: Optional[Dict[str, APICredentials]] = None,
        site_client: Optional[HttpClient] = None,
        site_limiter: Optional[RateLimiter] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.http_client = http_client
        self.settings = settings
        self.site_client = site_client or http_client
        self.site_limiter = site_limiter

        if configs is None or signatures is None or mapper is None:
            systems_config = PermittingSystemsConfig(settings.PERMITTING_SYSTEMS_CONFIG_PATH)
            configs = systems_config.get_systems() if configs is None else configs
            signatures = systems_config.get_signatures() if signatures is None else signatures
            mapper = mapper or FieldMapper(systems_config.get_fuzzy_threshold())

        self.configs = configs
        self.signatures = signatures
        self.mapper = mapper
        self.auth = auth or AuthenticationHandler(http_client, clock=clock)
        self._credentials = credentials or {}

        self.limiters: Dict[str, RateLimiter] = {}
        self.breakers: Dict[str, CircuitBreaker] = {}
        for name, config in self.configs.items():
            self.limiters[name] = RateLimiter(
                f"integration_{name}",
                RateLimitConfig(
                    requests_per_minute=config.rate_limit.requests_per_minute,
                    requests_per_hour=config.rate_limit.requests_per_hour,
                ),
                clock=clock,
            )
            self.breakers[name] = CircuitBreaker(
                f"integration_{name}",
                CircuitBreakerConfig(
                    failure_threshold=settings.INTEGRATION_BREAKER_FAILURE_THRESHOLD,
                    reset_timeout_seconds=settings.INTEGRATION_BREAKER_RESET_TIMEOUT,
                ),
                clock=clock,
            )

        logger.info("Permitting API integrator initialized", systems=sorted(self.configs))

    def get_config(self, system: str) -> APIConfig:
        config = self.configs.get(system)
        if config is None:
            raise ConfigurationException(
                f"Unknown permitting system: {system}",
                error_code="UNKNOWN_SYSTEM",
                details={"system": system, "available": sorted(self.configs)},
            )
        return config

    def credentials_for(self, system: str) -> APICredentials:
        if system in self._credentials:
            return self._credentials[system]
        return APICredentials(**self.settings.get_system_credentials(system))

    async def detect_systems(self, jurisdiction_url: str) -> List[str]:
        """
        Detect permitting systems used by a jurisdiction

        Vendor signatures are matched in the jurisdiction's page while every
        configured system's health endpoint is probed concurrently. Failures
        of either mean "not detected"; this never raises.

        Returns:
            Detected system names, without duplicates
        """
        names = list(self.configs)
        results = await asyncio.gather(
            self._detect_by_signature(jurisdiction_url),
            *(self._probe_health(name) for name in names),
        )

        detected: List[str] = []
        for system in results[0]:
            if system not in detected:
                detected.append(system)
        for name, reachable in zip(names, results[1:]):
            if reachable and name not in detected:
                detected.append(name)

        logger.info("Permitting systems detected", url=jurisdiction_url, systems=detected)
        return detected

    async def _detect_by_signature(self, jurisdiction_url: str) -> List[str]:
        try:
            content = await self.site_client.get_text(
                jurisdiction_url,
                limiter=self.site_limiter,
                retry=RetryConfig(max_retries=0, timeout_seconds=self.settings.government_timeout),
            )
        except Exception as e:
            logger.warning("Jurisdiction site unavailable for system detection",
                           url=jurisdiction_url,
                           error_type=type(e).__name__)
            return []
        return match_signatures(content, self.signatures)

    async def _probe_health(self, system: str) -> bool:
        config = self.configs[system]
        url = f"{config.base_url.rstrip('/')}{config.health_path}"
        request = FetchRequest(
            url=url,
            retry=RetryConfig(max_retries=0, timeout_seconds=self.settings.HEALTH_PROBE_TIMEOUT),
            admit_timeout=self.settings.HEALTH_PROBE_TIMEOUT,
        )
        try:
            await self.http_client.fetch(request, limiter=self.limiters[system])
            return True
        except HttpError as e:
            return e.status_code is not None and e.status_code < 500
        except RateLimitTimeoutError:
            logger.info("Health probe skipped, rate limit exhausted", system=system)
            return False
        except Exception as e:
            logger.debug("Health probe failed", system=system, error_type=type(e).__name__)
            return False

    async def _request(
        self,
        system: str,
        endpoint_key: str,
        params: Optional[Dict[str, str]] = None,
        application_id: Optional[str] = None
    ) -> Any:
        """One authenticated, rate-limited, breaker-guarded request; returns the decoded JSON"""
        config = self.get_config(system)
        endpoint = config.endpoints.get(endpoint_key)
        if endpoint is None:
            raise ConfigurationException(
                f"{system} has no '{endpoint_key}' endpoint",
                error_code="UNKNOWN_ENDPOINT",
                details={"system": system, "endpoint": endpoint_key},
            )
        if application_id is not None:
            endpoint = endpoint.replace("{id}", quote(application_id, safe=""))

        headers = await self.auth.headers_for(config, self.credentials_for(system))
        request = FetchRequest(url=build_url(config, endpoint), headers=headers, params=params or {})

        async def call() -> Any:
            result = await self.http_client.fetch(request, limiter=self.limiters[system])
            try:
                return result.json()
            except ValueError as e:
                raise DataUnavailableError(
                    f"{system} returned a non-JSON response",
                    error_code="DATA_UNAVAILABLE",
                    details={"system": system, "endpoint": endpoint_key},
                ) from e

        try:
            return await self.breakers[system].execute(call)
        except (BreakerOpenError, RateLimitTimeoutError) as e:
            logger.warning("Permitting system request rejected",
                           system=system,
                           endpoint=endpoint_key,
                           error_code=e.error_code)
            raise
        except NetworkError as e:
            logger.warning("Permitting system request failed",
                           system=system,
                           endpoint=endpoint_key,
                           error_kind=e.kind.value,
                           status_code=e.status_code)
            if isinstance(e, HttpError) and e.status_code == 401 and config.authentication == AuthMethod.OAUTH2:
                self.auth.invalidate(system)
            raise

    async def _fetch_records(
        self,
        system: str,
        record_type: str,
        params: Dict[str, str]
    ) -> List[CanonicalRecord]:
        config = self.get_config(system)
        if record_type not in config.endpoints:
            return []
        payload = await self._request(system, record_type, params)
        return self.mapper.map_records(payload, config.data_mapping.get(record_type, {}), RECORD_MODELS[record_type])

    async def fetch_permit_data(self, system: str, filters: Optional[Dict[str, Any]] = None) -> APIPermitData:
        """
        Fetch permits, fees, applications, inspections and departments

        The five collections are requested concurrently; the first failure
        propagates.

        Args:
            system: Configured system name
            filters: Canonical filters (permit_type, status, jurisdiction)

        Raises:
            ConfigurationException: Unknown system or missing credentials
            NetworkError: A request failed after retries
            BreakerOpenError: The system's breaker is open
        """
        config = self.get_config(system)
        params = translate_params(filters or {}, config.filter_params)
        record_types = list(RECORD_MODELS)

        logger.info("Fetching permit data from permitting system", system=system, filters=sorted(params))
        collections = await asyncio.gather(
            *(self._fetch_records(system, record_type, params) for record_type in record_types)
        )
        records = dict(zip(record_types, collections))

        return APIPermitData(
            system=system,
            **records,
            metadata=IntegrationMetadata(
                source=config.display_name or system,
                version=config.version,
                total_records=sum(len(items) for items in collections),
            ),
        )

    async def search_permits(self, system: str, query: PermitSearchQuery) -> List[APIPermit]:
        config = self.get_config(system)
        params = translate_params(query.model_dump(exclude_none=True), config.search_params)
        payload = await self._request(system, "search", params)
        permits = self.mapper.map_records(payload, config.data_mapping.get("permits", {}), APIPermit)
        logger.info("Permit search completed", system=system, results=len(permits))
        return permits

    async def get_application_status(self, system: str, application_id: str) -> ApplicationStatus:
        """Current status of one application"""
        config = self.get_config(system)
        payload = await self._request(system, "status", application_id=application_id)
        status = self.mapper.to_record(
            unwrap_single(payload),
            config.data_mapping.get("status", {}),
            ApplicationStatus,
        )
        if not status.application_id:
            status = status.model_copy(update={"application_id": application_id})
        return status

    def get_status(self) -> Dict[str, Any]:
        return {
            name: {
                "breaker": self.breakers[name].get_status(),
                "rate_limit": self.limiters[name].get_status(),
            }
            for name in self.configs
        }
