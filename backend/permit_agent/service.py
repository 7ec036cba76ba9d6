"""
Permit Agent Service - Entry point tying network resilience, extraction and integrations together
"""

import time
from typing import Any, Callable, Dict, List, Optional, Protocol

import httpx
import structlog

from permit_agent.api.extraction.pdf_analyzer import PDFAnalyzer
from permit_agent.api.integrations.permitting_apis import PermittingAPIIntegrator
from permit_agent.api.network.cache import cached
from permit_agent.api.network.http_client import FetchRequest, is_valid_http_url, sanitize_url
from permit_agent.api.network.registry import (
    AI_PROCESSING,
    JURISDICTION_DISCOVERY,
    WEB_SCRAPING,
    NetworkServices,
    build_network_services,
)
from permit_agent.api.network.retry_handler import RetryConfig
from permit_agent.api.processing.ai_client import AIBackend, build_ai_backend
from permit_agent.api.processing.data_processor import PermitDataProcessor
from permit_agent.api.processing.demo_data import build_demo_permit_data
from permit_agent.core.config import Settings, get_settings
from permit_agent.core.exceptions import (
    BreakerOpenError,
    DataUnavailableError,
    HttpError,
    NetworkError,
    RateLimitTimeoutError,
    ValidationException,
)
from permit_agent.models.integration import APIPermit, APIPermitData, ApplicationStatus, PermitSearchQuery
from permit_agent.models.pdf import PDFAnalysisResult
from permit_agent.models.permit import ExtractedPermitData, Jurisdiction, PermitLookupResult

logger = structlog.get_logger(__name__)

TRANSIENT_ERRORS = (NetworkError, BreakerOpenError, RateLimitTimeoutError)


class JurisdictionResolver(Protocol):
    """Finds the municipality responsible for an address"""

    async def resolve(self, address: str) -> Optional[Jurisdiction]:
        ...


def _require_url(url: str) -> str:
    if not url or not is_valid_http_url(url.strip()):
        raise ValidationException(
            "A valid http(s) URL is required",
            error_code="INVALID_URL",
            details={"url": url},
        )
    return sanitize_url(url)


def _with_warning(data: ExtractedPermitData, warning: str) -> ExtractedPermitData:
    return data.model_copy(update={"warnings": list(data.warnings) + [warning]})


class PermitAgentService:
    """
    Facade over the permit data pipeline.

    Holds the process-wide NetworkServices and the components built on them.
    ``fetch_and_extract`` always answers: a site that cannot be fetched or
    parsed yields the clearly marked demo dataset rather than an error.
    """

    def __init__(
        self,
        settings: Settings,
        network: NetworkServices,
        processor: PermitDataProcessor,
        pdf_analyzer: PDFAnalyzer,
        integrator: PermittingAPIIntegrator,
        resolver: Optional[JurisdictionResolver] = None,
        ai_backend: Optional[AIBackend] = None
    ):
        self.settings = settings
        self.network = network
        self.processor = processor
        self.pdf_analyzer = pdf_analyzer
        self.integrator = integrator
        self.resolver = resolver
        self.ai_backend = ai_backend
        self._check_url = cached(
            network.url_validation_cache,
            key_builder=lambda url: url,
        )(self._probe_url)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        resolver: Optional[JurisdictionResolver] = None,
        ai_backend: Optional[AIBackend] = None,
        clock: Callable[[], float] = time.monotonic
    ) -> "PermitAgentService":
        """
        Build the service and everything it owns

        Args:
            settings: Application settings; defaults to the process settings
            transport: httpx transport for every outbound client (tests use MockTransport)
            resolver: Address to jurisdiction collaborator for ``lookup_permits``
            ai_backend: AI backend; defaults to OpenAI when a key is configured
            clock: Monotonic clock shared by breakers, caches and limiters
        """
        settings = settings or get_settings()
        network = build_network_services(settings, transport=transport, clock=clock)
        if ai_backend is None:
            ai_backend = build_ai_backend(settings)

        processor = PermitDataProcessor(
            ai_backend=ai_backend,
            ai_breaker=network.breaker(AI_PROCESSING),
            settings=settings,
        )
        pdf_analyzer = PDFAnalyzer(network.government_client, network.government_limiter)
        integrator = PermittingAPIIntegrator(
            network.api_client,
            settings,
            site_client=network.government_client,
            site_limiter=network.government_limiter,
            clock=clock,
        )

        logger.info("Permit agent service initialized",
                    ai_enabled=ai_backend is not None,
                    resolver_configured=resolver is not None,
                    environment=settings.ENVIRONMENT)
        return cls(settings, network, processor, pdf_analyzer, integrator, resolver, ai_backend)

    async def fetch_and_extract(self, url: str) -> ExtractedPermitData:
        """
        Fetch a permit page and extract permit data from it

        Results that are not the demo fallback are cached by URL.

        Raises:
            ValidationException: ``url`` is not an http(s) URL
        """
        url = _require_url(url)

        cached_data = self.network.permit_data_cache.get(url)
        if cached_data is not None:
            logger.info("Permit data served from cache", url=url)
            return cached_data

        try:
            result = await self.network.breaker(WEB_SCRAPING).execute(
                self.network.government_client.fetch,
                FetchRequest(url=url),
                self.network.government_limiter,
            )
        except TRANSIENT_ERRORS as exc:
            logger.warning("Permit page unavailable, using demo data",
                           url=url,
                           error_code=exc.error_code)
            return _with_warning(
                build_demo_permit_data(source_url=url),
                f"Permit page could not be fetched ({exc.error_code})",
            )

        try:
            data = await self.processor.extract_permit_info(result.text, url)
        except Exception as exc:
            logger.error("Permit extraction failed, using demo data",
                         url=url,
                         error_type=type(exc).__name__,
                         error=str(exc))
            return _with_warning(build_demo_permit_data(source_url=url), "Permit extraction failed")

        if not data.is_fallback:
            self.network.permit_data_cache.set(url, data)
        return data

    async def lookup_permits(self, address: str) -> PermitLookupResult:
        """
        Permit data for the jurisdiction that governs an address

        Raises:
            ValidationException: ``address`` is blank
        """
        address = (address or "").strip()
        if not address:
            raise ValidationException("An address is required", error_code="INVALID_ADDRESS")

        jurisdiction = await self._resolve_jurisdiction(address)
        if jurisdiction is None:
            return PermitLookupResult(
                address=address,
                data=_with_warning(
                    build_demo_permit_data(),
                    "Jurisdiction could not be determined for this address",
                ),
            )

        permit_url = jurisdiction.permit_url or jurisdiction.website
        try:
            data = await self.fetch_and_extract(permit_url)
        except ValidationException as exc:
            logger.warning("Resolved jurisdiction has an unusable URL, using demo data",
                           jurisdiction=jurisdiction.name,
                           url=permit_url,
                           error_code=exc.error_code)
            data = _with_warning(
                build_demo_permit_data(),
                "Jurisdiction website is not a valid http(s) URL",
            )
        return PermitLookupResult(address=address, jurisdiction=jurisdiction, data=data)

    async def _resolve_jurisdiction(self, address: str) -> Optional[Jurisdiction]:
        if self.resolver is None:
            logger.warning("No jurisdiction resolver configured", address=address)
            return None

        key = address.lower()
        jurisdiction = self.network.jurisdiction_cache.get(key)
        if jurisdiction is not None:
            return jurisdiction

        try:
            jurisdiction = await self.network.breaker(JURISDICTION_DISCOVERY).execute(self.resolver.resolve, address)
        except BreakerOpenError as exc:
            logger.warning("Jurisdiction discovery unavailable", address=address, error_code=exc.error_code)
            return None
        except Exception as exc:
            logger.error("Jurisdiction discovery failed", address=address, error_type=type(exc).__name__)
            return None

        if jurisdiction is not None:
            self.network.jurisdiction_cache.set(key, jurisdiction)
        return jurisdiction

    async def analyze_pdf(self, pdf_url: str) -> PDFAnalysisResult:
        """
        Download and analyze a permit application PDF

        Raises:
            ValidationException: ``pdf_url`` is not an http(s) URL
            DataUnavailableError: The PDF could not be downloaded or read
        """
        return await self.pdf_analyzer.analyze(_require_url(pdf_url))

    async def _integrator_call(self, system: str, operation: str, call: Callable[[], Any]) -> Any:
        try:
            return await call()
        except TRANSIENT_ERRORS as exc:
            raise DataUnavailableError(
                f"Permitting system {system} is unavailable",
                error_code="DATA_UNAVAILABLE",
                details={"system": system, "operation": operation, "cause": exc.error_code},
            ) from exc

    async def integrator_fetch(self, system: str, filters: Optional[Dict[str, Any]] = None) -> APIPermitData:
        """
        Canonical permit data from a third-party permitting system

        Raises:
            ConfigurationException: Unknown system or missing credentials
            DataUnavailableError: The system could not be reached
        """
        return await self._integrator_call(
            system, "fetch_permit_data", lambda: self.integrator.fetch_permit_data(system, filters)
        )

    async def integrator_search(self, system: str, query: PermitSearchQuery) -> List[APIPermit]:
        return await self._integrator_call(
            system, "search_permits", lambda: self.integrator.search_permits(system, query)
        )

    async def integrator_application_status(self, system: str, application_id: str) -> ApplicationStatus:
        return await self._integrator_call(
            system, "get_application_status", lambda: self.integrator.get_application_status(system, application_id)
        )

    async def detect_systems(self, jurisdiction_url: str) -> List[str]:
        return await self.integrator.detect_systems(_require_url(jurisdiction_url))

    def has_system(self, system: str) -> bool:
        return system in self.integrator.configs

    async def validate_url(self, url: str) -> bool:
        """True when ``url`` is well formed and its host answers below 400; results are cached"""
        if not url or not is_valid_http_url(url.strip()):
            return False
        return await self._check_url(sanitize_url(url))

    async def _probe_url(self, url: str) -> bool:
        request = FetchRequest(
            url=url,
            method="HEAD",
            retry=RetryConfig(max_retries=0, timeout_seconds=self.settings.HEALTH_PROBE_TIMEOUT),
        )
        try:
            await self.network.government_client.fetch(request, self.network.government_limiter)
        except HttpError as exc:
            logger.info("URL answered with an error status", url=url, status_code=exc.status_code)
            return False
        except TRANSIENT_ERRORS as exc:
            logger.info("URL unreachable", url=url, error_code=exc.error_code)
            return False
        return True

    def get_health(self) -> Dict[str, Any]:
        network = self.network.get_status()
        open_breakers = [
            name for name, status in network["breakers"].items() if status["state"] != "closed"
        ]
        integrations = self.integrator.get_status()
        open_breakers.extend(
            status["breaker"]["name"]
            for status in integrations.values()
            if status["breaker"]["state"] != "closed"
        )
        return {
            "status": "degraded" if open_breakers else "healthy",
            "open_breakers": open_breakers,
            "ai_enabled": self.ai_backend is not None,
            "network": network,
            "integrations": integrations,
        }

    async def aclose(self) -> None:
        await self.network.aclose()
        if self.ai_backend is not None and hasattr(self.ai_backend, "aclose"):
            await self.ai_backend.aclose()
        logger.info("Permit agent service closed")
