"""
Permit Data Processor - Merges structured extraction, AI supplementation and the demo fallback
"""

import asyncio
import json
import re
from typing import Dict, List, Optional, Sequence

import structlog

from permit_agent.api.extraction import patterns
from permit_agent.api.extraction.content_extractor import ContentExtractor
from permit_agent.api.network.circuit_breaker import CircuitBreaker
from permit_agent.api.processing.ai_client import AIBackend
from permit_agent.api.processing.demo_data import build_demo_permit_data
from permit_agent.api.processing.response_parser import AISupplement, parse_ai_response
from permit_agent.core.config import Settings, get_settings
from permit_agent.core.exceptions import AIUnavailableError, BreakerOpenError, ExtractionInsufficientError
from permit_agent.models.extraction import ExtractedForm, ExtractedTable, PermitDetails, StructuredExtraction
from permit_agent.models.permit import (
    ContactInfo,
    DataSource,
    ExtractedPermitData,
    PermitCategory,
    PermitFee,
    PermitType,
    ProcessingInfo,
)

logger = structlog.get_logger(__name__)

MIN_HTML_LENGTH = 100
PERMIT_FORM_NAME = re.compile(r"permit|application|license|registration", re.IGNORECASE)

SYSTEM_PROMPT = (
    "You are an expert at extracting permit information from government websites. "
    "Use the provided structured data as context and supplement it with additional "
    "information from the HTML content. Return only valid JSON."
)

RESPONSE_SHAPE = """{
  "permits": [{"name": "string", "category": "building|electrical|plumbing|mechanical|zoning|demolition|sign|other",
               "description": "string", "requirements": ["string"], "processingTime": "string"}],
  "fees": [{"type": "string", "amount": 0, "unit": "flat|per_sqft|per_inspection|per_hour|per_unit|percentage",
            "description": "string", "conditions": ["string"]}],
  "contact": {"phone": "string", "email": "string",
              "address": {"street": "string", "city": "string", "state": "string", "zipCode": "string"},
              "hoursOfOperation": {"monday": {"open": "HH:MM", "close": "HH:MM"}}},
  "processing": {"averageTime": "string", "rushOptions": ["string"], "inspectionSchedule": "string",
                 "appealProcess": "string"}
}"""

CONTACT_FIELDS = ("phone", "email", "address", "department")
PROCESSING_FIELDS = ("average_time", "rush_options", "inspection_schedule", "appeal_process")


def should_supplement(
    permits: Sequence[PermitType],
    fees: Sequence[PermitFee],
    tables: Sequence[ExtractedTable],
    contact: ContactInfo
) -> bool:
    """True when structured extraction left a gap worth asking the AI about"""
    return (
        not permits
        or (not fees and bool(tables))
        or not contact.has_direct_contact()
    )


def extract_structured(html: str, url: str) -> StructuredExtraction:
    """Parse and run every extractor; CPU bound, callers run it off the event loop"""
    return ContentExtractor(html, url).extract_all()


def convert_fees_to_permits(fees: Sequence[PermitFee]) -> List[PermitType]:
    """One candidate permit per distinct fee name, with that name's fees attached"""
    grouped: Dict[str, List[PermitFee]] = {}
    for fee in fees:
        grouped.setdefault(patterns.strip_fee_words(fee.type), []).append(fee)

    return [
        PermitType(
            id=f"fee-{patterns.slugify(name)}",
            name=name,
            category=patterns.infer_permit_category(name),
            description=group[0].description or f"{name} permit",
            fees=group,
        )
        for name, group in grouped.items()
    ]


def convert_forms_to_permits(forms: Sequence[ExtractedForm]) -> List[PermitType]:
    """Application forms become permits whose requirements are the form's required fields"""
    permits = []
    for form in forms:
        required = [field.label for field in form.fields if field.required and field.label]
        if not PERMIT_FORM_NAME.search(form.name) and not required:
            continue
        permits.append(PermitType(
            id=f"form-{patterns.slugify(form.name)}",
            name=form.name,
            category=patterns.infer_permit_category(form.name),
            description=f"Application form: {form.name}",
            requirements=required,
        ))
    return permits


def convert_details_to_permits(details: PermitDetails, known: Sequence[PermitType] = ()) -> List[PermitType]:
    """Permit types named in page text that no fee or form already covers"""
    seen = {patterns.strip_fee_words(permit.name).lower() for permit in known}
    permits = []
    for name in details.permit_types:
        key = patterns.strip_fee_words(name).lower()
        if key in seen:
            continue
        seen.add(key)
        permits.append(PermitType(
            id=f"page-{patterns.slugify(name)}",
            name=name,
            category=patterns.infer_permit_category(name),
            description=f"{name} listed on the permit page",
        ))
    return permits


def generate_basic_permits() -> List[PermitType]:
    return [PermitType(
        id="general-permit-information",
        name="General Permit Information Available",
        category=PermitCategory.BUILDING,
        description="Contact jurisdiction for specific permit types and requirements",
        requirements=["Contact local building department"],
        processing_time="Contact for processing times",
    )]


def merge_contact(current: ContactInfo, proposed: ContactInfo, supplemented: List[str]) -> ContactInfo:
    """Fill only the empty contact fields"""
    updates = {}
    for field in CONTACT_FIELDS:
        if not getattr(current, field) and getattr(proposed, field):
            updates[field] = getattr(proposed, field)
    if not current.hours and proposed.hours:
        updates["hours"] = proposed.hours
    supplemented.extend(f"contact.{field}" for field in updates)
    return current.model_copy(update=updates) if updates else current


def merge_processing(current: ProcessingInfo, proposed: ProcessingInfo, supplemented: List[str]) -> ProcessingInfo:
    """Fill only the empty processing fields"""
    updates = {
        field: getattr(proposed, field)
        for field in PROCESSING_FIELDS
        if not getattr(current, field) and getattr(proposed, field)
    }
    supplemented.extend(f"processing.{field}" for field in updates)
    return current.model_copy(update=updates) if updates else current


class PermitDataProcessor:
    """
    Turns a fetched permit page into ExtractedPermitData

    Structured extraction always runs first. The AI backend, when configured,
    only fills fields that extraction left empty. When neither produces any
    permit or fee the clearly marked demo dataset is returned instead.
    """

    def __init__(
        self,
        ai_backend: Optional[AIBackend] = None,
        ai_breaker: Optional[CircuitBreaker] = None,
        settings: Optional[Settings] = None
    ):
        self.ai_backend = ai_backend
        self.ai_breaker = ai_breaker
        self.settings = settings or get_settings()

    async def extract_permit_info(
        self,
        html: str,
        url: str,
        structured: Optional[StructuredExtraction] = None
    ) -> ExtractedPermitData:
        """
        Extract permit information from a page

        Args:
            html: Page HTML
            url: Page URL, used to resolve links
            structured: Pre-computed structured extraction, if any

        Returns:
            ExtractedPermitData; ``source`` tells structured, AI-supplemented
            and demo-fallback results apart
        """
        try:
            return await self._process(html, url, structured)
        except ExtractionInsufficientError as exc:
            logger.info("Falling back to demo permit data",
                        url=url,
                        reason=exc.message)
            return build_demo_permit_data(source_url=url)

    async def _process(
        self,
        html: str,
        url: str,
        structured: Optional[StructuredExtraction]
    ) -> ExtractedPermitData:
        if structured is None:
            if len(html or "") < MIN_HTML_LENGTH:
                raise ExtractionInsufficientError(
                    "Page content too short to extract",
                    details={"length": len(html or "")},
                )
            structured = await asyncio.to_thread(extract_structured, html, url)

        details = structured.details
        permits = convert_fees_to_permits(structured.fees) + convert_forms_to_permits(structured.forms)
        permits += convert_details_to_permits(details, permits)
        if structured.requirements and permits:
            permits[0] = permits[0].model_copy(update={"requirements": list(structured.requirements)})

        fees = list(structured.fees)
        contact = structured.contact
        if not contact.department and details.departments:
            contact = contact.model_copy(update={"department": details.departments[0]})
        processing = ProcessingInfo(
            average_time=", ".join(structured.processing_times.values()) or None,
            inspection_schedule=", ".join(details.inspection_types) or None,
            times_by_permit=dict(structured.processing_times),
            application_steps=list(details.application_steps),
        )
        supplemented: List[str] = []

        if should_supplement(permits, fees, structured.tables, contact):
            supplement = await self._supplement(html, url, structured)
            if supplement is not None:
                if not permits and supplement.permits:
                    permits = supplement.permits
                    supplemented.append("permits")
                if not fees and supplement.fees:
                    fees = supplement.fees
                    supplemented.append("fees")
                contact = merge_contact(contact, supplement.contact, supplemented)
                processing = merge_processing(processing, supplement.processing, supplemented)

        if not permits and not fees:
            raise ExtractionInsufficientError("No permits or fees found", details={"url": url})

        if not permits:
            permits = convert_fees_to_permits(fees) or generate_basic_permits()

        result = ExtractedPermitData(
            permits=permits,
            fees=fees,
            contact=contact,
            processing=processing,
            permit_forms=structured.permit_forms,
            permit_portal_url=structured.permit_portal_url,
            online_services=list(details.online_services),
            source=DataSource.AI_SUPPLEMENTED if supplemented else DataSource.STRUCTURED,
            supplemented_fields=supplemented,
            source_url=url,
            warnings=[f"Extractor failed: {name}" for name in structured.failed_extractors],
        )

        logger.info("Permit data extracted",
                    url=url,
                    source=result.source.value,
                    permits=len(result.permits),
                    fees=len(result.fees),
                    supplemented_fields=supplemented)
        return result

    def build_prompt(self, html: str, url: str, structured: StructuredExtraction) -> str:
        context = {
            "tables_found": len(structured.tables),
            "forms_found": len(structured.forms),
            "fees_found": len(structured.fees),
            "requirements_found": len(structured.requirements),
            "permit_types": structured.details.permit_types,
            "contact": structured.contact.model_dump(mode="json", exclude_none=True),
            "processing_times": structured.processing_times,
        }
        html_context = (html or "")[:self.settings.AI_HTML_CONTEXT_CHARS]
        return (
            "Some structured data was already extracted from this government permit page. "
            "Supplement it with permit information found in the HTML.\n\n"
            f"Website URL: {url}\n\n"
            f"EXTRACTED STRUCTURED DATA:\n{json.dumps(context, indent=2)}\n\n"
            f"RAW HTML CONTENT (first {len(html_context)} chars):\n{html_context}\n\n"
            "Focus on permit types not captured above, missing contact information, processing "
            "information and fees.\n\n"
            f"Return only a JSON object with this shape:\n{RESPONSE_SHAPE}"
        )

    async def _supplement(
        self,
        html: str,
        url: str,
        structured: StructuredExtraction
    ) -> Optional[AISupplement]:
        if self.ai_backend is None:
            logger.debug("AI supplementation skipped, no backend configured", url=url)
            return None

        prompt = self.build_prompt(html, url, structured)

        async def complete() -> AISupplement:
            content = await self.ai_backend.complete(
                prompt,
                system_prompt=SYSTEM_PROMPT,
                model=self.settings.AI_MODEL,
                temperature=self.settings.AI_TEMPERATURE,
                max_tokens=self.settings.AI_MAX_TOKENS,
                timeout=self.settings.AI_TIMEOUT,
            )
            return parse_ai_response(content)

        logger.info("Supplementing structured data with AI", url=url)
        try:
            if self.ai_breaker is not None:
                return await self.ai_breaker.execute(complete)
            return await complete()
        except (AIUnavailableError, BreakerOpenError) as exc:
            logger.warning("AI supplementation unavailable, using structured data only",
                           url=url,
                           error_code=exc.error_code)
            return None
