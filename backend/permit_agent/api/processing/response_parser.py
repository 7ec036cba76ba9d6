"""
AI response parsing - Decode model output into fixed-shape permit records with defaults
"""

import json
import re
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from permit_agent.api.extraction import patterns
from permit_agent.core.exceptions import AIUnavailableError
from permit_agent.models.permit import (
    Address,
    ContactInfo,
    FeeUnit,
    PermitCategory,
    PermitFee,
    PermitType,
    ProcessingInfo,
    TimeRange,
)

logger = structlog.get_logger(__name__)

CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)
JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class AISupplement(BaseModel):
    """Permit facts proposed by the AI backend"""
    permits: List[PermitType] = Field(default_factory=list)
    fees: List[PermitFee] = Field(default_factory=list)
    contact: ContactInfo = Field(default_factory=ContactInfo)
    processing: ProcessingInfo = Field(default_factory=ProcessingInfo)


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, list):
        value = "; ".join(str(item) for item in value if item)
    value = str(value).strip()
    return value or None


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item and str(item).strip()]


def _dicts(value: Any) -> List[Dict[str, Any]]:
    return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []


def decode_amount(value: Any) -> float:
    """Numbers pass through; currency text is parsed; anything else is 0.0"""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return patterns.parse_amount(value) or 0.0
    return 0.0


def decode_permits(items: Any) -> List[PermitType]:
    permits = []
    for index, item in enumerate(_dicts(items), start=1):
        name = _text(item.get("name")) or "Unknown Permit"
        permits.append(PermitType(
            id=f"ai-{patterns.slugify(name)}-{index}",
            name=name,
            category=PermitCategory.coerce(item.get("category")),
            description=_text(item.get("description")) or "",
            requirements=_string_list(item.get("requirements")),
            processing_time=_text(_first(item, "processingTime", "processing_time")),
        ))
    return permits


def decode_fees(items: Any) -> List[PermitFee]:
    return [
        PermitFee(
            type=_text(_first(item, "type", "name")) or "Unknown Fee",
            amount=decode_amount(item.get("amount")),
            unit=FeeUnit.coerce(item.get("unit")),
            description=_text(item.get("description")),
            conditions=_text(item.get("conditions")),
        )
        for item in _dicts(items)
    ]


def decode_hours(value: Any) -> Dict[str, Optional[TimeRange]]:
    hours: Dict[str, Optional[TimeRange]] = {}
    if not isinstance(value, dict):
        return hours
    for day, entry in value.items():
        day = str(day).strip().lower()
        if day not in patterns.WEEKDAYS:
            continue
        if entry is None:
            hours[day] = None
            continue
        if not isinstance(entry, dict):
            continue
        opening = patterns.to_24h(str(entry.get("open") or ""))
        closing = patterns.to_24h(str(entry.get("close") or ""))
        if opening and closing:
            hours[day] = TimeRange(open=opening, close=closing)
    return hours


def decode_contact(value: Any) -> ContactInfo:
    if not isinstance(value, dict):
        return ContactInfo()

    address = None
    raw_address = value.get("address")
    if isinstance(raw_address, dict):
        address = Address(
            street=_text(raw_address.get("street")) or "",
            city=_text(raw_address.get("city")) or "",
            state=_text(raw_address.get("state")) or "",
            zip_code=_text(_first(raw_address, "zipCode", "zip_code", "zip")) or "",
        )
        if address.is_empty():
            address = None
    elif isinstance(raw_address, str):
        address = patterns.extract_address(raw_address) or Address(street=raw_address.strip())

    phone = _text(value.get("phone"))
    return ContactInfo(
        phone=patterns.normalize_phone(phone) or phone if phone else None,
        email=_text(value.get("email")),
        address=address,
        hours=decode_hours(_first(value, "hoursOfOperation", "hours_of_operation", "hours")),
        department=_text(value.get("department")),
    )


def decode_processing(value: Any) -> ProcessingInfo:
    if not isinstance(value, dict):
        return ProcessingInfo()
    return ProcessingInfo(
        average_time=_text(_first(value, "averageTime", "average_time")),
        rush_options=_text(_first(value, "rushOptions", "rush_options")),
        inspection_schedule=_text(_first(value, "inspectionSchedule", "inspection_schedule")),
        appeal_process=_text(_first(value, "appealProcess", "appeal_process")),
    )


def parse_ai_response(content: str) -> AISupplement:
    """
    Decode an AI completion into an AISupplement

    Tolerates fenced code blocks and prose around the JSON object. Every
    field is decoded with a default, so partial answers still yield records.

    Raises:
        AIUnavailableError: No decodable JSON object in the completion
    """
    cleaned = CODE_FENCE.sub("", content or "")
    match = JSON_OBJECT.search(cleaned)
    if not match:
        raise AIUnavailableError("No JSON object in AI response", error_code="AI_INVALID_RESPONSE")

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise AIUnavailableError(
            "AI response is not valid JSON",
            error_code="AI_INVALID_RESPONSE",
            details={"position": exc.pos},
        ) from exc

    if not isinstance(parsed, dict):
        raise AIUnavailableError("AI response is not a JSON object", error_code="AI_INVALID_RESPONSE")

    supplement = AISupplement(
        permits=decode_permits(parsed.get("permits")),
        fees=decode_fees(parsed.get("fees")),
        contact=decode_contact(parsed.get("contact")),
        processing=decode_processing(parsed.get("processing")),
    )
    logger.debug("Parsed AI response",
                 permits=len(supplement.permits),
                 fees=len(supplement.fees))
    return supplement
