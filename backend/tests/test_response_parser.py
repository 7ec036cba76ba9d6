import pytest

from permit_agent.api.processing.response_parser import decode_amount, parse_ai_response
from permit_agent.core.exceptions import AIUnavailableError
from permit_agent.models.permit import FeeUnit, PermitCategory

COMPLETION = """Here is the extracted data:
```json
{
  "permits": [
    {"name": "Electrical Permit", "category": "Electrical", "requirements": ["Load calculation"],
     "processingTime": "5 business days"},
    {"category": "spaceship"}
  ],
  "fees": [
    {"type": "Plan Review", "amount": "$1,250.00", "unit": "per_sqft", "conditions": ["Over 500 sq ft"]},
    {"name": "Re-inspection", "amount": 35, "unit": "sometimes"}
  ],
  "contact": {
    "phone": "555.123.4567",
    "email": "permits@springfield.gov",
    "address": "100 Main Street, Springfield, IL 62701",
    "hoursOfOperation": {
      "monday": {"open": "8:00 AM", "close": "5:00 PM"},
      "sunday": null,
      "holiday": {"open": "9:00", "close": "12:00"}
    }
  },
  "processing": {"averageTime": "2-3 weeks", "rushOptions": ["Expedited review", "Overtime inspection"]}
}
```"""


def test_fenced_completion_is_decoded():
    supplement = parse_ai_response(COMPLETION)

    electrical, unnamed = supplement.permits
    assert electrical.id == "ai-electrical-permit-1"
    assert electrical.category == PermitCategory.ELECTRICAL
    assert electrical.requirements == ["Load calculation"]
    assert electrical.processing_time == "5 business days"
    assert unnamed.name == "Unknown Permit"
    assert unnamed.category == PermitCategory.OTHER


def test_fees_are_decoded_with_defaults():
    plan_review, reinspection = parse_ai_response(COMPLETION).fees

    assert plan_review.amount == 1250.0
    assert plan_review.unit == FeeUnit.PER_SQFT
    assert plan_review.conditions == "Over 500 sq ft"
    assert reinspection.type == "Re-inspection"
    assert reinspection.amount == 35.0
    assert reinspection.unit == FeeUnit.FLAT


def test_contact_is_normalized():
    contact = parse_ai_response(COMPLETION).contact

    assert contact.phone == "(555) 123-4567"
    assert contact.address.city == "Springfield"
    assert contact.address.zip_code == "62701"
    assert contact.hours["monday"].open == "08:00"
    assert contact.hours["monday"].close == "17:00"
    assert contact.hours["sunday"] is None
    assert "holiday" not in contact.hours


def test_processing_lists_are_joined():
    processing = parse_ai_response(COMPLETION).processing
    assert processing.average_time == "2-3 weeks"
    assert processing.rush_options == "Expedited review; Overtime inspection"


def test_missing_sections_default_to_empty():
    supplement = parse_ai_response('{"permits": "not a list"}')
    assert supplement.permits == []
    assert supplement.fees == []
    assert supplement.contact.phone is None


@pytest.mark.parametrize("content", ["no json at all", "{not: valid json}", ""])
def test_undecodable_completion_raises(content):
    with pytest.raises(AIUnavailableError) as exc_info:
        parse_ai_response(content)
    assert exc_info.value.error_code == "AI_INVALID_RESPONSE"


def test_decode_amount():
    assert decode_amount(12) == 12.0
    assert decode_amount("about $40") == 40.0
    assert decode_amount(True) == 0.0
    assert decode_amount(None) == 0.0
