import pytest

from permit_agent.api.extraction import patterns
from permit_agent.models.extraction import TableKind
from permit_agent.models.permit import FeeUnit, PermitCategory, TimeRange


@pytest.mark.parametrize("text,amount", [
    ("$75.00", 75.0),
    ("$1,250.00 per permit", 1250.0),
    ("Fee is 40", 40.0),
    ("No charge", None),
])
def test_parse_amount(text, amount):
    assert patterns.parse_amount(text) == amount


@pytest.mark.parametrize("text,unit", [
    ("$0.15 per sq ft", FeeUnit.PER_SQFT),
    ("$35 per inspection", FeeUnit.PER_INSPECTION),
    ("$90/hr", FeeUnit.PER_HOUR),
    ("$20 per unit", FeeUnit.PER_UNIT),
    ("2% of valuation", FeeUnit.PERCENTAGE),
    ("$75.00", FeeUnit.FLAT),
])
def test_detect_fee_unit(text, unit):
    assert patterns.detect_fee_unit(text) == unit


def test_classify_table_prefers_fees_then_requirements_then_schedule():
    assert patterns.classify_table(["Permit Type", "Fee"]) == TableKind.FEES
    assert patterns.classify_table(["Document", "Notes"]) == TableKind.REQUIREMENTS
    assert patterns.classify_table(["Inspection", "Days"]) == TableKind.SCHEDULE
    assert patterns.classify_table(["Name", "Title"]) == TableKind.UNKNOWN


def test_classify_headerless_table_uses_first_rows():
    assert patterns.classify_table([], [["Sign Permit", "$40"]]) == TableKind.FEES


def test_parse_fee_row_with_headers():
    fee = patterns.parse_fee_row(["Electrical Permit", "$75.00"], ["Permit Type", "Fee"])
    assert fee.type == "Electrical Permit"
    assert fee.amount == 75.0
    assert fee.unit == FeeUnit.FLAT


def test_parse_fee_row_without_headers_finds_currency_cell():
    fee = patterns.parse_fee_row(["Sign Permit", "$1,250.00 per sq ft", "Renewed yearly"])
    assert fee.type == "Sign Permit"
    assert fee.amount == 1250.0
    assert fee.unit == FeeUnit.PER_SQFT
    assert fee.description == "Renewed yearly"


def test_parse_fee_row_rejects_rows_without_amount():
    assert patterns.parse_fee_row(["Contact us", "for details"], ["Permit Type", "Fee"]) is None
    assert patterns.parse_fee_row(["Only one cell"]) is None


def test_inline_fees_need_fee_like_label():
    fees = patterns.find_inline_fees("Plan review fee: $50.00 per submittal\nTotal: $5")
    assert len(fees) == 1
    assert fees[0].type == "Plan review fee"
    assert fees[0].amount == 50.0
    assert fees[0].description == "per submittal"


def test_dedupe_fees_by_type_and_amount():
    fee = patterns.parse_fee_row(["Electrical Permit", "$75.00"], ["Permit Type", "Fee"])
    other = patterns.parse_fee_row(["electrical permit", "$75"], ["Permit Type", "Fee"])
    assert patterns.dedupe_fees([fee, other]) == [fee]


@pytest.mark.parametrize("raw,expected", [
    ("555-123-4567", "(555) 123-4567"),
    ("+1 (555) 123-4567", "(555) 123-4567"),
    ("555.123.4567", "(555) 123-4567"),
    ("123-4567", None),
])
def test_normalize_phone(raw, expected):
    assert patterns.normalize_phone(raw) == expected


def test_extract_emails_skips_placeholders_and_images():
    text = "Write to Permits@City.gov or noreply@city.gov, logo@2x.png, permits@city.gov"
    assert patterns.extract_emails(text) == ["permits@city.gov"]


def test_extract_full_address():
    address = patterns.extract_address("City Hall, 100 Main Street, Springfield, IL 62701")
    assert address.street == "100 Main Street"
    assert address.city == "Springfield"
    assert address.state == "IL"
    assert address.zip_code == "62701"


def test_extract_street_only_address():
    address = patterns.extract_address("Visit us at 42 Elm Ave downtown")
    assert address.street == "42 Elm Ave"
    assert address.city == ""


@pytest.mark.parametrize("value,default,expected", [
    ("8:30 am", None, "08:30"),
    ("5 pm", None, "17:00"),
    ("12 pm", None, "12:00"),
    ("12 am", None, "00:00"),
    ("5", "p", "17:00"),
    ("noon", None, None),
])
def test_to_24h(value, default, expected):
    assert patterns.to_24h(value, default) == expected


def test_business_hours_ranges_and_closed_days():
    hours = patterns.extract_business_hours("Monday - Friday 8:00 AM - 5:00 PM. Saturday: Closed")
    weekday = TimeRange(open="08:00", close="17:00")
    assert hours == {
        "monday": weekday,
        "tuesday": weekday,
        "wednesday": weekday,
        "thursday": weekday,
        "friday": weekday,
        "saturday": None,
    }


def test_single_day_overrides_range():
    hours = patterns.extract_business_hours("Mon-Fri 8am-5pm\nFriday 8am-4pm")
    assert hours["thursday"] == TimeRange(open="08:00", close="17:00")
    assert hours["friday"] == TimeRange(open="08:00", close="16:00")


def test_processing_times_from_labels():
    times = patterns.extract_processing_times("Building permits: 10-15 business days")
    assert times == {"Building Permits": "10-15 business days"}


def test_processing_times_near_permit_keywords():
    times = patterns.extract_processing_times("Electrical work is usually approved within 5 days.")
    assert times == {"Electrical Permit": "5 days"}


def test_clean_requirement():
    assert patterns.clean_requirement("• Proof of ownership documents") == "Proof of ownership documents"
    assert patterns.clean_requirement("1. Site plan drawn to scale") == "Site plan drawn to scale"
    assert patterns.clean_requirement("- Short") is None


@pytest.mark.parametrize("name,category", [
    ("Electrical Permit", PermitCategory.ELECTRICAL),
    ("Water Heater Replacement", PermitCategory.PLUMBING),
    ("HVAC Installation", PermitCategory.MECHANICAL),
    ("Residential Deck Permit", PermitCategory.BUILDING),
    ("Sign Permit", PermitCategory.SIGN),
    ("Special Event", PermitCategory.OTHER),
])
def test_infer_permit_category(name, category):
    assert patterns.infer_permit_category(name) == category


def test_strip_fee_words():
    assert patterns.strip_fee_words("Electrical Permit Fee") == "Electrical Permit"
    assert patterns.strip_fee_words("Fees") == "Fees"


@pytest.mark.parametrize("input_type,name,label,expected", [
    ("text", "applicant_email", "", "email"),
    ("tel", "contact", "", "phone"),
    ("checkbox", "agree", "", "checkbox"),
    ("text", "project_cost", "Project Cost", "number"),
    ("text", "start", "Start Date", "date"),
    ("textarea", "notes", "", "textarea"),
    ("select", "kind", "", "select"),
    ("text", "owner", "Owner", "text"),
])
def test_infer_field_type(input_type, name, label, expected):
    assert patterns.infer_field_type(input_type, name, label) == expected


def test_find_departments():
    text = "Contact the Building Department or Planning  Department for help."
    assert patterns.find_departments(text) == ["Building Department", "Planning Department"]
