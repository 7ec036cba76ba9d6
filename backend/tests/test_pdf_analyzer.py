import io

import httpx
import pytest
from pypdf import PdfWriter

from conftest import RecordingHandler
from permit_agent.api.extraction.pdf_analyzer import (
    PDFAnalyzer,
    categorize_fee,
    determine_field_type,
    extract_checkboxes,
    extract_contacts,
    extract_fees,
    extract_form_fields,
    extract_requirements,
    extract_signature_lines,
    extract_steps,
    is_heading,
)
from permit_agent.api.network.http_client import HttpClient
from permit_agent.api.network.retry_handler import RetryConfig
from permit_agent.core.exceptions import DataUnavailableError

PDF_URL = "https://springfield.gov/docs/building-permit-application.pdf"

APPLICATION_TEXT = (
    "BUILDING PERMIT APPLICATION\n"
    "Applicant Name: ________ *\n"
    "Email Address: ________\n"
    "Phone Number: ________\n"
    "Project Value: $________\n"
    "Owner Signature: ________\n"
    "\n"
    "PROJECT TYPE\n"
    "[x] New Construction\n"
    "[ ] Addition\n"
    "\f"
    "STEP 1: Submit the application\n"
    "STEP 2: Pay the plan review fee\n"
    "Required Documents:\n"
    "- Two sets of construction drawings\n"
    "- Proof of property ownership\n"
    "\n"
    "Application Fee: $50.00\n"
    "$125.00 Plan Review Fee\n"
    "Impact Fee: Varies by project size\n"
    "Contact the Building Department at (555) 123-4567 or permits@springfield.gov\n"
    "Hours: Monday-Friday 8am-4pm\n"
)


def blank_pdf() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def test_fill_in_blanks_become_fields():
    fields = extract_form_fields(APPLICATION_TEXT)

    assert [field.name for field in fields] == [
        "applicant_name", "email_address", "phone_number", "project_value",
    ]
    by_name = {field.name: field for field in fields}
    assert by_name["applicant_name"].required
    assert by_name["email_address"].type == "email"
    assert by_name["phone_number"].type == "phone"
    assert by_name["project_value"].type == "number"
    assert all(field.page == 1 for field in fields)


def test_checkboxes_grouped_under_heading():
    checkboxes = extract_checkboxes(APPLICATION_TEXT)

    assert [(box.label, box.checked) for box in checkboxes] == [
        ("New Construction", True),
        ("Addition", False),
    ]
    assert checkboxes[0].group_name == "Project Type"
    assert checkboxes[0].name == "project_type_new_construction"


def test_steps_are_numbered_and_sorted():
    steps = extract_steps(APPLICATION_TEXT)
    assert [(step.step_number, step.title) for step in steps] == [
        (1, "Submit the application"),
        (2, "Pay the plan review fee"),
    ]


def test_requirements_section():
    assert extract_requirements(APPLICATION_TEXT) == [
        "Two sets of construction drawings",
        "Proof of property ownership",
    ]


def test_fees_numeric_and_textual():
    fees = extract_fees(APPLICATION_TEXT)

    assert [(fee.name, fee.amount, fee.category) for fee in fees] == [
        ("Application Fee", 50.0, "application"),
        ("Plan Review Fee", 125.0, "review"),
        ("Impact Fee", "Varies by project size", "general"),
    ]


def test_contacts_carry_nearest_department():
    contacts = {contact.type: contact for contact in extract_contacts(APPLICATION_TEXT)}

    assert contacts["phone"].value == "(555) 123-4567"
    assert contacts["email"].value == "permits@springfield.gov"
    assert contacts["hours"].value == "Monday-Friday 8am-4pm"
    assert {contact.department for contact in contacts.values()} == {"Building Department"}


def test_contact_without_department_uses_default():
    contacts = extract_contacts("Questions? Call 555-222-3333.")
    assert contacts[0].department == "City Office"


def test_signature_lines():
    signatures = extract_signature_lines(APPLICATION_TEXT)
    assert [(sig.name, sig.type, sig.page) for sig in signatures] == [("owner_signature", "drawn", 1)]


def test_heading_and_type_helpers():
    assert is_heading("PROJECT INFORMATION:")
    assert not is_heading("Applicant Name: ____")
    assert not is_heading("FEE $50")
    assert determine_field_type("Start Date") == "date"
    assert determine_field_type("Scope Details") == "textarea"
    assert categorize_fee("Final Inspection Fee") == "inspection"
    assert categorize_fee("Building Permit Fee") == "permit"


def test_analyze_bytes_reads_metadata():
    content = blank_pdf()

    result = PDFAnalyzer(http_client=None).analyze_bytes(content, PDF_URL)

    assert result.url == PDF_URL
    assert result.metadata.page_count == 1
    assert result.metadata.file_size == len(content)
    assert not result.metadata.is_interactive
    assert result.fillable_fields == []


def test_unreadable_document_is_unavailable():
    with pytest.raises(DataUnavailableError):
        PDFAnalyzer(http_client=None).analyze_bytes(b"this is not a pdf document", PDF_URL)


def _client(handler) -> HttpClient:
    return HttpClient(
        "test",
        RetryConfig(max_retries=0),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_analyze_downloads_and_parses():
    handler = RecordingHandler({PDF_URL: [
        httpx.Response(200, content=blank_pdf(), headers={"Content-Type": "application/pdf"}),
    ]})
    client = _client(handler)

    result = await PDFAnalyzer(client).analyze(PDF_URL)

    assert result.metadata.page_count == 1
    assert handler.requests[0].headers["Accept"] == "application/pdf"
    await client.aclose()


@pytest.mark.asyncio
async def test_download_failure_is_unavailable():
    client = _client(RecordingHandler({PDF_URL: [httpx.Response(404)]}))

    with pytest.raises(DataUnavailableError) as exc_info:
        await PDFAnalyzer(client).analyze(PDF_URL)

    assert exc_info.value.details["status_code"] == 404
    await client.aclose()
