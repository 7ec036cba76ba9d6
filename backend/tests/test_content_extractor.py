from permit_agent.api.extraction.content_extractor import ContentExtractor
from permit_agent.models.extraction import TableKind
from permit_agent.models.permit import ContactInfo, FeeUnit

BASE_URL = "https://springfield.gov/permits"

FORMS_PAGE = """
<html><body>
  <form id="permit-application" action="/apply" method="post">
    <label for="name">Applicant Name *</label><input id="name" name="applicant_name" type="text">
    <label>Email <input name="email" type="email" required></label>
    <input name="phone" type="tel" aria-label="Phone">
    <select name="permit_kind"><option>Building</option><option>Electrical</option></select>
    <input type="hidden" name="csrf" value="x">
    <input type="submit" value="Send">
  </form>
  <ul>
    <li><a href="/docs/building-permit-application.pdf">Building Permit Application (required)</a></li>
    <li><a href="/docs/annual-report.pdf">Annual Report</a></li>
    <li><a href="/docs/checklist.docx" title="What to bring">Submittal checklist</a></li>
  </ul>
  <a href="https://aca.accela.com/springfield">Apply Online</a>
</body></html>
"""

CONTACT_PAGE = """
<html><body>
  <div class="contact">
    <address>Permit Center, 100 Main Street, Springfield, IL 62701</address>
    <div class="hours">Monday - Friday 8:00 AM - 5:00 PM. Saturday: Closed</div>
    <p>Phone: 555.987.6543</p>
    <p>Email: noreply@springfield.gov or permits@springfield.gov</p>
  </div>
  <div class="processing-time">Most reviews take 10-15 business days.</div>
  <dl><dt>Re-inspection fee</dt><dd>$35.00 per inspection</dd></dl>
</body></html>
"""


def test_fee_table_yields_typed_fee(permit_page):
    extractor = ContentExtractor(permit_page, BASE_URL)

    tables = extractor.extract_tables()
    fees = extractor.extract_fee_schedule(tables)

    assert len(tables) == 1
    assert tables[0].headers == ["Permit Type", "Fee"]
    assert tables[0].kind == TableKind.FEES
    assert [(fee.type, fee.amount) for fee in fees] == [
        ("Electrical Permit", 75.0),
        ("Plumbing Permit", 65.0),
    ]


def test_table_without_thead_uses_first_row_as_headers():
    html = "<table><tr><td>Document</td><td>Notes</td></tr><tr><td>Site plan</td><td>2 copies</td></tr></table>"
    table = ContentExtractor(html, BASE_URL).extract_tables()[0]
    assert table.headers == ["Document", "Notes"]
    assert table.rows == [["Site plan", "2 copies"]]
    assert table.kind == TableKind.REQUIREMENTS


def test_scripts_are_not_page_text(permit_page):
    assert "var x" not in ContentExtractor(permit_page, BASE_URL).page_text


def test_contact_from_links(permit_page):
    contact = ContentExtractor(permit_page, BASE_URL).extract_contact_info()
    assert contact.phone == "(555) 123-4567"
    assert contact.email == "permits@springfield.gov"
    assert contact.department == "Building Department"


def test_contact_from_text_and_selectors():
    contact = ContentExtractor(CONTACT_PAGE, BASE_URL).extract_contact_info()
    assert contact.phone == "(555) 987-6543"
    assert contact.email == "permits@springfield.gov"
    assert contact.address.street == "100 Main Street"
    assert contact.address.zip_code == "62701"
    assert contact.hours["monday"].open == "08:00"
    assert contact.hours["friday"].close == "17:00"
    assert contact.hours["saturday"] is None


def test_definition_list_fees():
    fees = ContentExtractor(CONTACT_PAGE, BASE_URL).extract_fee_schedule()
    assert len(fees) == 1
    assert fees[0].type == "Re-inspection fee"
    assert fees[0].amount == 35.0
    assert fees[0].unit == FeeUnit.PER_INSPECTION


def test_processing_times_from_selector():
    times = ContentExtractor(CONTACT_PAGE, BASE_URL).extract_processing_times()
    assert times["General"] == "10-15 business days"


def test_requirements_follow_heading(permit_page):
    requirements = ContentExtractor(permit_page, BASE_URL).extract_requirements()
    assert requirements == [
        "Completed application form",
        "Site plan showing property boundaries",
    ]


def test_requirements_from_container():
    html = """
    <div class="requirements"><ul>
      <li>Proof of property ownership</li>
      <li>Short</li>
    </ul></div>
    """
    assert ContentExtractor(html, BASE_URL).extract_requirements() == ["Proof of property ownership"]


def test_form_fields():
    forms = ContentExtractor(FORMS_PAGE, BASE_URL).extract_forms()

    assert len(forms) == 1
    form = forms[0]
    assert form.name == "permit-application"
    assert form.submit_url == "https://springfield.gov/apply"
    assert form.method == "POST"

    fields = {field.name: field for field in form.fields}
    assert set(fields) == {"applicant_name", "email", "phone", "permit_kind"}
    assert fields["applicant_name"].label == "Applicant Name"
    assert fields["applicant_name"].required
    assert fields["email"].type == "email"
    assert fields["email"].required
    assert fields["phone"].label == "Phone"
    assert fields["phone"].type == "phone"
    assert not fields["phone"].required
    assert fields["permit_kind"].type == "select"
    assert fields["permit_kind"].options == ["Building", "Electrical"]


def test_permit_form_links():
    forms = ContentExtractor(FORMS_PAGE, BASE_URL).extract_permit_forms()

    assert [form.url for form in forms] == [
        "https://springfield.gov/docs/building-permit-application.pdf",
        "https://springfield.gov/docs/checklist.docx",
    ]
    assert forms[0].is_required
    assert forms[1].file_type == "docx"
    assert forms[1].description == "What to bring"


def test_portal_url():
    assert ContentExtractor(FORMS_PAGE, BASE_URL).find_permit_portal_url() == "https://aca.accela.com/springfield"


def test_permit_details(permit_page):
    details = ContentExtractor(permit_page, BASE_URL).extract_permit_details()
    assert "Electrical Permit" in details.permit_types
    assert "Plumbing Permit" in details.permit_types
    assert details.departments == ["Building Department"]


def test_failing_extractor_is_isolated(permit_page, mocker):
    mocker.patch.object(ContentExtractor, "extract_contact_info", side_effect=RuntimeError("boom"))

    result = ContentExtractor(permit_page, BASE_URL).extract_all()

    assert result.failed_extractors == ["contact"]
    assert result.contact == ContactInfo()
    assert len(result.fees) == 2
    assert len(result.requirements) == 2
