"""
Content Extractor - Structured permit facts from government HTML pages
"""

import re
from typing import Callable, Dict, List, Optional, TypeVar
from urllib.parse import urljoin, urlparse

import structlog
from bs4 import BeautifulSoup, Tag

from permit_agent.api.extraction import patterns
from permit_agent.models.extraction import (
    ExtractedForm,
    ExtractedTable,
    FormField,
    PermitDetails,
    StructuredExtraction,
    TableKind,
)
from permit_agent.models.permit import Address, ContactInfo, PermitFee, PermitForm

logger = structlog.get_logger(__name__)

T = TypeVar('T')

NON_CONTENT_TAGS = ["script", "style", "noscript", "template"]
EXCLUDED_INPUT_TYPES = {"hidden", "submit", "button", "reset", "image"}

ADDRESS_SELECTORS = ["address", ".address", ".location", ".contact-address", "[itemprop=address]"]
HOURS_SELECTORS = [".hours", ".business-hours", ".office-hours", ".contact-hours", ".schedule", ".open-hours"]
REQUIREMENT_SELECTORS = [".requirements", ".checklist", ".required-documents", ".permit-requirements", "#requirements"]
PROCESSING_SELECTORS = [".processing-time", ".turnaround", ".review-time", "#processing"]
HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "strong", "b"]

DOCUMENT_EXTENSIONS = {".pdf": "pdf", ".doc": "doc", ".docx": "docx"}
FORM_LINK_KEYWORDS = re.compile(r"permit|application|form|checklist|submittal|worksheet|affidavit", re.IGNORECASE)
PORTAL_KEYWORDS = re.compile(
    r"portal|apply online|online permit|e-?permit|citizen access|accela|etrakit|energov|permit center|"
    r"submit online|online services",
    re.IGNORECASE,
)

PERMIT_TYPE_SELECTORS = [
    ".permit-type", ".permit-types li", ".building-permits li", "select[name*=permit] option",
    ".permit-category", "ul.permit-list li",
]
PERMIT_TYPE_PHRASES = re.compile(
    r"\b(?:building|electrical|plumbing|mechanical|residential|commercial|demolition|renovation|"
    r"addition|fence|deck|pool|sign|zoning)\s+permit\b",
    re.IGNORECASE,
)
PERMIT_TYPE_NOISE = re.compile(r"select|choose|click|more|info|contact|apply", re.IGNORECASE)
INSPECTION_KEYWORDS = [
    "foundation inspection", "framing inspection", "electrical inspection", "plumbing inspection",
    "mechanical inspection", "final inspection", "rough inspection", "insulation inspection",
    "drywall inspection",
]
ONLINE_SERVICE_KEYWORDS = [
    "apply online", "submit online", "pay online", "schedule online", "track application",
    "permit portal", "e-permit", "online portal", "digital submission", "electronic filing",
]
STEP_SELECTORS = [
    ".steps li", ".process li", ".procedure li", ".numbered-list li", ".application-process li",
    ".how-to li", ".instructions li", "ol li",
]


class ContentExtractor:
    """Runs every HTML heuristic over one fetched page"""

    def __init__(self, html: str, base_url: str):
        self.soup = BeautifulSoup(html or "", "html.parser")
        for tag in self.soup(NON_CONTENT_TAGS):
            tag.decompose()
        self.base_url = base_url
        self._page_text: Optional[str] = None

    @property
    def page_text(self) -> str:
        """Visible text, one block per line"""
        if self._page_text is None:
            lines = (patterns.clean_text(line) for line in self.soup.get_text("\n").splitlines())
            self._page_text = "\n".join(line for line in lines if line)
        return self._page_text

    def _absolute(self, href: str) -> str:
        return urljoin(self.base_url, href.strip())

    # Tables

    def extract_tables(self) -> List[ExtractedTable]:
        """Every table, with headers from thead or the first row"""
        tables: List[ExtractedTable] = []
        for table in self.soup.find_all("table"):
            headers: List[str] = []
            rows: List[List[str]] = []

            thead = table.find("thead")
            if thead is not None:
                headers = [_cell_text(cell) for cell in thead.find_all(["th", "td"])]

            for index, tr in enumerate(table.find_all("tr")):
                if thead is not None and tr.find_parent("thead") is thead:
                    continue
                cells = [_cell_text(cell) for cell in tr.find_all(["th", "td"])]
                if not any(cells):
                    continue
                if not headers and index == 0:
                    headers = cells
                    continue
                rows.append(cells)

            caption = table.find("caption")
            tables.append(ExtractedTable(
                headers=headers,
                rows=rows,
                kind=patterns.classify_table(headers, rows),
                caption=_cell_text(caption) if caption else None,
            ))
        return tables

    # Fees

    def extract_fee_schedule(self, tables: Optional[List[ExtractedTable]] = None) -> List[PermitFee]:
        """Fees from fee tables, definition lists and inline text"""
        if tables is None:
            tables = self.extract_tables()

        fees: List[PermitFee] = []
        for table in tables:
            if table.kind != TableKind.FEES:
                continue
            for row in table.rows:
                fee = patterns.parse_fee_row(row, table.headers)
                if fee is not None:
                    fees.append(fee)

        for definition_list in self.soup.find_all("dl"):
            fees.extend(self._fees_from_definition_list(definition_list))

        fees.extend(patterns.find_inline_fees(self.page_text))
        return patterns.dedupe_fees(fees)

    @staticmethod
    def _fees_from_definition_list(definition_list: Tag) -> List[PermitFee]:
        fees: List[PermitFee] = []
        for term in definition_list.find_all("dt"):
            definition = term.find_next_sibling("dd")
            if definition is None:
                continue
            label = _cell_text(term)
            value = _cell_text(definition)
            if not (patterns.is_fee_like(label) or patterns.CURRENCY_RE.search(value)):
                continue
            amount = patterns.parse_amount(value)
            if amount is None or not label:
                continue
            fees.append(PermitFee(
                type=label,
                amount=amount,
                unit=patterns.detect_fee_unit(value),
                description=value,
            ))
        return fees

    # Contact

    def extract_contact_info(self) -> ContactInfo:
        phones = [
            phone for phone in (
                patterns.normalize_phone(link["href"][4:])
                for link in self.soup.select("a[href^='tel:']")
            ) if phone
        ] + patterns.extract_phones(self.page_text)

        emails = [
            link["href"][7:].split("?")[0].strip().lower()
            for link in self.soup.select("a[href^='mailto:']")
        ]
        emails = patterns.extract_emails(" ".join(emails)) + patterns.extract_emails(self.page_text)

        departments = patterns.find_departments(self.page_text)

        return ContactInfo(
            phone=phones[0] if phones else None,
            email=emails[0] if emails else None,
            address=self._extract_address(),
            hours=self._extract_hours(),
            department=departments[0] if departments else None,
        )

    def _extract_address(self) -> Optional[Address]:
        for selector in ADDRESS_SELECTORS:
            element = self.soup.select_one(selector)
            if element is None:
                continue
            address = patterns.extract_address(element.get_text(" "))
            if address is not None:
                return address
        return patterns.extract_address(self.page_text.replace("\n", ", "))

    def _extract_hours(self):
        for selector in HOURS_SELECTORS:
            for element in self.soup.select(selector):
                hours = patterns.extract_business_hours(element.get_text(" "))
                if hours:
                    return hours
        return patterns.extract_business_hours(self.page_text)

    # Requirements

    def extract_requirements(self) -> List[str]:
        requirements: List[str] = []

        def add(text: str) -> None:
            item = patterns.clean_requirement(text)
            if item and item not in requirements:
                requirements.append(item)

        for selector in REQUIREMENT_SELECTORS:
            for container in self.soup.select(selector):
                for element in container.find_all(["li", "p"]):
                    add(element.get_text(" "))

        for heading in self.soup.find_all(HEADING_TAGS):
            if not patterns.is_requirement_heading(heading.get_text(" ")):
                continue
            listing = heading.find_next(["ul", "ol"])
            if listing is None:
                continue
            for item in listing.find_all("li"):
                add(item.get_text(" "))

        return requirements

    # Forms

    def extract_forms(self) -> List[ExtractedForm]:
        forms: List[ExtractedForm] = []
        for form in self.soup.find_all("form"):
            heading = form.find(["h1", "h2", "h3", "legend"])
            name = form.get("name") or form.get("id") or (_cell_text(heading) if heading else "") or "Unknown Form"

            fields: List[FormField] = []
            for field in form.find_all(["input", "select", "textarea"]):
                declared = field.name if field.name in ("select", "textarea") else (field.get("type") or "text").lower()
                if declared in EXCLUDED_INPUT_TYPES:
                    continue

                field_name = field.get("name") or field.get("id") or ""
                raw_label = self._field_label(form, field) or field.get("placeholder") or field_name
                label = raw_label.replace("*", "").strip()
                required = (
                    field.has_attr("required")
                    or field.get("aria-required") == "true"
                    or patterns.has_required_marker(raw_label)
                )
                options = (
                    [_cell_text(option) for option in field.find_all("option") if _cell_text(option)]
                    if field.name == "select" else []
                )
                fields.append(FormField(
                    name=field_name,
                    label=label,
                    type=patterns.infer_field_type(declared, field_name, label),
                    required=required,
                    options=options,
                    placeholder=field.get("placeholder"),
                ))

            action = form.get("action")
            forms.append(ExtractedForm(
                name=name,
                submit_url=self._absolute(action) if action else None,
                method=(form.get("method") or "GET").upper(),
                fields=fields,
            ))
        return forms

    @staticmethod
    def _field_label(form: Tag, field: Tag) -> str:
        field_id = field.get("id") or field.get("name")
        if field_id:
            label = form.find("label", attrs={"for": field_id})
            if label is not None:
                return _cell_text(label)
        wrapping = field.find_parent("label")
        if wrapping is not None:
            return _cell_text(wrapping)
        return field.get("aria-label") or ""

    # Processing times

    def extract_processing_times(self) -> Dict[str, str]:
        times: Dict[str, str] = {}
        for selector in PROCESSING_SELECTORS:
            for element in self.soup.select(selector):
                duration = patterns.find_duration(element.get_text(" "))
                if not duration:
                    continue
                heading = element.find_previous_sibling(["h1", "h2", "h3", "h4"])
                label = _cell_text(heading) if heading else "General"
                times.setdefault(label or "General", duration)

        for label, duration in patterns.extract_processing_times(self.page_text).items():
            times.setdefault(label, duration)
        return times

    # Links

    def extract_permit_forms(self) -> List[PermitForm]:
        """Links to downloadable application documents"""
        forms: List[PermitForm] = []
        seen = set()
        for link in self.soup.find_all("a", href=True):
            url = self._absolute(link["href"])
            path = urlparse(url).path.lower()
            extension = next((ext for ext in DOCUMENT_EXTENSIONS if path.endswith(ext)), None)
            if extension is None or url in seen:
                continue

            text = _cell_text(link)
            filename = path.rsplit("/", 1)[-1]
            if not FORM_LINK_KEYWORDS.search(f"{text} {filename}"):
                continue

            seen.add(url)
            name = text or filename
            context = _cell_text(link.parent) if link.parent is not None else text
            forms.append(PermitForm(
                id=patterns.slugify(name),
                name=name,
                url=url,
                file_type=DOCUMENT_EXTENSIONS[extension],
                is_required="required" in context.lower(),
                description=link.get("title"),
            ))
        return forms

    def find_permit_portal_url(self) -> Optional[str]:
        """First link that looks like an online permit portal"""
        by_href = None
        for link in self.soup.find_all("a", href=True):
            url = self._absolute(link["href"])
            if urlparse(url).scheme not in ("http", "https"):
                continue
            if PORTAL_KEYWORDS.search(_cell_text(link)):
                return url
            if by_href is None and PORTAL_KEYWORDS.search(link["href"]):
                by_href = url
        return by_href

    # Loose details

    def extract_permit_details(self) -> PermitDetails:
        text = self.page_text
        lowered = text.lower()

        permit_types: List[str] = []
        for selector in PERMIT_TYPE_SELECTORS:
            for element in self.soup.select(selector):
                value = _cell_text(element)
                if 3 < len(value) < 100 and not PERMIT_TYPE_NOISE.search(value):
                    _append_unique(permit_types, value)
        for heading in self.soup.find_all(["h3", "h4"]):
            value = _cell_text(heading)
            if "permit" in value.lower() and 3 < len(value) < 100:
                _append_unique(permit_types, value)
        for match in PERMIT_TYPE_PHRASES.finditer(text):
            _append_unique(permit_types, match.group(0).title())

        inspections = [keyword for keyword in INSPECTION_KEYWORDS if keyword in lowered]
        for element in self.soup.select(".inspection, .inspections li, .inspection-types li"):
            value = _cell_text(element)
            if 5 < len(value) < 100:
                _append_unique(inspections, value)

        services = [keyword for keyword in ONLINE_SERVICE_KEYWORDS if keyword in lowered]
        for link in self.soup.select("a[href*=online], a[href*=portal], a[href*=apply]"):
            value = _cell_text(link)
            if len(value) > 3:
                _append_unique(services, value)

        steps: List[str] = []
        for selector in STEP_SELECTORS:
            for element in self.soup.select(selector):
                value = _cell_text(element)
                if 10 < len(value) < 500:
                    _append_unique(steps, value)

        return PermitDetails(
            permit_types=permit_types,
            departments=patterns.find_departments(text),
            inspection_types=inspections,
            online_services=services,
            application_steps=steps,
        )

    def extract_all(self) -> StructuredExtraction:
        """
        Run every extractor

        Extractors are isolated from each other: one that raises is logged,
        recorded in ``failed_extractors`` and contributes its empty default.
        """
        failed: List[str] = []

        def run(name: str, extractor: Callable[[], T], default: T) -> T:
            try:
                return extractor()
            except Exception as exc:
                logger.warning("Extractor failed",
                               extractor=name,
                               url=self.base_url,
                               error=str(exc))
                failed.append(name)
                return default

        tables = run("tables", self.extract_tables, [])
        result = StructuredExtraction(
            tables=tables,
            fees=run("fees", lambda: self.extract_fee_schedule(tables), []),
            contact=run("contact", self.extract_contact_info, ContactInfo()),
            requirements=run("requirements", self.extract_requirements, []),
            forms=run("forms", self.extract_forms, []),
            processing_times=run("processing_times", self.extract_processing_times, {}),
            permit_forms=run("permit_forms", self.extract_permit_forms, []),
            permit_portal_url=run("permit_portal_url", self.find_permit_portal_url, None),
            details=run("details", self.extract_permit_details, PermitDetails()),
            failed_extractors=failed,
        )

        logger.debug("Structured extraction complete",
                     url=self.base_url,
                     tables=len(result.tables),
                     fees=len(result.fees),
                     requirements=len(result.requirements),
                     forms=len(result.forms),
                     failed_extractors=failed)
        return result


def _cell_text(element: Tag) -> str:
    return patterns.clean_text(element.get_text(" "))


def _append_unique(values: List[str], value: str) -> None:
    if value not in values:
        values.append(value)
