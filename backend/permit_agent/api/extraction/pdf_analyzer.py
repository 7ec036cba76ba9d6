"""
PDF Analyzer - Form fields, fees, steps and contacts from permit application PDFs

Text heuristics are module-level functions over the extracted text (pages
separated by form feeds); pypdf supplies the text, the AcroForm widgets and
the document metadata.
"""

import asyncio
import io
import re
from typing import Any, Dict, List, Optional, Tuple

import structlog
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from permit_agent.api.extraction import patterns
from permit_agent.api.network.http_client import FetchRequest, HttpClient
from permit_agent.api.network.rate_limiter import RateLimiter
from permit_agent.core.exceptions import DataUnavailableError, NetworkError
from permit_agent.models.pdf import (
    ApplicationStep,
    CheckboxField,
    FillableField,
    PDFAnalysisResult,
    PDFContact,
    PDFFee,
    PDFFormField,
    PDFMetadata,
    PDFTextAnalysis,
    SignatureField,
)

logger = structlog.get_logger(__name__)

PDF_ACCEPT_HEADERS = {"Accept": "application/pdf"}
PAGE_BREAK = "\f"

FIELD_RE = re.compile(
    r"(?P<label>[A-Z][A-Za-z0-9 /#&()'.*-]{1,60}?)\s*(?P<colon>:)?\s*(?P<dollar>\$)?\s*_{3,}"
)
CHECKBOX_RE = re.compile(r"\[\s*(?P<mark>[xX✓✔]?)\s*\]\s*(?P<label>[^\[\]\n]+)")
SIGNATURE_RE = re.compile(r"(?P<label>[A-Z][A-Za-z' ]*Signature)\s*:?\s*_{3,}", re.IGNORECASE)
REQUIRED_MARKERS = ("*", "required", "mandatory", "must")

STEP_PATTERNS = [
    re.compile(r"STEP\s+(\d+)\s*[:.\-]?\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"^\s*(\d+)\.\s*([A-Z][^\n]+)", re.MULTILINE),
    re.compile(r"PHASE\s+(\d+)\s*[:.\-]?\s*([^\n]+)", re.IGNORECASE),
]

REQUIREMENT_SECTION_RE = re.compile(
    r"^\s*(?:required documents?|requirements?|must submit|checklist)\s*:?\s*$",
    re.IGNORECASE,
)

FEE_AMOUNT = r"(?P<amount>\d{1,3}(?:,\d{3})+(?:\.\d{2})?|\d+(?:\.\d{2})?)"
FEE_NAME = r"(?P<name>[A-Z][A-Za-z ]*?(?i:fee|cost|charge))"
NAMED_FEE_RE = re.compile(FEE_NAME + r"\s*:\s*\$?\s*" + FEE_AMOUNT)
AMOUNT_FIRST_FEE_RE = re.compile(
    r"\$" + FEE_AMOUNT + r"\s+(?P<name>[A-Za-z][A-Za-z ]*?(?i:fee|cost|charge))"
)
TEXTUAL_FEE_RE = re.compile(FEE_NAME + r"\s*:\s*(?P<text>[A-Za-z][^\n$]{3,80})")

HOURS_RE = re.compile(r"\bHours?\s*:\s*([^\n]+)", re.IGNORECASE)
DEPARTMENTS = [
    "Building Department",
    "Planning Department",
    "Public Works",
    "Code Enforcement",
    "Engineering",
    "Fire Department",
    "Health Department",
]
DEFAULT_DEPARTMENT = "City Office"
DEPARTMENT_WINDOW = 200

# AcroForm field flags
FF_REQUIRED = 1 << 1
FF_RADIO = 1 << 15
FF_PUSHBUTTON = 1 << 16


def field_name(label: str) -> str:
    return re.sub(r"_+", "_", re.sub(r"[^a-z0-9]", "_", label.lower())).strip("_")


def is_heading(line: str) -> bool:
    """All-caps lines without fill-in blanks, e.g. 'PROJECT INFORMATION'"""
    stripped = line.strip().rstrip(":")
    letters = re.sub(r"[^A-Za-z]", "", stripped)
    return (
        len(letters) >= 3
        and stripped.upper() == stripped
        and "_" not in stripped
        and "[" not in stripped
        and not re.search(r"\$\s*\d", stripped)
    )


def determine_field_type(label: str, context: str = "") -> str:
    lowered = label.lower()
    if "[" in context and "]" in context:
        return "checkbox"
    if "email" in lowered:
        return "email"
    if "phone" in lowered or re.search(r"\btel\b", lowered):
        return "phone"
    if "date" in lowered:
        return "date"
    if "amount" in lowered or "value" in lowered or "$" in context:
        return "number"
    if "description" in lowered or "details" in lowered:
        return "textarea"
    return "text"


def _line_is_required(line: str) -> bool:
    lowered = line.lower()
    return any(marker in lowered for marker in REQUIRED_MARKERS)


def _pages(text: str) -> List[Tuple[int, str]]:
    return list(enumerate((text or "").split(PAGE_BREAK), start=1))


def extract_form_fields(text: str) -> List[PDFFormField]:
    """Fill-in blanks: `Label: ____`, `Label ____`, `Label: $____`"""
    fields: List[PDFFormField] = []
    seen = set()
    for page, page_text in _pages(text):
        for line in page_text.splitlines():
            for match in FIELD_RE.finditer(line):
                raw_label = patterns.clean_text(match.group("label"))
                label = raw_label.replace("*", "").strip()
                if len(label) <= 2 or "signature" in label.lower():
                    continue
                name = field_name(label)
                if not name or name in seen:
                    continue
                seen.add(name)
                fields.append(PDFFormField(
                    name=name,
                    label=label,
                    type="number" if match.group("dollar") else determine_field_type(label, match.group(0)),
                    required=_line_is_required(line),
                    page=page,
                ))
    return fields


def extract_checkboxes(text: str) -> List[CheckboxField]:
    """`[ ] Option` / `[x] Option` items grouped under the nearest heading"""
    checkboxes: List[CheckboxField] = []
    for page, page_text in _pages(text):
        group: Optional[str] = None
        for line in page_text.splitlines():
            if not line.strip():
                continue
            if is_heading(line):
                group = patterns.clean_text(line).rstrip(":").title()
                continue
            for match in CHECKBOX_RE.finditer(line):
                label = patterns.clean_text(match.group("label")).replace("*", "").strip()
                if not label:
                    continue
                checkboxes.append(CheckboxField(
                    name=field_name(f"{group} {label}" if group else label),
                    label=label,
                    group_name=group,
                    checked=bool(match.group("mark")),
                    required="*" in match.group("label"),
                    page=page,
                ))
    return checkboxes


def extract_steps(text: str) -> List[ApplicationStep]:
    """Numbered application steps, sorted and de-duplicated"""
    steps: Dict[Tuple[int, str], ApplicationStep] = {}
    for pattern in STEP_PATTERNS:
        for match in pattern.finditer(text or ""):
            title = patterns.clean_text(match.group(2))
            if not title:
                continue
            number = int(match.group(1))
            key = (number, title.lower())
            if key not in steps:
                steps[key] = ApplicationStep(step_number=number, title=title, description=title)
    return sorted(steps.values(), key=lambda step: step.step_number)


def extract_requirements(text: str) -> List[str]:
    """Bulleted lines under requirement headings, until a blank line or the next heading"""
    requirements: List[str] = []
    collecting = False
    for line in (text or "").replace(PAGE_BREAK, "\n").splitlines():
        if REQUIREMENT_SECTION_RE.match(line):
            collecting = True
            continue
        if not collecting:
            continue
        if not line.strip() or is_heading(line):
            collecting = False
            continue
        item = patterns.BULLET_PREFIX.sub("", re.sub(r"^\s*\[\s*[xX]?\s*\]", "", line)).strip()
        item = patterns.clean_text(item)
        if len(item) > 10 and item not in requirements:
            requirements.append(item)
    return requirements


def categorize_fee(name: str) -> str:
    lowered = name.lower()
    if "application" in lowered:
        return "application"
    if "plan" in lowered or "review" in lowered:
        return "review"
    if "inspection" in lowered:
        return "inspection"
    if "permit" in lowered:
        return "permit"
    if "processing" in lowered:
        return "processing"
    return "general"


def extract_fees(text: str) -> List[PDFFee]:
    fees: List[PDFFee] = []
    seen = set()

    def add(name: str, amount: Any) -> None:
        name = patterns.clean_text(name)
        if not name or name.lower() in seen:
            return
        seen.add(name.lower())
        fees.append(PDFFee(name=name, amount=amount, category=categorize_fee(name), description=name))

    for line in (text or "").splitlines():
        numeric = False
        for pattern in (NAMED_FEE_RE, AMOUNT_FIRST_FEE_RE):
            for match in pattern.finditer(line):
                amount = patterns.parse_amount(match.group("amount"))
                if amount is not None:
                    numeric = True
                    add(match.group("name"), amount)
        if not numeric:
            for match in TEXTUAL_FEE_RE.finditer(line):
                add(match.group("name"), patterns.clean_text(match.group("text")))
    return fees


def nearest_department(text: str, position: int) -> str:
    """Closest known department name within the surrounding window"""
    start = max(0, position - DEPARTMENT_WINDOW)
    window = text[start:position + DEPARTMENT_WINDOW]
    best: Optional[Tuple[int, str]] = None
    for department in DEPARTMENTS:
        for match in re.finditer(re.escape(department), window, re.IGNORECASE):
            distance = abs(start + match.start() - position)
            if best is None or distance < best[0]:
                best = (distance, department)
    return best[1] if best else DEFAULT_DEPARTMENT


def extract_contacts(text: str) -> List[PDFContact]:
    text = text or ""
    contacts: List[PDFContact] = []
    seen = set()

    def add(kind: str, value: Optional[str], position: int) -> None:
        if not value or (kind, value) in seen:
            return
        seen.add((kind, value))
        contacts.append(PDFContact(type=kind, value=value, department=nearest_department(text, position)))

    for match in patterns.PHONE_RE.finditer(text):
        add("phone", patterns.normalize_phone("".join(match.groups())), match.start())
    for match in patterns.EMAIL_RE.finditer(text):
        email = match.group(0).lower()
        if not patterns.PLACEHOLDER_EMAIL.search(email):
            add("email", email, match.start())
    for match in HOURS_RE.finditer(text):
        add("hours", patterns.clean_text(match.group(1)), match.start())
    for match in patterns.STREET_ONLY_RE.finditer(text):
        add("address", patterns.clean_text(match.group(0)), match.start())
    return contacts


def extract_signature_lines(text: str) -> List[SignatureField]:
    signatures: List[SignatureField] = []
    seen = set()
    for page, page_text in _pages(text):
        for match in SIGNATURE_RE.finditer(page_text):
            name = field_name(match.group("label"))
            if name in seen:
                continue
            seen.add(name)
            signatures.append(SignatureField(name=name, type="drawn", required=True, page=page))
    return signatures


def _inherited(annotation: Any, key: str) -> Any:
    """Look a field attribute up the /Parent chain"""
    node = annotation
    while node is not None:
        if key in node:
            return node[key]
        parent = node.get("/Parent")
        node = parent.get_object() if parent is not None else None
    return None


def _rect(annotation: Any) -> Optional[List[float]]:
    rect = annotation.get("/Rect")
    return [float(value) for value in rect] if rect else None


def _text_field_type(name: str) -> str:
    lowered = name.lower()
    if "date" in lowered:
        return "date"
    if re.search(r"amount|value|number|cost|sq", lowered):
        return "number"
    return "text"


def _choice_options(annotation: Any) -> List[str]:
    options = []
    for option in _inherited(annotation, "/Opt") or []:
        option = option.get_object() if hasattr(option, "get_object") else option
        if isinstance(option, list):
            option = option[-1]
        options.append(str(option))
    return options


def extract_fillable_fields(reader: PdfReader) -> Tuple[List[FillableField], List[CheckboxField], List[SignatureField]]:
    """AcroForm widgets, page by page"""
    fillable: Dict[str, FillableField] = {}
    checkboxes: List[CheckboxField] = []
    signatures: List[SignatureField] = []

    for page_number, page in enumerate(reader.pages, start=1):
        annotations = page.get("/Annots")
        if annotations is None:
            continue
        for reference in annotations.get_object():
            annotation = reference.get_object()
            if annotation.get("/Subtype") != "/Widget":
                continue

            name = str(_inherited(annotation, "/T") or f"field_{page_number}_{len(fillable) + len(checkboxes)}")
            field_type = _inherited(annotation, "/FT")
            flags = int(_inherited(annotation, "/Ff") or 0)
            required = bool(flags & FF_REQUIRED)
            value = _inherited(annotation, "/V")
            rect = _rect(annotation)

            if field_type == "/Tx":
                fillable[name] = FillableField(
                    name=name,
                    type=_text_field_type(name),
                    required=required,
                    value=str(value) if value is not None else None,
                    page=page_number,
                    rect=rect,
                )
            elif field_type == "/Ch":
                fillable[name] = FillableField(
                    name=name,
                    type="dropdown",
                    required=required,
                    value=str(value) if value is not None else None,
                    options=_choice_options(annotation),
                    page=page_number,
                    rect=rect,
                )
            elif field_type == "/Btn" and flags & FF_PUSHBUTTON:
                continue
            elif field_type == "/Btn" and flags & FF_RADIO:
                appearances = annotation.get("/AP")
                states = appearances.get_object().get("/N") if appearances is not None else None
                options = [str(state).lstrip("/") for state in (states.get_object().keys() if states else [])
                           if state != "/Off"]
                existing = fillable.get(name)
                merged = (existing.options if existing else []) + [opt for opt in options
                                                                   if not existing or opt not in existing.options]
                fillable[name] = FillableField(
                    name=name,
                    type="radio",
                    required=required,
                    value=str(value).lstrip("/") if value is not None and value != "/Off" else None,
                    options=merged,
                    page=existing.page if existing else page_number,
                    rect=existing.rect if existing else rect,
                )
            elif field_type == "/Btn":
                state = annotation.get("/AS") or value
                checkboxes.append(CheckboxField(
                    name=name,
                    label=str(_inherited(annotation, "/TU") or name),
                    checked=state is not None and state != "/Off",
                    required=required,
                    page=page_number,
                ))
            elif field_type == "/Sig":
                signatures.append(SignatureField(
                    name=name,
                    type="digital",
                    required=required,
                    page=page_number,
                    rect=rect,
                ))

    return list(fillable.values()), checkboxes, signatures


def extract_metadata(reader: PdfReader, file_size: int, signatures: List[SignatureField]) -> PDFMetadata:
    info = reader.metadata
    root = reader.trailer["/Root"].get_object()
    acroform = root.get("/AcroForm")
    sig_flags = int(acroform.get_object().get("/SigFlags", 0)) if acroform is not None else 0

    def entry(key: str) -> Optional[str]:
        value = info.get(key) if info else None
        return str(value) if value is not None else None

    return PDFMetadata(
        title=entry("/Title"),
        subject=entry("/Subject"),
        author=entry("/Author"),
        creator=entry("/Creator"),
        creation_date=entry("/CreationDate"),
        modification_date=entry("/ModDate"),
        page_count=len(reader.pages),
        file_size=file_size,
        version=reader.pdf_header.replace("%PDF-", "") if reader.pdf_header else None,
        is_interactive=acroform is not None,
        has_digital_signature=bool(sig_flags & 1) or any(sig.type == "digital" for sig in signatures),
    )


class PDFAnalyzer:
    """Downloads and analyzes permit application PDFs"""

    def __init__(self, http_client: HttpClient, limiter: Optional[RateLimiter] = None):
        self.http_client = http_client
        self.limiter = limiter

    @staticmethod
    def analyze_text(text: str) -> PDFTextAnalysis:
        """Run every text heuristic"""
        return PDFTextAnalysis(
            form_fields=extract_form_fields(text),
            requirements=extract_requirements(text),
            steps=extract_steps(text),
            fees=extract_fees(text),
            contacts=extract_contacts(text),
            checkboxes=extract_checkboxes(text),
            signatures=extract_signature_lines(text),
        )

    def analyze_bytes(self, content: bytes, url: Optional[str] = None) -> PDFAnalysisResult:
        """
        Parse a PDF document held in memory

        Raises:
            DataUnavailableError: The bytes are not a readable PDF
        """
        try:
            reader = PdfReader(io.BytesIO(content))
            text = PAGE_BREAK.join(page.extract_text() or "" for page in reader.pages)
        except (PdfReadError, ValueError) as exc:
            raise DataUnavailableError(
                "Document is not a readable PDF",
                error_code="DATA_UNAVAILABLE",
                details={"url": url, "reason": str(exc)},
            ) from exc

        try:
            fillable, widget_checkboxes, widget_signatures = extract_fillable_fields(reader)
        except (KeyError, AttributeError, TypeError, ValueError, PdfReadError) as exc:
            logger.warning("Fillable field extraction failed", url=url, error=str(exc))
            fillable, widget_checkboxes, widget_signatures = [], [], []

        analysis = self.analyze_text(text)
        signatures = widget_signatures + analysis.signatures

        return PDFAnalysisResult(
            url=url,
            text=text,
            form_fields=analysis.form_fields,
            requirements=analysis.requirements,
            steps=analysis.steps,
            fees=analysis.fees,
            contacts=analysis.contacts,
            checkboxes=widget_checkboxes + analysis.checkboxes,
            signatures=signatures,
            fillable_fields=fillable,
            metadata=extract_metadata(reader, len(content), signatures),
        )

    async def analyze(self, pdf_url: str) -> PDFAnalysisResult:
        """
        Download and analyze a PDF

        Args:
            pdf_url: Absolute URL of the document

        Returns:
            PDFAnalysisResult

        Raises:
            DataUnavailableError: Download failed after retries, or the document is unreadable
        """
        logger.info("Starting PDF analysis", url=pdf_url)
        try:
            result = await self.http_client.fetch(
                FetchRequest(url=pdf_url, headers=PDF_ACCEPT_HEADERS),
                limiter=self.limiter,
            )
        except NetworkError as exc:
            raise DataUnavailableError(
                "PDF could not be downloaded",
                error_code="DATA_UNAVAILABLE",
                details={"url": pdf_url, "error_kind": exc.kind.value, "status_code": exc.status_code},
            ) from exc

        analysis = await asyncio.to_thread(self.analyze_bytes, result.response.content, pdf_url)

        logger.info("PDF analysis completed",
                    url=pdf_url,
                    pages=analysis.metadata.page_count,
                    form_fields=len(analysis.form_fields),
                    fillable_fields=len(analysis.fillable_fields),
                    requirements=len(analysis.requirements),
                    fees=len(analysis.fees))
        return analysis
