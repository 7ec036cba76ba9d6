"""
Extraction heuristics - Pure text-to-fact functions shared by the HTML and PDF extractors

Every function here takes plain strings and returns candidate facts, so each
heuristic can be tuned and tested without a DOM or a PDF in hand.
"""

import re
from typing import Dict, Iterable, List, Optional, Sequence

from permit_agent.models.extraction import TableKind
from permit_agent.models.permit import Address, FeeUnit, PermitCategory, PermitFee, TimeRange

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
DAY_PREFIX = {day[:3]: day for day in WEEKDAYS}

FEE_KEYWORDS = re.compile(r"fee|cost|price|amount|charge|dollar|payment|\$", re.IGNORECASE)
REQUIREMENT_KEYWORDS = re.compile(r"requirement|required|document|checklist|submit|needed|must provide", re.IGNORECASE)
SCHEDULE_KEYWORDS = re.compile(r"schedule|hours|days?\b|time|date|inspection|processing", re.IGNORECASE)

TYPE_COLUMN = re.compile(r"type|permit|description|service|item|category|name", re.IGNORECASE)
AMOUNT_COLUMN = re.compile(r"amount|fee|cost|price|charge|rate", re.IGNORECASE)

AMOUNT_RE = re.compile(r"\$?\s*(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)")
CURRENCY_RE = re.compile(r"\$\s*\d")
INLINE_FEE_RE = re.compile(
    r"(?P<label>[A-Za-z][A-Za-z0-9/&(),'\- ]{2,80}?)\s*[:\-–]\s*"
    r"\$\s*(?P<amount>\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)"
    r"(?P<tail>[^\n$]{0,40})"
)
FEE_LABEL_RE = re.compile(r"fee|cost|charge|deposit|permit|review|inspection|application|plan check", re.IGNORECASE)

PHONE_RE = re.compile(r"(?<![\d-])(?:\+?1[\s.\-]?)?\(?(\d{3})\)?[\s.\-]?(\d{3})[\s.\-](\d{4})(?![\d-])")
EMAIL_RE = re.compile(r"[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}")
PLACEHOLDER_EMAIL = re.compile(r"example|noreply|no-reply|donotreply|do-not-reply|test@|sentry", re.IGNORECASE)
IMAGE_SUFFIX = re.compile(r"\.(png|jpe?g|gif|svg|webp)$", re.IGNORECASE)

STREET_SUFFIX = (
    r"(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Drive|Dr|Lane|Ln|Way|Court|Ct|Place|Pl|"
    r"Parkway|Pkwy|Plaza|Circle|Cir|Highway|Hwy|Square|Sq)"
)
FULL_ADDRESS_RE = re.compile(
    r"(?P<street>\d{1,6}\s+(?:[NSEW]\.?\s+)?[A-Za-z0-9.' ]{1,40}?\s" + STREET_SUFFIX + r"\.?"
    r"(?:,?\s*(?:Suite|Ste|Room|Rm|Floor|Fl)\.?\s*#?\w+)?)"
    r",?\s+(?P<city>[A-Za-z][A-Za-z .'-]{1,40}?),\s*(?P<state>[A-Z]{2})\.?\s+(?P<zip>\d{5}(?:-\d{4})?)"
)
STREET_ONLY_RE = re.compile(r"\d{1,6}\s+(?:[NSEW]\.?\s+)?[A-Za-z0-9.' ]{1,40}?\s" + STREET_SUFFIX + r"\b\.?")

TIME = r"\d{1,2}(?::\d{2})?\s*(?:[ap]\.?\s?m\.?)?"
DAY = r"(?P<{name}>mon|tue|wed|thu|fri|sat|sun)[a-z]*\.?"
DAY_RANGE_HOURS_RE = re.compile(
    DAY.format(name="first") + r"\s*(?:-|–|through|thru|to)\s*" + DAY.format(name="last") +
    r"\s*[:,]?\s*(?P<open>" + TIME + r")\s*(?:-|–|to)\s*(?P<close>" + TIME + r")",
    re.IGNORECASE,
)
SINGLE_DAY_HOURS_RE = re.compile(
    DAY.format(name="day") + r"\s*[:,]?\s*(?P<open>" + TIME + r")\s*(?:-|–|to)\s*(?P<close>" + TIME + r")",
    re.IGNORECASE,
)
CLOSED_DAY_RE = re.compile(DAY.format(name="day") + r"\s*[:,]?\s*closed", re.IGNORECASE)
TIME_PARTS_RE = re.compile(r"(\d{1,2})(?::(\d{2}))?\s*([ap])?", re.IGNORECASE)

DURATION = (
    r"\d+(?:\s*(?:-|–|to)\s*\d+)?\s*(?:business\s+|working\s+|calendar\s+)?"
    r"(?:days?|weeks?|months?|hours?)"
)
LABELLED_DURATION_RE = re.compile(
    r"(?P<label>[A-Za-z][A-Za-z/&\- ]{2,50}?(?:permits?|reviews?|plan check|inspections?|applications?))"
    r"\s*[:\-–]\s*(?:approximately\s+|about\s+|up to\s+|typically\s+)?(?P<duration>" + DURATION + r")",
    re.IGNORECASE,
)
PERMIT_KEYWORDS = ["building", "electrical", "plumbing", "mechanical", "demolition", "zoning", "sign"]
LEADING_FILLER = re.compile(r"^(?:the|a|an|for|our|all|typical|standard)\s+", re.IGNORECASE)
DURATION_RE = re.compile(DURATION, re.IGNORECASE)

REQUIREMENT_HEADING_RE = re.compile(
    r"required documents|requirements|checklist|what you need|necessary documents|"
    r"submit the following|documents needed|what to submit",
    re.IGNORECASE,
)
BULLET_PREFIX = re.compile(r"^\s*(?:[•●▪\-*–]|\d+[.)]|[a-z][.)])\s*")

CATEGORY_KEYWORDS = [
    (PermitCategory.ELECTRICAL, re.compile(r"electric|wiring|solar|generator", re.IGNORECASE)),
    (PermitCategory.PLUMBING, re.compile(r"plumb|water heater|sewer|backflow|gas line", re.IGNORECASE)),
    (PermitCategory.MECHANICAL, re.compile(r"mechanical|hvac|heating|air condition|furnace|ventilation", re.IGNORECASE)),
    (PermitCategory.DEMOLITION, re.compile(r"demoli", re.IGNORECASE)),
    (PermitCategory.ZONING, re.compile(r"zoning|variance|land use|subdivision|conditional use", re.IGNORECASE)),
    (PermitCategory.SIGN, re.compile(r"\bsigns?\b|signage|banner|billboard", re.IGNORECASE)),
    (PermitCategory.BUILDING, re.compile(
        r"building|construct|residential|commercial|addition|remodel|renovat|roof|deck|fence|pool|"
        r"foundation|structural|alteration", re.IGNORECASE)),
]
FEE_WORDS = re.compile(r"\b(?:fees?|costs?|charges?)\b", re.IGNORECASE)

DEPARTMENT_PATTERNS = [
    re.compile(r"building.{0,10}department", re.IGNORECASE),
    re.compile(r"planning.{0,10}department", re.IGNORECASE),
    re.compile(r"development.{0,10}services", re.IGNORECASE),
    re.compile(r"code.{0,10}enforcement", re.IGNORECASE),
    re.compile(r"permits?.{0,10}office", re.IGNORECASE),
    re.compile(r"community.{0,10}development", re.IGNORECASE),
    re.compile(r"public.{0,10}works", re.IGNORECASE),
]


def clean_text(text: Optional[str]) -> str:
    """Collapse whitespace runs"""
    return re.sub(r"\s+", " ", text or "").strip()


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:60] or "item"


def parse_amount(text: str) -> Optional[float]:
    """First monetary number in the text, e.g. '$1,250.00' -> 1250.0"""
    match = AMOUNT_RE.search(text or "")
    if not match:
        return None
    try:
        return float(match.group(1).replace(",", ""))
    except ValueError:
        return None


def detect_fee_unit(text: str) -> FeeUnit:
    lowered = (text or "").lower()
    if re.search(r"sq\.?\s*f|square f|sqft|/\s*sf\b", lowered):
        return FeeUnit.PER_SQFT
    if "inspection" in lowered and re.search(r"per|each|/", lowered):
        return FeeUnit.PER_INSPECTION
    if re.search(r"\bhour\b|\bhr\b|/\s*hr|hourly", lowered):
        return FeeUnit.PER_HOUR
    if re.search(r"per unit|each unit|/\s*unit|per dwelling", lowered):
        return FeeUnit.PER_UNIT
    if "%" in lowered or "percent" in lowered:
        return FeeUnit.PERCENTAGE
    return FeeUnit.FLAT


def is_fee_like(text: str) -> bool:
    return bool(FEE_KEYWORDS.search(text or ""))


def classify_table(headers: Sequence[str], rows: Sequence[Sequence[str]] = ()) -> TableKind:
    """
    Classify a table by its header keywords

    Fee keywords win over requirement keywords, which win over schedule
    keywords. Header-less tables are judged on their first rows.
    """
    header_text = " ".join(headers)
    if not header_text.strip() and rows:
        header_text = " ".join(" ".join(row) for row in rows[:2])

    if FEE_KEYWORDS.search(header_text):
        return TableKind.FEES
    if REQUIREMENT_KEYWORDS.search(header_text):
        return TableKind.REQUIREMENTS
    if SCHEDULE_KEYWORDS.search(header_text):
        return TableKind.SCHEDULE
    return TableKind.UNKNOWN


def _find_column(headers: Sequence[str], pattern: "re.Pattern[str]", exclude: Optional[int] = None) -> Optional[int]:
    for index, header in enumerate(headers):
        if index != exclude and pattern.search(header):
            return index
    return None


def parse_fee_row(cells: Sequence[str], headers: Sequence[str] = ()) -> Optional[PermitFee]:
    """
    Turn one fee-table row into a fee

    The type column is the first header naming a type/permit/description;
    the amount column is the first other header naming a fee/amount/cost.
    Without usable headers, the first cell holding a currency value is the
    amount and the first other non-empty cell is the type.
    """
    cells = [clean_text(cell) for cell in cells]
    if len(cells) < 2:
        return None

    type_index = _find_column(headers, TYPE_COLUMN) if headers else None
    amount_index = _find_column(headers, AMOUNT_COLUMN, exclude=type_index) if headers else None

    if amount_index is None or amount_index >= len(cells) or parse_amount(cells[amount_index]) is None:
        amount_index = next(
            (i for i, cell in enumerate(cells) if CURRENCY_RE.search(cell)),
            None,
        )
        if amount_index is None:
            amount_index = next(
                (i for i, cell in enumerate(cells) if i != type_index and parse_amount(cell) is not None),
                None,
            )
    if amount_index is None:
        return None

    if type_index is None or type_index >= len(cells) or type_index == amount_index or not cells[type_index]:
        type_index = next((i for i, cell in enumerate(cells) if i != amount_index and cell), None)
    if type_index is None:
        return None

    amount = parse_amount(cells[amount_index])
    if amount is None:
        return None

    extra = [cell for i, cell in enumerate(cells) if i not in (type_index, amount_index) and cell]
    description = " ".join(extra) or None
    return PermitFee(
        type=cells[type_index],
        amount=amount,
        unit=detect_fee_unit(" ".join([cells[amount_index]] + extra)),
        description=description,
    )


def find_inline_fees(text: str) -> List[PermitFee]:
    """`Label: $NN.NN` occurrences whose label looks like a fee"""
    fees: List[PermitFee] = []
    for line in (text or "").splitlines():
        for match in INLINE_FEE_RE.finditer(line):
            label = clean_text(match.group("label")).strip(" -,")
            if not FEE_LABEL_RE.search(label):
                continue
            amount = parse_amount(match.group("amount"))
            if amount is None:
                continue
            tail = clean_text(match.group("tail"))
            fees.append(PermitFee(
                type=label,
                amount=amount,
                unit=detect_fee_unit(tail),
                description=tail or None,
            ))
    return fees


def dedupe_fees(fees: Iterable[PermitFee]) -> List[PermitFee]:
    seen = set()
    unique: List[PermitFee] = []
    for fee in fees:
        key = (fee.type.lower(), round(fee.amount, 2))
        if key in seen:
            continue
        seen.add(key)
        unique.append(fee)
    return unique


def normalize_phone(raw: str) -> Optional[str]:
    """Format a US phone number as (xxx) xxx-xxxx"""
    digits = re.sub(r"\D", "", raw or "")
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        return None
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def extract_phones(text: str) -> List[str]:
    phones: List[str] = []
    for match in PHONE_RE.finditer(text or ""):
        phone = normalize_phone("".join(match.groups()))
        if phone and phone not in phones:
            phones.append(phone)
    return phones


def extract_emails(text: str) -> List[str]:
    emails: List[str] = []
    for match in EMAIL_RE.finditer(text or ""):
        email = match.group(0).strip(".").lower()
        if PLACEHOLDER_EMAIL.search(email) or IMAGE_SUFFIX.search(email):
            continue
        if email not in emails:
            emails.append(email)
    return emails


def extract_address(text: str) -> Optional[Address]:
    text = clean_text(text)
    match = FULL_ADDRESS_RE.search(text)
    if match:
        return Address(
            street=clean_text(match.group("street")),
            city=clean_text(match.group("city")),
            state=match.group("state"),
            zip_code=match.group("zip"),
        )
    street = STREET_ONLY_RE.search(text)
    if street:
        return Address(street=clean_text(street.group(0)))
    return None


def to_24h(value: str, default_meridiem: Optional[str] = None) -> Optional[str]:
    """'8:30 am' -> '08:30', '5 pm' -> '17:00'"""
    match = TIME_PARTS_RE.search(value or "")
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = (match.group(3) or default_meridiem or "").lower()
    if hour > 23 or minute > 59:
        return None
    if meridiem == "p" and hour < 12:
        hour += 12
    elif meridiem == "a" and hour == 12:
        hour = 0
    return f"{hour:02d}:{minute:02d}"


def _time_range(open_text: str, close_text: str) -> Optional[TimeRange]:
    opening = to_24h(open_text, default_meridiem="a")
    closing = to_24h(close_text, default_meridiem="p")
    if not opening or not closing:
        return None
    return TimeRange(open=opening, close=closing)


def _day_span(first: str, last: str) -> List[str]:
    start = WEEKDAYS.index(DAY_PREFIX[first[:3].lower()])
    end = WEEKDAYS.index(DAY_PREFIX[last[:3].lower()])
    if end < start:
        return []
    return WEEKDAYS[start:end + 1]


def extract_business_hours(text: str) -> Dict[str, Optional[TimeRange]]:
    """
    Opening hours by weekday

    Day ranges ("Monday - Friday 8:00 AM - 5:00 PM") apply first; single
    days override them; "Saturday: Closed" maps to None.
    """
    hours: Dict[str, Optional[TimeRange]] = {}
    text = clean_text(text)

    for match in DAY_RANGE_HOURS_RE.finditer(text):
        time_range = _time_range(match.group("open"), match.group("close"))
        if time_range is None:
            continue
        for day in _day_span(match.group("first"), match.group("last")):
            hours[day] = time_range

    remaining = DAY_RANGE_HOURS_RE.sub(" ", text)
    for match in SINGLE_DAY_HOURS_RE.finditer(remaining):
        time_range = _time_range(match.group("open"), match.group("close"))
        if time_range is not None:
            hours[DAY_PREFIX[match.group("day")[:3].lower()]] = time_range

    for match in CLOSED_DAY_RE.finditer(remaining):
        hours[DAY_PREFIX[match.group("day")[:3].lower()]] = None

    return {day: hours[day] for day in WEEKDAYS if day in hours}


def _normalize_label(label: str) -> str:
    label = clean_text(label)
    while LEADING_FILLER.match(label):
        label = LEADING_FILLER.sub("", label, count=1)
    return label.title()


def extract_processing_times(text: str) -> Dict[str, str]:
    """`<permit-type>: <duration>` pairs, plus durations near known permit keywords"""
    times: Dict[str, str] = {}
    for line in (text or "").splitlines():
        for match in LABELLED_DURATION_RE.finditer(line):
            times.setdefault(_normalize_label(match.group("label")), clean_text(match.group("duration")))

    flat = clean_text(text)
    for keyword in PERMIT_KEYWORDS:
        if any(keyword in label.lower() for label in times):
            continue
        match = re.search(rf"\b{keyword}\b[^.\n]{{0,60}}?({DURATION})", flat, re.IGNORECASE)
        if match:
            times[f"{keyword.title()} Permit"] = clean_text(match.group(1))
    return times


def clean_requirement(text: str) -> Optional[str]:
    """Strip bullet markup; keep items between 10 and 500 characters"""
    item = BULLET_PREFIX.sub("", clean_text(text)).strip()
    if len(item) <= 10 or len(item) > 500:
        return None
    return item


def is_requirement_heading(text: str) -> bool:
    return bool(REQUIREMENT_HEADING_RE.search(text or ""))


def infer_permit_category(text: str) -> PermitCategory:
    for category, pattern in CATEGORY_KEYWORDS:
        if pattern.search(text or ""):
            return category
    return PermitCategory.OTHER


def strip_fee_words(name: str) -> str:
    """'Electrical Permit Fee' -> 'Electrical Permit'"""
    stripped = clean_text(FEE_WORDS.sub(" ", name or "")).strip(" -:,")
    return stripped or clean_text(name)


def infer_field_type(input_type: Optional[str], name: str = "", label: str = "") -> str:
    """Map an input's declared type and naming onto a coarse field type"""
    input_type = (input_type or "text").lower()
    hint = f"{name} {label}".lower()

    if input_type in ("checkbox", "radio"):
        return "checkbox"
    if input_type == "email" or "email" in hint or "e-mail" in hint:
        return "email"
    if input_type == "tel" or re.search(r"phone|\btel\b|mobile|fax", hint):
        return "phone"
    if input_type in ("date", "datetime-local", "month") or re.search(r"\bdate\b|\bdob\b", hint):
        return "date"
    if input_type in ("number", "range") or re.search(r"amount|value|\bcost\b|square f|sq\.? ?ft|number of", hint):
        return "number"
    if input_type == "textarea" or re.search(r"description|comments|details|scope of work", hint):
        return "textarea"
    if input_type == "select":
        return "select"
    if input_type == "file":
        return "file"
    return "text"


def has_required_marker(label: str) -> bool:
    return "*" in (label or "") or "required" in (label or "").lower()


def find_duration(text: str) -> Optional[str]:
    """First duration such as '10-15 business days'"""
    match = DURATION_RE.search(text or "")
    return clean_text(match.group(0)) if match else None


def find_departments(text: str) -> List[str]:
    departments: List[str] = []
    for pattern in DEPARTMENT_PATTERNS:
        for match in pattern.finditer(text or ""):
            name = clean_text(match.group(0)).title()
            if name not in departments:
                departments.append(name)
    return departments
