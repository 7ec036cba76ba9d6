"""
Permit domain models shared by extraction, processing and the service facade
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PermitCategory(str, Enum):
    """Permit categories"""
    BUILDING = "building"
    ELECTRICAL = "electrical"
    PLUMBING = "plumbing"
    MECHANICAL = "mechanical"
    ZONING = "zoning"
    DEMOLITION = "demolition"
    SIGN = "sign"
    OTHER = "other"

    @classmethod
    def coerce(cls, value: object) -> "PermitCategory":
        """Map arbitrary input onto a category, defaulting to OTHER"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER


class FeeUnit(str, Enum):
    """How a fee amount is applied"""
    FLAT = "flat"
    PER_SQFT = "per_sqft"
    PER_INSPECTION = "per_inspection"
    PER_HOUR = "per_hour"
    PER_UNIT = "per_unit"
    PERCENTAGE = "percentage"

    @classmethod
    def coerce(cls, value: object) -> "FeeUnit":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.FLAT


class DataSource(str, Enum):
    """Where the returned permit data came from"""
    STRUCTURED = "structured"
    AI_SUPPLEMENTED = "ai_supplemented"
    DEMO_FALLBACK = "demo_fallback"


class PermitFee(BaseModel):
    """A single fee line"""
    model_config = ConfigDict(frozen=True)

    type: str
    amount: float = 0.0
    unit: FeeUnit = FeeUnit.FLAT
    description: Optional[str] = None
    conditions: Optional[str] = None


class PermitForm(BaseModel):
    """A downloadable or online permit application form"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    url: str
    file_type: str = "pdf"
    is_required: bool = False
    description: Optional[str] = None


class Address(BaseModel):
    model_config = ConfigDict(frozen=True)

    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""

    def is_empty(self) -> bool:
        return not any([self.street, self.city, self.state, self.zip_code])


class TimeRange(BaseModel):
    """Opening hours for a day in 24h HH:MM"""
    model_config = ConfigDict(frozen=True)

    open: str
    close: str


class ContactInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[Address] = None
    hours: Dict[str, Optional[TimeRange]] = Field(default_factory=dict)
    department: Optional[str] = None

    def has_direct_contact(self) -> bool:
        return bool(self.phone or self.email)


class ProcessingInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    average_time: Optional[str] = None
    rush_options: Optional[str] = None
    inspection_schedule: Optional[str] = None
    appeal_process: Optional[str] = None
    times_by_permit: Dict[str, str] = Field(default_factory=dict)
    application_steps: List[str] = Field(default_factory=list)


class PermitType(BaseModel):
    """A permit offered by a jurisdiction"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: PermitCategory = PermitCategory.OTHER
    description: str = ""
    requirements: List[str] = Field(default_factory=list)
    processing_time: Optional[str] = None
    fees: List[PermitFee] = Field(default_factory=list)
    forms: List[PermitForm] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=utc_now)


class ExtractedPermitData(BaseModel):
    """Final permit data returned to callers"""
    model_config = ConfigDict(frozen=True)

    permits: List[PermitType] = Field(default_factory=list)
    fees: List[PermitFee] = Field(default_factory=list)
    contact: ContactInfo = Field(default_factory=ContactInfo)
    processing: ProcessingInfo = Field(default_factory=ProcessingInfo)
    permit_forms: List[PermitForm] = Field(default_factory=list)
    permit_portal_url: Optional[str] = None
    online_services: List[str] = Field(default_factory=list)
    source: DataSource = DataSource.STRUCTURED
    supplemented_fields: List[str] = Field(default_factory=list)
    source_url: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    extracted_at: datetime = Field(default_factory=utc_now)

    @computed_field  # type: ignore[misc]
    @property
    def is_fallback(self) -> bool:
        return self.source == DataSource.DEMO_FALLBACK


class Jurisdiction(BaseModel):
    """A resolved municipality and where its permit information lives"""
    model_config = ConfigDict(frozen=True)

    name: str
    website: str
    permit_url: Optional[str] = None
    state: Optional[str] = None


class PermitLookupResult(BaseModel):
    """Permit data for an address together with the jurisdiction it resolved to"""
    address: str
    jurisdiction: Optional[Jurisdiction] = None
    data: ExtractedPermitData
