"""
Structured extraction results produced from fetched HTML
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from permit_agent.models.permit import ContactInfo, PermitFee, PermitForm


class TableKind(str, Enum):
    """Table classification by header keywords"""
    FEES = "fees"
    REQUIREMENTS = "requirements"
    SCHEDULE = "schedule"
    UNKNOWN = "unknown"


class ExtractedTable(BaseModel):
    headers: List[str] = Field(default_factory=list)
    rows: List[List[str]] = Field(default_factory=list)
    kind: TableKind = TableKind.UNKNOWN
    caption: Optional[str] = None


class FormField(BaseModel):
    name: str
    label: str = ""
    type: str = "text"
    required: bool = False
    options: List[str] = Field(default_factory=list)
    placeholder: Optional[str] = None


class ExtractedForm(BaseModel):
    name: str
    submit_url: Optional[str] = None
    method: str = "GET"
    fields: List[FormField] = Field(default_factory=list)


class PermitDetails(BaseModel):
    """Loose permit facts gathered from page text"""
    permit_types: List[str] = Field(default_factory=list)
    departments: List[str] = Field(default_factory=list)
    inspection_types: List[str] = Field(default_factory=list)
    online_services: List[str] = Field(default_factory=list)
    application_steps: List[str] = Field(default_factory=list)


class StructuredExtraction(BaseModel):
    """Everything the content extractor found on one page"""
    tables: List[ExtractedTable] = Field(default_factory=list)
    fees: List[PermitFee] = Field(default_factory=list)
    contact: ContactInfo = Field(default_factory=ContactInfo)
    requirements: List[str] = Field(default_factory=list)
    forms: List[ExtractedForm] = Field(default_factory=list)
    processing_times: Dict[str, str] = Field(default_factory=dict)
    permit_forms: List[PermitForm] = Field(default_factory=list)
    permit_portal_url: Optional[str] = None
    details: PermitDetails = Field(default_factory=PermitDetails)
    failed_extractors: List[str] = Field(default_factory=list)
