"""
Third-party permitting system configuration and canonical records
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from permit_agent.models.permit import utc_now


class AuthMethod(str, Enum):
    """Supported vendor authentication schemes"""
    NONE = "none"
    API_KEY = "api_key"
    OAUTH2 = "oauth2"
    BASIC = "basic"
    TOKEN = "token"


class RateLimitBudget(BaseModel):
    requests_per_minute: int = 60
    requests_per_hour: int = 1000


class FieldTransform(BaseModel):
    """Declarative mapping of one canonical field"""
    source_field: str
    fallbacks: List[str] = Field(default_factory=list)
    transform: Optional[str] = None
    default: Any = None


FieldSpec = Union[str, FieldTransform]


class APIConfig(BaseModel):
    """Static configuration for one permitting system"""
    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str = ""
    base_url: str
    version: str = "v1"
    authentication: AuthMethod = AuthMethod.NONE
    api_key_header: str = "X-API-Key"
    rate_limit: RateLimitBudget = Field(default_factory=RateLimitBudget)
    endpoints: Dict[str, str] = Field(default_factory=dict)
    data_mapping: Dict[str, Dict[str, FieldSpec]] = Field(default_factory=dict)
    filter_params: Dict[str, str] = Field(default_factory=dict)
    search_params: Dict[str, str] = Field(default_factory=dict)
    health_path: str = "/health"


class VendorSignature(BaseModel):
    """Substrings that betray a vendor platform on a jurisdiction site"""
    system: str
    indicators: List[str]


class APICredentials(BaseModel):
    """Opaque per-system credentials; values are never logged"""
    api_key: Optional[SecretStr] = None
    access_token: Optional[SecretStr] = None
    client_id: Optional[SecretStr] = None
    client_secret: Optional[SecretStr] = None
    token_url: Optional[SecretStr] = None
    username: Optional[SecretStr] = None
    password: Optional[SecretStr] = None


class CanonicalRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class APIPermit(CanonicalRecord):
    id: str = ""
    type: str = ""
    name: str = ""
    description: str = ""
    category: str = ""
    status: str = ""
    requirements: List[str] = Field(default_factory=list)
    processing_time: str = ""
    jurisdiction: str = ""
    last_updated: str = ""


class APIFee(CanonicalRecord):
    id: str = ""
    type: str = ""
    amount: float = 0.0
    unit: str = "flat"
    description: str = ""
    permit_type: str = ""


class APIApplication(CanonicalRecord):
    id: str = ""
    permit_type: str = ""
    status: str = ""
    submitted_date: str = ""
    applicant: str = ""
    address: str = ""


class APIInspection(CanonicalRecord):
    id: str = ""
    type: str = ""
    status: str = ""
    scheduled_date: str = ""
    inspector: str = ""
    result: str = ""


class APIDepartment(CanonicalRecord):
    id: str = ""
    name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""


class ApplicationStatus(CanonicalRecord):
    application_id: str = ""
    status: str = "unknown"
    status_date: str = ""
    next_steps: List[str] = Field(default_factory=list)
    assigned_to: str = ""
    comments: str = ""


class IntegrationMetadata(BaseModel):
    source: str
    last_updated: datetime = Field(default_factory=utc_now)
    version: str = ""
    total_records: int = 0


class APIPermitData(BaseModel):
    """Canonical permit data pulled from one permitting system"""
    system: str
    permits: List[APIPermit] = Field(default_factory=list)
    fees: List[APIFee] = Field(default_factory=list)
    applications: List[APIApplication] = Field(default_factory=list)
    inspections: List[APIInspection] = Field(default_factory=list)
    departments: List[APIDepartment] = Field(default_factory=list)
    metadata: IntegrationMetadata


class PermitSearchQuery(BaseModel):
    record_type: Optional[str] = None
    address: Optional[str] = None
    applicant: Optional[str] = None
    status: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    limit: Optional[int] = None
