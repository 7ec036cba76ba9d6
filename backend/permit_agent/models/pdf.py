"""
PDF analysis results
"""

from typing import List, Optional, Union

from pydantic import BaseModel, Field


class PDFFormField(BaseModel):
    """A fill-in field detected from form-letter text"""
    name: str
    label: str
    type: str = "text"
    required: bool = False
    page: Optional[int] = None


class PDFFee(BaseModel):
    name: str
    amount: Union[float, str]
    category: str = "general"
    description: Optional[str] = None


class PDFContact(BaseModel):
    type: str  # phone, email, hours, address
    value: str
    department: str = "City Office"


class ApplicationStep(BaseModel):
    step_number: int
    title: str
    description: str = ""


class CheckboxField(BaseModel):
    name: str
    label: str
    group_name: Optional[str] = None
    checked: bool = False
    required: bool = False
    page: Optional[int] = None


class FillableField(BaseModel):
    """An interactive AcroForm field"""
    name: str
    type: str = "text"  # text, dropdown, radio, date, number
    required: bool = False
    value: Optional[str] = None
    options: List[str] = Field(default_factory=list)
    page: Optional[int] = None
    rect: Optional[List[float]] = None


class SignatureField(BaseModel):
    name: str
    type: str = "drawn"  # drawn or digital
    required: bool = True
    page: Optional[int] = None
    rect: Optional[List[float]] = None


class PDFMetadata(BaseModel):
    title: Optional[str] = None
    subject: Optional[str] = None
    author: Optional[str] = None
    creator: Optional[str] = None
    creation_date: Optional[str] = None
    modification_date: Optional[str] = None
    page_count: int = 0
    file_size: int = 0
    version: Optional[str] = None
    is_interactive: bool = False
    has_digital_signature: bool = False


class PDFTextAnalysis(BaseModel):
    """Heuristic findings from PDF text alone"""
    form_fields: List[PDFFormField] = Field(default_factory=list)
    requirements: List[str] = Field(default_factory=list)
    steps: List[ApplicationStep] = Field(default_factory=list)
    fees: List[PDFFee] = Field(default_factory=list)
    contacts: List[PDFContact] = Field(default_factory=list)
    checkboxes: List[CheckboxField] = Field(default_factory=list)
    signatures: List[SignatureField] = Field(default_factory=list)


class PDFAnalysisResult(PDFTextAnalysis):
    url: Optional[str] = None
    text: str = ""
    metadata: PDFMetadata = Field(default_factory=PDFMetadata)
    fillable_fields: List[FillableField] = Field(default_factory=list)
