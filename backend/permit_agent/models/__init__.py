"""
Data models for the permit agent
"""

from .permit import (
    Address,
    ContactInfo,
    DataSource,
    ExtractedPermitData,
    FeeUnit,
    Jurisdiction,
    PermitCategory,
    PermitFee,
    PermitForm,
    PermitLookupResult,
    PermitType,
    ProcessingInfo,
    TimeRange,
)
from .extraction import (
    ExtractedForm,
    ExtractedTable,
    FormField,
    PermitDetails,
    StructuredExtraction,
    TableKind,
)
from .pdf import (
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
from .integration import (
    APIConfig,
    APICredentials,
    APIPermit,
    APIPermitData,
    ApplicationStatus,
    AuthMethod,
    FieldTransform,
    PermitSearchQuery,
    VendorSignature,
)

__all__ = [
    "Address",
    "ContactInfo",
    "DataSource",
    "ExtractedPermitData",
    "FeeUnit",
    "Jurisdiction",
    "PermitCategory",
    "PermitFee",
    "PermitForm",
    "PermitLookupResult",
    "PermitType",
    "ProcessingInfo",
    "TimeRange",
    "ExtractedForm",
    "ExtractedTable",
    "FormField",
    "PermitDetails",
    "StructuredExtraction",
    "TableKind",
    "ApplicationStep",
    "CheckboxField",
    "FillableField",
    "PDFAnalysisResult",
    "PDFContact",
    "PDFFee",
    "PDFFormField",
    "PDFMetadata",
    "PDFTextAnalysis",
    "SignatureField",
    "APIConfig",
    "APICredentials",
    "APIPermit",
    "APIPermitData",
    "ApplicationStatus",
    "AuthMethod",
    "FieldTransform",
    "PermitSearchQuery",
    "VendorSignature",
]
