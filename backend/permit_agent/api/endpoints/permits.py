"""
Permit Endpoints - Page extraction, address lookup and PDF analysis
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from permit_agent.api.endpoints.dependencies import get_service
from permit_agent.core.logging import get_logger
from permit_agent.models.pdf import PDFAnalysisResult
from permit_agent.models.permit import ExtractedPermitData, PermitLookupResult
from permit_agent.service import PermitAgentService

logger = get_logger(__name__)
router = APIRouter()


class ExtractRequest(BaseModel):
    """API model for permit page extraction"""
    url: str = Field(..., description="Permit page of a jurisdiction")


class LookupRequest(BaseModel):
    """API model for permit lookup by address"""
    address: str = Field(..., description="Street address of the project site")


class PDFRequest(BaseModel):
    """API model for PDF analysis"""
    url: str = Field(..., description="Location of a permit application PDF")


@router.post("/extract", response_model=ExtractedPermitData)
async def extract_permits(
    request: ExtractRequest,
    service: PermitAgentService = Depends(get_service)
):
    """Extract permit data from a jurisdiction's permit page"""
    logger.info("Permit extraction requested", url=request.url)
    return await service.fetch_and_extract(request.url)


@router.post("/lookup", response_model=PermitLookupResult)
async def lookup_permits(
    request: LookupRequest,
    service: PermitAgentService = Depends(get_service)
):
    """Permit data for the jurisdiction governing an address"""
    logger.info("Permit lookup requested")
    return await service.lookup_permits(request.address)


@router.post("/pdf", response_model=PDFAnalysisResult)
async def analyze_pdf(
    request: PDFRequest,
    service: PermitAgentService = Depends(get_service)
):
    """Analyze a permit application PDF"""
    logger.info("PDF analysis requested", url=request.url)
    return await service.analyze_pdf(request.url)
