"""
Integration Endpoints - Third-party permitting systems
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from permit_agent.api.endpoints.dependencies import get_service
from permit_agent.core.exceptions import not_found_exception
from permit_agent.core.logging import get_logger
from permit_agent.models.integration import APIPermit, APIPermitData, ApplicationStatus, PermitSearchQuery
from permit_agent.service import PermitAgentService

logger = get_logger(__name__)
router = APIRouter()


class PermitDataRequest(BaseModel):
    """Canonical filters for a permit data pull"""
    permit_type: Optional[str] = None
    status: Optional[str] = None
    jurisdiction: Optional[str] = None


class DetectRequest(BaseModel):
    url: str = Field(..., description="Jurisdiction website")


class DetectResponse(BaseModel):
    url: str
    systems: List[str]


def _require_system(service: PermitAgentService, system: str) -> None:
    if not service.has_system(system):
        raise not_found_exception(f"Permitting system '{system}' not supported")


@router.get("/")
async def list_systems(service: PermitAgentService = Depends(get_service)) -> Dict[str, List[str]]:
    """List configured permitting systems"""
    return {"systems": sorted(service.integrator.configs)}


@router.post("/detect", response_model=DetectResponse)
async def detect_systems(
    request: DetectRequest,
    service: PermitAgentService = Depends(get_service)
):
    """Detect permitting systems used by a jurisdiction"""
    systems = await service.detect_systems(request.url)
    return DetectResponse(url=request.url, systems=systems)


@router.post("/{system}/permits", response_model=APIPermitData)
async def fetch_permit_data(
    system: str,
    request: Optional[PermitDataRequest] = None,
    service: PermitAgentService = Depends(get_service)
):
    """Permits, fees, applications, inspections and departments from one system"""
    _require_system(service, system)
    filters = request.model_dump(exclude_none=True) if request else {}
    logger.info("Integration permit data requested", system=system, filters=sorted(filters))
    return await service.integrator_fetch(system, filters)


@router.post("/{system}/search", response_model=List[APIPermit])
async def search_permits(
    system: str,
    query: PermitSearchQuery,
    service: PermitAgentService = Depends(get_service)
):
    """Search permits in one system"""
    _require_system(service, system)
    return await service.integrator_search(system, query)


@router.get("/{system}/applications/{application_id}", response_model=ApplicationStatus)
async def get_application_status(
    system: str,
    application_id: str,
    service: PermitAgentService = Depends(get_service)
):
    """Current status of an application"""
    _require_system(service, system)
    return await service.integrator_application_status(system, application_id)
