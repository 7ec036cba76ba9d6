from typing import Any, Dict

from fastapi import APIRouter, Depends

from permit_agent.api.endpoints.dependencies import get_service
from permit_agent.core.config import settings
from permit_agent.core.logging import get_logger
from permit_agent.service import PermitAgentService

logger = get_logger(__name__)
router = APIRouter()


@router.get("/")
async def health_check():
    """Basic health check endpoint."""
    logger.info("Health check requested")
    return {"status": "healthy", "service": settings.PROJECT_NAME}


@router.get("/detailed")
async def detailed_health_check(service: PermitAgentService = Depends(get_service)) -> Dict[str, Any]:
    """Breaker, cache, rate limiter and client state."""
    logger.info("Detailed health check requested")
    health = service.get_health()
    return {
        "service": settings.PROJECT_NAME,
        "version": settings.VERSION,
        **health,
    }
