"""
API Routes Configuration
"""

from fastapi import APIRouter

from permit_agent.api.endpoints import health, integrations, permits

# Create main router
router = APIRouter()

# Include endpoint routers
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(permits.router, prefix="/permits", tags=["permits"])
router.include_router(integrations.router, prefix="/integrations", tags=["integrations"])
