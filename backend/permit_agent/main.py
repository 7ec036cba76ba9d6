"""
Main application entry point
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware

from permit_agent.api.routes import router as api_router
from permit_agent.core.config import Settings, get_settings
from permit_agent.core.exceptions import PermitAgentException, http_exception_from
from permit_agent.core.logging import get_logger, setup_logging
from permit_agent.service import PermitAgentService

logger = get_logger(__name__)


def create_app(service: Optional[PermitAgentService] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        service: Pre-built service; when omitted one is built from settings at startup
            and closed at shutdown
        settings: Application settings
    """
    settings = settings or get_settings()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = service is None
        app.state.service = service or PermitAgentService.from_settings(settings)
        logger.info("Starting application", environment=settings.ENVIRONMENT)
        try:
            yield
        finally:
            if owned:
                await app.state.service.aclose()
            logger.info("Application stopped")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Permit requirements, fees and contacts from municipal websites and permitting systems",
        version=settings.VERSION,
        lifespan=lifespan,
    )

    cors_origins = settings.get_cors_origins()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(PermitAgentException)
    async def permit_agent_exception_handler(request: Request, exc: PermitAgentException):
        http_exc = http_exception_from(exc)
        logger.warning("Request failed",
                       path=request.url.path,
                       status_code=http_exc.status_code,
                       error_code=http_exc.detail["error_code"])
        return await http_exception_handler(request, http_exc)

    app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.get("/")
    async def root():
        return {"message": settings.PROJECT_NAME}

    return app


app = create_app()
