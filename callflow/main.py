"""Call Flow Studio - Main application entry point.

Serves the flow editor API, the phone number API, and the Twilio voice
webhooks that answer calls with compiled flows.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .api import catalog, editor, flows, numbers, voice
from .api.dependencies import Services, build_services
from .config import Settings, get_settings
from .exceptions import CallFlowError
from .logging_config import configure_logging
from .persistence.database import init_db

logger = structlog.get_logger()


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """Build the application around a settings object and service graph."""
    settings = settings or get_settings()
    configure_logging(settings)
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        logger.info(
            "Starting Call Flow service",
            host=settings.host,
            port=settings.port,
            storage=settings.storage.backend.value,
        )

        if services.engine is not None:
            await init_db(services.engine)
            logger.info("Database initialized")

        yield

        logger.info("Shutting down Call Flow service")
        if services.engine is not None:
            await services.engine.dispose()

    app = FastAPI(
        title="Call Flow Studio",
        description="Visual call flow editor and TwiML compiler for purchased phone numbers.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.enable_docs else None,
        redoc_url="/redoc" if settings.enable_docs else None,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CallFlowError)
    async def callflow_exception_handler(request: Request, exc: CallFlowError):
        logger.info(
            "Request failed",
            error=exc.message,
            code=exc.code,
            path=request.url.path,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(
            "Unhandled exception",
            error=str(exc),
            path=request.url.path,
            method=request.method,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            service=settings.service_name,
            version=__version__,
        )

    for module in (catalog, flows, editor, numbers, voice):
        app.include_router(module.router, prefix=settings.api_prefix)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "callflow.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level,
    )
