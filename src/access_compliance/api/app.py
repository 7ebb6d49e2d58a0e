"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from access_compliance import __version__
from access_compliance.api.routes import (
    access_delta_router,
    eligibility_router,
    health_router,
)
from access_compliance.errors import (
    AccessComplianceError,
    InvalidEligibilityInputError,
    PreconditionFailedError,
    StagingValidationError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info("Access compliance API starting (version %s)", __version__)
    yield
    logger.info("Access compliance API stopped")


def _status_for(exc: AccessComplianceError) -> int:
    if isinstance(exc, PreconditionFailedError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, (InvalidEligibilityInputError, StagingValidationError)):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Access Compliance API",
        description="Eligibility tracking and access delta recompute",
        version=__version__,
        lifespan=lifespan,
    )

    # Exception handlers
    @app.exception_handler(AccessComplianceError)
    async def access_compliance_exception_handler(
        request: Request, exc: AccessComplianceError
    ) -> JSONResponse:
        """Map engine errors to status codes, keeping their diagnostic code."""
        return JSONResponse(
            status_code=_status_for(exc),
            content={"detail": exc.message, "code": exc.code},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(eligibility_router, prefix="/api/v1")
    app.include_router(access_delta_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
