"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from payroll_execution import __version__
from payroll_execution.api.routes import (
    benefits_router,
    health_router,
    payroll_runs_router,
    refunds_router,
)
from payroll_execution.config import get_settings
from payroll_execution.database import create_schema, dispose_db
from payroll_execution.errors import (
    AuthorizationError,
    ConcurrencyError,
    ExceptionBlockedError,
    InvalidTransitionError,
    NotFoundError,
    PayrollExecutionError,
    StorageUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[PayrollExecutionError], int] = {
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ExceptionBlockedError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConcurrencyError: status.HTTP_409_CONFLICT,
    StorageUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup: development databases get their tables created on the fly
    if get_settings().debug:
        await create_schema()
    yield
    # Shutdown
    await dispose_db()


def error_response(exc: PayrollExecutionError) -> JSONResponse:
    """Build the JSON body for a domain error."""
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    content: dict = {"detail": str(exc), "code": exc.code}
    if isinstance(exc, ExceptionBlockedError):
        content["context"] = exc.report.to_dict()
    elif isinstance(exc, InvalidTransitionError):
        content["context"] = {"from_status": exc.from_status, "action": exc.action}
    return JSONResponse(status_code=status_code, content=content)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Payroll Execution API",
        description="Payroll run approval and exception workflow",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(PayrollExecutionError)
    async def domain_exception_handler(
        request: Request, exc: PayrollExecutionError
    ) -> JSONResponse:
        """Translate domain errors into HTTP responses."""
        return error_response(exc)

    @app.exception_handler(IntegrityError)
    async def integrity_exception_handler(
        request: Request, exc: IntegrityError
    ) -> JSONResponse:
        """A unique rule lost a race with a concurrent request at commit."""
        logger.warning(
            "Integrity conflict on %s %s: %s", request.method, request.url.path, exc.orig
        )
        return error_response(
            ConcurrencyError("The change conflicts with a concurrent update; refetch and retry")
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
    app.include_router(payroll_runs_router, prefix="/api/v1")
    app.include_router(benefits_router, prefix="/api/v1")
    app.include_router(refunds_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
