"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from settlement_engine import __version__
from settlement_engine.api.routes import (
    commissions_router,
    health_router,
    invoices_router,
    payments_router,
    payroll_router,
)
from settlement_engine.database import dispose_db, init_db
from settlement_engine.errors import (
    DataCompletenessError,
    InvoiceRoutingBlockedError,
    NotFoundError,
    SettlementError,
    StateConflictError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific family first
ERROR_STATUS = [
    (ValidationError, status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    (StateConflictError, status.HTTP_409_CONFLICT, "STATE_CONFLICT"),
    (DataCompletenessError, 422, "DATA_INCOMPLETE"),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    yield
    # Shutdown
    await dispose_db()


def error_status(exc: SettlementError) -> tuple[int, str]:
    for family, status_code, code in ERROR_STATUS:
        if isinstance(exc, family):
            return status_code, code
    return status.HTTP_400_BAD_REQUEST, "SETTLEMENT_ERROR"


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Settlement Engine API",
        description="Invoice issuance, margin snapshots and commission settlement",
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
    @app.exception_handler(SettlementError)
    async def settlement_exception_handler(
        request: Request, exc: SettlementError
    ) -> JSONResponse:
        """Map domain errors onto HTTP statuses."""
        status_code, code = error_status(exc)
        context = None
        if isinstance(exc, InvoiceRoutingBlockedError):
            context = {"action": exc.action, "reasons": exc.reasons}
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "code": code, "context": context},
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
    app.include_router(invoices_router, prefix="/api/v1")
    app.include_router(payments_router, prefix="/api/v1")
    app.include_router(commissions_router, prefix="/api/v1")
    app.include_router(payroll_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
