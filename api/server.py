"""FastAPI server for grower payment reconciliation.

Main entry point for the API server.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import batches, cheques, health, metrics, pricing, receipts
from api.routes.health import API_VERSION
from core.config import get_settings
from core.errors import (
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
    PaymentsError,
    PriceTableRejectedError,
    PriceTableShapeError,
    ProviderUnavailableError,
)
from core.observability.logging import configure_logging, get_logger


logger = get_logger(__name__)


# Most specific first; the first matching class wins
ERROR_STATUS = [
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (InvalidRequestError, 422),
    (PriceTableShapeError, 422),
    (PriceTableRejectedError, 422),
    (ProviderUnavailableError, 503),
]


def status_for(error: PaymentsError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500


async def payments_error_handler(request: Request, exc: PaymentsError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({status_code}): {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    logger.info("Grower Payments API starting up...")

    yield

    logger.info("Grower Payments API shutting down...")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Grower Payments API",
        description="Price table validation, cheque breakdowns, receipt and cheque voids, and batch reconciliation",
        version=API_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(PaymentsError, payments_error_handler)

    app.include_router(health.router, tags=["Health"])
    app.include_router(metrics.router, tags=["Health"])
    app.include_router(pricing.router, prefix="/price-tables", tags=["Price Tables"])
    app.include_router(cheques.router, prefix="/cheques", tags=["Cheques"])
    app.include_router(receipts.router, prefix="/receipts", tags=["Receipts"])
    app.include_router(batches.router, prefix="/batches", tags=["Batches"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
