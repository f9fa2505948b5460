"""FastAPI application for the Libris ingestion admin API."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from libris.api.middleware import RequestLoggingMiddleware
from libris.api.routes import api_v1_router, health
from libris.config import settings
from libris.db.session import close_db
from libris.utils.exceptions import (
    ConfigurationError,
    DuplicateError,
    InvalidTransitionError,
    LibrisError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from libris.utils.logging import configure_logging
from libris.version import __version__

# Configure logging based on environment
configure_logging(log_level=settings.log_level, environment=settings.environment)

logger = structlog.get_logger(__name__)

# Domain error -> HTTP status; first match in order wins
ERROR_STATUS_CODES: tuple[tuple[type[LibrisError], int], ...] = (
    (ConfigurationError, 503),
    (InvalidTransitionError, 400),
    (ValidationError, 400),
    (NotFoundError, 404),
    (DuplicateError, 409),
    (StorageError, 500),
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan events."""
    logger.info("application_startup", version=__version__)
    yield
    await close_db()
    logger.info("application_shutdown")


app = FastAPI(
    title="Libris API",
    description="Admin API for multi-source book catalog ingestion and extraction jobs",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)  # Health check (no version prefix)
app.include_router(api_v1_router)  # Versioned API endpoints


@app.exception_handler(LibrisError)
async def libris_exception_handler(request: Request, exc: LibrisError) -> JSONResponse:
    """Map domain errors to HTTP responses."""
    request_id = getattr(request.state, "request_id", "unknown")
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES if isinstance(exc, error_type)),
        500,
    )
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "request_failed",
        error_type=type(exc).__name__,
        error=str(exc),
        status_code=status_code,
        request_id=request_id,
    )
    detail = "Database error occurred" if isinstance(exc, StorageError) else str(exc)
    return JSONResponse(status_code=status_code, content={"detail": detail})


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    """Handle database errors with appropriate logging and response."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error("database_error", error=str(exc), request_id=request_id)
    return JSONResponse(status_code=500, content={"detail": "Database error occurred"})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation errors."""
    return JSONResponse(status_code=422, content={"detail": exc.errors()})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all unhandled exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error("unhandled_exception", error=str(exc), request_id=request_id)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
