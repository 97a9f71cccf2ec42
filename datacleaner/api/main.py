"""
FastAPI Application Entry Point
===============================

Main FastAPI application with health check, middleware,
exception mapping and lifecycle management.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from datacleaner import __version__
from datacleaner.api.metrics import get_metrics_app
from datacleaner.config.settings import Settings, get_settings
from datacleaner.services.cleaning_service import ClientFactory, CleaningService
from datacleaner.services.table_service import TableService
from datacleaner.storage.kv_store import KeyValueStore, create_store
from datacleaner.storage.repositories import CredentialRepository, TableRepository
from datacleaner.utils.errors import (
    ConfigurationError,
    DataCleanerError,
    FileSizeError,
    IllegalTransitionError,
    OperationCancelled,
    OperationInProgressError,
    ParseError,
    RemoteError,
    RowNotFoundError,
    SecurityError,
    ValidationError,
)
from datacleaner.utils.logger import configure_logging, get_logger

# Configure logging at module load
configure_logging()
logger = get_logger(__name__)

# Most specific first
ERROR_STATUS_CODES: list[tuple[type[DataCleanerError], int]] = [
    (RowNotFoundError, status.HTTP_404_NOT_FOUND),
    (SecurityError, status.HTTP_403_FORBIDDEN),
    (FileSizeError, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE),
    (OperationCancelled, status.HTTP_409_CONFLICT),
    (OperationInProgressError, status.HTTP_409_CONFLICT),
    (RemoteError, status.HTTP_502_BAD_GATEWAY),
    (ParseError, status.HTTP_502_BAD_GATEWAY),
    (ConfigurationError, status.HTTP_400_BAD_REQUEST),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (IllegalTransitionError, status.HTTP_400_BAD_REQUEST),
]


def status_code_for(exc: DataCleanerError) -> int:
    for error_type, code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    client_factory: Optional[ClientFactory] = None,
) -> FastAPI:
    """
    FastAPI application factory.

    Args:
        settings: Application settings (default: environment)
        store: Persistent key/value store (default: from settings)
        client_factory: Builds the LLM client from the saved API key

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Application lifespan context manager.

        Startup loads the persisted table; shutdown closes the store.
        """
        logger.info(
            "datacleaner service starting",
            version=__version__,
            environment=settings.environment,
            store_backend=settings.store_backend,
        )

        kv_store = store or create_store(settings)
        credentials = CredentialRepository(kv_store)
        table_service = TableService(TableRepository(kv_store), settings)
        await table_service.load()

        app.state.settings = settings
        app.state.credentials = credentials
        app.state.table_service = table_service
        app.state.cleaning_service = CleaningService(
            table_service,
            credentials,
            settings=settings,
            client_factory=client_factory,
        )

        yield

        logger.info("datacleaner service shutting down")
        await kv_store.close()

    app = FastAPI(
        title="Data Cleaner API",
        description=(
            "LLM-assisted cleaning of profile tables: chunked extraction from pasted "
            "text, duplicate detection, relevance verification, faceted filtering "
            "and rate-sheet price updates."
        ),
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    # -------------------------------------------------------------------------
    # CORS Middleware
    # -------------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------------------------------
    # Request Logging Middleware
    # -------------------------------------------------------------------------
    @app.middleware("http")
    async def log_requests(request: Request, call_next: Any) -> Any:
        """
        Log all incoming requests with timing and correlation ID.

        Adds X-Request-ID header for tracing and X-Process-Time header
        with request duration in seconds.
        """
        request_id = str(uuid4())
        start_time = time.perf_counter()

        logger.info(
            "Request received",
            request_id=request_id,
            method=request.method,
            path=str(request.url.path),
            query=str(request.query_params) if request.query_params else None,
        )

        response = await call_next(request)

        process_time = time.perf_counter() - start_time
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{process_time:.4f}"

        logger.info(
            "Request completed",
            request_id=request_id,
            method=request.method,
            path=str(request.url.path),
            status_code=response.status_code,
            duration_ms=round(process_time * 1000, 2),
        )

        return response

    # -------------------------------------------------------------------------
    # Exception Handlers
    # -------------------------------------------------------------------------
    @app.exception_handler(DataCleanerError)
    async def datacleaner_error_handler(
        request: Request, exc: DataCleanerError
    ) -> JSONResponse:
        """Handle application-specific errors; raw remote payloads are passed through."""
        status_code = status_code_for(exc)
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "Application error",
            error_type=type(exc).__name__,
            message=exc.message,
            details=exc.details,
            path=str(request.url),
            status_code=status_code,
        )
        return JSONResponse(
            status_code=status_code,
            content={
                "error": type(exc).__name__,
                "message": exc.message,
                "details": exc.details,
                "raw_response": exc.raw_payload,
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected errors."""
        logger.exception(
            "Unexpected error",
            error_type=type(exc).__name__,
            message=str(exc),
            path=str(request.url),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "InternalServerError",
                "message": "An unexpected error occurred",
                "details": {},
                "raw_response": None,
            },
        )

    # -------------------------------------------------------------------------
    # Health Check Endpoint
    # -------------------------------------------------------------------------
    @app.get(
        "/health",
        tags=["Health"],
        summary="Health check endpoint",
        response_model=dict[str, Any],
    )
    async def health_check(request: Request) -> dict[str, Any]:
        """
        Check service health status.

        Reports table size and whether an API key is available.
        """
        table_service: TableService = request.app.state.table_service
        credentials: CredentialRepository = request.app.state.credentials
        has_key = bool(await credentials.get() or settings.openrouter_api_key)
        return {
            "status": "healthy" if has_key else "degraded",
            "version": __version__,
            "service": "datacleaner",
            "checks": {
                "table": {"status": "healthy", "rows": len(table_service.table)},
                "api_key": {"status": "configured" if has_key else "missing"},
            },
        }

    # -------------------------------------------------------------------------
    # API Info Endpoint
    # -------------------------------------------------------------------------
    @app.get(
        "/",
        tags=["Info"],
        summary="API information",
    )
    async def api_info() -> dict[str, str]:
        """Return basic API information."""
        return {
            "service": "datacleaner",
            "version": __version__,
            "description": "LLM-assisted data cleaning service",
            "docs": "/docs",
        }

    # -------------------------------------------------------------------------
    # Register Routers
    # -------------------------------------------------------------------------
    from datacleaner.api.routes import (
        cleaning_router,
        prices_router,
        settings_router,
        table_router,
    )

    app.include_router(table_router, prefix="/table", tags=["Table"])
    app.include_router(cleaning_router, prefix="/cleaning", tags=["Cleaning"])
    app.include_router(prices_router, prefix="/prices", tags=["Prices"])
    app.include_router(settings_router, prefix="/settings", tags=["Settings"])

    app.mount("/metrics", get_metrics_app())

    return app


# Create application instance
app = create_app()
