"""FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from blobtrail.api.files import router as files_router
from blobtrail.api.health import router as health_router
from blobtrail.api.scan import router as scan_router
from blobtrail.config import Settings, load_settings
from blobtrail.database import create_engine, ensure_sqlite_directory
from blobtrail.exceptions import (
    IntegrityViolationError,
    InvalidInputError,
    NotFoundError,
    PersistenceFailureError,
    UpstreamUnavailableError,
)
from blobtrail.ledger.sql import SqlVersionLedger
from blobtrail.models.base import Base
from blobtrail.services.scanner_service import Scanner
from blobtrail.storage.azure_blob import AzureBlobSource

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from blobtrail.storage.base import ObjectSource

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)
    logging.getLogger("azure").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    _configure_logging(settings.debug)
    logger.info("Starting Blobtrail (debug=%s)", settings.debug)

    object_source: ObjectSource | None = app.state.object_source
    if object_source is None:
        settings.validate_runtime()
        object_source = AzureBlobSource(settings.azure_accounts)
        app.state.object_source = object_source

    try:
        ensure_sqlite_directory(settings.database_url)
        engine, session_factory = create_engine(settings)
        app.state.engine = engine
        app.state.session_factory = session_factory
    except Exception as exc:
        logger.critical(
            "Failed to initialize database: %s. Check database path and permissions.", exc
        )
        raise

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as exc:
        logger.critical("Failed to create database schema: %s.", exc)
        raise

    ledger = SqlVersionLedger(session_factory)
    app.state.ledger = ledger

    scopes = settings.storage_scopes()
    scanner = Scanner(
        object_source,
        ledger,
        scopes,
        interval_seconds=settings.scan_interval_seconds,
        max_concurrent_listings=settings.max_concurrent_listings,
        max_concurrent_fetches=settings.max_concurrent_fetches,
    )
    app.state.scanner = scanner
    if settings.scan_enabled and scopes:
        scanner.start()
    else:
        logger.warning(
            "Background scanning disabled (scan_enabled=%s, %d scopes)",
            settings.scan_enabled,
            len(scopes),
        )

    yield

    try:
        await scanner.stop()
    except Exception as exc:
        logger.error("Error during scanner shutdown: %s", exc, exc_info=True)

    try:
        await engine.dispose()
    except Exception as exc:
        logger.error("Error during engine disposal: %s", exc, exc_info=True)

    logger.info("Blobtrail stopped")


def create_app(
    settings: Settings | None = None,
    object_source: ObjectSource | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``object_source`` replaces the Azure adapter built from settings.
    """
    if settings is None:
        settings = load_settings()

    docs_enabled = settings.debug or settings.expose_docs

    app = FastAPI(
        title="Blobtrail",
        description="Version history, diffs and restores for files in blob storage",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.settings = settings
    app.state.object_source = object_source

    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(files_router)
    app.include_router(scan_router)

    # Global exception handlers

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        logger.info("NotFound in %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidInputError)
    async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
        logger.warning("InvalidInput in %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(UpstreamUnavailableError)
    async def upstream_error_handler(
        request: Request, exc: UpstreamUnavailableError
    ) -> JSONResponse:
        logger.error(
            "UpstreamUnavailable in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=502,
            content={"detail": "Object store unavailable"},
        )

    @app.exception_handler(IntegrityViolationError)
    async def integrity_error_handler(
        request: Request, exc: IntegrityViolationError
    ) -> JSONResponse:
        logger.error(
            "IntegrityViolation in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Stored version failed its integrity check"},
        )

    @app.exception_handler(PersistenceFailureError)
    async def persistence_error_handler(
        request: Request, exc: PersistenceFailureError
    ) -> JSONResponse:
        logger.error(
            "PersistenceFailure in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Database temporarily unavailable"},
        )

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        logger.error(
            "OperationalError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Database temporarily unavailable"},
        )

    return app


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "blobtrail.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
