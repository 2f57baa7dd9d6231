"""
FastAPI Application Setup.

Main application factory for the PDF Worker REST API.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pdf_worker.api.middleware.cors import add_cors_middleware
from pdf_worker.api.middleware.logging import RequestLoggingMiddleware
from pdf_worker.api.middleware.rate_limit import RateLimitMiddleware
from pdf_worker.api.middleware.size_limit import SizeLimitMiddleware
from pdf_worker.api.routes import download, health, pages
from pdf_worker.artifacts import ArtifactLifecycle, ArtifactStore
from pdf_worker.assembly import AssemblyService, OutputPackager, PageInstructionCompiler
from pdf_worker.config import WorkerSettings
from pdf_worker.core.exceptions import FatalIOError, PdfWorkerError
from pdf_worker.version import __version__

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _error(status_code: int, error_type: str, message: str, detail=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"type": error_type, "message": message, "detail": detail}},
    )


def create_app(settings: WorkerSettings | None = None, title: str = "PDF Worker API") -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Worker settings; read from PW_* environment variables if omitted
        title: Application title for OpenAPI docs

    Returns:
        Configured FastAPI application instance

    Raises:
        ConfigurationError: If the settings are inconsistent
    """
    settings = (settings or WorkerSettings.from_env()).validate()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Build the worker's long-lived objects on startup and tear them
        down on shutdown.
        """
        logger.info("PDF Worker API starting up...")
        logger.info(f"Version: {__version__}")

        settings.ensure_directories()

        store = ArtifactStore(settings.downloads_dir, settings.artifact_ttl)
        lifecycle = ArtifactLifecycle(store, settings)
        compiler = PageInstructionCompiler(max_total_pages=settings.max_total_pages)

        app.state.settings = settings
        app.state.store = store
        app.state.lifecycle = lifecycle
        app.state.service = AssemblyService(compiler, OutputPackager(store))

        lifecycle.start()
        logger.info("Artifact store ready", extra=settings.as_dict())
        try:
            yield
        finally:
            logger.info("PDF Worker API shutting down...")
            lifecycle.stop()
            store.close()

    app = FastAPI(
        title=title,
        description="Page assembly and ephemeral download service for PDF documents",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Middleware runs in reverse order of registration
    app.add_middleware(
        SizeLimitMiddleware,
        max_request_size=settings.max_request_size,
    )
    app.add_middleware(
        RateLimitMiddleware,
        rate_limit=settings.rate_limit,
        upload_rate_limit=settings.upload_rate_limit,
    )
    app.add_middleware(RequestLoggingMiddleware)
    add_cors_middleware(app, allow_origins=settings.allowed_origins)

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )
    app.include_router(
        download.router,
        prefix="/api/download",
        tags=["Download"],
    )
    app.include_router(
        pages.router,
        prefix="/api",
        tags=["Pages"],
    )

    # Exception handlers
    @app.exception_handler(PdfWorkerError)
    async def worker_exception_handler(request: Request, exc: PdfWorkerError) -> JSONResponse:
        """Render worker errors with their stable code."""
        if isinstance(exc, FatalIOError):
            logger.error(f"Storage failure: {exc}", exc_info=exc)
            return _error(500, exc.code, "An internal storage error occurred")

        logger.info(
            f"Request rejected: {exc.message}",
            extra={"error_type": exc.code, "path": request.url.path},
        )
        return _error(exc.status_code, exc.code, exc.message, exc.details or None)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle missing or malformed form fields."""
        fields = {
            ".".join(str(part) for part in error["loc"]): error["msg"] for error in exc.errors()
        }
        return _error(400, "validation_error", "Request validation failed", {"fields": fields})

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception(f"Unhandled exception: {exc}")
        return _error(
            500,
            "internal_error",
            "An unexpected error occurred",
            str(exc) if logger.isEnabledFor(logging.DEBUG) else None,
        )

    # Root endpoint
    @app.get("/", tags=["Root"])
    async def root() -> dict[str, object]:
        """Root endpoint with API information."""
        return {
            "name": "PDF Worker API",
            "version": __version__,
            "status": "operational",
            "docs": "/docs",
            "health": "/health",
        }

    return app
