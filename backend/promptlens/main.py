"""
PromptLens Backend - FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance
       with its own AnalyzerRegistry and AnalysisService on app.state.
Who:   Called by uvicorn to start the server (uvicorn promptlens.main:app)
       and by the test suite with injected registries.

Application Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                     FastAPI App                         │
    │                                                         │
    │  Middleware Chain:                                      │
    │  ┌──────────┐ ┌───────────┐ ┌──────┐ ┌──────┐           │
    │  │  Req ID  │→│  Logging  │→│ GZip │→│ CORS │           │
    │  └──────────┘ └───────────┘ └──────┘ └──────┘           │
    │                                                         │
    │  Routes:                                                │
    │  ┌────────────────────────┐ ┌───────────────┐ ┌───────┐ │
    │  │ POST /api/analyze-image│ │GET /providers │ │/health│ │
    │  └────────────────────────┘ └───────────────┘ └───────┘ │
    │                                                         │
    │  Exception Handlers:                                    │
    │  ┌──────────────────────────────────────────────────┐   │
    │  │ ServiceError→kind status │ Validation→400 │ →500 │   │
    │  └──────────────────────────────────────────────────┘   │
    └─────────────────────────────────────────────────────────┘

Error envelope (every failure):
    {"success": false,
     "error": {"message", "code", "provider", "processingTime"}}
"""

import logging
import math
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from promptlens import __version__
from promptlens.config import Settings, settings
from promptlens.exceptions import PromptLensError, ServiceError, ValidationError
from promptlens.middleware.logging import RequestLoggingMiddleware
from promptlens.middleware.request_id import RequestIDMiddleware, request_id_var
from promptlens.routes import analyze, health
from promptlens.schemas.analysis import AnalyzeErrorDetail, AnalyzeErrorResponse
from promptlens.services.analysis_service import AnalysisService
from promptlens.services.analytics import AnalysisObserver, LoggingObserver
from promptlens.services.analyzer_factory import AnalyzerRegistry

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Request IDs are written into the message by the access logger and the
    exception handlers, not by the formatter.
    """
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),  # Docker captures stdout
        ],
        force=True,
    )

    # Per-request noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup: configure logging, report provider configuration problems.
    Shutdown: drop cached analyzer instances.

    Misconfiguration never stops the server; the registry falls back to the
    mock analyzer and /health reports "degraded".
    """
    cfg: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(cfg.log_level)
    logger.info("=" * 60)
    logger.info("PromptLens Backend %s starting up...", __version__)

    for warning in cfg.validate_provider_configuration():
        logger.warning("Configuration: %s", warning)

    registry = app.state.analysis_service.registry
    logger.info(
        "Preferred provider: %s (registered: %s)",
        registry.preferred,
        ", ".join(registry.registered_providers),
    )
    logger.info("Server ready at http://%s:%d", cfg.backend_host, cfg.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("PromptLens Backend shutting down...")
    registry.clear_cache()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    message: str,
    code: str,
    provider: Optional[str] = None,
    processing_time: Optional[int] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    body = AnalyzeErrorResponse(
        error=AnalyzeErrorDetail(
            message=message,
            code=code,
            provider=provider,
            processing_time=processing_time,
        )
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers for consistent error responses.

    Handler hierarchy:
        ServiceError            → status_for_kind(kind), code = kind
        ValidationError         → 400 VALIDATION_ERROR
        RequestValidationError  → 400 VALIDATION_ERROR (missing image part, bad form)
        PromptLensError (base)  → 500 INTERNAL_ERROR
        Exception (fallback)    → 500 INTERNAL_ERROR

    Internal details (stack traces, upstream bodies) are logged server-side
    and never returned in the response.
    """

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        rid = request_id_var.get("")
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("[%s] Service error: %r", rid, exc)
        headers = {}
        if exc.retry_after:
            # Round up: "0" would tell the client to retry immediately
            headers["Retry-After"] = str(math.ceil(exc.retry_after))
        return _error_response(
            exc.status_code,
            exc.message,
            exc.code,
            provider=exc.provider,
            processing_time=exc.context.get("processing_time"),
            headers=headers,
        )

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        rid = request_id_var.get("")
        logger.warning("[%s] Validation error: %s", rid, exc.message)
        return _error_response(
            400,
            exc.message,
            "VALIDATION_ERROR",
            processing_time=exc.context.get("processing_time"),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        """
        FastAPI's own request parsing failed (e.g. no `image` part).

        Rendered in the same envelope as every other failure instead of
        FastAPI's default 422 {"detail": [...]}.
        """
        rid = request_id_var.get("")
        errors = exc.errors()
        first = errors[0] if errors else {}
        # loc looks like ("body", "image"); the last element names the field
        loc = [str(part) for part in first.get("loc", ())]
        field = loc[-1] if loc else "request"
        if first.get("type") == "missing":
            message = f"Missing required field '{field}'"
        else:
            message = f"Invalid value for '{field}': {first.get('msg', 'invalid input')}"
        logger.warning("[%s] Request validation error: %s (%d errors)", rid, message, len(errors))
        return _error_response(400, message, "VALIDATION_ERROR")

    @app.exception_handler(PromptLensError)
    async def handle_app_error(request: Request, exc: PromptLensError):
        rid = request_id_var.get("")
        logger.error("[%s] Application error: %s | Context: %s", rid, exc.message, exc.context)
        return _error_response(
            500,
            "An internal error occurred",
            "INTERNAL_ERROR",
            processing_time=exc.context.get("processing_time"),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return _error_response(500, "An internal error occurred", "INTERNAL_ERROR")


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    app_settings: Optional[Settings] = None,
    registry: Optional[AnalyzerRegistry] = None,
    observer: Optional[AnalysisObserver] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings: Settings to use (defaults to the environment-loaded singleton).
        registry:     Provider registry (defaults to AnalyzerRegistry.from_settings()).
        observer:     Analytics observer (defaults to LoggingObserver).
    """
    cfg = app_settings or settings

    app = FastAPI(
        title="PromptLens API",
        description=(
            "Turns an uploaded image into a descriptive text prompt suitable for "
            "image-generation models, using a pluggable vision provider."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = cfg
    app.state.analysis_service = AnalysisService(
        registry or AnalyzerRegistry.from_settings(cfg),
        observer or LoggingObserver(),
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in reverse order of addition:
    # RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(analyze.router)
    app.include_router(health.router)

    return app


# uvicorn expects `promptlens.main:app` to be importable
app = create_app()
