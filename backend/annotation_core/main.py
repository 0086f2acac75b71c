"""
Annotation Core - FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires middleware, exception handlers, routes, and the two
       orchestrators (stored on app.state for the request dependencies).
Who:   uvicorn (`uvicorn annotation_core.main:app`) and the test suite, which
       builds its own app with fake provider clients.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                        │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌──────────────┐ ┌──────────────┐ ┌──────────────────┐  │
    │  │  Request ID  │→│  Access Log  │→│  GZip / CORS     │  │
    │  └──────────────┘ └──────────────┘ └──────────────────┘  │
    │                                                          │
    │  Routes:                                                 │
    │  ┌──────────────────────┐ ┌──────────────┐ ┌──────────┐  │
    │  │ POST /api/annotations│ │ POST /api/   │ │ GET      │  │
    │  │      /process        │ │   analyze    │ │ /health  │  │
    │  └──────────────────────┘ └──────────────┘ └──────────┘  │
    │                                                          │
    │  Exception Handlers:                                     │
    │  ┌────────────────────────────────────────────────────┐  │
    │  │ Auth→502 │ Provider/Breaker→503 │ Config→500       │  │
    │  └────────────────────────────────────────────────────┘  │
    └──────────────────────────────────────────────────────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from annotation_core import __version__
from annotation_core.config import settings
from annotation_core.exceptions import (
    AnnotationCoreError,
    CircuitBreakerOpenError,
    ConfigurationError,
    ProviderAuthError,
    ProviderError,
    ProviderFallbackExhaustedError,
    ProviderNetworkError,
)
from annotation_core.middleware.logging import RequestLoggingMiddleware
from annotation_core.middleware.request_id import RequestIDMiddleware, request_id_var
from annotation_core.routes import analyze, annotations, health
from annotation_core.schemas.provider import Vendor
from annotation_core.services.processing_service import (
    ProcessingOrchestrator,
    processing_orchestrator as default_processing_orchestrator,
)
from annotation_core.services.provider_base import ProviderClient
from annotation_core.services.provider_service import CircuitBreaker, ProviderOrchestrator

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once at startup.

    Format: 2025-01-15T12:00:00 [INFO] annotation_core.services.provider_service: ...
    Request correlation comes from the [request_id] prefix the services and
    the access log put into their messages.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup:
        1. Setup logging
        2. Check the configured default vendors (logged, not fatal: the
           processing endpoint works without any provider)
        3. Log the effective thresholds
    """
    setup_logging()
    logger.info("=" * 60)
    logger.info("Annotation Core %s starting up...", __version__)

    for name in ("default_provider", "default_fallback_provider"):
        value = getattr(settings, name)
        if not value:
            continue
        try:
            Vendor.parse(value)
        except ValueError:
            logger.error("Configuration error: %s=%r is not a known vendor", name, value)

    registered = sorted(v.value for v in app.state.provider_orchestrator.clients)
    if not registered:
        logger.warning("No provider clients registered: /api/analyze requests will fail")
    logger.info("Registered providers: %s", registered)
    logger.info(
        "Thresholds: standard=%.2f research=%.2f high_quality=%.2f (score>%.2f) "
        "boost=%.2f max_filtered=%d",
        settings.standard_confidence_threshold,
        settings.research_confidence_threshold,
        settings.high_quality_research_threshold,
        settings.high_quality_research_score,
        settings.research_confidence_boost,
        settings.max_invalid_annotations,
    )
    logger.info("=" * 60)

    yield

    logger.info("Annotation Core shutting down...")
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception hierarchy onto HTTP responses.

    Handler hierarchy (most specific wins):
        ProviderAuthError               → 502 provider_auth_error
        CircuitBreakerOpenError         → 503 service_unavailable (+ Retry-After)
        ProviderFallbackExhaustedError  → 503 provider_fallback_exhausted
        ProviderError                   → 503 provider_error
        ConfigurationError              → 500 configuration_error
        AnnotationCoreError (base)      → 500 server_error
        Exception (fallback)            → 500 internal_server_error

    Request body validation stays with FastAPI (422).
    """

    @app.exception_handler(ProviderAuthError)
    async def handle_provider_auth(request: Request, exc: ProviderAuthError):
        rid = request_id_var.get("")
        logger.error("[%s] Provider authentication failed: %s", rid, exc.message)
        return JSONResponse(
            status_code=502,
            content={
                "error": "provider_auth_error",
                "message": exc.message,
                "details": exc.context,
                "request_id": rid,
            },
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        rid = request_id_var.get("")
        logger.warning("[%s] Circuit breaker open: %s", rid, exc.message)
        return JSONResponse(
            status_code=503,
            content={
                "error": "service_unavailable",
                "message": exc.message,
                "details": {"recovery_time": exc.recovery_time},
                "request_id": rid,
            },
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(ProviderFallbackExhaustedError)
    async def handle_fallback_exhausted(
        request: Request, exc: ProviderFallbackExhaustedError
    ):
        rid = request_id_var.get("")
        logger.error("[%s] All providers failed: %s", rid, exc.message)
        return JSONResponse(
            status_code=503,
            content={
                "error": "provider_fallback_exhausted",
                "message": exc.message,
                "details": exc.context,
                "request_id": rid,
            },
        )

    @app.exception_handler(ProviderError)
    async def handle_provider_error(request: Request, exc: ProviderError):
        rid = request_id_var.get("")
        logger.error("[%s] Provider error: %s", rid, exc.message)
        headers = {}
        if isinstance(exc, ProviderNetworkError) and exc.retry_after:
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(
            status_code=503,
            content={
                "error": "provider_error",
                "message": exc.message,
                "details": exc.context,
                "request_id": rid,
            },
            headers=headers,
        )

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError):
        rid = request_id_var.get("")
        logger.error("[%s] Configuration error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content={
                "error": "configuration_error",
                "message": exc.message,
                "request_id": rid,
            },
        )

    @app.exception_handler(AnnotationCoreError)
    async def handle_core_error(request: Request, exc: AnnotationCoreError):
        rid = request_id_var.get("")
        logger.error(
            "[%s] Unhandled application error: %s | Context: %s", rid, exc.message, exc.context
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "server_error",
                "message": "An internal error occurred. Please try again later.",
                "request_id": rid,
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    provider_clients: Optional[Dict[Vendor, ProviderClient]] = None,
    circuit_breaker: Optional[CircuitBreaker] = None,
    processing_orchestrator: Optional[ProcessingOrchestrator] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        provider_clients:        Vendor adapters keyed by vendor (tags accepted).
                                 Without them only the processing endpoint works.
        circuit_breaker:         Shared breaker; a fresh one from settings if omitted.
        processing_orchestrator: Pipeline instance; the module singleton if omitted.

    Returns:
        Fully configured FastAPI instance.
    """
    app = FastAPI(
        title="Annotation Core API",
        description=(
            "Quality pipeline for AI-generated design-feedback annotations, with "
            "multi-vendor AI provider orchestration."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.provider_orchestrator = ProviderOrchestrator(
        clients=provider_clients,
        circuit_breaker=circuit_breaker,
    )
    app.state.processing_orchestrator = (
        processing_orchestrator or default_processing_orchestrator
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → GZip → CORS.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
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
    app.include_router(annotations.router)
    app.include_router(analyze.router)
    app.include_router(health.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
app = create_app()
