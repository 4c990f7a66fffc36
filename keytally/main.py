"""keytally FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app()       — testable application factory
  - lifespan           — @asynccontextmanager startup/shutdown sequence
  - attach_services()  — wires the credential and usage components onto app.state
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()             → app.state.config
  2. create_storage_backend()  → app.state.storage (schema initialized, idempotent)
  3. attach_services()         → credential_store, access_validator,
                                 usage_counters, usage_recorder, usage_tracker
  4. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → drain usage tasks (bounded) → close storage
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from keytally.auth.keys import CredentialStore
from keytally.auth.limiter import limiter
from keytally.auth.router import router as auth_router
from keytally.auth.validator import AccessValidator
from keytally.config import Config, load_config
from keytally.errors import DenyError, GenerationError, StorageError
from keytally.health import router as health_router
from keytally.middleware import RequestIdMiddleware
from keytally.ops.router import router as ops_router
from keytally.storage.factory import create_storage_backend
from keytally.storage.models import Endpoint
from keytally.storage.protocol import StorageBackend
from keytally.usage.counters import UsageCounters
from keytally.usage.recorder import UsageRecorder
from keytally.usage.router import router as usage_router
from keytally.usage.tracker import UsageTracker
from keytally.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
# Configure logging at module import time (before any other module logs).
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Service Wiring ───────────────────────────────────────────────────────────


def attach_services(app: FastAPI, storage: StorageBackend) -> None:
    """Build the credential and usage components over ``storage``.

    Also used by tests to fast-track an app without running the lifespan.
    """
    credential_store = CredentialStore(storage)
    usage_counters = UsageCounters(endpoint.value for endpoint in Endpoint)
    usage_recorder = UsageRecorder(storage)

    app.state.storage = storage
    app.state.credential_store = credential_store
    app.state.access_validator = AccessValidator(credential_store)
    app.state.usage_counters = usage_counters
    app.state.usage_recorder = usage_recorder
    app.state.usage_tracker = UsageTracker(usage_counters, usage_recorder)


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence."""
    logger.info("startup_begin")

    # load_config() raises SystemExit on an invalid config file, so the
    # process exits before ready=True is ever set.
    config: Config = load_config()
    app.state.config = config

    # RuntimeError (schema version guard) propagates → startup refused.
    storage = await create_storage_backend(config)
    attach_services(app, storage)

    app.state.ready = True
    logger.info("startup_complete", storage_backend=storage.name)

    yield

    logger.info("shutdown_begin")
    app.state.ready = False

    abandoned = await app.state.usage_tracker.drain(
        timeout=config.usage.drain_timeout_s
    )
    if abandoned:
        logger.warning("usage_tasks_dropped", count=abandoned)

    await storage.close()
    logger.info("shutdown_complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the keytally FastAPI application.

    Call this function directly in tests to get an isolated app instance.
    The module-level `app` is created at import time for uvicorn:
        uvicorn keytally.main:app --host 127.0.0.1 --port 8080
    """
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="keytally",
        description="Credential-gated request accounting service",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    application.state.ready = False

    # slowapi looks the limiter up on app.state.
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # NOTE: In Starlette, the LAST-added middleware is OUTERMOST (runs first).
    application.add_middleware(SlowAPIMiddleware)
    application.add_middleware(RequestIdMiddleware)

    application.include_router(health_router)
    application.include_router(auth_router)
    application.include_router(usage_router)
    application.include_router(ops_router)

    # ── Exception handlers ────────────────────────────────────────────────────

    @application.exception_handler(DenyError)
    async def deny_handler(request: Request, exc: DenyError) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content={"error": exc.message},
            headers={"WWW-Authenticate": "Basic"},
        )

    @application.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error(
            "storage_failure",
            error=str(exc),
            cause=repr(exc.__cause__) if exc.__cause__ else None,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @application.exception_handler(GenerationError)
    async def generation_error_handler(
        request: Request, exc: GenerationError
    ) -> JSONResponse:
        logger.error("api_key_generation_failed", error=str(exc))
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500, content={"error": "Internal server error"}
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
