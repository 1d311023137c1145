"""
NoteMitra Backend — FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   uvicorn (`uvicorn notemitra.main:app`) and the test suite, which passes
       its own store to create_app().

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────────┐ ┌──────────┐ ┌─────────────────┐  │
    │  │  Rate Limit  │→│ Req ID   │→│  Logging        │  │
    │  └──────────────┘ └──────────┘ └─────────────────┘  │
    │                                                     │
    │  Routes:                                            │
    │  /api/auth  /api/notes  /api/files                  │
    │  /api/leaderboard  /api/admin  /health              │
    │                                                     │
    │  Exception Handlers:                                │
    │  NoteMitraError → its status + code │ other → 500   │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (warn, don't exit)
    3. Select the catalog store (database, or memory fallback) unless one
       was injected
    4. Wire the services onto app.state

    Shutdown:
    1. Close the store (disposes the database engine when there is one)
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from notemitra import __version__
from notemitra.config import settings
from notemitra.exceptions import NoteMitraError, RateLimitExceededError
from notemitra.middleware.logging import RequestLoggingMiddleware
from notemitra.middleware.rate_limit import RateLimitMiddleware
from notemitra.middleware.request_id import RequestIDMiddleware, request_id_var
from notemitra.routes import admin, auth, files, health, leaderboard, notes
from notemitra.services import build_services
from notemitra.storage import CatalogStore, select_store

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole application.

    Format: 2024-01-15T12:00:00 [INFO] notemitra.services.note_catalog: message

    Called once during startup. Noisy third-party loggers are raised to WARNING.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("NoteMitra Backend starting up...")

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Blob storage directory: %s", storage.resolve())

    owned_store: Optional[CatalogStore] = None
    if getattr(app.state, "services", None) is None:
        # StorageUnavailableError propagates when STORAGE_BACKEND=database
        owned_store = await select_store(settings)
        app.state.services = build_services(owned_store, settings)

    logger.info("Catalog store: %s", app.state.services.store.backend_name)
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("NoteMitra Backend shutting down...")
    if owned_store is not None:
        await owned_store.close()
        app.state.services = None
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Turn application exceptions into the shared error body.

        {"error": "<CODE>", "message": "...", "details": {...}, "request_id": "..."}

    Every NoteMitraError subclass carries its own status code, so one handler
    covers them all. Server-side context is logged, never returned.
    """

    @app.exception_handler(NoteMitraError)
    async def handle_notemitra_error(request: Request, exc: NoteMitraError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, exc.error_code, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, exc.error_code, exc.message)

        headers = {}
        if isinstance(exc, RateLimitExceededError):
            headers["Retry-After"] = str(exc.retry_after)

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "details": exc.details,
                "request_id": rid,
            },
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all: generic 500 body, stack trace in the server log only."""
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "INTERNAL_ERROR",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "details": {},
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(store: Optional[CatalogStore] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        store: Catalog store to serve from. When given, services are wired
               immediately and startup skips store selection; tests use this
               to run against a specific backend.
    """
    app = FastAPI(
        title="NoteMitra API",
        description=(
            "Notes-sharing catalog: upload lecture notes, browse and download them, "
            "vote, bookmark, and climb the uploader leaderboard."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = build_services(store, settings) if store is not None else None

    # ── Register Middleware ───────────────────────────────────────────────
    # Executes in reverse order of addition: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-Total-Count",
            "Retry-After",
            "Content-Disposition",
        ],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware, config=settings)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(notes.router)
    app.include_router(files.router)
    app.include_router(leaderboard.router)
    app.include_router(admin.router)
    app.include_router(health.router)

    return app


app = create_app()
