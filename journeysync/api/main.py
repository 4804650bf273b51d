"""FastAPI application for the journey sync API.

Provides the main application instance with routers, middleware and
exception handlers configured. Domain errors map to HTTP status codes
here so routes can simply let them propagate.
"""

import logging
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("journeysync").setLevel(logging.INFO)

from journeysync.api.dependencies import get_config  # noqa: E402
from journeysync.api.middleware.auth import maybe_require_api_key  # noqa: E402
from journeysync.api.routes import clients, journeys, sync, touchpoints  # noqa: E402
from journeysync.api.schemas import JourneyResponse  # noqa: E402
from journeysync.db.connection import close_db, init_db, session_factory_for  # noqa: E402
from journeysync.errors import (  # noqa: E402
    ConflictError,
    DomainError,
    LedgerUnavailableError,
    NotFoundError,
    NotPublishableError,
    ValidationError,
    VersionConflict,
)

logger = logging.getLogger(__name__)

_startup_time: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup; release pooled connections on shutdown."""
    global _startup_time
    _startup_time = _time.time()
    init_db()
    yield
    close_db()


app = FastAPI(
    title="Journey Sync API",
    description="Versioned customer journeys and their sync to the messaging platform",
    version="0.1.0",
    lifespan=lifespan,
)

# Optional API auth for /api/* when JOURNEYSYNC_API_KEY is configured.
app.middleware("http")(maybe_require_api_key)


@app.exception_handler(VersionConflict)
async def version_conflict_handler(request: Request, exc: VersionConflict) -> JSONResponse:
    """Stale edit: return the current journey so the client can re-base."""
    return JSONResponse(
        status_code=409,
        content={
            "error": "Conflict detected",
            "message": "The journey has been modified by another user",
            "currentVersion": exc.current_version,
            "submittedVersion": exc.submitted_version,
            "journey": JourneyResponse.model_validate(exc.journey).model_dump(mode="json"),
        },
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error_code": exc.code, "detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error_code": exc.code, "detail": str(exc)})


@app.exception_handler(NotPublishableError)
async def not_publishable_handler(request: Request, exc: NotPublishableError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error_code": exc.code, "detail": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"error_code": exc.code, "detail": str(exc)})


@app.exception_handler(LedgerUnavailableError)
async def ledger_unavailable_handler(
    request: Request, exc: LedgerUnavailableError
) -> JSONResponse:
    logger.error("Ledger unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"error_code": exc.code, "detail": str(exc)})


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.error("Unhandled domain error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error_code": exc.code, "detail": str(exc)})


# Include routers
app.include_router(clients.router, prefix="/api/v1")
app.include_router(journeys.router, prefix="/api/v1")
app.include_router(touchpoints.router, prefix="/api/v1")
app.include_router(sync.router, prefix="/api/v1")


@app.get("/health")
def health_check() -> dict:
    """Health check with version, uptime and database reachability."""
    try:
        version = _pkg_version("journey-sync")
    except PackageNotFoundError:
        version = "unknown"

    try:
        with session_factory_for(get_config().database_url)() as db:
            db.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        logger.warning("Health check database query failed: %s", e)
        database = "error"

    uptime = int(_time.time() - _startup_time) if _startup_time else 0
    return {
        "status": "healthy" if database == "ok" else "degraded",
        "version": version,
        "uptime_seconds": uptime,
        "database": database,
    }
