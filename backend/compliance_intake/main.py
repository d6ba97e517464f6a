# ============================================================================
# Compliance Intake - FastAPI Application Entry Point
# ============================================================================
"""
ASGI entry point for the compliance document intake API.

Startup creates the schema and prepares the document bucket. Domain errors
(``IntakeError`` subclasses) are rendered as ``ErrorResponse`` bodies with
the status code each error class carries.

Usage:
    Direct: python -m compliance_intake.main
    Docker: uvicorn compliance_intake.main:app --host 0.0.0.0 --port 8000
"""

import logging
from datetime import datetime
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.v1 import api_router
from .api.v1.models import ErrorResponse
from .config import settings
from .core.errors import IntakeError
from .core.shared.database_service import database_service
from .core.storage.content_store import get_content_store
from .core.storage.minio_service import MinIOService

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("compliance.main")

# ============================================================================
# APPLICATION INITIALIZATION
# ============================================================================

app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=(
        "Compliance document intake API\n\n"
        "Stores client compliance documents once per tenant, queues them for "
        "manual upload to the Nalanda, CTAIMA and e-coordina portals, and keeps "
        "the operators' portal credentials encrypted."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# ============================================================================
# MIDDLEWARE CONFIGURATION
# ============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# ============================================================================
# APPLICATION EVENT HANDLERS
# ============================================================================


@app.on_event("startup")
async def startup_event() -> None:
    """Create tables if needed and report the configured backends."""
    logger.info(f"Starting {settings.api_title} {settings.api_version} (debug={settings.debug})")
    await database_service.init_db()
    logger.info(
        f"Storage backend: {settings.storage_backend} (bucket={settings.minio_bucket}); "
        f"classification: {settings.classification_url or 'not configured'}"
    )
    store = get_content_store()
    if isinstance(store.object_store, MinIOService):
        try:
            store.object_store.prepare_bucket(store.bucket)
        except Exception as e:
            logger.warning(f"Could not prepare bucket {store.bucket}: {e}")
    if not settings.vault_master_key:
        logger.warning("VAULT_MASTER_KEY is not set; credential operations will fail")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await database_service.close()
    logger.info("Shutdown complete")


# ============================================================================
# ERROR HANDLERS
# ============================================================================


def _error(status_code: int, error: str, detail: str) -> JSONResponse:
    body = ErrorResponse(error=error, detail=detail, timestamp=datetime.now())
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(IntakeError)
async def intake_exception_handler(request: Request, exc: IntakeError) -> JSONResponse:
    """
    Map domain errors to their HTTP status.

    Server-side failures (5xx) are logged with the request path; client
    errors are returned as is.
    """
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
    return _error(exc.status_code, type(exc).__name__, str(exc))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(422, "Validation Error", str(exc))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error(exc.status_code, f"HTTP {exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected errors; details only in debug mode."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    detail = str(exc) if settings.debug else "An unexpected error occurred"
    return _error(500, "Internal Server Error", detail)


# ============================================================================
# ROUTER CONFIGURATION
# ============================================================================

app.include_router(api_router, prefix="/api/v1")


@app.get("/", tags=["root"])
async def root() -> Dict[str, Any]:
    """API information."""
    return {
        "name": settings.api_title,
        "version": settings.api_version,
        "status": "running",
        "docs_url": "/docs",
        "health_check": "/api/v1/health",
        "timestamp": datetime.now(),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "compliance_intake.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="info",
    )
