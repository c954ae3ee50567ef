"""
FastAPI application for Cassius Calendar Sync.

This is the main entry point for the HTTP API, providing:
- Google Calendar connection (OAuth) and integration settings
- Outbound sync and inbound import
- Sync conflict review
- Health endpoint
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from cassius_sync.api.conflict_routes import router as conflict_router
from cassius_sync.api.integration_routes import router as integration_router
from cassius_sync.api.middleware import RequestLoggingMiddleware, get_request_id
from cassius_sync.api.models import HealthResponse
from cassius_sync.api.sync_routes import router as sync_router
from cassius_sync.auth.exceptions import CredentialError
from cassius_sync.config import get_settings
from cassius_sync.database import check_connection, init_db
from cassius_sync.integrations.google_calendar.exceptions import (
    GoogleCalendarError,
    GoogleCalendarTimeoutError,
)
from cassius_sync.services.conflicts import ConflictNotFoundError, ConflictStateError
from cassius_sync.services.errors import (
    INTEGRATION_DISABLED,
    NO_INTEGRATION,
    NO_TARGET_CALENDAR,
    SyncConfigurationError,
)
from cassius_sync.services.inbound_import import InvalidImportWindowError

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

CONFIGURATION_STATUS = {
    NO_INTEGRATION: 404,
    INTEGRATION_DISABLED: 409,
    NO_TARGET_CALENDAR: 412,
}


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    logger.info("Starting Cassius Calendar Sync API")
    if settings.is_development:
        await init_db()
    missing = settings.missing_oauth_variables()
    if missing:
        logger.warning(f"Google OAuth settings missing: {', '.join(missing)}")
    logger.info("Cassius Calendar Sync API started")

    yield

    # Shutdown
    logger.info("Shutting down Cassius Calendar Sync API")


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Cassius Calendar Sync API",
    description="""
# Cassius Calendar Sync API

Keeps an organisation's Google Calendar consistent with its appointments.

## Workflows

### Connection
1. **GET /api/integrations/google/connect** - Redirect to Google consent
2. **GET /api/integrations/google/callback** - Tokens stored, redirect back to the app

### Push
- **POST /api/integrations/google/sync-now** - Appointments → calendar events

### Pull
- **POST /api/integrations/google/import** - Preview or commit a window
- **POST /api/integrations/google/import/incremental** - Changes since last import

### Conflicts
- **GET /api/sync/conflicts** - Divergences awaiting review
- **PATCH /api/sync/conflicts/{id}** - Mark resolved or ignored

All tenant-scoped routes read the organisation from the `X-Organisation-ID` header.

## Error Handling

Item failures never fail a batch; they are listed in the result.

- **401** - Credentials missing or revoked (`reason`: no_access_token, need_reconsent)
- **404** - No integration (`reason`: no_integration) or conflict not found
- **409** - Integration disabled, or conflict already closed
- **412** - No target calendar selected
- **422** - Validation error
- **502/504** - Provider failure outside a batch
    """,
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(integration_router)
app.include_router(sync_router)
app.include_router(conflict_router)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(SyncConfigurationError)
async def sync_configuration_handler(request: Request, exc: SyncConfigurationError):
    """Integration missing, disabled or incomplete."""
    return JSONResponse(
        status_code=CONFIGURATION_STATUS.get(exc.reason, 409),
        content={
            "error_type": "sync_configuration",
            "message": exc.message,
            "retryable": False,
            "reason": exc.reason,
        },
    )


@app.exception_handler(CredentialError)
async def credential_handler(request: Request, exc: CredentialError):
    """Tokens missing, revoked or not refreshable."""
    return JSONResponse(
        status_code=401,
        content={
            "error_type": "credential",
            "message": exc.message,
            "retryable": False,
            "reason": exc.reason,
        },
    )


@app.exception_handler(GoogleCalendarError)
async def provider_handler(request: Request, exc: GoogleCalendarError):
    """Provider failures outside of per-item batch handling."""
    if isinstance(exc, GoogleCalendarTimeoutError):
        status_code = 504
    elif exc.status_code in (403, 404, 429):
        status_code = exc.status_code
    else:
        status_code = 502
    logger.warning(f"Provider error on {request.url.path}: {exc.display_reason}")
    return JSONResponse(
        status_code=status_code,
        content={
            "error_type": "provider",
            "message": exc.display_reason,
            "retryable": exc.retryable,
        },
    )


@app.exception_handler(ConflictNotFoundError)
async def conflict_not_found_handler(request: Request, exc: ConflictNotFoundError):
    return JSONResponse(
        status_code=404,
        content={"error_type": "not_found", "message": str(exc), "retryable": False},
    )


@app.exception_handler(ConflictStateError)
async def conflict_state_handler(request: Request, exc: ConflictStateError):
    return JSONResponse(
        status_code=409,
        content={"error_type": "conflict_state", "message": str(exc), "retryable": False},
    )


@app.exception_handler(InvalidImportWindowError)
async def import_window_handler(request: Request, exc: InvalidImportWindowError):
    return JSONResponse(
        status_code=422,
        content={"error_type": "validation", "message": str(exc), "retryable": False},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_type": "http_error",
            "message": exc.detail,
            "retryable": exc.status_code >= 500,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"[{get_request_id()}] Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error_type": "internal_error",
            "message": "An unexpected error occurred",
            "retryable": True,
        },
    )


# =============================================================================
# Health Endpoint
# =============================================================================


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    tags=["System"],
)
async def health_check() -> HealthResponse:
    """
    Check API health status.

    Returns:
        Health status including database connectivity and OAuth configuration
    """
    database_connected = await check_connection()

    return HealthResponse(
        status="healthy" if database_connected else "unhealthy",
        version=VERSION,
        database_connected=database_connected,
        oauth_configured=get_settings().uses_google_oauth,
    )


# =============================================================================
# Run with Uvicorn
# =============================================================================


def run_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Run the API server with Uvicorn."""
    import uvicorn

    uvicorn.run(
        "cassius_sync.api.main:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    settings = get_settings()
    run_server(host=settings.api_host, port=settings.api_port, reload=settings.api_reload)
