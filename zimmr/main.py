"""
ZIMMR Backend — FastAPI Application Factory
============================================

What:  Creates and configures the FastAPI application instance.
Who:   uvicorn (`uvicorn zimmr.main:app`) and the test suite.

Application layout:
    ┌─────────────────────────────────────────────────────────┐
    │                      FastAPI App                        │
    │                                                         │
    │  Middleware: RateLimit → RequestID → Logging → GZip →   │
    │              CORS                                       │
    │                                                         │
    │  Routers: auth, craftsmen, customers, spaces,           │
    │           appointments, materials, invoices,            │
    │           time-entries, finances, health                │
    │                                                         │
    │  Exception handlers: ZimmrError subclasses → JSON       │
    │  {"error", "message", "details", "request_id"}          │
    └─────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration report, storage directory, overdue
              reminder task (when overdue_check_interval > 0)
    Shutdown: cancel the reminder task, dispose the database engine
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from zimmr import __version__
from zimmr.config import settings
from zimmr.database import dispose_engine
from zimmr.exceptions import (
    AuthenticationError,
    CircuitBreakerOpenError,
    DatabaseError,
    DocumentError,
    InvalidStateError,
    NotFoundError,
    NotificationError,
    PermissionDeniedError,
    RateLimitExceededError,
    ValidationError,
    ZimmrError,
)
from zimmr.middleware.logging import RequestLoggingMiddleware
from zimmr.middleware.rate_limit import RateLimitMiddleware
from zimmr.middleware.request_id import RequestIDMiddleware, request_id_var
from zimmr.routes import (
    appointments,
    auth,
    craftsmen,
    customers,
    finances,
    health,
    invoices,
    materials,
    spaces,
    time_entries,
)
from zimmr.services.invoice_service import invoice_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """Root logger to stdout; third-party chatter down to WARNING."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("ZIMMR backend %s starting up", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Reported, not fatal: the API still serves requests and /health
        logger.error("Configuration problem: %s", str(e))

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Document storage: %s", storage.resolve())

    reminder_task: Optional[asyncio.Task] = None
    if settings.overdue_check_interval > 0:
        reminder_task = asyncio.create_task(
            invoice_service.run_overdue_reminders(settings.overdue_check_interval)
        )
    else:
        logger.info("Overdue reminder task disabled")

    logger.info("Server ready at http://%s:%d (docs at /docs)", settings.backend_host, settings.backend_port)

    yield

    logger.info("ZIMMR backend shutting down")
    if reminder_task is not None:
        reminder_task.cancel()
        with suppress(asyncio.CancelledError):
            await reminder_task
    await dispose_engine()
    logger.info("Shutdown complete")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[dict] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    content = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to status codes:

        ValidationError, RequestValidationError → 400 validation_error
        InvalidStateError                       → 400 invalid_state
        AuthenticationError                     → 401
        PermissionDeniedError                   → 403
        NotFoundError                           → 404
        RateLimitExceededError                  → 429
        NotificationError, CircuitBreakerOpen   → 503
        DocumentError, DatabaseError            → 500 (generic message)
        anything else                           → 500 (generic message)

    Raw exception text and SQL never reach the client; 5xx details are
    logged with the request id.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "validation_error", exc.message, exc.context)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        """Body/query schema errors use the same 400 shape as business rules."""
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        message = errors[0]["message"] if errors else "Invalid request"
        if errors and errors[0]["field"]:
            message = f"{errors[0]['field']}: {message}"
        logger.warning("[%s] Request validation failed: %s", request_id_var.get(""), message)
        return _error_response(400, "validation_error", message, {"errors": errors})

    @app.exception_handler(InvalidStateError)
    async def handle_invalid_state(request: Request, exc: InvalidStateError):
        logger.info("[%s] Rejected transition: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "invalid_state", exc.message, exc.context)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication(request: Request, exc: AuthenticationError):
        return _error_response(
            401, "authentication_required", exc.message, headers={"WWW-Authenticate": "Bearer"}
        )

    @app.exception_handler(PermissionDeniedError)
    async def handle_permission_denied(request: Request, exc: PermissionDeniedError):
        logger.warning("[%s] Forbidden %s %s: %s", request_id_var.get(""), request.method, request.url.path, exc.message)
        return _error_response(403, "forbidden", exc.message, exc.context)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error_response(
            429, "rate_limit_exceeded", exc.message, exc.context,
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(NotificationError)
    async def handle_notification_error(request: Request, exc: NotificationError):
        logger.error("[%s] Email delivery failed: %s | %s", request_id_var.get(""), exc.message, exc.context)
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return _error_response(503, "notification_error", exc.message, exc.context, headers=headers)

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_open(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Mail circuit open: %s", request_id_var.get(""), exc.message)
        return _error_response(
            503, "service_unavailable", exc.message, {"recovery_time": exc.recovery_time},
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(DocumentError)
    async def handle_document_error(request: Request, exc: DocumentError):
        logger.error("[%s] Document error: %s | %s", request_id_var.get(""), exc.message, exc.context)
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error("[%s] Database error: %s | %s", request_id_var.get(""), exc.message, exc.context)
        return _error_response(500, "server_error", "An internal error occurred. Please try again later.")

    @app.exception_handler(ZimmrError)
    async def handle_zimmr_error(request: Request, exc: ZimmrError):
        logger.error("[%s] Unhandled application error: %s", request_id_var.get(""), exc.message)
        return _error_response(500, "server_error", "An internal error occurred. Please try again later.")

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="ZIMMR API",
        description=(
            "Scheduling and billing backend for craftsmen: customers, appointments "
            "with an approval workflow, materials, invoices and quotes, time tracking."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Added innermost first: requests run RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After", "Content-Disposition"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    for module in (
        auth,
        craftsmen,
        customers,
        spaces,
        appointments,
        materials,
        invoices,
        time_entries,
        finances,
        health,
    ):
        app.include_router(module.router)

    return app


app = create_app()
