"""
Convo Backend — FastAPI Application Factory
============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers;
       the lifespan configures logging and validates settings on startup and
       disposes the engine on shutdown.
Who:   uvicorn (uvicorn convo.main:app) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                        │
    │                                                          │
    │  Middleware: RateLimit → RequestID → Logging → GZip/CORS │
    │                                                          │
    │  Routes:                                                 │
    │    /api  /api/auth/*  /api/profiles  /api/categories     │
    │    /api/conversations  /api/messages  /health            │
    │                                                          │
    │  Exception Handlers:                                     │
    │    Validation→400  Auth→401  Permission→403  NotFound→404│
    │    RateLimit→429   Transaction/Database/other→500        │
    └──────────────────────────────────────────────────────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from convo import __version__
from convo.config import settings
from convo.database import dispose_engine
from convo.exceptions import (
    AuthenticationError,
    ConvoError,
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    QueryStringError,
    RateLimitExceededError,
    TransactionError,
    ValidationError,
)
from convo.middleware.logging import RequestLoggingMiddleware
from convo.middleware.rate_limit import RateLimitMiddleware
from convo.middleware.request_id import RequestIDMiddleware, request_id_var
from convo.routes import auth, conversations, health, index, profiles, resources
from convo.services.auth_service import ACCESS_CHANGED_HEADER

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════


def setup_logging() -> None:
    """
    Configures the root logger once for the whole application.

    Format: 2024-01-15T12:00:00 [INFO] convo.core.mapper: Created UserProfile rec_...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries are noisy at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("Convo Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Public routes and /health still work; token routes will answer 401
        logger.error("Configuration error: %s", e)

    logger.info("API prefix: %s, public domain: %s", settings.api_prefix, settings.server_domain)
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("Convo Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════


def _request_id(request: Request) -> str:
    # The catch-all handler runs outside RequestIDMiddleware's context
    return request_id_var.get("") or getattr(request.state, "request_id", "")


def _error(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {
        "error": error,
        "message": message,
        "request_id": _request_id(request),
    }
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _request_validation_details(exc: RequestValidationError) -> Dict[str, str]:
    details: Dict[str, str] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        details.setdefault(".".join(loc) or "body", err.get("msg", "is invalid"))
    return details


def register_exception_handlers(app: FastAPI) -> None:
    """
    Maps the ConvoError hierarchy to HTTP responses.

    Internal details (driver errors, failed compensations) are logged and
    never returned to the client.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", _request_id(request), exc.errors)
        return _error(request, 400, "validation_error", exc.message, details=exc.errors)

    @app.exception_handler(QueryStringError)
    async def handle_query_string_error(request: Request, exc: QueryStringError):
        return _error(request, 400, "query_string_error", exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        return _error(
            request,
            400,
            "validation_error",
            "Invalid input",
            details=_request_validation_details(exc),
        )

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return _error(request, 401, "authentication_failed", exc.message)

    @app.exception_handler(PermissionDeniedError)
    async def handle_permission_denied(request: Request, exc: PermissionDeniedError):
        return _error(request, 403, "permission_denied", exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error(request, 404, "not_found", exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error(
            request,
            429,
            "rate_limit_exceeded",
            exc.message,
            details=exc.context,
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(TransactionError)
    async def handle_transaction_error(request: Request, exc: TransactionError):
        rid = _request_id(request)
        if exc.rolled_back:
            logger.error("[%s] Transaction failed and was rolled back: %s", rid, exc.context)
        else:
            logger.critical(
                "[%s] Transaction failed, store may be inconsistent: %s", rid, exc.context
            )
        return _error(
            request,
            500,
            "transaction_error",
            exc.message,
            details={"operation": exc.operation, "rolled_back": exc.rolled_back},
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s", _request_id(request), exc.message, exc.context
        )
        return _error(
            request, 500, "server_error", "An internal error occurred. Please try again later."
        )

    @app.exception_handler(ConvoError)
    async def handle_convo_error(request: Request, exc: ConvoError):
        logger.error("[%s] %s: %s", _request_id(request), type(exc).__name__, exc.message)
        return _error(request, 500, "server_error", exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return _error(
            request,
            exc.status_code,
            "not_found" if exc.status_code == 404 else "http_error",
            str(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", _request_id(request), exc, exc_info=True)
        return _error(
            request,
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════


def create_app() -> FastAPI:
    app = FastAPI(
        title="Convo API",
        description=(
            "REST backend for user profiles, conversations, messages and categories, "
            "with JWT authentication."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware ────────────────────────────────────────────────────────
    # Executed in reverse order of addition: RateLimit runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After", ACCESS_CHANGED_HEADER],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    # ── Routes ────────────────────────────────────────────────────────────
    app.include_router(index.router)
    app.include_router(auth.router)
    app.include_router(profiles.router)
    app.include_router(resources.categories_router)
    app.include_router(conversations.router)
    app.include_router(resources.messages_router)
    app.include_router(health.router)

    return app


app = create_app()
