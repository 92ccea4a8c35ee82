"""BuildTrack: FastAPI application entry point."""

import uuid
from contextlib import asynccontextmanager

# configure_structlog must run before other buildtrack imports bind loggers:
# structlog caches the processor chain on first use.
from buildtrack.core.logging import configure_structlog
from buildtrack.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from buildtrack.api.responses import failure
from buildtrack.api.routes import api_router
from buildtrack.core.config import get_settings
from buildtrack.core.exceptions import BuildTrackError
from buildtrack.db import close_db, init_db
from buildtrack.domain.results import CoreError, ErrorKind
from buildtrack.middleware.correlation import get_correlation_id, setup_correlation_middleware

logger = structlog.get_logger(__name__)

_STATUS_KINDS = {
    400: ErrorKind.INVALID_INPUT,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    405: ErrorKind.INVALID_INPUT,
    409: ErrorKind.CONFLICT,
    422: ErrorKind.INVALID_INPUT,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    await init_db()
    logger.info("db_initialized")

    yield

    logger.info("shutdown_begin")
    await close_db()
    logger.info("shutdown_complete")


async def buildtrack_error_handler(request: Request, exc: BuildTrackError) -> JSONResponse:
    """Auth and role-guard failures raised at the request edge."""
    logger.warning(
        "request_rejected",
        kind=exc.kind.value,
        message=exc.message,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
    )
    return failure(exc.to_error())


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and query strings are INVALID_INPUT (400)."""
    errors = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return failure(CoreError(ErrorKind.INVALID_INPUT, "Request validation failed", {"errors": errors}))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """HTTPExceptions (unknown routes, wrong methods) in the standard envelope, with debug_id."""
    debug_id = str(uuid.uuid4())
    logger.error(
        "http_exception",
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        detail=exc.detail,
    )
    kind = _STATUS_KINDS.get(exc.status_code, ErrorKind.INTERNAL)
    response = failure(CoreError(kind, str(exc.detail)), debug_id=debug_id)
    response.status_code = exc.status_code
    return response


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors with debug_id tracking.

    Logs full exception with traceback, returns generic 500 to client.
    """
    debug_id = str(uuid.uuid4())

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    # No internal details leaked
    return failure(CoreError(ErrorKind.INTERNAL, "Internal server error"), debug_id=debug_id)


def register_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(BuildTrackError)(buildtrack_error_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)


def create_app(lifespan_handler=lifespan) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Construction project tracking: BOQs, milestones, evidence and payment eligibility",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan_handler,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    register_exception_handlers(app)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "buildtrack.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
