"""FastAPI application entry point with lifecycle management."""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .cache import cache_manager
from .config import settings
from .db import dispose_engine
from .dependencies import build_account_service
from .errors import AccountNotFoundError, DirectoryError, LoginFailedError, ValidationError
from .logger import logger
from .middleware import (
    add_request_id_middleware,
    graceful_shutdown_middleware,
    request_logging_middleware,
    security_headers_middleware,
    set_shutdown_manager,
)
from .monitoring import LOGIN_FAILURES, setup_monitoring
from .routes import limiter, router
from .schemas import ErrorCode
from .validation import malformed_field_message

# ==================== Graceful Shutdown ====================


class GracefulShutdownManager:
    """Manages graceful shutdown of the application.

    Tracks active requests and ensures all in-flight requests complete
    before background jobs are drained and connections are closed.
    """

    def __init__(self):
        self.is_shutting_down = False
        self.active_requests = 0
        self.shutdown_timeout = settings.GRACEFUL_SHUTDOWN_TIMEOUT

    def request_started(self):
        """Track a new incoming request."""
        if not self.is_shutting_down:
            self.active_requests += 1

    def request_finished(self):
        """Mark a request as completed."""
        self.active_requests -= 1

    async def initiate_shutdown(self):
        """Stop accepting requests and wait (bounded) for in-flight ones."""
        if self.is_shutting_down:
            return

        logger.info("Graceful shutdown initiated")
        self.is_shutting_down = True

        if self.active_requests > 0:
            logger.info(f"Waiting for {self.active_requests} active request(s) to complete...")

            loop = asyncio.get_running_loop()
            start_time = loop.time()
            while self.active_requests > 0:
                if loop.time() - start_time >= self.shutdown_timeout:
                    logger.warning(
                        f"Shutdown timeout ({self.shutdown_timeout}s) reached with "
                        f"{self.active_requests} request(s) still active - forcing shutdown"
                    )
                    break
                await asyncio.sleep(0.1)

            if self.active_requests == 0:
                logger.info("All active requests completed successfully")
        else:
            logger.info("No active requests - proceeding with immediate shutdown")


shutdown_manager = GracefulShutdownManager()
set_shutdown_manager(shutdown_manager)

# ==================== Application Lifecycle ====================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build collaborators on startup; drain jobs and close connections on shutdown."""
    logger.info(f"Starting {settings.APP_NAME} in {settings.APP_ENV} mode")
    logger.info("Database schema managed by Alembic migrations")

    if settings.CACHE_ENABLED:
        await cache_manager.connect()

    service = build_account_service()
    service.tasks.start()
    app.state.account_service = service

    logger.info(f"{settings.APP_NAME} started successfully - ready to accept requests")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    await shutdown_manager.initiate_shutdown()

    # Queued verification jobs still need the database, so drain before disposing
    await service.tasks.stop(timeout=settings.GRACEFUL_SHUTDOWN_TIMEOUT)

    if settings.CACHE_ENABLED:
        await cache_manager.disconnect()

    await dispose_engine()

    logger.info(f"{settings.APP_NAME} shutdown complete")

# ==================== Error Handlers ====================


async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "error": ErrorCode.VALIDATION_ERROR,
            "message": "Validation failed",
            "errors": exc.errors,
        },
    )


def _login_failed_response() -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": ErrorCode.LOGIN_FAILED,
            "message": LoginFailedError.public_message,
            "errors": {"login": LoginFailedError.public_message},
        },
    )


async def login_failed_handler(request: Request, exc: LoginFailedError):
    # Internal reason was logged by the service; the response never reveals it
    return _login_failed_response()


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Body that could not be parsed or typed: same 400 shapes as service-level failures."""
    if request.url.path == f"{settings.API_PREFIX}/login":
        LOGIN_FAILURES.labels(reason="malformed_body").inc()
        logger.warning("Login failed - malformed request body")
        return _login_failed_response()

    errors = {}
    for error in exc.errors():
        loc = error.get("loc", ())
        field = loc[-1] if len(loc) > 1 and isinstance(loc[-1], str) else "body"
        errors.setdefault(field, malformed_field_message(field))
    return JSONResponse(
        status_code=400,
        content={
            "error": ErrorCode.VALIDATION_ERROR,
            "message": "Validation failed",
            "errors": errors,
        },
    )


async def account_not_found_handler(request: Request, exc: AccountNotFoundError):
    return JSONResponse(
        status_code=404,
        content={"error": ErrorCode.ACCOUNT_NOT_FOUND, "message": str(exc)},
    )


async def internal_error_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error(
        f"[{request_id}] Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"error": ErrorCode.INTERNAL_ERROR, "message": "Internal server error"},
    )

# ==================== Application Setup ====================


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# Middleware registration (last registered = outermost layer): request id, then
# logging, then security headers, then the shutdown gate closest to the routes
app.middleware("http")(graceful_shutdown_middleware)
app.middleware("http")(security_headers_middleware)
app.middleware("http")(request_logging_middleware)
app.middleware("http")(add_request_id_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(ValidationError, validation_error_handler)
app.add_exception_handler(LoginFailedError, login_failed_handler)
app.add_exception_handler(AccountNotFoundError, account_not_found_handler)
app.add_exception_handler(DirectoryError, internal_error_handler)
app.add_exception_handler(Exception, internal_error_handler)

app.include_router(router)

setup_monitoring(app)
