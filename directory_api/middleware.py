"""HTTP middleware for request handling, logging, and security."""

import logging
import time
import uuid

from fastapi import Request
from fastapi.responses import JSONResponse

from .config import settings
from .logger import logger

# Set by main.py to avoid a circular import
shutdown_manager = None


def set_shutdown_manager(manager):
    """Set the shutdown manager instance (called from main.py)."""
    global shutdown_manager
    shutdown_manager = manager


# ==================== Graceful Shutdown Middleware ====================

async def graceful_shutdown_middleware(request: Request, call_next):
    """Track active requests and reject new requests during shutdown."""
    if shutdown_manager and shutdown_manager.is_shutting_down:
        logger.warning(
            f"Rejecting request {request.method} {request.url.path} - service is shutting down"
        )
        return JSONResponse(
            status_code=503,
            content={
                "error": "SERVICE_UNAVAILABLE",
                "message": "Service is shutting down - please retry with another instance"
            },
            headers={"Retry-After": "10"}
        )

    if shutdown_manager:
        shutdown_manager.request_started()

    try:
        return await call_next(request)
    finally:
        if shutdown_manager:
            shutdown_manager.request_finished()


# ==================== Request ID Middleware ====================

async def add_request_id_middleware(request: Request, call_next):
    """Add unique request ID to each request for tracing across logs."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response

# ==================== Request Logging Middleware ====================

def _is_account_api(path: str) -> bool:
    return path.startswith(settings.API_PREFIX)


async def request_logging_middleware(request: Request, call_next):
    """Log requests with status and duration.

    Bodies are never logged since signup and login carry plaintext passwords.
    Rejected account API calls are logged at WARNING so they stand out.
    """
    start_time = time.time()
    request_id = getattr(request.state, "request_id", "unknown")

    logger.info(f"[{request_id}] {request.method} {request.url.path} - Request received")

    try:
        response = await call_next(request)
    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"[{request_id}] {request.method} {request.url.path} - "
            f"Error: {str(e)} - Duration: {duration:.3f}s",
            exc_info=True
        )
        raise

    duration = time.time() - start_time
    level = logging.INFO
    if _is_account_api(request.url.path) and 400 <= response.status_code < 500:
        level = logging.WARNING
    logger.log(
        level,
        f"[{request_id}] {request.method} {request.url.path} - "
        f"Status: {response.status_code} - Duration: {duration:.3f}s"
    )
    return response


# ==================== Security Headers Middleware ====================

async def security_headers_middleware(request: Request, call_next):
    """Add security headers to all responses; account API responses are never cached."""
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"

    if settings.APP_ENV == "production":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

    # Allows CDN resources for Swagger UI
    response.headers["Content-Security-Policy"] = (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "img-src 'self' data: https://cdn.jsdelivr.net; "
        "font-src 'self' https://cdn.jsdelivr.net"
    )
    response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

    # Login responses carry session tokens
    if _is_account_api(request.url.path):
        response.headers["Cache-Control"] = "no-store"
        response.headers["Pragma"] = "no-cache"

    return response
