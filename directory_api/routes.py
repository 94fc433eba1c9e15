# API route definitions (HTTP layer)
# Handlers stay thin: parse the body, call AccountService, shape the response

import os
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from slowapi import Limiter
from slowapi.util import get_remote_address

from . import db
from .cache import cache_manager
from .config import settings
from .dependencies import get_account_service, get_current_account, parse_body, require_admin
from .schemas import (
    AccountEnvelope,
    AccountOut,
    AccountUpdate,
    LoginRequest,
    LoginResponse,
    SignupRequest,
)
from .services import AccountService

limiter = Limiter(key_func=get_remote_address)


def conditional_limit(limit_string):
    """Apply rate limit only if not in test mode."""
    if os.getenv('TEST_MODE'):
        def decorator(func):
            return func
        return decorator
    return limiter.limit(limit_string)


router = APIRouter()
api = APIRouter(prefix=settings.API_PREFIX)


@router.get("/")
def root():
    return {"app": settings.APP_NAME, "env": settings.APP_ENV, "api": settings.API_PREFIX}


@router.get("/health")
async def health_check():
    """Health check endpoint for load balancers and monitoring.

    Returns:
        - 200 OK if service and database are healthy (cache may be degraded)
        - 503 Service Unavailable if the database is unreachable
    """
    health_status = {
        "status": "healthy",
        "service": settings.APP_NAME,
        "environment": settings.APP_ENV,
    }

    if await db.check_db_connection():
        health_status["database"] = "connected"
    else:
        health_status["status"] = "unhealthy"
        health_status["database"] = "disconnected"
        raise HTTPException(status_code=503, detail=health_status)

    if settings.CACHE_ENABLED:
        is_healthy = await cache_manager.health_check()
        health_status["cache"] = "connected" if is_healthy else "disconnected"
        if not is_healthy:
            health_status["status"] = "degraded"  # Service works but cache is down
    else:
        health_status["cache"] = "disabled"

    return health_status


@router.get("/favicon.ico", include_in_schema=False)
async def favicon():
    return Response(status_code=204)


# ============================================================================
# Authentication Endpoints
# ============================================================================

@api.post("/signup", response_model=AccountEnvelope, status_code=201)
@conditional_limit(settings.RATE_LIMIT_AUTH)
async def signup(
    request: Request,
    body: SignupRequest = Depends(parse_body(SignupRequest)),
    service: AccountService = Depends(get_account_service),
):
    """Register a new account.

    Returns:
        {"user": AccountOut} with status 201. The verification email is sent
        in the background and never delays or fails this response.

    Raises:
        400: Field-keyed validation errors, including a duplicate email
    """
    account = await service.create_account(
        firstname=body.firstname,
        lastname=body.lastname,
        email=body.email,
        password=body.password,
    )
    return AccountEnvelope(user=AccountOut.model_validate(account))


@api.post("/login", response_model=LoginResponse)
@conditional_limit(settings.RATE_LIMIT_AUTH)
async def login(
    request: Request,
    body: LoginRequest = Depends(parse_body(LoginRequest)),
    service: AccountService = Depends(get_account_service),
):
    """Authenticate and return the account with a session token.

    Raises:
        400: {"errors": {"login": ...}} for unknown email and wrong password alike
    """
    account, token = await service.login(body.email, body.password)
    return LoginResponse(user=AccountOut.model_validate(account), token=token)


# ============================================================================
# Account Endpoints
# ============================================================================

@api.get("/users/me", response_model=AccountOut)
@conditional_limit(settings.RATE_LIMIT_READ)
async def read_current_account(
    request: Request,
    current: AccountOut = Depends(get_current_account),
):
    return current


@api.patch("/users/me", response_model=AccountOut)
@conditional_limit(settings.RATE_LIMIT_WRITE)
async def update_current_account(
    request: Request,
    current: AccountOut = Depends(get_current_account),
    body: AccountUpdate = Depends(parse_body(AccountUpdate)),
    service: AccountService = Depends(get_account_service),
):
    account = await service.update_account(current, **body.model_dump(exclude_none=True))
    return AccountOut.model_validate(account)


@api.post("/users/{user_id}/toggle-active", response_model=AccountOut)
@conditional_limit(settings.RATE_LIMIT_WRITE)
async def toggle_active(
    user_id: int,
    request: Request,
    admin: AccountOut = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
):
    """Flip another account's active flag. Administrators only."""
    target = await service.get_account(user_id)
    account = await service.toggle_active(target)
    return AccountOut.model_validate(account)


router.include_router(api)
