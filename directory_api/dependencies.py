"""FastAPI dependencies: service wiring, authentication and authorization."""

import json

from fastapi import Depends, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from . import db
from .auth import verify_token
from .errors import AccountNotFoundError, ExpiredError, TokenError
from .notifier import build_notifier
from .repository import AccountRepository, VerificationTokenStore
from .schemas import AccountOut, ErrorCode
from .services import AccountService
from .tasks import TaskQueue


# ==================== Service Wiring ====================

def build_account_service(session_factory=None, notifier=None, tasks: TaskQueue | None = None) -> AccountService:
    """Assemble the account service from explicit collaborators."""
    session_factory = session_factory or db.async_session
    return AccountService(
        repository=AccountRepository(session_factory),
        token_store=VerificationTokenStore(session_factory),
        notifier=notifier or build_notifier(),
        tasks=tasks or TaskQueue(),
    )


def get_account_service(request: Request) -> AccountService:
    """Return the service built by the application lifespan.

    The lifespan owns the service's task queue and stops it on shutdown, so no
    service (and no unstopped queue) is ever created here.
    """
    service = getattr(request.app.state, "account_service", None)
    if service is None:
        raise RuntimeError("Account service is not initialized - application lifespan has not run")
    return service


# ==================== Request Bodies ====================

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def read_body(request: Request) -> dict:
    """Return a JSON or form-encoded body as a plain dict.

    Malformed bodies raise RequestValidationError so they are reported by the
    same handler as type errors.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}

    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise RequestValidationError(
            [{"type": "json_invalid", "loc": ("body",), "msg": f"JSON decode error: {e}", "input": None}]
        ) from e
    if not isinstance(data, dict):
        raise RequestValidationError(
            [{"type": "model_attributes_type", "loc": ("body",), "msg": "Body must be an object", "input": data}]
        )
    return data


def parse_body(model: type[BaseModel]):
    """Dependency factory validating the request body against a pydantic model."""

    async def dependency(request: Request):
        data = await read_body(request)
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise RequestValidationError(
                [{**error, "loc": ("body", *error["loc"])} for error in e.errors()]
            ) from e

    return dependency


# ==================== Authentication Dependencies ====================

security = HTTPBearer()


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": ErrorCode.INVALID_TOKEN, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_account(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    service: AccountService = Depends(get_account_service),
) -> AccountOut:
    """Resolve the account behind a bearer token. Raises 401 if invalid/expired."""
    try:
        claims = verify_token(credentials.credentials)
    except ExpiredError:
        raise _unauthorized("Authentication token has expired")
    except TokenError:
        raise _unauthorized("Invalid authentication token")

    account_id = claims.get("id")
    if account_id is None:
        raise _unauthorized("Token payload is invalid")

    try:
        return await service.get_account(int(account_id))
    except AccountNotFoundError:
        raise _unauthorized("Account no longer exists")


async def require_admin(current: AccountOut = Depends(get_current_account)) -> AccountOut:
    """Allow only administrator accounts. Raises 403 otherwise."""
    if not current.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": ErrorCode.FORBIDDEN, "message": "Administrator privileges required"},
        )
    return current
