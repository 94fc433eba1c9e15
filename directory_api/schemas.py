"""Pydantic schemas for request/response validation and serialization.

Request bodies accept any strings: length, shape and required-ness are checked
by the constraint table in ``validation``. Bodies are parsed by the
``parse_body`` dependency, and type or JSON errors raised there are mapped by
``main`` to the same field-keyed 400 instead of FastAPI's 422 list.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


# ==================== Error Schemas ====================

class ErrorResponse(BaseModel):
    """Standardized error response with code, message and field errors."""
    error: str
    message: str
    errors: dict[str, str] | None = None


class ErrorCode:
    """Centralized error codes for API responses."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    LOGIN_FAILED = "LOGIN_FAILED"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    INVALID_TOKEN = "INVALID_TOKEN"
    FORBIDDEN = "FORBIDDEN"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ==================== Account Schemas ====================

class AccountOut(BaseModel):
    """Account output schema. Never carries the password hash."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    firstname: str
    lastname: str
    email: str
    is_admin: bool
    is_active: bool
    company_id: int | None = None
    created_at: datetime
    updated_at: datetime


class AccountEnvelope(BaseModel):
    """Body of a successful signup."""
    user: AccountOut


class LoginResponse(BaseModel):
    """Body of a successful login: the account plus a session token."""
    user: AccountOut
    token: str
    token_type: str = "bearer"


# ==================== Authentication Schemas ====================

class SignupRequest(BaseModel):
    """Schema for account registration."""
    email: str | None = None
    password: str | None = None
    firstname: str | None = None
    lastname: str | None = None


class LoginRequest(BaseModel):
    """Schema for login credentials."""
    email: str | None = None
    password: str | None = None


class AccountUpdate(BaseModel):
    """Partial profile update. Omitted fields stay unchanged."""
    email: str | None = None
    password: str | None = None
    firstname: str | None = None
    lastname: str | None = None
