"""Authentication utilities for password hashing and JWT token management."""

import asyncio
import base64
import hashlib
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from .config import settings
from .errors import (
    ExpiredError,
    HashingError,
    InvalidInput,
    InvalidSignatureError,
    SigningError,
)

# ==================== Password Hashing ====================

def _password_bytes(password: str) -> bytes:
    """SHA-256 pre-hash, base64 encoded (44 bytes).

    bcrypt ignores everything past 72 bytes, and accepted passwords can be longer
    than that once UTF-8 encoded. Every byte of the password must count.
    """
    return base64.b64encode(hashlib.sha256(password.encode('utf-8')).digest())


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a plain text password using bcrypt with the configured work factor."""
    if not password:
        raise HashingError("Cannot hash an empty password")
    try:
        salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
        hashed = bcrypt.hashpw(_password_bytes(password), salt)
    except (ValueError, TypeError) as e:
        raise HashingError(f"bcrypt failed to hash password: {e}") from e
    # Return as string for database storage
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain text password against a bcrypt hash.

    Returns False on mismatch. bcrypt.checkpw compares in constant time.
    """
    if not plain_password:
        raise InvalidInput("Password to verify must not be empty")
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode('utf-8'))
    except (ValueError, TypeError) as e:
        raise HashingError(f"Stored password hash is not a valid bcrypt digest: {e}") from e


async def hash_password_async(password: str) -> str:
    """Run hash_password in a worker thread so the event loop stays responsive."""
    return await asyncio.to_thread(hash_password, password)


async def verify_password_async(plain_password: str, hashed_password: str) -> bool:
    """Run verify_password in a worker thread so the event loop stays responsive."""
    return await asyncio.to_thread(verify_password, plain_password, hashed_password)


# ==================== JWT Token Management ====================

def issue_token(claims: dict, secret: str | None = None, ttl: timedelta | None = None) -> str:
    """Sign a JWT carrying the given claims. Defaults to the configured 30-day expiration."""
    secret = settings.JWT_SECRET_KEY if secret is None else secret
    if not secret:
        raise SigningError("JWT secret is not configured")

    now = datetime.now(timezone.utc)
    if ttl is None:
        ttl = timedelta(days=settings.JWT_EXPIRATION_DAYS)

    to_encode = claims.copy()
    to_encode.update({"iat": now, "exp": now + ttl})

    try:
        return jwt.encode(to_encode, secret, algorithm=settings.JWT_ALGORITHM)
    except (JWTError, TypeError, ValueError) as e:
        raise SigningError(f"Failed to sign token: {e}") from e


def verify_token(token: str, secret: str | None = None) -> dict:
    """Decode a JWT, checking signature and expiry. Returns the claims."""
    secret = settings.JWT_SECRET_KEY if secret is None else secret
    try:
        return jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError as e:
        raise ExpiredError("Token has expired") from e
    except JWTError as e:
        raise InvalidSignatureError(f"Token is invalid: {e}") from e
