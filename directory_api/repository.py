"""Persistence for accounts and verification tokens.

Both stores take an explicit session factory so the application (or a test)
decides which engine they talk to.
"""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import undefer

from .config import settings
from .db import retry_on_db_error
from .errors import UniqueConstraintError, ValidationError
from .logger import logger
from .models import Account, VerificationToken


def _is_unique_violation(error: IntegrityError, column: str) -> bool:
    message = str(error.orig).lower()
    return column in message and ("unique" in message or "duplicate" in message)


class AccountRepository:
    """CRUD access to the users table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def insert(self, values: dict) -> Account:
        """Insert a new account. Raises UniqueConstraintError on duplicate email."""
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    account = Account(**values)
                    session.add(account)
                await session.refresh(account)
                return account
            except IntegrityError as e:
                await session.rollback()
                if _is_unique_violation(e, "email"):
                    logger.debug(f"Duplicate email rejected: {values.get('email')}")
                    raise UniqueConstraintError("email", values.get("email")) from e
                if "foreign key" in str(e.orig).lower():
                    raise ValidationError({"company_id": "Company does not exist"}) from e
                raise

    async def find_one(self, include_password: bool = False, **filters) -> Account | None:
        """Return the first account matching all equality filters.

        The password hash is only loaded when include_password is True.
        """
        stmt = select(Account).filter_by(**filters)
        if include_password:
            stmt = stmt.options(undefer(Account.password_hash))
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalars().first()

    async def get(self, account_id: int) -> Account | None:
        """Retrieve an account by ID."""
        async with self._session_factory() as session:
            return await session.get(Account, account_id)

    async def update(self, account_id: int, **values) -> Account | None:
        """Apply column changes to an existing account. Returns None if it no longer exists."""
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    account = await session.get(Account, account_id)
                    if account is None:
                        return None
                    for key, value in values.items():
                        setattr(account, key, value)
                await session.refresh(account)
                return account
            except IntegrityError as e:
                await session.rollback()
                if _is_unique_violation(e, "email"):
                    raise UniqueConstraintError("email", values.get("email")) from e
                raise

    async def toggle_active(self, account_id: int) -> Account | None:
        """Flip is_active in one UPDATE so concurrent toggles are never lost.

        Returns None if the account no longer exists.
        """
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(is_active=~Account.is_active)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    return None
            return await session.get(Account, account_id)


class VerificationTokenStore:
    """Records one-time email verification tokens."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def record(self, account_id: int, token: str) -> VerificationToken:
        """Persist a token for the account, retrying transient connection errors."""
        async def _insert():
            async with self._session_factory() as session:
                async with session.begin():
                    record = VerificationToken(user_id=account_id, token=token)
                    session.add(record)
                await session.refresh(record)
                return record

        record = await retry_on_db_error(
            _insert,
            max_retries=settings.DB_RETRY_MAX_ATTEMPTS,
            base_delay=settings.DB_RETRY_BASE_DELAY,
        )
        logger.debug(f"Verification token recorded for user id={account_id}")
        return record
