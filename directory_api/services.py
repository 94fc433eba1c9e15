"""Account lifecycle: signup, profile updates, login and activation.

Every write goes through the same explicit pipeline over an ``AccountDraft``:

    DRAFT -> NORMALIZING -> VALIDATING -> HASHING -> PERSISTED
          -> POST_PROCESSING -> READY

A validation or uniqueness failure stops the pipeline in REJECTED with a
field-keyed error map. Post-processing (verification token, welcome email)
only runs for a freshly inserted account and is handed to the background
queue so the HTTP response never waits on it.
"""

import secrets
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any

from .auth import hash_password_async, issue_token, verify_password_async
from .cache import ACCOUNT_BY_ID_PREFIX, cache_manager, make_cache_key
from .config import settings
from .errors import (
    AccountNotFoundError,
    DeliveryError,
    InvalidCredentialsError,
    NotFoundError,
    UniqueConstraintError,
    ValidationError,
)
from .logger import logger
from .models import Account
from .monitoring import ACCOUNTS_CREATED, LOGIN_FAILURES
from .notifier import VERIFY_EMAIL_SUBJECT, render_verification_email
from .repository import AccountRepository, VerificationTokenStore
from .schemas import AccountOut
from .tasks import TaskQueue
from .utils import capitalize_first, normalize_email
from .validation import UNIQUE_MESSAGE, validate_fields

NAME_FIELDS = ("firstname", "lastname")
TEXT_FIELDS = ("firstname", "lastname", "email")


class LifecycleState(str, Enum):
    DRAFT = "draft"
    NORMALIZING = "normalizing"
    VALIDATING = "validating"
    HASHING = "hashing"
    PERSISTED = "persisted"
    POST_PROCESSING = "post_processing"
    READY = "ready"
    REJECTED = "rejected"


@dataclass
class AccountDraft:
    """Pending field changes for one account.

    ``stored`` is None for a signup; otherwise it holds the current values the
    changes are compared against.
    """
    values: dict[str, Any]
    stored: Any = None
    state: LifecycleState = LifecycleState.DRAFT
    was_new: bool = False
    errors: dict[str, str] = field(default_factory=dict)
    account: Account | None = None

    @property
    def is_new(self) -> bool:
        return self.stored is None

    def is_modified(self, name: str) -> bool:
        if name not in self.values:
            return False
        if self.is_new or name == "password":
            return True
        return getattr(self.stored, name) != self.values[name]

    def reject(self, errors: dict[str, str]) -> ValidationError:
        self.state = LifecycleState.REJECTED
        self.errors = errors
        return ValidationError(errors)


class AccountService:
    """Orchestrates the account workflow over injected collaborators."""

    def __init__(
        self,
        repository: AccountRepository,
        token_store: VerificationTokenStore,
        notifier,
        tasks: TaskQueue,
    ):
        self.repository = repository
        self.token_store = token_store
        self.notifier = notifier
        self.tasks = tasks

    # ==================== Pipeline Stages ====================

    def _normalize(self, draft: AccountDraft) -> None:
        draft.state = LifecycleState.NORMALIZING
        values = draft.values
        for name in TEXT_FIELDS:
            if isinstance(values.get(name), str):
                values[name] = values[name].strip()
        if isinstance(values.get("email"), str):
            values["email"] = normalize_email(values["email"])
        if values.get("password") == "":
            values["password"] = None

        # Unchanged fields drop out so only real changes are validated and written
        for name in list(values):
            if not draft.is_new and not draft.is_modified(name):
                del values[name]

        for name in NAME_FIELDS:
            if draft.is_modified(name) and values[name]:
                values[name] = capitalize_first(values[name])

    async def _validate(self, draft: AccountDraft) -> None:
        draft.state = LifecycleState.VALIDATING
        only = None if draft.is_new else set(draft.values)
        errors = validate_fields(draft.values, only=only)
        if errors:
            raise draft.reject(errors)

        # Fast-path rejection only; the unique index decides races at insert time
        if draft.is_modified("email"):
            existing = await self.repository.find_one(email=draft.values["email"])
            if existing is not None:
                logger.warning(f"Email already registered: {draft.values['email']}")
                raise draft.reject({"email": UNIQUE_MESSAGE.format(field="email")})

    async def _hash(self, draft: AccountDraft) -> None:
        draft.state = LifecycleState.HASHING
        password = draft.values.pop("password", None)
        if password is not None:
            draft.values["password_hash"] = await hash_password_async(password)

    async def _persist(self, draft: AccountDraft) -> Account:
        try:
            if draft.is_new:
                account = await self.repository.insert(draft.values)
            else:
                account = await self.repository.update(draft.stored.id, **draft.values)
                if account is None:
                    raise AccountNotFoundError(draft.stored.id)
        except UniqueConstraintError as e:
            logger.warning(f"Unique constraint rejected {e.field}={e.value}")
            raise draft.reject({e.field: UNIQUE_MESSAGE.format(field=e.field)}) from e

        draft.account = account
        draft.was_new = draft.is_new
        draft.state = LifecycleState.PERSISTED
        return account

    def _post_process(self, draft: AccountDraft) -> None:
        draft.state = LifecycleState.POST_PROCESSING
        if draft.was_new:
            account = draft.account
            job = self._make_verification_job(
                account.id, account.firstname, account.email, account.is_admin
            )
            self.tasks.submit(f"verify-email:user:{account.id}", job)

    async def process(self, draft: AccountDraft) -> Account:
        """Run a draft through every stage and return the stored account."""
        self._normalize(draft)
        await self._validate(draft)
        await self._hash(draft)
        account = await self._persist(draft)
        self._post_process(draft)
        draft.state = LifecycleState.READY
        return account

    # ==================== Post-processing ====================

    def _make_verification_job(self, account_id: int, firstname: str, email: str, is_admin: bool):
        async def job() -> None:
            token = secrets.token_urlsafe(settings.VERIFICATION_TOKEN_BYTES)
            await self.token_store.record(account_id, token)

            # Only administrator accounts are emailed; everyone else just gets the token record
            if not is_admin:
                return

            html = render_verification_email(firstname, token)
            try:
                await self.notifier.send(to=email, subject=VERIFY_EMAIL_SUBJECT, html_body=html)
            except DeliveryError as e:
                logger.error(f"Verification email not delivered for user id={account_id}: {e}")

        return job

    # ==================== Account Operations ====================

    async def create_account(
        self,
        firstname: str | None,
        lastname: str | None,
        email: str | None,
        password: str | None,
        is_admin: bool = False,
        company_id: int | None = None,
    ) -> Account:
        """Register a new account. Raises ValidationError with field-keyed messages."""
        logger.info(f"Creating account: {email}")
        draft = AccountDraft(values={
            "firstname": firstname,
            "lastname": lastname,
            "email": email,
            "password": password,
            "is_admin": is_admin,
            "company_id": company_id,
        })
        account = await self.process(draft)
        ACCOUNTS_CREATED.inc()
        logger.info(f"Account created: id={account.id} email={account.email}")
        return account

    async def update_account(self, account, **changes) -> Account:
        """Apply profile changes; only fields that actually differ are rewritten."""
        values = {k: v for k, v in changes.items() if v is not None}
        draft = AccountDraft(values=values, stored=account)
        if not values:
            return await self._reload(account.id)
        updated = await self.process(draft)
        await self._invalidate_cache(updated.id)
        logger.info(f"Account updated: id={updated.id} fields={sorted(values)}")
        return updated

    async def login(self, email: str | None, password: str | None) -> tuple[Account, str]:
        """Check credentials and mint a session token.

        Unknown email and wrong password raise different exceptions so the
        reason is logged, but both render as the same public login failure.
        """
        email = normalize_email(email or "")
        logger.info(f"Login attempt: {email}")

        account = await self.repository.find_one(email=email, include_password=True) if email else None
        if account is None:
            LOGIN_FAILURES.labels(reason="user_not_found").inc()
            logger.warning(f"Login failed - user not found: {email}")
            raise NotFoundError("user not found")

        if not password or not account.password_hash:
            LOGIN_FAILURES.labels(reason="missing_password").inc()
            logger.warning(f"Login failed - missing password for user: {email}")
            raise InvalidCredentialsError("invalid password")

        if not await verify_password_async(password, account.password_hash):
            LOGIN_FAILURES.labels(reason="invalid_password").inc()
            logger.warning(f"Login failed - invalid password for user: {email}")
            raise InvalidCredentialsError("invalid password")

        token = self.issue_session_token(account)
        logger.info(f"Login successful: {email} (id={account.id})")
        return account, token

    async def toggle_active(self, account) -> Account:
        """Flip the active flag in the database; the caller's copy may be stale."""
        updated = await self.repository.toggle_active(account.id)
        if updated is None:
            raise AccountNotFoundError(account.id)
        await self._invalidate_cache(updated.id)
        logger.info(f"Account id={updated.id} is_active={updated.is_active}")
        return updated

    def issue_session_token(self, account) -> str:
        claims = {
            "id": account.id,
            "email": account.email,
            "firstname": account.firstname,
            "lastname": account.lastname,
        }
        return issue_token(claims, ttl=timedelta(days=settings.JWT_EXPIRATION_DAYS))

    async def get_account(self, account_id: int) -> AccountOut:
        """Fetch an account by ID through the cache."""
        cache_key = make_cache_key(ACCOUNT_BY_ID_PREFIX, account_id)
        if settings.CACHE_ENABLED:
            cached = await cache_manager.get(cache_key)
            if cached:
                return AccountOut(**cached)

        account = await self.repository.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)

        account_out = AccountOut.model_validate(account)
        if settings.CACHE_ENABLED:
            await cache_manager.set(cache_key, account_out.model_dump(mode="json"))
        return account_out

    async def _reload(self, account_id: int) -> Account:
        account = await self.repository.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def _invalidate_cache(self, account_id: int) -> None:
        if settings.CACHE_ENABLED:
            await cache_manager.delete(make_cache_key(ACCOUNT_BY_ID_PREFIX, account_id))
