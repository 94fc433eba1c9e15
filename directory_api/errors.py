"""Exception hierarchy for the account workflow.

Validation and login failures are translated to structured 4xx responses at
the HTTP boundary; infrastructure failures (hashing, signing) surface as a
generic 500 and are logged with detail.
"""


class DirectoryError(Exception):
    """Base class for all errors raised by the account workflow."""


# ==================== Validation ====================

class ValidationError(DirectoryError):
    """Field-keyed validation failure, recoverable by the caller."""

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        super().__init__(f"Validation failed for: {', '.join(sorted(self.errors))}")


class UniqueConstraintError(DirectoryError):
    """The repository rejected a write because a unique field already exists."""

    def __init__(self, field: str, value: str | None = None):
        self.field = field
        self.value = value
        super().__init__(f"duplicate {field}")


# ==================== Authentication ====================

class LoginFailedError(DirectoryError):
    """Login rejected. Subclasses keep the internal reason apart."""

    public_message = "Login failed: invalid email or password"


class NotFoundError(LoginFailedError):
    """No account matches the submitted email."""


class InvalidCredentialsError(LoginFailedError):
    """The account exists but the password does not match."""


class AccountNotFoundError(DirectoryError):
    """Lookup by identifier found nothing."""

    def __init__(self, account_id: int):
        self.account_id = account_id
        super().__init__(f"Account {account_id} does not exist")


# ==================== Credentials & Tokens ====================

class HashingError(DirectoryError):
    """Password hashing primitive failed or was given unusable input."""


class InvalidInput(DirectoryError):
    """Plaintext passed to verification was empty."""


class SigningError(DirectoryError):
    """Token could not be signed (missing secret or encoder failure)."""


class TokenError(DirectoryError):
    """Base class for session token verification failures."""


class ExpiredError(TokenError):
    """Token signature is valid but its expiry has passed."""


class InvalidSignatureError(TokenError):
    """Token was tampered with, signed with another key, or is malformed."""


# ==================== Side Effects ====================

class DeliveryError(DirectoryError):
    """Outbound email could not be delivered."""
