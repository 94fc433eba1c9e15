"""
Unit tests for password hashing and session token issuance.
"""

import time
from datetime import timedelta

import pytest
from jose import jwt

from directory_api.auth import (
    hash_password,
    hash_password_async,
    issue_token,
    verify_password,
    verify_password_async,
    verify_token,
)
from directory_api.config import settings
from directory_api.errors import (
    ExpiredError,
    HashingError,
    InvalidInput,
    InvalidSignatureError,
    SigningError,
)

CLAIMS = {"id": 7, "email": "foo@bar.com", "firstname": "Ana", "lastname": "Lee"}


class TestPasswordHashing:
    """Test bcrypt hash/verify behaviour."""

    def test_verify_matches_original_password(self):
        digest = hash_password("secret1")
        assert verify_password("secret1", digest) is True

    def test_verify_rejects_other_passwords(self):
        digest = hash_password("secret1")
        assert verify_password("secret2", digest) is False
        assert verify_password("Secret1", digest) is False
        assert verify_password("secret1 ", digest) is False

    def test_hash_is_salted(self):
        """Same password hashes differently each time but both verify."""
        first = hash_password("secret1")
        second = hash_password("secret1")
        assert first != second
        assert verify_password("secret1", first)
        assert verify_password("secret1", second)

    def test_hash_uses_configured_work_factor(self):
        digest = hash_password("secret1")
        assert digest.startswith(f"$2b${settings.BCRYPT_ROUNDS:02d}$")

    def test_explicit_rounds_override(self):
        digest = hash_password("secret1", rounds=5)
        assert digest.startswith("$2b$05$")

    def test_hash_empty_password_raises(self):
        with pytest.raises(HashingError):
            hash_password("")

    def test_verify_empty_password_raises(self):
        digest = hash_password("secret1")
        with pytest.raises(InvalidInput):
            verify_password("", digest)

    def test_verify_against_malformed_digest_raises(self):
        with pytest.raises(HashingError):
            verify_password("secret1", "not-a-bcrypt-hash")

    def test_verify_against_missing_digest_is_false(self):
        assert verify_password("secret1", "") is False

    def test_passwords_differing_after_72_bytes_do_not_match(self):
        """bcrypt alone stops at 72 bytes; characters beyond that must still count."""
        stored = "a" * 72 + "xyz"
        digest = hash_password(stored)
        assert verify_password(stored, digest) is True
        assert verify_password("a" * 72 + "QQQ", digest) is False
        assert verify_password("a" * 72, digest) is False

    def test_multibyte_passwords_differing_late_do_not_match(self):
        stored = "ñ" * 40 + "1"
        digest = hash_password(stored)
        assert verify_password("ñ" * 40 + "2", digest) is False

    @pytest.mark.asyncio
    async def test_async_wrappers(self):
        digest = await hash_password_async("secret1")
        assert await verify_password_async("secret1", digest) is True
        assert await verify_password_async("wrong-one", digest) is False


class TestSessionTokens:
    """Test JWT issuance and verification."""

    def test_token_round_trip_carries_claims(self):
        token = issue_token(CLAIMS)
        claims = verify_token(token)

        for key, value in CLAIMS.items():
            assert claims[key] == value
        assert "exp" in claims
        assert "iat" in claims

    def test_default_expiry_is_thirty_days(self):
        token = issue_token(CLAIMS)
        claims = verify_token(token)
        assert claims["exp"] - claims["iat"] == 30 * 24 * 3600

    def test_expired_token_rejected(self):
        token = issue_token(CLAIMS, ttl=timedelta(seconds=1))
        time.sleep(2.1)
        with pytest.raises(ExpiredError):
            verify_token(token)

    def test_tampered_token_rejected(self):
        token = issue_token(CLAIMS)
        header, payload, signature = token.split(".")
        forged = jwt.encode({**CLAIMS, "id": 1}, "another-secret-of-sufficient-length!!", algorithm="HS256")
        tampered = ".".join([header, forged.split(".")[1], signature])

        with pytest.raises(InvalidSignatureError):
            verify_token(tampered)

    def test_wrong_secret_rejected(self):
        token = issue_token(CLAIMS, secret="a-completely-different-secret-key-000")
        with pytest.raises(InvalidSignatureError):
            verify_token(token)

    def test_explicit_secret_round_trip(self):
        secret = "explicit-secret-key-used-for-this-test-only"
        token = issue_token(CLAIMS, secret=secret)
        assert verify_token(token, secret=secret)["email"] == "foo@bar.com"

    def test_garbage_token_rejected(self):
        with pytest.raises(InvalidSignatureError):
            verify_token("not.a.token")

    def test_missing_secret_raises_signing_error(self):
        with pytest.raises(SigningError):
            issue_token(CLAIMS, secret="")
