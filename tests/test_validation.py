"""
Unit tests for the declarative field constraint table.
"""

import re

from directory_api.validation import (
    ACCOUNT_CONSTRAINTS,
    EMAIL_PATTERN,
    FieldConstraint,
    validate_fields,
)

VALID = {
    "firstname": "Ana",
    "lastname": "Lee",
    "email": "foo@bar.com",
    "password": "secret1",
}


class TestValidateFields:
    """Test validate_fields against the account constraints."""

    def test_valid_values_pass(self):
        assert validate_fields(VALID) == {}

    def test_missing_required_fields(self):
        errors = validate_fields({"password": "secret1"})
        assert set(errors) == {"firstname", "lastname", "email"}
        assert errors["email"] == "Email is required"

    def test_empty_string_counts_as_missing(self):
        errors = validate_fields({**VALID, "firstname": ""})
        assert errors == {"firstname": "First name is required"}

    def test_password_is_optional(self):
        values = {k: v for k, v in VALID.items() if k != "password"}
        assert validate_fields(values) == {}

    def test_name_length_bounds(self):
        assert "firstname" in validate_fields({**VALID, "firstname": "Al"})
        assert validate_fields({**VALID, "firstname": "Ali"}) == {}
        assert validate_fields({**VALID, "lastname": "L" * 30}) == {}
        errors = validate_fields({**VALID, "lastname": "L" * 31})
        assert errors == {"lastname": "Last name must contain at most 30 characters"}

    def test_email_length_bounds(self):
        long_email = "a" * 38 + "@bar.com"  # 46 chars
        errors = validate_fields({**VALID, "email": long_email})
        assert errors == {"email": "Email must contain at most 45 characters"}

    def test_email_shape(self):
        errors = validate_fields({**VALID, "email": "not-an-email"})
        assert errors == {"email": "The email not-an-email is not valid"}
        assert "email" in validate_fields({**VALID, "email": "a@b"})
        assert "email" in validate_fields({**VALID, "email": "a b@c.de"})

    def test_length_checked_before_shape(self):
        errors = validate_fields({**VALID, "email": "a@b"})
        assert errors["email"] == "Email must contain at least 4 characters"

    def test_password_length_bounds(self):
        assert validate_fields({**VALID, "password": "12345"}) == {
            "password": "Password must contain at least 6 characters"
        }
        assert "password" in validate_fields({**VALID, "password": "x" * 76})
        assert validate_fields({**VALID, "password": "x" * 75}) == {}

    def test_only_restricts_checked_fields(self):
        errors = validate_fields({"firstname": "Ana"}, only={"firstname"})
        assert errors == {}


class TestFieldConstraint:
    """Test a standalone constraint definition."""

    def test_custom_messages(self):
        constraint = FieldConstraint(
            field="code",
            label="Code",
            required=True,
            pattern=re.compile(r"[A-Z]{3}"),
            messages={"required": "Give a code", "pattern": "{value} is not a code"},
        )
        assert constraint.check(None) == "Give a code"
        assert constraint.check("abc") == "abc is not a code"
        assert constraint.check("ABC") is None

    def test_constraint_table_covers_account_fields(self):
        assert [c.field for c in ACCOUNT_CONSTRAINTS] == ["firstname", "lastname", "email", "password"]

    def test_email_pattern(self):
        assert EMAIL_PATTERN.fullmatch("foo@bar.com")
        assert not EMAIL_PATTERN.fullmatch("foo@bar")
