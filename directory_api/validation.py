"""Declarative field constraints and the generic validator that consumes them."""

import re
from dataclasses import dataclass, field

from .config import settings

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


@dataclass(frozen=True)
class FieldConstraint:
    """Rules for one input field, checked in order: required, min, max, pattern.

    Messages may reference ``{min}``, ``{max}`` and ``{value}``.
    """
    field: str
    label: str
    required: bool = False
    min_length: int | None = None
    max_length: int | None = None
    pattern: re.Pattern | None = None
    messages: dict[str, str] = field(default_factory=dict)

    def message(self, rule: str, value: str | None = None) -> str:
        defaults = {
            "required": f"{self.label} is required",
            "min_length": f"{self.label} must contain at least {{min}} characters",
            "max_length": f"{self.label} must contain at most {{max}} characters",
            "pattern": f"{self.label} {{value}} is not valid",
        }
        template = self.messages.get(rule, defaults[rule])
        return template.format(min=self.min_length, max=self.max_length, value=value)

    def check(self, value: str | None) -> str | None:
        """Return the first failing rule's message, or None when the value passes."""
        if value is None or value == "":
            return self.message("required") if self.required else None
        if self.min_length is not None and len(value) < self.min_length:
            return self.message("min_length")
        if self.max_length is not None and len(value) > self.max_length:
            return self.message("max_length")
        if self.pattern is not None and not self.pattern.fullmatch(value):
            return self.message("pattern", value)
        return None


ACCOUNT_CONSTRAINTS: tuple[FieldConstraint, ...] = (
    FieldConstraint(
        field="firstname",
        label="First name",
        required=True,
        min_length=settings.NAME_MIN_LENGTH,
        max_length=settings.NAME_MAX_LENGTH,
    ),
    FieldConstraint(
        field="lastname",
        label="Last name",
        required=True,
        min_length=settings.NAME_MIN_LENGTH,
        max_length=settings.NAME_MAX_LENGTH,
    ),
    FieldConstraint(
        field="email",
        label="Email",
        required=True,
        min_length=settings.EMAIL_MIN_LENGTH,
        max_length=settings.EMAIL_MAX_LENGTH,
        pattern=EMAIL_PATTERN,
        messages={"pattern": "The email {value} is not valid"},
    ),
    FieldConstraint(
        field="password",
        label="Password",
        min_length=settings.PASSWORD_MIN_LENGTH,
        max_length=settings.PASSWORD_MAX_LENGTH,
    ),
)

UNIQUE_MESSAGE = "Error, the value {field} must be unique"


def validate_fields(
    values: dict[str, str | None],
    constraints: tuple[FieldConstraint, ...] = ACCOUNT_CONSTRAINTS,
    only: set[str] | None = None,
) -> dict[str, str]:
    """Check values against the constraint table.

    Args:
        values: Field name to (already normalized) value
        constraints: Constraint table to apply
        only: Restrict checking to these fields (update paths)

    Returns:
        Field-keyed error messages, empty when everything passes
    """
    errors = {}
    for constraint in constraints:
        if only is not None and constraint.field not in only:
            continue
        error = constraint.check(values.get(constraint.field))
        if error:
            errors[constraint.field] = error
    return errors


def malformed_field_message(field: str) -> str:
    """Message for a field whose value is not text at all (e.g. a number or a list)."""
    for constraint in ACCOUNT_CONSTRAINTS:
        if constraint.field == field:
            return f"{constraint.label} must be text"
    if field == "body":
        return "Request body must be a JSON object or form data"
    return f"The value {field} is not valid"
