"""Utility functions for common operations across the application."""


def normalize_email(email: str) -> str:
    """Convert email to lowercase and strip whitespace."""
    return email.strip().lower()


def capitalize_first(value: str) -> str:
    """Uppercase the first character and leave the rest untouched ("mcAdam" -> "McAdam")."""
    return value[:1].upper() + value[1:]
