from __future__ import annotations

from typing import Any


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(LookupError):
    """404-level missing resource (subscription, menu item, order)."""


def require_positive_int(value: Any, field: str) -> int:
    """
    Strict positive integer check for quantities and cent amounts.

    Rejects bools, floats, and numeric strings with decimals or exponents.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.isdigit():
            raise ValidationError(f"{field} must be a positive integer")
        value = int(stripped)
    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return value


def require_int_id(value: Any, field: str) -> int:
    """IDs arrive as ints or digit strings from JSON bodies."""
    try:
        return require_positive_int(value, field)
    except ValidationError:
        raise ValidationError(f"{field} must be a valid id")


def require_choice(value: Any, field: str, choices) -> str:
    if not isinstance(value, str) or value.strip().lower() not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return value.strip().lower()


def require_bool(value: Any, field: str) -> bool:
    """Only real JSON booleans; "false", 0 and null are rejected."""
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean")
    return value
