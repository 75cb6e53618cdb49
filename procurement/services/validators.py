"""Input coercion shared by the service layer.

All helpers raise :class:`procurement.exceptions.ValidationError` so callers
reject malformed payloads before opening a transaction.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Type

from django.db import models

from procurement.exceptions import ValidationError


def parse_positive_int(value: Any, field: str = "quantity") -> int:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a positive whole number", field=field)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(
                f"{field} must be a positive whole number", field=field
            )
        value = int(value)
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a positive whole number", field=field)
    if number <= 0:
        raise ValidationError(f"{field} must be a positive whole number", field=field)
    return number


def parse_id(value: Any, field: str) -> int:
    if isinstance(value, bool) or value in (None, ""):
        raise ValidationError(f"{field} is required", field=field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer id", field=field)


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """Non-negative money amount."""
    if isinstance(value, bool) or value in (None, ""):
        raise ValidationError(f"{field} must be a non-negative number", field=field)
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a non-negative number", field=field)
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} must be a non-negative number", field=field)
    return amount


def parse_choice(
    value: Any,
    choices: Type[models.TextChoices],
    field: str = "status",
    allowed: Optional[Iterable[str]] = None,
) -> str:
    """Map ``value`` case-insensitively onto the canonical choice value."""

    allowed_values = list(allowed) if allowed is not None else list(choices.values)
    text = str(value or "").strip().lower()
    for candidate in allowed_values:
        if candidate.lower() == text:
            return candidate
    raise ValidationError(
        f"{field} must be one of: {', '.join(allowed_values)}",
        field=field,
        value=value,
    )


def require_text(value: Any, field: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    return text


def optional_text(value: Any) -> Optional[str]:
    text = str(value or "").strip()
    return text or None


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def parse_flag(value: Any, field: str) -> bool:
    """Accept JSON booleans and the usual form spellings of true/false."""

    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValidationError(f"{field} must be true or false", field=field, value=value)
