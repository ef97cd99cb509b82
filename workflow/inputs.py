"""Parsing helpers for raw operation input (form-style mappings)."""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

MONEY_SCALE = 2
MONEY_QUANTUM = Decimal("0.01")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_TRUE_STRINGS = {"1", "true", "yes", "y", "on"}
_FALSE_STRINGS = {"0", "false", "no", "n", "off", ""}


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def clean_text(value: Any) -> str | None:
    """Trim whitespace; empty strings become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_decimal(value: Any) -> Decimal | None:
    """Return a finite Decimal, or None for malformed input.

    Floats go through ``str`` so 0.1 stays 0.1 instead of its binary expansion.
    Thousands separators are accepted ("1,250.00").
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, int):
        parsed = Decimal(value)
    elif isinstance(value, float):
        parsed = Decimal(str(value))
    else:
        raw_value = str(value).strip()
        if not raw_value:
            return None
        try:
            parsed = Decimal(raw_value.replace(",", ""))
        except (InvalidOperation, ValueError):
            return None
    if not parsed.is_finite():
        return None
    return parsed


def quantize_amount(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def amount_limit(precision: int) -> int:
    """Smallest magnitude that no longer fits a ``NUMERIC(precision, 2)`` column."""
    return 10 ** (precision - MONEY_SCALE)


def amount_error(value: Decimal, label: str, precision: int) -> str | None:
    """Describe why ``value`` cannot be stored as entered in a ``NUMERIC(precision, 2)`` column.

    The magnitude is checked first so huge exponents never reach ``quantize``.
    """
    limit = amount_limit(precision)
    if abs(value) >= limit:
        return f"{label} must be less than {limit:,}."
    if value != value.quantize(MONEY_QUANTUM):
        return f"{label} cannot have more than 2 decimal places."
    return None


def parse_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw_value = str(value).strip()
    if not raw_value:
        return None
    try:
        return datetime.strptime(raw_value, "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_bool(value: Any, default: bool) -> bool | None:
    """Checkbox-style boolean. Returns None when the value is not recognisable."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    normalized = str(value).strip().lower()
    if normalized in _TRUE_STRINGS:
        return True
    if normalized in _FALSE_STRINGS:
        return False
    return None


def is_valid_email(value: str | None) -> bool:
    return bool(value) and bool(_EMAIL_RE.match(value))


def parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
