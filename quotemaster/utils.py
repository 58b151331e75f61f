"""
Utility functions shared across the app. This includes:
- parse_decimal / parse_optional_int: tolerant parsing of request and spreadsheet values.
- parse_period: validate the YYYY-MM-DD period key.
- normalize_code: canonical form for case-insensitive code lookups.
- request_payload / parse_bool: request body helpers for the JSON blueprints.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .errors import ValidationError

PERIOD_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_decimal(value: Any) -> Optional[Decimal]:
    """
    Parse a Decimal from user input.

    Accepts numbers, and strings using '.' or ',' as decimal separator.
    Returns None for empty/invalid values, NaN and infinities included.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    else:
        s = str(value).strip().replace(" ", "").replace(",", ".")
        if not s:
            return None
        try:
            number = Decimal(s)
        except (InvalidOperation, ValueError):
            return None
    return number if number.is_finite() else None


def parse_optional_int(value: Any) -> Optional[int]:
    """Parse optional int from string; returns None for empty/invalid."""
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_period(value: Any, field: str = "period") -> str:
    """
    Normalize a period key to 'YYYY-MM-DD'.

    Periods are opaque keys, but they must still be real calendar dates.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    s = str(value or "").strip()
    if not PERIOD_RE.match(s):
        raise ValidationError(f"Invalid period '{s}', expected YYYY-MM-DD", field=field)
    try:
        datetime.strptime(s, "%Y-%m-%d")
    except ValueError:
        raise ValidationError(f"Invalid period '{s}', not a calendar date", field=field)
    return s


def normalize_code(value: Any) -> str:
    return str(value or "").strip().lower()


def request_payload() -> dict:
    """JSON body when present, otherwise the submitted form fields."""
    from flask import request

    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")
