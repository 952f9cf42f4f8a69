from __future__ import annotations

from datetime import datetime
from typing import Any

from tripflow.time_utils import parse_iso_datetime


# Maximum amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., memo already generated)."""


class NotFoundError(ValueError):
    """404-level missing record."""


def require_json_object(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def coerce_int(value: Any, key: str, *, required: bool = True, minimum: int | None = None) -> int | None:
    """
    Strict integer coercion for request fields.

    Rejects bools, floats, decimals and scientific notation the same way the
    model layer does for integer columns.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{key} is required")
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    else:
        raise ValidationError(f"{key} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    return result


def coerce_amount_cents(value: Any, key: str, *, required: bool = False) -> int | None:
    result = coerce_int(value, key, required=required, minimum=0)
    if result is not None and result > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} exceeds maximum of {MAX_AMOUNT_CENTS} cents")
    return result


def coerce_id_list(value: Any, key: str) -> list[int]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{key} must be a list of ids")
    return [coerce_int(v, f"{key}[{i}]", minimum=1) for i, v in enumerate(value)]


def coerce_datetime(value: Any, key: str, *, required: bool = True) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if value is None or value == "":
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an ISO-8601 string")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


def coerce_float(value: Any, key: str) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")
