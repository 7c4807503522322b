"""Reusable field validation helpers.

Each helper records a reason into an `errors` dict keyed by field name and
returns the normalized value (or None) so callers can validate inline without
raising. Turning a non-empty dict into an exception is the caller's decision.
"""
from __future__ import annotations
from datetime import date
from typing import Any, Dict, Iterable, Optional

Errors = Dict[str, str]


def validate_status(errors: Errors, field: str, value: Any, allowed: Iterable[str]) -> Optional[str]:
    """Record `<field> invalid` unless value is inside allowed."""
    if value not in tuple(allowed):
        errors[field] = f"{field} invalid"
        return None
    return value


def require_text(errors: Errors, field: str, value: Any, message: str) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        errors[field] = message
        return None
    return value.strip()


def positive_int(errors: Errors, field: str, value: Any) -> Optional[int]:
    # bool is an int subclass; True must not pass as quantity 1
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        errors[field] = 'Quantity must be greater than 0'
        return None
    return value


def non_negative_int(errors: Errors, field: str, value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        errors[field] = f"{field} must be a non-negative integer"
        return None
    return value


def iso_date(errors: Errors, field: str, value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        errors[field] = f"{field} must be an ISO date (YYYY-MM-DD)"
        return None

__all__ = ['Errors', 'validate_status', 'require_text', 'positive_int', 'non_negative_int', 'iso_date']
