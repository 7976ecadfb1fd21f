from __future__ import annotations

from typing import Optional

from ..core.exceptions import ValidationError


def require_month(value) -> int:
    try:
        month = int(value)
    except (TypeError, ValueError):
        raise ValidationError("month must be a number between 1 and 12")
    if not 1 <= month <= 12:
        raise ValidationError("month must be a number between 1 and 12")
    return month


def require_year(value) -> int:
    try:
        year = int(value)
    except (TypeError, ValueError):
        raise ValidationError("year must be a number")
    if not 1900 <= year <= 9999:
        raise ValidationError("year is out of range")
    return year


def optional_month_year(month, year) -> tuple[Optional[int], Optional[int]]:
    """Both or neither: a lone month or year is rejected."""
    has_month = month not in (None, "")
    has_year = year not in (None, "")
    if has_month != has_year:
        raise ValidationError("Both month and year are required for filtering")
    if not has_month:
        return None, None
    return require_month(month), require_year(year)


def require_id(value, field_name: str) -> int:
    try:
        ident = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} is invalid")
    if ident <= 0:
        raise ValidationError(f"{field_name} is invalid")
    return ident


def clean_notes(value: Optional[str]) -> str:
    return (value or "").strip()
