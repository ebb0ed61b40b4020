"""Flexible date parsing and expiration helpers.

Form fields and CSV imports accept loosely formatted dates. Everything
funnels through ``parse_flexible_date`` and is stored as ``YYYY-MM-DD``.

Supported input formats (checked in this order):
    2026-06-25   ISO
    6/25/2026    US, full year
    6/25/26      US, two-digit year (always 20YY)
    6/25         US, no year (soonest occurrence that is not in the past)
"""

import re
from datetime import date, datetime
from enum import Enum

from dateutil.parser import isoparse

_ISO_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_FULL_YEAR_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_SHORT_YEAR_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2})$")
_NO_YEAR_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})$")

# Feb 29 can be up to 8 years away (e.g. 2096 -> 2104).
_MAX_YEAR_LOOKAHEAD = 8

EXPIRATION_WARNING_DAYS = 7
EXPIRATION_SOON_DAYS = 30


class ExpirationStatus(str, Enum):
    """Display bucket for an expiration date relative to today."""

    expired = "expired"
    warning = "warning"
    soon = "soon"
    current = "current"
    unknown = "unknown"


def _safe_date(year: int, month: int, day: int) -> date | None:
    """Build a date, returning None instead of rolling invalid days over."""
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _resolve_yearless(month: int, day: int, today: date) -> date | None:
    """Return the first valid month/day on or after ``today``."""
    for offset in range(_MAX_YEAR_LOOKAHEAD + 1):
        candidate = _safe_date(today.year + offset, month, day)
        if candidate is not None and candidate >= today:
            return candidate
    return None


def parse_flexible_date(value: str | None, today: date | None = None) -> date | None:
    """Parse a loosely formatted date string.

    Never raises. Invalid calendar dates (``2026-02-30``, ``13/1``) return
    None rather than rolling over into the next month.

    Args:
        value: Raw user input.
        today: Reference date for year-less input. Defaults to the local date.

    Returns:
        The parsed date, or None when nothing matched.
    """
    if not value or not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    today = today or date.today()

    match = _ISO_PATTERN.match(text)
    if match:
        parsed = _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        if parsed:
            return parsed

    match = _FULL_YEAR_PATTERN.match(text)
    if match:
        parsed = _safe_date(int(match.group(3)), int(match.group(1)), int(match.group(2)))
        if parsed:
            return parsed

    match = _SHORT_YEAR_PATTERN.match(text)
    if match:
        parsed = _safe_date(2000 + int(match.group(3)), int(match.group(1)), int(match.group(2)))
        if parsed:
            return parsed

    match = _NO_YEAR_PATTERN.match(text)
    if match:
        parsed = _resolve_yearless(int(match.group(1)), int(match.group(2)), today)
        if parsed:
            return parsed

    return None


def format_date_for_db(value: date | datetime | None) -> str | None:
    """Format a date for storage as ``YYYY-MM-DD``."""
    if value is None:
        return None
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def _coerce_date(value: date | datetime | str | None) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return isoparse(value.strip()).date()
        except (ValueError, OverflowError):
            return None
    return None


def format_date(value: date | datetime | str | None) -> str:
    """Format a date for display, e.g. ``Jun 25, 2026``. Empty on bad input."""
    parsed = _coerce_date(value)
    if parsed is None:
        return ""
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


def days_until_expiration(
    value: date | datetime | str | None,
    today: date | None = None,
) -> int | None:
    """Days from today until ``value``; negative when already expired.

    Args:
        value: Expiration date (date object or stored ``YYYY-MM-DD`` string).
        today: Reference date. Defaults to the local date.

    Returns:
        Whole days remaining, or None when no usable date is set.
    """
    expires = _coerce_date(value)
    if expires is None:
        return None
    return (expires - (today or date.today())).days


def get_expiration_status(
    value: date | datetime | str | None,
    today: date | None = None,
) -> ExpirationStatus:
    """Bucket an expiration date for display."""
    days = days_until_expiration(value, today=today)
    if days is None:
        return ExpirationStatus.unknown
    if days < 0:
        return ExpirationStatus.expired
    if days <= EXPIRATION_WARNING_DAYS:
        return ExpirationStatus.warning
    if days <= EXPIRATION_SOON_DAYS:
        return ExpirationStatus.soon
    return ExpirationStatus.current
