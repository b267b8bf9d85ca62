"""Utility functions for the installment ledger.

This module provides the calendar helpers the ledger relies on: normalizing
any incoming date representation to a plain calendar date in the business
timezone, counting whole days between two dates, adding months and
formatting dates and amounts for display. It also holds the boundary parsers
that turn loosely typed user input (form fields, JSON payloads) into strictly
typed values before they reach the calculations.

Dates are represented as ``datetime.date``. A ``date`` carries no time of day
and no UTC offset, so arithmetic on it cannot drift across daylight-saving or
offset changes once the calendar day has been resolved in the business
timezone.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Asia/Karachi"

_DMY_RE = re.compile(r"^(\d{2})[/-](\d{2})[/-](\d{4})$")
_YMD_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

DateLike = Union[date, datetime, str, None]


def business_zone(tz: Union[str, ZoneInfo, None] = None) -> ZoneInfo:
    """Return the ``ZoneInfo`` for ``tz`` (defaults to the business timezone)."""
    if isinstance(tz, ZoneInfo):
        return tz
    return ZoneInfo(tz or DEFAULT_TIMEZONE)


def _calendar_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _from_datetime(value: datetime, zone: ZoneInfo) -> date:
    # Naive datetimes are business-local wall time already.
    if value.tzinfo is None:
        return value.date()
    return value.astimezone(zone).date()


def to_date_only(value: Any, tz: Union[str, ZoneInfo, None] = None) -> Optional[date]:
    """Normalize ``value`` to a calendar date in the business timezone.

    Parameters
    ----------
    value:
        A ``date``, a ``datetime`` or a string in one of the accepted forms:
        ``DD/MM/YYYY`` (or ``DD-MM-YYYY``) optionally followed by a
        time, ``YYYY-MM-DD`` or an ISO datetime such as
        ``2025-09-24T19:30:00Z``.
    tz:
        Timezone name or ``ZoneInfo`` used to resolve aware datetimes.

    Returns
    -------
    date or None
        The calendar date, or ``None`` when the value is empty or cannot be
        parsed. Callers treat ``None`` as "no date known"; it is never an
        error.
    """
    if value is None or value == "":
        return None
    zone = business_zone(tz)

    if isinstance(value, datetime):
        return _from_datetime(value, zone)
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    raw = value.strip()
    if not raw:
        return None

    # a trailing time of day after DD/MM/YYYY is ignored
    match = _DMY_RE.match(raw[:10])
    if match:
        day, month, year = (int(g) for g in match.groups())
        return _calendar_date(year, month, day)

    match = _YMD_RE.match(raw)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return _calendar_date(year, month, day)

    if "T" in raw or " " in raw:
        iso = raw[:-1] + "+00:00" if raw.endswith(("Z", "z")) else raw
        try:
            parsed = datetime.fromisoformat(iso)
        except ValueError:
            return None
        return _from_datetime(parsed, zone)

    return None


def today_in(tz: Union[str, ZoneInfo, None] = None, now: Optional[datetime] = None) -> date:
    """Return today's calendar date in the business timezone.

    ``now`` may be passed to pin the instant (it must be timezone-aware);
    otherwise the current UTC time is used.
    """
    instant = now or datetime.now(timezone.utc)
    return instant.astimezone(business_zone(tz)).date()


def day_difference(start: Optional[date], end: Optional[date]) -> int:
    """Return the whole number of days from ``start`` to ``end``.

    The result is clamped at zero: an ``end`` before ``start`` yields 0, as
    does an unknown date on either side.
    """
    if start is None or end is None:
        return 0
    return max(0, (end - start).days)


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def format_dmy(value: Optional[date]) -> str:
    """Format a date as ``D-M-YYYY`` for display (empty string if unknown)."""
    if value is None:
        return ""
    return f"{value.day}-{value.month}-{value.year}"


def format_currency(amount: int, prefix: str = "Rs. ") -> str:
    """Format a whole-unit amount with thousands separators, e.g. ``Rs. 12,500``."""
    return f"{prefix}{amount:,}"


def round_half_up(value: Decimal) -> int:
    """Round a ``Decimal`` to the nearest integer, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _clean_number(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value!r}")
    cleaned = str(value).strip().replace(",", "")
    return cleaned or None


def parse_amount(value: Any, default: int = 0) -> int:
    """Parse a currency amount into whole units.

    Empty input (``None`` or a blank string) yields ``default``. Commas are
    ignored and fractional input is rounded half-up. Anything else that is
    not a number raises ``ValueError``.
    """
    cleaned = _clean_number(value)
    if cleaned is None:
        return default
    try:
        number = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid numeric value: {value!r}") from exc
    if not number.is_finite():
        raise ValueError(f"Invalid numeric value: {value!r}")
    return round_half_up(number)


def parse_percent(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Parse a percentage such as ``"12.5"`` or ``"12.5%"`` into a ``Decimal``."""
    cleaned = _clean_number(value)
    if cleaned is None:
        return default
    if cleaned.endswith("%"):
        cleaned = cleaned[:-1]
    try:
        number = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid percentage: {value!r}") from exc
    if not number.is_finite():
        raise ValueError(f"Invalid percentage: {value!r}")
    return number


def parse_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """Parse an integer field (ids, counts); empty input yields ``default``."""
    cleaned = _clean_number(value)
    if cleaned is None:
        return default
    try:
        return int(cleaned)
    except ValueError:
        try:
            number = Decimal(cleaned)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid integer value: {value!r}") from exc
        if not number.is_finite() or number != number.to_integral_value():
            raise ValueError(f"Invalid integer value: {value!r}")
        return int(number)
