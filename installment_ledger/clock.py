"""Injectable "today" for the ledger.

Surcharge cycles depend on the current calendar date in the business
timezone. Services receive a clock instead of calling ``date.today()`` so
saves can be replayed and tested against a pinned date.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

from .utils import business_zone


class Clock(ABC):
    """Source of the current business date."""

    @abstractmethod
    def today(self) -> date:
        """Return today's calendar date in the business timezone."""
        ...


class SystemClock(Clock):
    """Clock backed by the system time, resolved in the business timezone."""

    def __init__(self, tz: Union[str, ZoneInfo, None] = None) -> None:
        self._zone = business_zone(tz)

    @property
    def zone(self) -> ZoneInfo:
        return self._zone

    def today(self) -> date:
        return datetime.now(timezone.utc).astimezone(self._zone).date()


class FixedClock(Clock):
    """Clock pinned to a given date; ``advance`` moves it forward."""

    def __init__(self, fixed: Optional[date] = None) -> None:
        self._today = fixed or date(2025, 1, 1)

    def today(self) -> date:
        return self._today

    def set_today(self, value: date) -> None:
        self._today = value

    def advance(self, days: int = 1) -> date:
        self._today = self._today + timedelta(days=days)
        return self._today
