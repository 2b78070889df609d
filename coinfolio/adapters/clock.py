from __future__ import annotations

from datetime import date, datetime, timezone


class SystemClock:
    """Clock adapter that returns the current UTC date."""

    def today(self) -> date:
        return datetime.now(timezone.utc).date()


class FixedClock:
    """Clock pinned to one date (fixtures and reproducible CLI runs)."""

    def __init__(self, day: date) -> None:
        self._day = day

    def today(self) -> date:
        return self._day
