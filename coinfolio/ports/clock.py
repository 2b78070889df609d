"""Clock Port Interface.

Contract: Provides the current calendar date (UTC) for default acquisition and sale dates.
"""

from __future__ import annotations

from datetime import date
from typing import Protocol


class Clock(Protocol):
    def today(self) -> date:
        """Return the current UTC calendar date."""
        ...
