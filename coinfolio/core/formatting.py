from __future__ import annotations

from math import isfinite

_COMPACT_UNITS = ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K"))


def format_currency(value: float, compact: bool = False) -> str:
    """
    USD formatting: ``$1,234.50``; compact notation keeps one decimal (``$50K``, ``$1.2M``).
    """
    if not isfinite(value):
        return "$-"
    sign = "-" if value < 0 else ""
    amount = abs(value)
    if compact:
        for threshold, suffix in _COMPACT_UNITS:
            if amount >= threshold:
                scaled = f"{amount / threshold:.1f}".rstrip("0").rstrip(".")
                return f"{sign}${scaled}{suffix}"
        scaled = f"{amount:.1f}".rstrip("0").rstrip(".")
        return f"{sign}${scaled}"
    return f"{sign}${amount:,.2f}"


def format_roi(value: float) -> str:
    return f"{value:+.2f}%"
