"""Read-only views over a coin list: holdings, sold assets, search and ordering."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from coinfolio.types.types import Coin, SortDirection, SortField


def active_coins(coins: Iterable[Coin]) -> list[Coin]:
    return [coin for coin in coins if not coin.is_sold]


def sold_coins(coins: Iterable[Coin]) -> list[Coin]:
    return [coin for coin in coins if coin.is_sold]


def filter_coins(coins: Iterable[Coin], query: str | None) -> list[Coin]:
    """Case-insensitive substring match on the coin name. An empty query keeps everything."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(coins)
    return [coin for coin in coins if needle in coin.name.lower()]


def sort_coins(
    coins: Sequence[Coin],
    field: SortField | str = SortField.NAME,
    direction: SortDirection | str = SortDirection.ASC,
) -> list[Coin]:
    """Stable sort by ``field``. Names compare case-insensitively; missing values go last."""
    field = SortField(field)
    descending = SortDirection(direction) == SortDirection.DESC

    def key(coin: Coin) -> Any:
        value = getattr(coin, field.value)
        if isinstance(value, str):
            value = value.lower()
        return value

    present = [coin for coin in coins if key(coin) is not None]
    missing = [coin for coin in coins if key(coin) is None]
    return sorted(present, key=key, reverse=descending) + missing
