"""
Portfolio aggregation.

Side-effect free calculators over a coin set and a cash reserve. Nothing is
cached: every call recomputes from its inputs.

Buckets:
    - active: coins still held (is_sold is False)
    - sold: coins with is_sold True and a sold price

Metrics:
    - active_value = sum(current_value) over active coins
    - sold_profit  = sum(sold_price - purchase_price) over sold coins
    - total_value  = cash + active_value + sold_profit
    - active_roi   = roi weighted by current_value over active coins
    - sold_roi     = realized roi weighted by purchase_price over sold coins
    - total_roi    = active_roi and sold_roi weighted by their bucket weights

Because each bucket average is weighted by the same per-coin weights that the
overall average uses, total_roi equals a single weighted average over every
coin (active weight current_value, sold weight purchase_price).
"""

from __future__ import annotations

from typing import Iterable, Sequence

from coinfolio.types.types import Coin, PortfolioSnapshot, SoldTransaction, derive_roi

# --- Per coin ---


def coin_roi(purchase_price: float, current_value: float) -> float:
    return derive_roi(purchase_price, current_value)


def realized_roi(coin: Coin) -> float:
    """ROI of a sold coin, (sold - purchase) / purchase * 100. Zero when unsold or free."""
    if not coin.is_sold or coin.sold_price is None or coin.purchase_price == 0:
        return 0.0
    return (coin.sold_price - coin.purchase_price) / coin.purchase_price * 100.0


def _weighted_average(pairs: Iterable[tuple[float, float]]) -> float:
    """Average of (value, weight) pairs; 0 when the total weight is 0."""
    numerator = 0.0
    total_weight = 0.0
    for value, weight in pairs:
        numerator += value * weight
        total_weight += weight
    if total_weight == 0:
        return 0.0
    return numerator / total_weight


# --- Buckets ---


def partition(coins: Iterable[Coin]) -> tuple[list[Coin], list[Coin]]:
    """Split into (active, sold). Sold coins without a sold price belong to neither."""
    active: list[Coin] = []
    sold: list[Coin] = []
    for coin in coins:
        if not coin.is_sold:
            active.append(coin)
        elif coin.sold_price is not None:
            sold.append(coin)
    return active, sold


def compute_snapshot(coins: Sequence[Coin], cash_reserve: float = 0.0) -> PortfolioSnapshot:
    active, sold = partition(coins)

    active_value = sum(coin.current_value for coin in active)
    sold_profit = sum(coin.sold_price - coin.purchase_price for coin in sold)  # type: ignore[operator]
    sold_cost = sum(coin.purchase_price for coin in sold)

    active_roi = _weighted_average((coin.roi, coin.current_value) for coin in active)
    sold_roi = _weighted_average((realized_roi(coin), coin.purchase_price) for coin in sold)
    total_roi = _weighted_average([(active_roi, active_value), (sold_roi, sold_cost)])

    return PortfolioSnapshot(
        cash_reserve=cash_reserve,
        active_value=active_value,
        sold_profit=sold_profit,
        total_value=cash_reserve + active_value + sold_profit,
        active_roi=active_roi,
        sold_roi=sold_roi,
        total_roi=total_roi,
        active_count=len(active),
        sold_count=len(sold),
    )


# --- Sold assets ---


def sold_transactions(coins: Iterable[Coin]) -> list[SoldTransaction]:
    """Realized sales, newest first."""
    _, sold = partition(coins)
    transactions = [
        SoldTransaction(
            coin_id=coin.id,
            coin_name=coin.name,
            sold_date=coin.sold_date,  # type: ignore[arg-type]
            purchase_price=coin.purchase_price,
            sold_price=coin.sold_price,  # type: ignore[arg-type]
            profit=coin.sold_price - coin.purchase_price,  # type: ignore[operator]
            profit_percentage=realized_roi(coin),
        )
        for coin in sold
    ]
    transactions.sort(key=lambda tx: (tx.sold_date, tx.coin_id), reverse=True)
    return transactions
