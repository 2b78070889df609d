"""
Portfolio Tracker.

Holds the user's cash reserve and a read-only copy of the coin collection fed by
the store subscription, and recomputes the portfolio snapshot whenever either
input changes.

Lifecycle:
    [idle] --start()--> [tracking] --await stop()--> [idle]

Usage:
    async with PortfolioTracker(store, cash_reserve=50_000) as tracker:
        tracker.on_update(render)
        await store.add(draft)
"""

from __future__ import annotations

import inspect
import logging
from math import isfinite
from types import TracebackType
from typing import Awaitable, Callable, Optional, Type, Union

from coinfolio.core.aggregator import compute_snapshot
from coinfolio.core.store import BaseCoinStore, Subscription
from coinfolio.types.types import Coin, PortfolioSnapshot

logger = logging.getLogger(__name__)

DEFAULT_CASH_RESERVE = 50_000.0

UpdateCallback = Callable[[PortfolioSnapshot, tuple[Coin, ...]], Union[None, Awaitable[None]]]


class PortfolioTracker:
    def __init__(self, store: BaseCoinStore, cash_reserve: float = DEFAULT_CASH_RESERVE) -> None:
        self._store = store
        self._cash_reserve = self._validate_cash(cash_reserve)
        self._coins: tuple[Coin, ...] = ()
        self._snapshot = compute_snapshot(self._coins, self._cash_reserve)
        self._subscription: Optional[Subscription] = None
        self._listeners: list[UpdateCallback] = []
        self._updates = 0

    # --- State ---

    @property
    def coins(self) -> tuple[Coin, ...]:
        return self._coins

    @property
    def cash_reserve(self) -> float:
        return self._cash_reserve

    @property
    def snapshot(self) -> PortfolioSnapshot:
        return self._snapshot

    @property
    def is_tracking(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def update_count(self) -> int:
        """Number of coin-set notifications received from the store."""
        return self._updates

    def on_update(self, callback: UpdateCallback) -> None:
        self._listeners.append(callback)

    # --- Lifecycle ---

    def start(self) -> None:
        if self.is_tracking:
            logger.warning("Tracker already running")
            return
        self._subscription = self._store.subscribe(self._on_coins)
        logger.info("tracker_started", extra={"event": "tracker_started"})

    async def stop(self) -> None:
        """Unsubscribe and wait for the store to shut the feed down."""
        if self._subscription is None:
            return
        subscription, self._subscription = self._subscription, None
        await self._store.release(subscription)
        logger.info("tracker_stopped", extra={"event": "tracker_stopped"})

    async def __aenter__(self) -> "PortfolioTracker":
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.stop()

    # --- Inputs ---

    async def refresh(self) -> PortfolioSnapshot:
        """Re-read the collection explicitly (the store degrades faults to an empty list)."""
        await self._apply(await self._store.list_all())
        return self._snapshot

    async def set_cash_reserve(self, amount: float) -> PortfolioSnapshot:
        self._cash_reserve = self._validate_cash(amount)
        await self._recompute()
        return self._snapshot

    async def _on_coins(self, coins: list[Coin]) -> None:
        self._updates += 1
        await self._apply(coins)

    async def _apply(self, coins: list[Coin]) -> None:
        self._coins = tuple(coins)
        await self._recompute()

    async def _recompute(self) -> None:
        self._snapshot = compute_snapshot(self._coins, self._cash_reserve)
        for listener in list(self._listeners):
            result = listener(self._snapshot, self._coins)
            if inspect.isawaitable(result):
                await result

    @staticmethod
    def _validate_cash(amount: float) -> float:
        value = float(amount)
        if not isfinite(value) or value < 0:
            raise ValueError(f"Cash reserve must be a non-negative amount (got {amount!r})")
        return value
