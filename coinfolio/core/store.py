"""
Collection Store base.

Behaviour shared by every backend strategy:
    - list_all() degrades to [] on any storage fault (logged, never raised)
    - add/update/delete propagate faults unchanged, no retries
    - the sell transition is an update built from the stored record
    - subscriptions are scoped resources: unsubscribe() and close() release them

Subclasses provide the raw fetch, the three mutations and the change feed
(_open_feed / _close_feed).
"""

from __future__ import annotations

import inspect
import itertools
import logging
from abc import ABC, abstractmethod
from datetime import date
from types import TracebackType
from typing import Optional, Type

from coinfolio.adapters.clock import SystemClock
from coinfolio.errors.errors import CoinfolioError, NotFound
from coinfolio.ports.clock import Clock
from coinfolio.ports.coin_store import ChangeCallback
from coinfolio.types.types import Coin, CoinDraft

logger = logging.getLogger(__name__)

_SUB_IDS = itertools.count(1)


class Subscription:
    """
    Handle returned by subscribe(). Used only for cancellation; cancelling twice is a no-op.
    """

    def __init__(self, store: "BaseCoinStore", callback: ChangeCallback) -> None:
        self.id = next(_SUB_IDS)
        self._store = store
        self._callback = callback
        self._active = True
        self.deliveries = 0

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._store._release(self)

    async def deliver(self, coins: list[Coin]) -> None:
        """Invoke the callback with a fresh copy of the collection. Callback errors are logged."""
        if not self._active:
            return
        self.deliveries += 1
        try:
            result = self._callback(list(coins))
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.error(
                "subscriber_callback_failed",
                extra={
                    "event": "subscriber_callback_failed",
                    "component": self._store.name,
                    "subscription": self.id,
                    "error": repr(exc),
                },
            )

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, active={self._active})"


class BaseCoinStore(ABC):
    def __init__(self, *, clock: Optional[Clock] = None, name: str = "store") -> None:
        self._clock: Clock = clock or SystemClock()
        self._name = name
        self._subscriptions: dict[int, Subscription] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    # --- Backend hooks ---

    @abstractmethod
    async def _fetch_all(self) -> list[Coin]:
        """Read the whole collection. Raises CoinfolioError on faults."""

    @abstractmethod
    async def add(self, draft: CoinDraft) -> Coin: ...

    @abstractmethod
    async def update(self, coin: Coin) -> Coin: ...

    @abstractmethod
    async def delete(self, coin_id: str) -> None: ...

    @abstractmethod
    def _open_feed(self, subscription: Subscription) -> None: ...

    @abstractmethod
    def _close_feed(self, subscription: Subscription) -> None: ...

    async def _drain(self) -> None:
        """Wait for released feeds to finish tearing down."""

    # --- Reads ---

    async def list_all(self) -> list[Coin]:
        try:
            return await self._fetch_all()
        except CoinfolioError as exc:
            logger.warning(
                "list_all_failed",
                extra={"event": "list_all_failed", "component": self._name, "error": str(exc)},
            )
            return []

    async def get(self, coin_id: str) -> Optional[Coin]:
        """Look a coin up by id. Unlike list_all, storage faults propagate."""
        for coin in await self._fetch_all():
            if coin.id == coin_id:
                return coin
        return None

    # --- Sell transition ---

    async def mark_sold(
        self, coin_id: str, sold_price: float, sold_date: Optional[date] = None
    ) -> Coin:
        coin = await self.get(coin_id)
        if coin is None:
            raise NotFound(coin_id, component=self._name)
        sold = coin.sold(sold_price, sold_date or self._clock.today())
        logger.info(
            "coin_marked_sold",
            extra={
                "event": "coin_marked_sold",
                "component": self._name,
                "coin_id": coin_id,
                "sold_price": sold.sold_price,
            },
        )
        return await self.update(sold)

    async def mark_unsold(self, coin_id: str) -> Coin:
        coin = await self.get(coin_id)
        if coin is None:
            raise NotFound(coin_id, component=self._name)
        return await self.update(coin.unsold())

    # --- Change feed ---

    def subscribe(self, on_change: ChangeCallback) -> Subscription:
        """
        Register ``on_change``. It receives the full collection once right away and then
        after every change. Must be called from a running event loop.
        """
        subscription = Subscription(self, on_change)
        self._subscriptions[subscription.id] = subscription
        try:
            self._open_feed(subscription)
        except Exception:
            self._subscriptions.pop(subscription.id, None)
            raise
        logger.debug(
            "subscribed",
            extra={"event": "subscribed", "component": self._name, "subscription": subscription.id},
        )
        return subscription

    def unsubscribe(self, handle: Optional[Subscription]) -> None:
        if handle is None:
            return
        handle.cancel()

    async def release(self, handle: Optional[Subscription]) -> None:
        """Unsubscribe and wait until the feed behind ``handle`` has shut down."""
        self.unsubscribe(handle)
        await self._drain()

    def _release(self, subscription: Subscription) -> None:
        if self._subscriptions.pop(subscription.id, None) is None:
            return
        self._close_feed(subscription)
        logger.debug(
            "unsubscribed",
            extra={
                "event": "unsubscribed",
                "component": self._name,
                "subscription": subscription.id,
            },
        )

    async def close(self) -> None:
        """Cancel every live subscription."""
        for subscription in list(self._subscriptions.values()):
            subscription.cancel()
        await self._drain()
        logger.info("store_closed", extra={"event": "store_closed", "component": self._name})

    async def __aenter__(self) -> "BaseCoinStore":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()

    # --- Helpers ---

    @staticmethod
    def _require_draft(draft: CoinDraft) -> CoinDraft:
        if isinstance(draft, Coin) or not isinstance(draft, CoinDraft):
            raise TypeError("add() takes a CoinDraft; identifiers are assigned by the backend")
        return draft
