"""
Local strategy: the whole collection lives in one key-value slot.

Every mutation is a read-modify-write of the full JSON array. Two overlapping
mutations from the same process can race and the later write wins; callers
must not assume ordering between concurrent updates.

Change detection:
    - each subscription runs a poll loop that re-reads the slot every
      ``poll_interval_s`` and delivers only when the text differs byte-for-byte
      from the last text it delivered
    - writes made through this store wake every poll loop at once, so
      same-process changes are not held back by the interval
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from coinfolio.core.codec import decode_coins, encode_coins
from coinfolio.core.store import BaseCoinStore, Subscription
from coinfolio.errors.errors import CoinfolioError, NotFound
from coinfolio.ports.clock import Clock
from coinfolio.ports.key_value import KeyValueStore
from coinfolio.types.types import Coin, CoinDraft

logger = logging.getLogger(__name__)

DEFAULT_KEY = "coins"
DEFAULT_POLL_INTERVAL_S = 2.0


class _PollState:
    def __init__(self) -> None:
        self.wake = asyncio.Event()
        self.task: Optional[asyncio.Task[None]] = None
        self.seen = False
        self.last_text: Optional[str] = None


class LocalCoinStore(BaseCoinStore):
    def __init__(
        self,
        kv: KeyValueStore,
        *,
        key: str = DEFAULT_KEY,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        clock: Optional[Clock] = None,
        name: str = "local",
    ) -> None:
        if poll_interval_s <= 0:
            raise ValueError("poll_interval_s must be positive")
        super().__init__(clock=clock, name=name)
        self._kv = kv
        self._key = key
        self._poll_interval_s = poll_interval_s

        # In-memory mirror of the slot, owned by this instance.
        self._coins: list[Coin] = []
        self._last_id = 0
        self._polls: dict[int, _PollState] = {}
        self._released: list[asyncio.Task[None]] = []

    @property
    def key(self) -> str:
        return self._key

    @property
    def poll_interval_s(self) -> float:
        return self._poll_interval_s

    @property
    def cached(self) -> tuple[Coin, ...]:
        """The collection as of the last read or write through this store."""
        return tuple(self._coins)

    # --- Reads ---

    def _read(self) -> list[Coin]:
        coins = decode_coins(self._kv.get(self._key))
        self._coins = list(coins)
        return coins

    async def _fetch_all(self) -> list[Coin]:
        return self._read()

    # --- Mutations ---

    def _write(self, coins: list[Coin]) -> None:
        self._kv.set(self._key, encode_coins(coins))
        self._coins = list(coins)
        for poll in self._polls.values():
            poll.wake.set()

    def _next_id(self) -> str:
        candidate = time.time_ns()
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)

    async def add(self, draft: CoinDraft) -> Coin:
        draft = self._require_draft(draft)
        coins = self._read()
        coin = draft.with_id(self._next_id())
        coins.append(coin)
        self._write(coins)
        logger.info(
            "coin_added",
            extra={"event": "coin_added", "component": self.name, "coin_id": coin.id},
        )
        return coin

    async def update(self, coin: Coin) -> Coin:
        coins = self._read()
        for index, existing in enumerate(coins):
            if existing.id == coin.id:
                coins[index] = coin
                break
        else:
            raise NotFound(coin.id, component=self.name)
        self._write(coins)
        logger.debug(
            "coin_updated",
            extra={"event": "coin_updated", "component": self.name, "coin_id": coin.id},
        )
        return coin

    async def delete(self, coin_id: str) -> None:
        coins = self._read()
        remaining = [coin for coin in coins if coin.id != coin_id]
        if len(remaining) == len(coins):
            return
        self._write(remaining)
        logger.info(
            "coin_deleted",
            extra={"event": "coin_deleted", "component": self.name, "coin_id": coin_id},
        )

    # --- Change feed ---

    def _open_feed(self, subscription: Subscription) -> None:
        poll = _PollState()
        poll.task = asyncio.get_running_loop().create_task(
            self._poll_loop(subscription, poll), name=f"{self.name}_poll_{subscription.id}"
        )
        self._polls[subscription.id] = poll

    def _close_feed(self, subscription: Subscription) -> None:
        poll = self._polls.pop(subscription.id, None)
        if poll is None or poll.task is None:
            return
        if poll.task is not asyncio.current_task():
            poll.task.cancel()
        self._released = [task for task in self._released if not task.done()]
        self._released.append(poll.task)

    async def _drain(self) -> None:
        released, self._released = self._released, []
        current = asyncio.current_task()
        pending = [task for task in released if task is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _poll_loop(self, subscription: Subscription, poll: _PollState) -> None:
        try:
            while subscription.active:
                poll.wake.clear()
                try:
                    await self._check(subscription, poll)
                except Exception as exc:
                    # The feed outlives a bad read; the next tick tries again.
                    logger.error(
                        "poll_check_failed",
                        extra={
                            "event": "poll_check_failed",
                            "component": self.name,
                            "subscription": subscription.id,
                            "error": repr(exc),
                        },
                    )
                try:
                    await asyncio.wait_for(poll.wake.wait(), timeout=self._poll_interval_s)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            logger.debug(
                "poll_loop_cancelled",
                extra={"event": "poll_loop_cancelled", "subscription": subscription.id},
            )
            raise

    async def _check(self, subscription: Subscription, poll: _PollState) -> None:
        try:
            text = self._kv.get(self._key)
        except CoinfolioError as exc:
            logger.warning(
                "poll_read_failed",
                extra={"event": "poll_read_failed", "component": self.name, "error": str(exc)},
            )
            return

        if poll.seen and text == poll.last_text:
            return
        poll.seen = True
        poll.last_text = text

        try:
            coins = decode_coins(text)
        except CoinfolioError as exc:
            logger.warning(
                "poll_decode_failed",
                extra={"event": "poll_decode_failed", "component": self.name, "error": str(exc)},
            )
            return
        await subscription.deliver(coins)
