"""CoinStore Port Interface.

Contract: Backend-agnostic async CRUD over the coin collection plus a change feed.
- list_all never raises; faults degrade to an empty list.
- add/update/delete surface StorageFault; update of an unknown id raises NotFound.
- delete is idempotent.
- subscribe delivers the full collection immediately and after every change.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol, Union

from coinfolio.types.types import Coin, CoinDraft

ChangeCallback = Callable[[list[Coin]], Union[None, Awaitable[None]]]


class SubscriptionHandle(Protocol):
    @property
    def active(self) -> bool: ...


class CoinStore(Protocol):
    async def list_all(self) -> list[Coin]: ...
    async def add(self, draft: CoinDraft) -> Coin: ...
    async def update(self, coin: Coin) -> Coin: ...
    async def delete(self, coin_id: str) -> None: ...
    def subscribe(self, on_change: ChangeCallback) -> SubscriptionHandle: ...
    def unsubscribe(self, handle: SubscriptionHandle) -> None: ...
