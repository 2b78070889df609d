"""
Rare coin portfolio tracker.

Components:
- LocalCoinStore / RemoteCoinStore: the collection store behind a key-value slot
  or a MongoDB collection, with a change feed
- compute_snapshot: portfolio metrics from the coin set and the cash reserve
- PortfolioTracker: keeps the snapshot current as the collection changes

Usage:
    from coinfolio import CoinDraft, LocalCoinStore, MemoryKeyValueStore, PortfolioTracker

    store = LocalCoinStore(MemoryKeyValueStore())
    async with PortfolioTracker(store, cash_reserve=10_000) as tracker:
        await store.add(CoinDraft(name="1921 Morgan", purchase_price=100, current_value=150))
"""

from coinfolio.adapters.kv_store import FileKeyValueStore, MemoryKeyValueStore
from coinfolio.config.configs import AppConfig
from coinfolio.core.aggregator import compute_snapshot, sold_transactions
from coinfolio.core.factory import build_store
from coinfolio.core.local_store import LocalCoinStore
from coinfolio.core.remote_store import RemoteCoinStore
from coinfolio.core.store import BaseCoinStore, Subscription
from coinfolio.core.tracker import PortfolioTracker
from coinfolio.errors.errors import CoinfolioError, ConfigurationError, NotFound, StorageFault
from coinfolio.types.types import Coin, CoinDraft, PortfolioSnapshot, SoldTransaction

__all__ = [
    # Stores
    "BaseCoinStore",
    "LocalCoinStore",
    "RemoteCoinStore",
    "Subscription",
    "build_store",
    "FileKeyValueStore",
    "MemoryKeyValueStore",
    # Aggregation
    "PortfolioTracker",
    "compute_snapshot",
    "sold_transactions",
    # Types
    "AppConfig",
    "Coin",
    "CoinDraft",
    "PortfolioSnapshot",
    "SoldTransaction",
    # Errors
    "CoinfolioError",
    "StorageFault",
    "NotFound",
    "ConfigurationError",
]
