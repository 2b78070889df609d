"""Backend selection. The strategy is chosen once from configuration and never mixed."""

from __future__ import annotations

import logging
from typing import Optional

from coinfolio.adapters.kv_store import FileKeyValueStore, MemoryKeyValueStore
from coinfolio.config.configs import AppConfig
from coinfolio.core.local_store import LocalCoinStore
from coinfolio.core.remote_store import RemoteCoinStore
from coinfolio.core.store import BaseCoinStore
from coinfolio.errors.errors import ConfigurationError
from coinfolio.ports.clock import Clock

logger = logging.getLogger(__name__)


def build_store(config: AppConfig, *, clock: Optional[Clock] = None) -> BaseCoinStore:
    if config.backend == "local":
        local = config.local
        kv = FileKeyValueStore(local.path) if local.path is not None else MemoryKeyValueStore()
        logger.info(
            "store_selected",
            extra={
                "event": "store_selected",
                "backend": "local",
                "path": str(local.path) if local.path else None,
            },
        )
        return LocalCoinStore(
            kv, key=local.key, poll_interval_s=local.poll_interval_s, clock=clock
        )

    if config.backend == "remote":
        # The MongoDB driver is only loaded for the remote backend.
        from coinfolio.adapters.mongo import MongoDocumentCollection

        remote = config.remote
        collection = MongoDocumentCollection.connect(
            remote.uri, remote.database, remote.collection, timeout_ms=remote.timeout_ms
        )
        logger.info(
            "store_selected",
            extra={
                "event": "store_selected",
                "backend": "remote",
                "database": remote.database,
                "collection": remote.collection,
            },
        )
        return RemoteCoinStore(collection, clock=clock)

    raise ConfigurationError("Unknown backend", field="backend", value=config.backend)
