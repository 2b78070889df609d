"""
Remote strategy: one document per coin in a document collection.

The document id is the coin id and is not stored inside the fields. Blocking
collection calls run on worker threads. The change feed is push based: the
collection's watch() callback may fire on any thread, so each delivery is
handed to the owning event loop and drained in order by a per-subscription task.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from coinfolio.core.codec import coin_to_document, document_to_coin
from coinfolio.core.store import BaseCoinStore, Subscription
from coinfolio.errors.errors import CoinfolioError
from coinfolio.ports.clock import Clock
from coinfolio.ports.document_collection import Document, DocumentCollection, Unwatch
from coinfolio.types.types import Coin, CoinDraft

logger = logging.getLogger(__name__)


class _Feed:
    def __init__(self) -> None:
        self.queue: asyncio.Queue[list[Document]] = asyncio.Queue()
        self.task: Optional[asyncio.Task[None]] = None
        self.unwatch: Optional[Unwatch] = None


class RemoteCoinStore(BaseCoinStore):
    def __init__(
        self,
        collection: DocumentCollection,
        *,
        clock: Optional[Clock] = None,
        name: str = "remote",
    ) -> None:
        super().__init__(clock=clock, name=name)
        self._collection = collection
        self._feeds: dict[int, _Feed] = {}
        self._released: list[asyncio.Task[None]] = []

    # --- Reads ---

    async def _fetch_all(self) -> list[Coin]:
        docs = await asyncio.to_thread(self._collection.list_documents)
        return [document_to_coin(doc_id, fields) for doc_id, fields in docs]

    # --- Mutations ---

    async def add(self, draft: CoinDraft) -> Coin:
        draft = self._require_draft(draft)
        doc_id = await asyncio.to_thread(self._collection.add_document, coin_to_document(draft))
        coin = draft.with_id(doc_id)
        logger.info(
            "coin_added",
            extra={"event": "coin_added", "component": self.name, "coin_id": coin.id},
        )
        return coin

    async def update(self, coin: Coin) -> Coin:
        # Every field is written, including explicit None for a cleared sale.
        await asyncio.to_thread(self._collection.update_document, coin.id, coin_to_document(coin))
        logger.debug(
            "coin_updated",
            extra={"event": "coin_updated", "component": self.name, "coin_id": coin.id},
        )
        return coin

    async def delete(self, coin_id: str) -> None:
        await asyncio.to_thread(self._collection.delete_document, coin_id)
        logger.info(
            "coin_deleted",
            extra={"event": "coin_deleted", "component": self.name, "coin_id": coin_id},
        )

    # --- Change feed ---

    def _open_feed(self, subscription: Subscription) -> None:
        loop = asyncio.get_running_loop()
        feed = _Feed()
        feed.task = loop.create_task(
            self._run_feed(subscription, feed, self._make_listener(loop, feed)),
            name=f"{self.name}_feed_{subscription.id}",
        )
        self._feeds[subscription.id] = feed

    def _make_listener(
        self, loop: asyncio.AbstractEventLoop, feed: _Feed
    ) -> Callable[[list[Document]], None]:
        def listener(docs: list[Document]) -> None:
            try:
                loop.call_soon_threadsafe(feed.queue.put_nowait, list(docs))
            except RuntimeError:
                # Event loop already closed; nothing left to notify.
                logger.debug("feed_after_loop_closed", extra={"event": "feed_after_loop_closed"})

        return listener

    def _close_feed(self, subscription: Subscription) -> None:
        feed = self._feeds.pop(subscription.id, None)
        if feed is None or feed.task is None:
            return
        # The feed task stops the watch on a worker thread as it unwinds.
        if feed.task is not asyncio.current_task():
            feed.task.cancel()
        self._released = [task for task in self._released if not task.done()]
        self._released.append(feed.task)

    async def _drain(self) -> None:
        released, self._released = self._released, []
        current = asyncio.current_task()
        pending = [task for task in released if task is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run_feed(
        self,
        subscription: Subscription,
        feed: _Feed,
        listener: Callable[[list[Document]], None],
    ) -> None:
        """
        Open the watch off the event loop, drain deliveries, then stop the watch off
        the loop again. A watch that cannot be opened ends the subscription.
        """
        opening = asyncio.ensure_future(asyncio.to_thread(self._collection.watch, listener))
        try:
            try:
                feed.unwatch = await asyncio.shield(opening)
            except asyncio.CancelledError:
                # The worker thread may still finish opening; keep its handle to stop it.
                feed.unwatch = await _settled(opening)
                raise
            except Exception as exc:
                logger.error(
                    "feed_open_failed",
                    extra={
                        "event": "feed_open_failed",
                        "component": self.name,
                        "subscription": subscription.id,
                        "error": str(exc),
                    },
                )
                subscription.cancel()
                return
            await self._drain_feed(subscription, feed)
        finally:
            if feed.unwatch is not None:
                await asyncio.to_thread(feed.unwatch)

    async def _drain_feed(self, subscription: Subscription, feed: _Feed) -> None:
        try:
            while subscription.active:
                docs = await feed.queue.get()
                try:
                    coins = [document_to_coin(doc_id, fields) for doc_id, fields in docs]
                except CoinfolioError as exc:
                    logger.error(
                        "feed_decode_failed",
                        extra={
                            "event": "feed_decode_failed",
                            "component": self.name,
                            "error": str(exc),
                        },
                    )
                    continue
                await subscription.deliver(coins)
        except asyncio.CancelledError:
            logger.debug(
                "feed_cancelled",
                extra={"event": "feed_cancelled", "subscription": subscription.id},
            )
            raise


async def _settled(opening: "asyncio.Future[Unwatch]") -> Optional[Unwatch]:
    try:
        return await opening
    except Exception as exc:
        logger.warning(
            "feed_open_abandoned", extra={"event": "feed_open_abandoned", "error": str(exc)}
        )
        return None
