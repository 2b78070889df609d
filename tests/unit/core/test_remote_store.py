"""
Unit tests for RemoteCoinStore against an in-memory document collection.
"""

import asyncio
import threading
import time
from datetime import date

import pytest

from coinfolio.core.remote_store import RemoteCoinStore
from coinfolio.errors.errors import NotFound, StorageFault
from coinfolio.types.types import Coin


@pytest.fixture
def store(documents, clock):
    return RemoteCoinStore(documents, clock=clock)


class TestCrud:
    @pytest.mark.asyncio
    async def test_add_assigns_document_id(self, store, documents, morgan) -> None:
        coin = await store.add(morgan)
        assert coin.id == "doc-1"
        assert "id" not in documents.raw["doc-1"]
        assert [c.id for c in await store.list_all()] == ["doc-1"]

    @pytest.mark.asyncio
    async def test_sell_writes_full_record(self, store, documents, morgan) -> None:
        coin = await store.add(morgan)
        sold = await store.mark_sold(coin.id, 180)
        assert sold.sold_date == date(2024, 3, 15)
        assert documents.raw[coin.id]["isSold"] is True
        assert documents.raw[coin.id]["soldPrice"] == 180.0

    @pytest.mark.asyncio
    async def test_unsell_writes_explicit_none(self, store, documents, morgan) -> None:
        coin = await store.add(morgan)
        await store.mark_sold(coin.id, 180, date(2024, 1, 1))
        await store.mark_unsold(coin.id)
        raw = documents.raw[coin.id]
        assert raw["isSold"] is False
        assert "soldDate" in raw and raw["soldDate"] is None
        assert "soldPrice" in raw and raw["soldPrice"] is None

    @pytest.mark.asyncio
    async def test_update_unknown_raises_not_found(self, store, morgan) -> None:
        with pytest.raises(NotFound):
            await store.update(morgan.with_id("missing"))

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, store, documents, morgan) -> None:
        coin = await store.add(morgan)
        await store.delete(coin.id)
        await store.delete(coin.id)
        assert documents.raw == {}
        assert await store.list_all() == []

    @pytest.mark.asyncio
    async def test_list_all_degrades_on_fault(self, store, documents, morgan) -> None:
        await store.add(morgan)
        documents.fail_with = StorageFault("unreachable", operation="list")
        assert await store.list_all() == []

    @pytest.mark.asyncio
    async def test_mutations_propagate_faults(self, store, documents, morgan) -> None:
        documents.fail_with = StorageFault("rejected", operation="add")
        with pytest.raises(StorageFault):
            await store.add(morgan)
        with pytest.raises(StorageFault):
            await store.delete("doc-1")

    @pytest.mark.asyncio
    async def test_undecodable_document_degrades_list(self, store, documents) -> None:
        documents.raw["bad"] = {"name": "no prices"}
        assert await store.list_all() == []


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_initial_delivery_then_changes(self, store, morgan, eventually) -> None:
        seen: list[list[Coin]] = []
        async with store:
            store.subscribe(seen.append)
            await eventually(lambda: len(seen) == 1)
            assert seen[0] == []

            coin = await store.add(morgan)
            await eventually(lambda: len(seen) == 2)
            assert [c.id for c in seen[1]] == [coin.id]

            await store.delete(coin.id)
            await eventually(lambda: len(seen) == 3)
            assert seen[2] == []

    @pytest.mark.asyncio
    async def test_unsubscribe_detaches_watch(self, store, documents, morgan, eventually) -> None:
        seen: list[list[Coin]] = []
        async with store:
            handle = store.subscribe(seen.append)
            await eventually(lambda: len(seen) == 1)
            assert documents.watcher_count == 1

            await store.release(handle)
            store.unsubscribe(handle)
            assert documents.watcher_count == 0

            await store.add(morgan)
            await asyncio.sleep(0.05)
            assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_close_releases_every_watch(self, store, documents, eventually) -> None:
        for _ in range(3):
            store.subscribe(lambda coins: None)
        await eventually(lambda: documents.watcher_count == 3)

        await store.close()

        assert documents.watcher_count == 0
        assert store.subscription_count == 0

    @pytest.mark.asyncio
    async def test_subscribe_does_not_block_the_loop(self, store, documents, eventually) -> None:
        """A slow watch opens on a worker thread while the loop keeps running."""
        opened = threading.Event()
        original_watch = documents.watch

        def slow_watch(callback):
            opened.wait(timeout=2.0)
            return original_watch(callback)

        documents.watch = slow_watch
        seen: list[list[Coin]] = []
        async with store:
            handle = store.subscribe(seen.append)
            await asyncio.sleep(0.02)
            assert handle.active
            assert documents.watcher_count == 0

            opened.set()
            await eventually(lambda: len(seen) == 1)

    @pytest.mark.asyncio
    async def test_close_while_watch_opening_stops_it(self, store, documents) -> None:
        original_watch = documents.watch

        def slow_watch(callback):
            time.sleep(0.1)
            return original_watch(callback)

        documents.watch = slow_watch
        store.subscribe(lambda coins: None)
        await asyncio.sleep(0.01)

        await store.close()

        assert documents.watcher_count == 0

    @pytest.mark.asyncio
    async def test_watch_failure_ends_subscription(self, store, documents, eventually) -> None:
        def refuse(callback):
            raise StorageFault("no change stream", operation="watch")

        documents.watch = refuse
        seen: list[list[Coin]] = []
        async with store:
            handle = store.subscribe(seen.append)
            await eventually(lambda: not handle.active)
            assert store.subscription_count == 0
            assert seen == []

    @pytest.mark.asyncio
    async def test_undecodable_batch_skipped(self, store, documents, morgan, eventually) -> None:
        seen: list[list[Coin]] = []
        async with store:
            store.subscribe(seen.append)
            await eventually(lambda: len(seen) == 1)

            documents.raw["bad"] = {"name": "no prices"}
            await store.add(morgan)
            await asyncio.sleep(0.05)
            assert len(seen) == 1

            del documents.raw["bad"]
            await store.add(morgan)
            await eventually(lambda: len(seen) == 2)
            assert len(seen[1]) == 2
