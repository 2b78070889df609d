from __future__ import annotations

import asyncio
import copy
import itertools
import threading
from datetime import date
from typing import Any, Callable, Optional

import pytest

from coinfolio.adapters.clock import FixedClock
from coinfolio.adapters.kv_store import MemoryKeyValueStore
from coinfolio.errors.errors import NotFound, StorageFault
from coinfolio.types.types import CoinDraft

TODAY = date(2024, 3, 15)


class FlakyKeyValueStore(MemoryKeyValueStore):
    """Memory slot whose reads and writes can be switched to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_reads = False
        self.fail_writes = False

    def get(self, key: str) -> Optional[str]:
        if self.fail_reads:
            raise StorageFault("slot unreadable", operation="get")
        return super().get(key)

    def set(self, key: str, text: str) -> None:
        if self.fail_writes:
            raise StorageFault("slot rejected write", operation="set")
        super().set(key, text)


class FakeDocumentCollection:
    """
    In-memory DocumentCollection. Watch callbacks fire on the thread that made the change,
    like a driver delivering from its own thread.
    """

    def __init__(self) -> None:
        self._docs: dict[str, dict[str, Any]] = {}
        self._watchers: dict[int, Callable[[list[tuple[str, dict[str, Any]]]], None]] = {}
        self._ids = itertools.count(1)
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()
        self.fail_with: Optional[Exception] = None
        self.calls: list[str] = []

    @property
    def raw(self) -> dict[str, dict[str, Any]]:
        return self._docs

    @property
    def watcher_count(self) -> int:
        return len(self._watchers)

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if self.fail_with is not None:
            raise self.fail_with

    def _snapshot(self) -> list[tuple[str, dict[str, Any]]]:
        with self._lock:
            return [(doc_id, copy.deepcopy(fields)) for doc_id, fields in self._docs.items()]

    def _notify(self) -> None:
        snapshot = self._snapshot()
        for callback in list(self._watchers.values()):
            callback(snapshot)

    def list_documents(self) -> list[tuple[str, dict[str, Any]]]:
        self._check("list")
        return self._snapshot()

    def add_document(self, fields: dict[str, Any]) -> str:
        self._check("add")
        with self._lock:
            doc_id = f"doc-{next(self._ids)}"
            self._docs[doc_id] = copy.deepcopy(fields)
        self._notify()
        return doc_id

    def update_document(self, doc_id: str, fields: dict[str, Any]) -> None:
        self._check("update")
        with self._lock:
            if doc_id not in self._docs:
                raise NotFound(doc_id, component="fake")
            self._docs[doc_id].update(copy.deepcopy(fields))
        self._notify()

    def delete_document(self, doc_id: str) -> None:
        self._check("delete")
        with self._lock:
            removed = self._docs.pop(doc_id, None)
        if removed is not None:
            self._notify()

    def watch(self, callback: Callable[[list[tuple[str, dict[str, Any]]]], None]):
        token = next(self._tokens)
        self._watchers[token] = callback
        callback(self._snapshot())

        def unwatch() -> None:
            self._watchers.pop(token, None)

        return unwatch


async def _eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate`` holds or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def eventually() -> Callable[..., Any]:
    return _eventually


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(TODAY)


@pytest.fixture
def kv() -> FlakyKeyValueStore:
    return FlakyKeyValueStore()


@pytest.fixture
def documents() -> FakeDocumentCollection:
    return FakeDocumentCollection()


@pytest.fixture
def morgan() -> CoinDraft:
    return CoinDraft(
        name="1921 Morgan",
        purchase_price=100,
        current_value=150,
        roi=50,
        is_sold=False,
        acquisition_date=date(2023, 6, 1),
        grade="MS-63",
        mint="Philadelphia",
        year=1921,
    )


@pytest.fixture
def peace_dollar() -> CoinDraft:
    return CoinDraft(
        name="1922 Peace Dollar",
        purchase_price=40,
        current_value=55,
        acquisition_date=date(2023, 1, 10),
    )
