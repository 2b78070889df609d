"""
MongoDB document collection adapter.

Implements the DocumentCollection port on top of pymongo. The change feed uses a
MongoDB change stream (requires a replica set or sharded cluster) consumed on a
background thread; every change triggers a full re-list that is pushed to the
watcher callback.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from coinfolio.errors.errors import NotFound, StorageFault
from coinfolio.ports.document_collection import Document, Unwatch

logger = logging.getLogger(__name__)


def to_object_id(doc_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(doc_id)
    except (InvalidId, TypeError):
        return None


class MongoDocumentCollection:
    def __init__(self, collection: Collection, *, name: str = "mongo") -> None:
        self._collection = collection
        self._name = name

    @classmethod
    def connect(
        cls,
        uri: str,
        database: str,
        collection: str,
        *,
        timeout_ms: int = 5000,
    ) -> "MongoDocumentCollection":
        """Open a client and bind to ``database.collection``. The client connects lazily."""
        client: MongoClient = MongoClient(uri, serverSelectionTimeoutMS=timeout_ms, tz_aware=True)
        return cls(client[database][collection], name=f"mongo:{database}.{collection}")

    # --- CRUD ---

    def list_documents(self) -> list[Document]:
        try:
            docs = list(self._collection.find())
        except PyMongoError as exc:
            raise StorageFault(
                "Listing documents failed", operation="list", component=self._name
            ) from exc
        return [(str(doc.pop("_id")), doc) for doc in docs]

    def add_document(self, fields: dict[str, Any]) -> str:
        try:
            result = self._collection.insert_one(dict(fields))
        except PyMongoError as exc:
            raise StorageFault("Insert rejected", operation="add", component=self._name) from exc
        return str(result.inserted_id)

    def update_document(self, doc_id: str, fields: dict[str, Any]) -> None:
        oid = to_object_id(doc_id)
        if oid is None:
            raise NotFound(doc_id, component=self._name)
        try:
            result = self._collection.update_one({"_id": oid}, {"$set": dict(fields)})
        except PyMongoError as exc:
            raise StorageFault(
                "Update rejected", operation="update", component=self._name
            ) from exc
        if result.matched_count == 0:
            raise NotFound(doc_id, component=self._name)

    def delete_document(self, doc_id: str) -> None:
        oid = to_object_id(doc_id)
        if oid is None:
            return
        try:
            self._collection.delete_one({"_id": oid})
        except PyMongoError as exc:
            raise StorageFault(
                "Delete rejected", operation="delete", component=self._name
            ) from exc

    # --- Change feed ---

    def watch(self, callback: Callable[[list[Document]], None]) -> Unwatch:
        watcher = _ChangeStreamWatcher(self, callback)
        watcher.start()
        return watcher.stop


class _ChangeStreamWatcher:
    """
    Bridges a blocking change stream to a callback.
    The stream is opened before the initial listing so no change between the two is lost.
    """

    _MAX_AWAIT_MS = 500
    _OPEN_TIMEOUT_S = 10.0

    def __init__(
        self,
        source: MongoDocumentCollection,
        callback: Callable[[list[Document]], None],
    ) -> None:
        self._source = source
        self._callback = callback
        self._stop_event = threading.Event()
        self._ready = threading.Event()
        self._error: Optional[BaseException] = None
        self._thread = threading.Thread(
            target=self._run, daemon=True, name=f"ChangeStream[{source._name}]"
        )

    def start(self) -> None:
        self._thread.start()
        if not self._ready.wait(timeout=self._OPEN_TIMEOUT_S):
            self._stop_event.set()
            raise StorageFault(
                "Change stream did not open in time",
                operation="watch",
                component=self._source._name,
            )
        if self._error is not None:
            raise StorageFault(
                "Opening change stream failed", operation="watch", component=self._source._name
            ) from self._error

    def stop(self) -> None:
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=self._MAX_AWAIT_MS / 1000 * 4)
        logger.debug(
            "change_stream_stopped",
            extra={"event": "change_stream_stopped", "component": self._source._name},
        )

    def _run(self) -> None:
        try:
            stream = self._source._collection.watch(max_await_time_ms=self._MAX_AWAIT_MS)
        except PyMongoError as exc:
            self._error = exc
            self._ready.set()
            return

        self._ready.set()
        with stream:
            try:
                self._deliver()
                while not self._stop_event.is_set() and stream.alive:
                    change = stream.try_next()
                    if change is None:
                        continue
                    self._deliver()
            except (PyMongoError, StorageFault) as exc:
                # The feed ends here; the store stays usable for plain CRUD.
                logger.error(
                    "change_stream_failed",
                    extra={
                        "event": "change_stream_failed",
                        "component": self._source._name,
                        "error": str(exc),
                    },
                )

    def _deliver(self) -> None:
        if self._stop_event.is_set():
            return
        self._callback(self._source.list_documents())
