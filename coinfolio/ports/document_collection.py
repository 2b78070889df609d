"""DocumentCollection Port Interface.

Contract: a remote collection of documents keyed by a backend-assigned id.
Calls may block; callers run them off the event loop.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

Document = tuple[str, dict[str, Any]]
Unwatch = Callable[[], None]


class DocumentCollection(Protocol):
    def list_documents(self) -> list[Document]:
        """Return every document as (id, fields)."""
        ...

    def add_document(self, fields: dict[str, Any]) -> str:
        """Store a new document and return its assigned id."""
        ...

    def update_document(self, doc_id: str, fields: dict[str, Any]) -> None:
        """Overwrite the given fields. Raises NotFound when doc_id is unknown."""
        ...

    def delete_document(self, doc_id: str) -> None:
        """Remove a document. Unknown ids are ignored."""
        ...

    def watch(self, callback: Callable[[list[Document]], None]) -> Unwatch:
        """
        Push the full document list to ``callback`` now and after every change.
        The callback may be invoked from another thread. Returns a function that
        stops the feed.
        """
        ...
