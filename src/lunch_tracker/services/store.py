"""Backing document store interface and change-stream plumbing."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)

DocumentData = dict[str, object]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class Document:
    """A stored document and its identifier within its collection."""

    id: str
    data: DocumentData


@dataclass(frozen=True)
class BatchWrite:
    """One document update inside an atomic batch."""

    path: str
    fields: DocumentData
    merge: bool = True


DocumentListener = Callable[[Document | None], None]
CollectionListener = Callable[[list[Document]], None]


class DocumentStore(Protocol):
    """Realtime document store shared by every client."""

    def read_once(self, path: str) -> Document | None:
        """Return the document at a path, or None when it does not exist."""

    def list_collection(self, collection: str) -> list[Document]:
        """Return every document in a collection."""

    def write_merge(self, path: str, fields: DocumentData) -> None:
        """Shallow-merge fields into a document, creating it if needed."""

    def write_replace(self, path: str, document: DocumentData) -> None:
        """Replace a document wholesale."""

    def add(self, collection: str, document: DocumentData) -> str:
        """Create a document with a generated id and return the id."""

    def delete(self, path: str) -> None:
        """Delete a document."""

    def batch(self, writes: list[BatchWrite]) -> None:
        """Apply every write or none of them."""

    def subscribe_document(self, path: str, listener: DocumentListener) -> Unsubscribe:
        """Deliver the current and every later state of a document."""

    def subscribe_collection(
        self, collection: str, listener: CollectionListener
    ) -> Unsubscribe:
        """Deliver the current and every later state of a collection."""


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into collection and document id."""
    collection, _, doc_id = path.strip("/").partition("/")
    if not collection or not doc_id or "/" in doc_id:
        raise ValueError(f"Invalid document path: {path!r}")
    return collection, doc_id


def document_path(collection: str, doc_id: str) -> str:
    """Build a document path."""
    return f"{collection}/{doc_id}"


@dataclass
class ChangeFeed:
    """Registry of change listeners keyed by document path or collection."""

    document_listeners: dict[str, list[DocumentListener]] = field(
        default_factory=dict
    )
    collection_listeners: dict[str, list[CollectionListener]] = field(
        default_factory=dict
    )

    def add_document_listener(
        self, path: str, listener: DocumentListener
    ) -> Unsubscribe:
        """Register a document listener and return its cancel handle."""
        return _register(self.document_listeners, path, listener)

    def add_collection_listener(
        self, collection: str, listener: CollectionListener
    ) -> Unsubscribe:
        """Register a collection listener and return its cancel handle."""
        return _register(self.collection_listeners, collection, listener)

    def watched_documents(self) -> list[str]:
        return [path for path, items in self.document_listeners.items() if items]

    def watched_collections(self) -> list[str]:
        return [name for name, items in self.collection_listeners.items() if items]

    def publish_document(self, path: str, document: Document | None) -> None:
        """Notify listeners of a document's new state."""
        for listener in list(self.document_listeners.get(path, [])):
            _deliver(listener, document)

    def publish_collection(self, collection: str, documents: list[Document]) -> None:
        """Notify listeners of a collection's new state."""
        for listener in list(self.collection_listeners.get(collection, [])):
            _deliver(listener, documents)


def _register(registry: dict[str, list], key: str, listener: Callable) -> Unsubscribe:
    registry.setdefault(key, []).append(listener)

    def unsubscribe() -> None:
        listeners = registry.get(key, [])
        if listener in listeners:
            listeners.remove(listener)

    return unsubscribe


def _deliver(listener: Callable, payload: object) -> None:
    # A failing listener does not stop delivery to the rest.
    try:
        listener(payload)
    except Exception:
        logger.exception("Change listener failed")
