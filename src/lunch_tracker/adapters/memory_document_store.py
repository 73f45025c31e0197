"""Process-local document store used for local runs."""

import copy
from dataclasses import dataclass, field
from uuid import uuid4

from lunch_tracker.domain.errors import StoreWriteError
from lunch_tracker.services.store import (
    BatchWrite,
    ChangeFeed,
    CollectionListener,
    Document,
    DocumentData,
    DocumentListener,
    DocumentStore,
    Unsubscribe,
    document_path,
    split_path,
)


@dataclass
class InMemoryDocumentStore(DocumentStore):
    """Document store keeping every collection in a dictionary."""

    collections: dict[str, dict[str, DocumentData]] = field(default_factory=dict)
    feed: ChangeFeed = field(default_factory=ChangeFeed)

    def read_once(self, path: str) -> Document | None:
        """Return a copy of the stored document."""
        collection, doc_id = split_path(path)
        data = self.collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return Document(id=doc_id, data=copy.deepcopy(data))

    def list_collection(self, collection: str) -> list[Document]:
        """Return copies of every document in insertion order."""
        return [
            Document(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self.collections.get(collection, {}).items()
        ]

    def write_merge(self, path: str, fields: DocumentData) -> None:
        """Shallow-merge fields into the document."""
        self._commit({path: self._merged(path, fields, merge=True)})

    def write_replace(self, path: str, document: DocumentData) -> None:
        """Replace the document."""
        self._commit({path: self._merged(path, document, merge=False)})

    def add(self, collection: str, document: DocumentData) -> str:
        """Create a document under a fresh id."""
        doc_id = uuid4().hex
        self.write_replace(document_path(collection, doc_id), document)
        return doc_id

    def delete(self, path: str) -> None:
        """Delete the document, if present."""
        collection, doc_id = split_path(path)
        self.collections.get(collection, {}).pop(doc_id, None)
        self.feed.publish_document(path, None)
        self.feed.publish_collection(collection, self.list_collection(collection))

    def batch(self, writes: list[BatchWrite]) -> None:
        """Apply all writes, or none when any target document is missing."""
        staged: dict[str, DocumentData] = {}
        for write in writes:
            if write.path not in staged and self.read_once(write.path) is None:
                raise StoreWriteError(f"No document to update at {write.path}")
            base = staged.get(write.path)
            staged[write.path] = (
                {**base, **copy.deepcopy(write.fields)}
                if base is not None and write.merge
                else self._merged(write.path, write.fields, merge=write.merge)
            )
        self._commit(staged)

    def subscribe_document(self, path: str, listener: DocumentListener) -> Unsubscribe:
        """Register a listener and deliver the current state immediately."""
        unsubscribe = self.feed.add_document_listener(path, listener)
        listener(self.read_once(path))
        return unsubscribe

    def subscribe_collection(
        self, collection: str, listener: CollectionListener
    ) -> Unsubscribe:
        """Register a listener and deliver the current state immediately."""
        unsubscribe = self.feed.add_collection_listener(collection, listener)
        listener(self.list_collection(collection))
        return unsubscribe

    def _merged(self, path: str, fields: DocumentData, merge: bool) -> DocumentData:
        current = self.read_once(path) if merge else None
        base = current.data if current is not None else {}
        return {**base, **copy.deepcopy(fields)}

    def _commit(self, staged: dict[str, DocumentData]) -> None:
        touched_collections: list[str] = []
        for path, data in staged.items():
            collection, doc_id = split_path(path)
            self.collections.setdefault(collection, {})[doc_id] = data
            if collection not in touched_collections:
                touched_collections.append(collection)
        for path in staged:
            self.feed.publish_document(path, self.read_once(path))
        for collection in touched_collections:
            self.feed.publish_collection(collection, self.list_collection(collection))
