"""Supabase implementation of the realtime document store.

Documents live as rows of ``(collection, doc_id, data jsonb)`` in a single
table. Batches are sent to the ``commit_document_batch`` Postgres function so
that every row in a batch is updated inside one transaction, and merge writes
use ``merge_document`` so the merge happens in one statement; see
``supabase/migrations`` for both definitions. Change streams are produced by
polling watched paths, and by re-publishing this client's own writes.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from uuid import uuid4

import httpx
from supabase import Client, PostgrestAPIError

from lunch_tracker.domain.errors import StoreSubscriptionError, StoreWriteError
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

logger = logging.getLogger(__name__)

_STORE_ERRORS = (PostgrestAPIError, httpx.HTTPError)


@dataclass
class SupabaseDocumentStore(DocumentStore):
    """Supabase-backed document store."""

    client: Client
    table: str = "documents"
    batch_function: str = "commit_document_batch"
    merge_function: str = "merge_document"
    max_poll_failures: int = 5
    feed: ChangeFeed = field(default_factory=ChangeFeed)
    _snapshots: dict[str, object] = field(default_factory=dict)
    _poll_failures: int = 0

    def read_once(self, path: str) -> Document | None:
        """Return the document at a path, if present."""
        collection, doc_id = split_path(path)
        response = (
            self.client.table(self.table)
            .select("doc_id, data")
            .eq("collection", collection)
            .eq("doc_id", doc_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_document(response.data[0])

    def list_collection(self, collection: str) -> list[Document]:
        """Return every document in a collection ordered by creation."""
        response = (
            self.client.table(self.table)
            .select("doc_id, data")
            .eq("collection", collection)
            .order("created_at")
            .execute()
        )
        return [_parse_document(row) for row in response.data or []]

    def write_merge(self, path: str, fields: DocumentData) -> None:
        """Shallow-merge fields into the stored row on the database side."""
        collection, doc_id = split_path(path)
        try:
            self.client.rpc(
                self.merge_function,
                {
                    "target_collection": collection,
                    "target_doc_id": doc_id,
                    "patch": fields,
                },
            ).execute()
        except _STORE_ERRORS as exc:
            logger.warning("Merge write to %s failed: %s", path, exc)
            raise StoreWriteError(f"Failed to save {path}") from exc
        self._notify([path])

    def write_replace(self, path: str, document: DocumentData) -> None:
        """Upsert the full document."""
        try:
            self._upsert(path, document)
        except _STORE_ERRORS as exc:
            logger.warning("Replace write to %s failed: %s", path, exc)
            raise StoreWriteError(f"Failed to save {path}") from exc
        self._notify([path])

    def add(self, collection: str, document: DocumentData) -> str:
        """Insert a document under a generated id."""
        doc_id = uuid4().hex
        self.write_replace(document_path(collection, doc_id), document)
        return doc_id

    def delete(self, path: str) -> None:
        """Delete a document row."""
        collection, doc_id = split_path(path)
        try:
            (
                self.client.table(self.table)
                .delete()
                .eq("collection", collection)
                .eq("doc_id", doc_id)
                .execute()
            )
        except _STORE_ERRORS as exc:
            logger.warning("Delete of %s failed: %s", path, exc)
            raise StoreWriteError(f"Failed to delete {path}") from exc
        self._notify([path])

    def batch(self, writes: list[BatchWrite]) -> None:
        """Commit every write in one database transaction."""
        payload = []
        for write in writes:
            collection, doc_id = split_path(write.path)
            payload.append(
                {
                    "collection": collection,
                    "doc_id": doc_id,
                    "data": write.fields,
                    "merge": write.merge,
                }
            )
        try:
            self.client.rpc(self.batch_function, {"writes": payload}).execute()
        except _STORE_ERRORS as exc:
            logger.warning("Batch of %d writes failed: %s", len(writes), exc)
            raise StoreWriteError("Failed to commit batch") from exc
        self._notify([write.path for write in writes])

    def subscribe_document(self, path: str, listener: DocumentListener) -> Unsubscribe:
        """Register a listener and deliver the current state immediately."""
        try:
            document = self.read_once(path)
        except _STORE_ERRORS as exc:
            raise StoreSubscriptionError(f"Cannot subscribe to {path}") from exc
        unsubscribe = self.feed.add_document_listener(path, listener)
        self._snapshots[path] = _snapshot(document)
        listener(document)
        return unsubscribe

    def subscribe_collection(
        self, collection: str, listener: CollectionListener
    ) -> Unsubscribe:
        """Register a listener and deliver the current state immediately."""
        try:
            documents = self.list_collection(collection)
        except _STORE_ERRORS as exc:
            raise StoreSubscriptionError(f"Cannot subscribe to {collection}") from exc
        unsubscribe = self.feed.add_collection_listener(collection, listener)
        self._snapshots[collection] = _snapshot(documents)
        listener(documents)
        return unsubscribe

    def poll(self) -> None:
        """Re-read watched paths and publish the ones that changed."""
        try:
            for path in self.feed.watched_documents():
                document = self.read_once(path)
                if self._changed(path, document):
                    self.feed.publish_document(path, document)
            for collection in self.feed.watched_collections():
                documents = self.list_collection(collection)
                if self._changed(collection, documents):
                    self.feed.publish_collection(collection, documents)
        except _STORE_ERRORS as exc:
            self._poll_failures += 1
            logger.warning(
                "Polling the document store failed (%d/%d): %s",
                self._poll_failures,
                self.max_poll_failures,
                exc,
            )
            if self._poll_failures >= self.max_poll_failures:
                raise StoreSubscriptionError(
                    "Lost connection to the document store"
                ) from exc
            return
        self._poll_failures = 0

    async def watch(self, interval_seconds: float) -> None:
        """Poll forever, until polling fails persistently."""
        while True:
            try:
                self.poll()
            except StoreSubscriptionError:
                logger.exception("Stopping change stream")
                raise
            await asyncio.sleep(interval_seconds)

    def _upsert(self, path: str, data: DocumentData) -> None:
        collection, doc_id = split_path(path)
        self.client.table(self.table).upsert(
            {"collection": collection, "doc_id": doc_id, "data": data},
            on_conflict="collection,doc_id",
        ).execute()

    def _notify(self, paths: list[str]) -> None:
        collections: list[str] = []
        try:
            for path in dict.fromkeys(paths):
                if path in self.feed.watched_documents():
                    document = self.read_once(path)
                    if self._changed(path, document):
                        self.feed.publish_document(path, document)
                collection, _ = split_path(path)
                if collection not in collections:
                    collections.append(collection)
            for collection in collections:
                if collection in self.feed.watched_collections():
                    documents = self.list_collection(collection)
                    if self._changed(collection, documents):
                        self.feed.publish_collection(collection, documents)
        except _STORE_ERRORS as exc:
            # The write landed; the next poll delivers the new state.
            logger.warning("Re-reading written documents failed: %s", exc)

    def _changed(self, key: str, value: Document | list[Document] | None) -> bool:
        snapshot = _snapshot(value)
        if self._snapshots.get(key, object()) == snapshot:
            return False
        self._snapshots[key] = snapshot
        return True


def _parse_document(row: dict[str, object]) -> Document:
    """Parse a document row into a store document."""
    data = row.get("data")
    return Document(id=str(row["doc_id"]), data=dict(data) if data else {})


def _snapshot(value: Document | list[Document] | None) -> object:
    if value is None:
        return None
    if isinstance(value, Document):
        return (value.id, value.data)
    return [(document.id, document.data) for document in value]
