"""Tests for the Supabase document store."""

import asyncio
import contextlib
import copy
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx
import pytest

from lunch_tracker.adapters.supabase_document_store import SupabaseDocumentStore
from lunch_tracker.containers import StreamStatus
from lunch_tracker.domain.errors import StoreSubscriptionError, StoreWriteError
from lunch_tracker.services.store import BatchWrite, Document


@dataclass
class FakeResponse:
    data: list[dict[str, object]] | None


@dataclass
class FakeQuery:
    table: "FakeTable"
    action: str = "select"
    payload: dict[str, object] | None = None
    filters: list[tuple[str, object]] = field(default_factory=list)

    def select(self, *_args) -> "FakeQuery":
        self.action = "select"
        return self

    def upsert(self, payload, **_kwargs) -> "FakeQuery":  # type: ignore[no-untyped-def]
        self.action = "upsert"
        self.payload = payload
        return self

    def delete(self) -> "FakeQuery":
        self.action = "delete"
        return self

    def eq(self, column: str, value) -> "FakeQuery":  # type: ignore[no-untyped-def]
        self.filters.append((column, value))
        return self

    def limit(self, _count: int) -> "FakeQuery":
        return self

    def order(self, _column: str, desc: bool = False) -> "FakeQuery":
        return self

    def execute(self) -> FakeResponse:
        if self.table.failing:
            raise httpx.ConnectError("connection refused")
        matches = [
            row
            for row in self.table.rows
            if all(row[column] == value for column, value in self.filters)
        ]
        if self.action == "upsert":
            assert self.payload is not None
            self.table.run_before_write()
            key = (self.payload["collection"], self.payload["doc_id"])
            self.table.upsert(key, copy.deepcopy(self.payload["data"]))
            return FakeResponse(data=[self.payload])
        if self.action == "delete":
            self.table.rows = [row for row in self.table.rows if row not in matches]
            return FakeResponse(data=matches)
        return FakeResponse(data=copy.deepcopy(matches))


@dataclass
class FakeTable:
    rows: list[dict[str, object]] = field(default_factory=list)
    failing: bool = False
    before_write: Callable[[], None] | None = None

    def run_before_write(self) -> None:
        """Run a write queued by another client just before this one lands."""
        hook, self.before_write = self.before_write, None
        if hook is not None:
            hook()

    def upsert(self, key: tuple[object, object], data: object) -> None:
        for row in self.rows:
            if (row["collection"], row["doc_id"]) == key:
                row["data"] = data
                return
        self.rows.append({"collection": key[0], "doc_id": key[1], "data": data})


@dataclass
class FakeRpc:
    client: "FakeSupabaseClient"
    name: str
    params: dict[str, object]

    def execute(self) -> FakeResponse:
        self.client.rpc_calls.append((self.name, self.params))
        table = self.client.documents
        if table.failing:
            raise httpx.ConnectError("connection refused")
        table.run_before_write()
        if self.name == "merge_document":
            key = (self.params["target_collection"], self.params["target_doc_id"])
            existing = [
                row["data"]
                for row in table.rows
                if (row["collection"], row["doc_id"]) == key
            ]
            base = existing[0] if existing else {}
            table.upsert(key, {**base, **self.params["patch"]})
            return FakeResponse(data=None)
        for write in self.params["writes"]:
            key = (write["collection"], write["doc_id"])
            current = next(
                row
                for row in table.rows
                if (row["collection"], row["doc_id"]) == key
            )
            base = current["data"] if write["merge"] else {}
            table.upsert(key, {**base, **write["data"]})
        return FakeResponse(data=None)


@dataclass
class FakeSupabaseClient:
    documents: FakeTable = field(default_factory=FakeTable)
    rpc_calls: list[tuple[str, dict[str, object]]] = field(default_factory=list)

    def table(self, name: str) -> FakeQuery:
        assert name == "documents"
        return FakeQuery(table=self.documents)

    def rpc(self, name: str, params: dict[str, object]) -> FakeRpc:
        return FakeRpc(client=self, name=name, params=params)


def test_merge_write_and_read_back() -> None:
    client = FakeSupabaseClient()
    store = SupabaseDocumentStore(client)
    store.write_replace("groups/a", {"name": "Team", "lunchVibe": ""})

    store.write_merge("groups/a", {"lunchVibe": "pho"})

    assert store.read_once("groups/a") == Document(
        id="a", data={"name": "Team", "lunchVibe": "pho"}
    )
    assert store.read_once("groups/missing") is None


def test_list_and_delete() -> None:
    client = FakeSupabaseClient()
    store = SupabaseDocumentStore(client)
    first = store.add("groups", {"name": "A"})
    store.add("groups", {"name": "B"})

    store.delete(f"groups/{first}")

    assert [doc.data["name"] for doc in store.list_collection("groups")] == ["B"]


def test_batch_goes_through_one_rpc_call() -> None:
    client = FakeSupabaseClient()
    store = SupabaseDocumentStore(client)
    store.write_replace("groups/a", {"whosIn": [], "friends": []})
    store.write_replace("groups/b", {"whosIn": [], "friends": []})

    store.batch(
        [
            BatchWrite("groups/a", {"whosIn": [{"name": "Ana"}]}),
            BatchWrite("groups/b", {"whosIn": []}),
        ]
    )

    assert len(client.rpc_calls) == 1
    name, params = client.rpc_calls[0]
    assert name == "commit_document_batch"
    assert [write["doc_id"] for write in params["writes"]] == ["a", "b"]
    assert store.read_once("groups/a").data == {
        "whosIn": [{"name": "Ana"}],
        "friends": [],
    }


def test_failed_writes_raise_store_errors() -> None:
    client = FakeSupabaseClient()
    store = SupabaseDocumentStore(client)
    client.documents.failing = True

    with pytest.raises(StoreWriteError):
        store.write_replace("groups/a", {"name": "A"})
    with pytest.raises(StoreWriteError):
        store.batch([BatchWrite("groups/a", {"name": "B"})])


def test_own_writes_reach_subscribers() -> None:
    client = FakeSupabaseClient()
    store = SupabaseDocumentStore(client)
    seen: list[list[str]] = []
    store.subscribe_collection(
        "groups", lambda docs: seen.append([doc.data["name"] for doc in docs])
    )

    store.add("groups", {"name": "A"})

    assert seen == [[], ["A"]]


def test_poll_publishes_only_changes() -> None:
    client = FakeSupabaseClient()
    store = SupabaseDocumentStore(client)
    seen: list[Document | None] = []
    store.subscribe_document("restaurants/shared-list", seen.append)

    store.poll()
    client.documents.upsert(("restaurants", "shared-list"), {"list": []})
    store.poll()
    store.poll()

    assert seen == [None, Document(id="shared-list", data={"list": []})]


def test_subscribe_fails_when_store_unreachable() -> None:
    client = FakeSupabaseClient()
    client.documents.failing = True
    store = SupabaseDocumentStore(client)

    with pytest.raises(StoreSubscriptionError):
        store.subscribe_collection("groups", lambda docs: None)


def test_poll_gives_up_after_repeated_failures() -> None:
    client = FakeSupabaseClient()
    store = SupabaseDocumentStore(client, max_poll_failures=2)
    store.subscribe_collection("groups", lambda docs: None)
    client.documents.failing = True

    store.poll()
    with pytest.raises(StoreSubscriptionError):
        store.poll()


def test_merge_write_keeps_a_concurrent_roster_batch() -> None:
    client = FakeSupabaseClient()
    device_x = SupabaseDocumentStore(client)
    device_y = SupabaseDocumentStore(client)
    device_x.write_replace("groups/g1", {"whosIn": [{"name": "Ana"}], "lunchVibe": ""})
    device_x.write_replace("groups/g2", {"whosIn": []})
    client.documents.before_write = lambda: device_y.batch(
        [
            BatchWrite("groups/g1", {"whosIn": []}),
            BatchWrite("groups/g2", {"whosIn": [{"name": "Ana"}]}),
        ]
    )

    device_x.write_merge("groups/g1", {"lunchVibe": "tacos"})

    assert device_x.read_once("groups/g1").data == {
        "whosIn": [],
        "lunchVibe": "tacos",
    }
    assert device_x.read_once("groups/g2").data == {"whosIn": [{"name": "Ana"}]}
    assert [name for name, _ in client.rpc_calls] == [
        "merge_document",
        "commit_document_batch",
    ]


def test_stream_failure_is_recorded_when_polling_gives_up() -> None:
    client = FakeSupabaseClient()
    store = SupabaseDocumentStore(client, max_poll_failures=2)
    store.subscribe_collection("groups", lambda docs: None)
    client.documents.failing = True
    stream_status = StreamStatus()

    async def follow_stream() -> None:
        task = asyncio.create_task(store.watch(0))
        task.add_done_callback(stream_status.record)
        with contextlib.suppress(StoreSubscriptionError):
            await task
        await asyncio.sleep(0)

    asyncio.run(follow_stream())

    assert isinstance(stream_status.failure, StoreSubscriptionError)
    with pytest.raises(StoreSubscriptionError):
        stream_status.check()
