"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime

import pytest

from lunch_tracker.adapters.memory_document_store import InMemoryDocumentStore
from lunch_tracker.config import Settings
from lunch_tracker.containers import AppContainer, build_container
from lunch_tracker.domain.errors import StoreWriteError, SuggestionServiceError
from lunch_tracker.services.catalog import CATALOG_PATH, CatalogStore
from lunch_tracker.services.groups import GROUPS_COLLECTION, GroupStore
from lunch_tracker.services.store import BatchWrite, DocumentData
from lunch_tracker.services.suggestions import SuggestionClient

FIXED_NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


@dataclass
class FlakyDocumentStore(InMemoryDocumentStore):
    """In-memory store that can be told to reject writes."""

    fail_batches: bool = False
    fail_writes: bool = False
    batches: list[list[BatchWrite]] = field(default_factory=list)

    def batch(self, writes: list[BatchWrite]) -> None:
        self.batches.append(writes)
        if self.fail_batches:
            raise StoreWriteError("Failed to commit batch")
        super().batch(writes)

    def write_merge(self, path: str, fields: DocumentData) -> None:
        if self.fail_writes:
            raise StoreWriteError(f"Failed to save {path}")
        super().write_merge(path, fields)

    def write_replace(self, path: str, document: DocumentData) -> None:
        if self.fail_writes:
            raise StoreWriteError(f"Failed to save {path}")
        super().write_replace(path, document)


@dataclass
class FakeSuggestionClient(SuggestionClient):
    """Suggestion client replaying queued responses in order."""

    responses: list[str | Exception] = field(default_factory=list)
    prompts: list[str] = field(default_factory=list)
    schema_names: list[str] = field(default_factory=list)
    gate: asyncio.Event | None = None

    async def generate(
        self,
        prompt: str,
        schema: dict[str, object] | None = None,
        schema_name: str = "response",
    ) -> str:
        self.prompts.append(prompt)
        self.schema_names.append(schema_name if schema else "text")
        if self.gate is not None:
            await self.gate.wait()
        if not self.responses:
            raise SuggestionServiceError("No response queued")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def add_group(
    store: InMemoryDocumentStore,
    name: str,
    roster: list[dict[str, object]] | None = None,
    friends: list[str] | None = None,
    vibe: str = "",
    location: str = "Irvine, CA",
) -> str:
    """Insert a raw group document and return its id."""
    return store.add(
        GROUPS_COLLECTION,
        {
            "name": name,
            "defaultLocation": location,
            "friends": friends or [],
            "whosIn": roster or [],
            "lunchVibe": vibe,
            "suggestions": [],
        },
    )


def entry(name: str, updated: str = "2024-06-15T11:00:00.000Z", suggestion: str = ""):
    return {"name": name, "updated": updated, "suggestion": suggestion}


def restaurant_row(  # noqa: PLR0913
    restaurant_id: str,
    name: str,
    rating: int = 0,
    description: str = "",
    nickname: str = "",
    address: str = "",
    last_visited: dict[str, str] | None = None,
) -> dict[str, object]:
    return {
        "id": restaurant_id,
        "name": name,
        "nickname": nickname,
        "address": address,
        "rating": rating,
        "description": description,
        "lastVisited": last_visited or {},
    }


def roster_names(store: InMemoryDocumentStore, group_id: str) -> list[str]:
    document = store.read_once(f"{GROUPS_COLLECTION}/{group_id}")
    assert document is not None
    return [row["name"] for row in document.data["whosIn"]]


@pytest.fixture
def store() -> FlakyDocumentStore:
    return FlakyDocumentStore()


@pytest.fixture
def group_store(store: FlakyDocumentStore) -> GroupStore:
    groups = GroupStore(store)
    groups.start()
    return groups


@pytest.fixture
def catalog_store(store: FlakyDocumentStore) -> CatalogStore:
    store.write_replace(CATALOG_PATH, {"list": []})
    catalog = CatalogStore(store)
    catalog.start()
    return catalog


@pytest.fixture
def suggestion_client() -> FakeSuggestionClient:
    return FakeSuggestionClient()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        store_backend="memory",
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        openai_api_key="openai-key",
    )


@pytest.fixture
def container(
    settings: Settings,
    store: FlakyDocumentStore,
    suggestion_client: FakeSuggestionClient,
) -> AppContainer:
    return build_container(settings, store=store, suggestion_client=suggestion_client)
