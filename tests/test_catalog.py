"""Tests for catalog mutations."""

import asyncio
from datetime import UTC, datetime

import pytest

from lunch_tracker.domain.errors import (
    StoreWriteError,
    SuggestionServiceError,
    ValidationError,
)
from lunch_tracker.services.catalog import (
    CATALOG_PATH,
    CatalogMutator,
    CatalogStore,
    parse_restaurant,
)
from lunch_tracker.services.descriptions import (
    FALLBACK_DESCRIPTION,
    DescriptionGenerator,
)
from tests.conftest import (
    FIXED_NOW,
    FakeSuggestionClient,
    FlakyDocumentStore,
    restaurant_row,
)


def _mutator(
    catalog_store: CatalogStore, client: FakeSuggestionClient
) -> CatalogMutator:
    return CatalogMutator(
        catalog=catalog_store,
        descriptions=DescriptionGenerator(client),
        clock=lambda: FIXED_NOW,
    )


def _stored_rows(store: FlakyDocumentStore) -> list[dict[str, object]]:
    document = store.read_once(CATALOG_PATH)
    assert document is not None
    return document.data["list"]


def test_catalog_store_creates_missing_document() -> None:
    store = FlakyDocumentStore()
    catalog = CatalogStore(store)

    catalog.start()

    assert catalog.restaurants == []
    assert store.read_once(CATALOG_PATH).data == {"list": []}


def test_add_restaurant_uses_generated_description(
    store: FlakyDocumentStore,
    catalog_store: CatalogStore,
    suggestion_client: FakeSuggestionClient,
) -> None:
    suggestion_client.responses.append('"Crispy tacos, zero regrets."\n')
    mutator = _mutator(catalog_store, suggestion_client)

    created = asyncio.run(
        mutator.add_restaurant(" Tako ", nickname="T", address="1 Main", notes="tacos")
    )

    assert created.name == "Tako"
    assert created.rating == 0
    assert created.description == "Crispy tacos, zero regrets."
    assert catalog_store.restaurants == [created]
    assert _stored_rows(store)[0]["lastVisited"] == {}


def test_add_restaurant_without_notes_skips_service(
    catalog_store: CatalogStore, suggestion_client: FakeSuggestionClient
) -> None:
    mutator = _mutator(catalog_store, suggestion_client)

    created = asyncio.run(mutator.add_restaurant("Tako"))

    assert created.description == FALLBACK_DESCRIPTION
    assert suggestion_client.prompts == []


def test_add_restaurant_falls_back_to_notes_on_failure(
    catalog_store: CatalogStore, suggestion_client: FakeSuggestionClient
) -> None:
    suggestion_client.responses.append(SuggestionServiceError("quota"))
    mutator = _mutator(catalog_store, suggestion_client)

    created = asyncio.run(mutator.add_restaurant("Tako", notes="cheap tacos"))

    assert created.description == "cheap tacos"


def test_duplicate_name_is_rejected_case_insensitively(
    store: FlakyDocumentStore,
    catalog_store: CatalogStore,
    suggestion_client: FakeSuggestionClient,
) -> None:
    store.write_replace(CATALOG_PATH, {"list": [restaurant_row("1", "tako")]})
    before = _stored_rows(store)
    mutator = _mutator(catalog_store, suggestion_client)

    with pytest.raises(ValidationError):
        asyncio.run(mutator.add_restaurant("Tako"))

    assert _stored_rows(store) == before
    assert suggestion_client.prompts == []


def test_blank_name_is_rejected(
    catalog_store: CatalogStore, suggestion_client: FakeSuggestionClient
) -> None:
    mutator = _mutator(catalog_store, suggestion_client)

    with pytest.raises(ValidationError):
        asyncio.run(mutator.add_restaurant("  "))


def test_rate_accepts_any_delta(
    store: FlakyDocumentStore,
    catalog_store: CatalogStore,
    suggestion_client: FakeSuggestionClient,
) -> None:
    store.write_replace(CATALOG_PATH, {"list": [restaurant_row("1", "Tako", 2)]})
    mutator = _mutator(catalog_store, suggestion_client)

    mutator.rate("1", -1)
    mutator.rate("1", -5)

    assert catalog_store.find("1").rating == -4


def test_mark_visited_keeps_other_groups(
    store: FlakyDocumentStore,
    catalog_store: CatalogStore,
    suggestion_client: FakeSuggestionClient,
) -> None:
    row = restaurant_row(
        "1", "Tako", last_visited={"g2": "2024-01-01T12:00:00.000Z"}
    )
    store.write_replace(CATALOG_PATH, {"list": [row]})
    mutator = _mutator(catalog_store, suggestion_client)

    mutator.mark_visited_today("1", "g1")

    visits = _stored_rows(store)[0]["lastVisited"]
    assert visits == {
        "g2": "2024-01-01T12:00:00.000Z",
        "g1": "2024-06-15T12:00:00.000Z",
    }


def test_unknown_restaurant_is_rejected(
    catalog_store: CatalogStore, suggestion_client: FakeSuggestionClient
) -> None:
    mutator = _mutator(catalog_store, suggestion_client)

    with pytest.raises(ValidationError):
        mutator.rate("missing", 1)


def test_edit_preserves_description_without_instruction(
    store: FlakyDocumentStore,
    catalog_store: CatalogStore,
    suggestion_client: FakeSuggestionClient,
) -> None:
    row = restaurant_row("1", "Tako", description="Tacos!", address="1 Main")
    store.write_replace(CATALOG_PATH, {"list": [row]})
    mutator = _mutator(catalog_store, suggestion_client)

    edited = asyncio.run(mutator.edit("1", "Tako Shop", "TS", "2 Main"))

    assert edited.description == "Tacos!"
    assert edited.name == "Tako Shop"
    assert edited.address == "2 Main"
    assert suggestion_client.prompts == []


def test_edit_rewrites_description_on_instruction(
    store: FlakyDocumentStore,
    catalog_store: CatalogStore,
    suggestion_client: FakeSuggestionClient,
) -> None:
    store.write_replace(
        CATALOG_PATH, {"list": [restaurant_row("1", "Tako", description="Tacos!")]}
    )
    suggestion_client.responses.append("TACOS, LOUDLY.")
    mutator = _mutator(catalog_store, suggestion_client)

    edited = asyncio.run(
        mutator.edit("1", "Tako", "", "", rewrite_instruction="more exciting")
    )

    assert edited.description == "TACOS, LOUDLY."
    assert "more exciting" in suggestion_client.prompts[0]


def test_remove_filters_entry(
    store: FlakyDocumentStore,
    catalog_store: CatalogStore,
    suggestion_client: FakeSuggestionClient,
) -> None:
    rows = [restaurant_row("1", "Tako"), restaurant_row("2", "Pho")]
    store.write_replace(CATALOG_PATH, {"list": rows})
    mutator = _mutator(catalog_store, suggestion_client)

    mutator.remove("1")

    assert [r.name for r in catalog_store.restaurants] == ["Pho"]


def test_write_failure_propagates(
    store: FlakyDocumentStore,
    catalog_store: CatalogStore,
    suggestion_client: FakeSuggestionClient,
) -> None:
    store.write_replace(CATALOG_PATH, {"list": [restaurant_row("1", "Tako")]})
    store.fail_writes = True
    mutator = _mutator(catalog_store, suggestion_client)

    with pytest.raises(StoreWriteError):
        mutator.rate("1", 1)

    assert catalog_store.find("1").rating == 0


def test_parse_restaurant_tolerates_legacy_rows() -> None:
    restaurant = parse_restaurant({"id": 1700000000000, "name": "Tako"})

    assert restaurant.id == "1700000000000"
    assert restaurant.rating == 0
    assert restaurant.last_visited == {}


def test_parse_restaurant_reads_visit_stamps() -> None:
    restaurant = parse_restaurant(
        restaurant_row("1", "Tako", last_visited={"g1": "2024-01-01T00:00:00.000Z"})
    )

    assert restaurant.last_visited["g1"] == datetime(2024, 1, 1, tzinfo=UTC)
