"""The shared restaurant catalog.

The catalog is one document holding the whole restaurant list. Every mutation
reads the last observed list, computes a new list and writes it back whole.
Two clients mutating from the same stale list race, and the last write wins.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from uuid import uuid4

from lunch_tracker.domain.catalog import Restaurant
from lunch_tracker.domain.errors import ValidationError
from lunch_tracker.services.clock import format_timestamp, parse_timestamp, utc_now
from lunch_tracker.services.descriptions import DescriptionGenerator
from lunch_tracker.services.store import Document, DocumentStore, Unsubscribe

logger = logging.getLogger(__name__)

CATALOG_PATH = "restaurants/shared-list"


@dataclass
class CatalogStore:
    """Local projection of the catalog document."""

    store: DocumentStore
    restaurants: list[Restaurant] = field(default_factory=list)
    _unsubscribe: Unsubscribe | None = None

    def start(self) -> None:
        """Subscribe to the catalog document."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe_document(
                CATALOG_PATH, self.apply_snapshot
            )

    def close(self) -> None:
        """Stop receiving catalog updates."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def apply_snapshot(self, document: Document | None) -> None:
        """Cache the latest catalog, creating an empty one when missing."""
        if document is None:
            logger.info("Catalog document missing, creating an empty one")
            self.restaurants = []
            self.store.write_replace(CATALOG_PATH, {"list": []})
            return
        rows = document.data.get("list") or []
        self.restaurants = [
            parse_restaurant(row) for row in rows if isinstance(row, dict)
        ]

    def find(self, restaurant_id: str) -> Restaurant | None:
        for restaurant in self.restaurants:
            if restaurant.id == restaurant_id:
                return restaurant
        return None

    def replace_all(self, restaurants: list[Restaurant]) -> None:
        """Write the full restaurant list back to the store."""
        self.store.write_replace(
            CATALOG_PATH,
            {"list": [serialize_restaurant(item) for item in restaurants]},
        )


@dataclass
class CatalogMutator:
    """Whole-list read-modify-write operations on the catalog."""

    catalog: CatalogStore
    descriptions: DescriptionGenerator
    clock: Callable[[], datetime] = field(default=utc_now)

    async def add_restaurant(
        self, name: str, nickname: str = "", address: str = "", notes: str = ""
    ) -> Restaurant:
        """Add a restaurant whose name is not yet in the catalog."""
        cleaned = name.strip()
        if not cleaned:
            raise ValidationError("Restaurant name is required.")
        if any(r.name.lower() == cleaned.lower() for r in self.catalog.restaurants):
            raise ValidationError("This restaurant already exists.")

        description = await self.descriptions.describe(notes)
        restaurant = Restaurant(
            id=uuid4().hex,
            name=cleaned,
            nickname=nickname.strip(),
            address=address.strip(),
            rating=0,
            description=description,
            last_visited={},
        )
        self.catalog.replace_all([*self.catalog.restaurants, restaurant])
        logger.info("Added restaurant %s", cleaned)
        return restaurant

    def rate(self, restaurant_id: str, delta: int) -> Restaurant:
        """Move a restaurant's shared rating by delta."""
        return self._update(
            restaurant_id, lambda r: replace(r, rating=r.rating + delta)
        )

    def mark_visited_today(self, restaurant_id: str, group_id: str) -> Restaurant:
        """Stamp a visit by one group, leaving other groups' stamps alone."""
        now = self.clock()
        return self._update(
            restaurant_id,
            lambda r: replace(r, last_visited={**r.last_visited, group_id: now}),
        )

    async def edit(
        self,
        restaurant_id: str,
        name: str,
        nickname: str,
        address: str,
        rewrite_instruction: str | None = None,
    ) -> Restaurant:
        """Edit a restaurant; the description changes only on request."""
        cleaned = name.strip()
        if not cleaned:
            raise ValidationError("Restaurant name cannot be empty.")
        current = self._require(restaurant_id)
        description = current.description
        if rewrite_instruction and rewrite_instruction.strip():
            description = await self.descriptions.rewrite(
                current.description, rewrite_instruction
            )
        return self._update(
            restaurant_id,
            lambda r: replace(
                r,
                name=cleaned,
                nickname=nickname.strip(),
                address=address.strip(),
                description=description,
            ),
        )

    def remove(self, restaurant_id: str) -> None:
        """Drop a restaurant from the catalog."""
        remaining = [r for r in self.catalog.restaurants if r.id != restaurant_id]
        self.catalog.replace_all(remaining)

    def _require(self, restaurant_id: str) -> Restaurant:
        restaurant = self.catalog.find(restaurant_id)
        if restaurant is None:
            raise ValidationError("This restaurant no longer exists.")
        return restaurant

    def _update(
        self, restaurant_id: str, change: Callable[[Restaurant], Restaurant]
    ) -> Restaurant:
        updated = change(self._require(restaurant_id))
        self.catalog.replace_all(
            [updated if r.id == restaurant_id else r for r in self.catalog.restaurants]
        )
        return updated


def parse_restaurant(row: dict[str, object]) -> Restaurant:
    """Parse a catalog entry into a domain model."""
    raw_visits = row.get("lastVisited")
    last_visited: dict[str, datetime] = {}
    if isinstance(raw_visits, dict):
        for group_id, raw in raw_visits.items():
            visited_at = parse_timestamp(raw)
            if visited_at is not None:
                last_visited[str(group_id)] = visited_at
    return Restaurant(
        id=str(row.get("id", "")),
        name=str(row.get("name") or ""),
        nickname=str(row.get("nickname") or ""),
        address=str(row.get("address") or ""),
        rating=int(row.get("rating") or 0),
        description=str(row.get("description") or ""),
        last_visited=last_visited,
    )


def serialize_restaurant(restaurant: Restaurant) -> dict[str, object]:
    """Serialize a restaurant for the catalog document."""
    return {
        "id": restaurant.id,
        "name": restaurant.name,
        "nickname": restaurant.nickname,
        "address": restaurant.address,
        "rating": restaurant.rating,
        "description": restaurant.description,
        "lastVisited": {
            group_id: format_timestamp(visited_at)
            for group_id, visited_at in restaurant.last_visited.items()
        },
    }
