"""Group documents: cache, codec and mutations."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from lunch_tracker.domain.errors import ValidationError
from lunch_tracker.domain.groups import AttendanceEntry, Group, Recommendation
from lunch_tracker.services.clock import format_timestamp, parse_timestamp
from lunch_tracker.services.store import (
    Document,
    DocumentStore,
    Unsubscribe,
    document_path,
)

logger = logging.getLogger(__name__)

GROUPS_COLLECTION = "groups"
_EPOCH = datetime.fromtimestamp(0, tz=UTC)


def group_path(group_id: str) -> str:
    """Return the document path of a group."""
    return document_path(GROUPS_COLLECTION, group_id)


@dataclass
class GroupStore:
    """Local projection of every group document, fed by the change stream."""

    store: DocumentStore
    default_name: str = "My First Group"
    default_location: str = "Irvine, CA"
    groups: dict[str, Group] = field(default_factory=dict)
    listeners: list[Callable[[], None]] = field(default_factory=list)
    _unsubscribe: Unsubscribe | None = None

    def start(self) -> None:
        """Subscribe to the groups collection."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe_collection(
                GROUPS_COLLECTION, self.apply_snapshot
            )

    def close(self) -> None:
        """Stop receiving group updates."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def apply_snapshot(self, documents: list[Document]) -> None:
        """Replace the cached groups; repeated deliveries are no-ops."""
        groups = {document.id: parse_group(document) for document in documents}
        if groups == self.groups and list(groups) == list(self.groups):
            return
        self.groups = groups
        for listener in list(self.listeners):
            listener()

    def add_listener(self, listener: Callable[[], None]) -> Unsubscribe:
        """Call listener after every change; returns its removal handle."""
        self.listeners.append(listener)

        def remove() -> None:
            if listener in self.listeners:
                self.listeners.remove(listener)

        return remove

    def list_groups(self) -> list[Group]:
        return list(self.groups.values())

    def find(self, group_id: str | None) -> Group | None:
        if group_id is None:
            return None
        return self.groups.get(group_id)

    def get(self, group_id: str) -> Group:
        """Return a cached group or reject the unknown id."""
        group = self.find(group_id)
        if group is None:
            raise ValidationError("Please select a group first.")
        return group

    def ensure_seeded(self) -> str | None:
        """Create the default group when no group exists yet."""
        if self.groups or self.store.list_collection(GROUPS_COLLECTION):
            return None
        logger.info("No groups found, creating %r", self.default_name)
        return self.create_group(self.default_name, self.default_location)

    def create_group(self, name: str, default_location: str) -> str:
        """Create an empty group and return its id."""
        cleaned = _require_group_name(name)
        return self.store.add(
            GROUPS_COLLECTION,
            {
                "name": cleaned,
                "defaultLocation": default_location.strip(),
                "friends": [],
                "whosIn": [],
                "lunchVibe": "",
                "suggestions": [],
            },
        )

    def update_group(self, group_id: str, name: str, default_location: str) -> None:
        """Rename a group or change its default location."""
        cleaned = _require_group_name(name)
        self.get(group_id)
        self.store.write_merge(
            group_path(group_id),
            {"name": cleaned, "defaultLocation": default_location.strip()},
        )

    def delete_group(self, group_id: str) -> None:
        """Delete a group; at least one group always remains."""
        if len(self.groups) <= 1:
            raise ValidationError("You can't delete the last group!")
        self.get(group_id)
        self.store.delete(group_path(group_id))

    def set_vibe(self, group_id: str, vibe_text: str) -> None:
        """Store the group's shared vibe text."""
        self.get(group_id)
        self.store.write_merge(group_path(group_id), {"lunchVibe": vibe_text})

    def save_recommendations(
        self, group_id: str, recommendations: list[Recommendation]
    ) -> None:
        """Replace the group's recommendations wholesale."""
        self.store.write_merge(
            group_path(group_id),
            {"suggestions": serialize_recommendations(recommendations)},
        )


def _require_group_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("Group name cannot be empty.")
    return cleaned


def parse_group(document: Document) -> Group:
    """Parse a group document into a domain model."""
    data = document.data
    return Group(
        id=document.id,
        name=str(data.get("name") or ""),
        default_location=str(data.get("defaultLocation") or ""),
        friends=[str(name) for name in data.get("friends") or []],
        roster=[
            _parse_entry(row)
            for row in data.get("whosIn") or []
            if isinstance(row, dict) and row.get("name")
        ],
        vibe_text=str(data.get("lunchVibe") or ""),
        recommendations=[
            _parse_recommendation(row)
            for row in data.get("suggestions") or []
            if isinstance(row, dict)
        ],
    )


def serialize_roster(roster: list[AttendanceEntry]) -> list[dict[str, object]]:
    """Serialize roster entries for the group document."""
    return [
        {
            "name": entry.person_name,
            "updated": format_timestamp(entry.joined_at),
            "suggestion": entry.suggestion or "",
        }
        for entry in roster
    ]


def serialize_recommendations(
    recommendations: list[Recommendation],
) -> list[dict[str, object]]:
    """Serialize recommendations for the group document."""
    rows: list[dict[str, object]] = []
    for item in recommendations:
        row: dict[str, object] = {
            "name": item.name,
            "address": item.address,
            "reasoning": item.reasoning,
        }
        if item.is_bonus:
            row["isBonus"] = True
        rows.append(row)
    return rows


def _parse_entry(row: dict[str, object]) -> AttendanceEntry:
    joined_at = parse_timestamp(row.get("updated"))
    suggestion = row.get("suggestion")
    return AttendanceEntry(
        person_name=str(row["name"]),
        joined_at=joined_at or _EPOCH,
        suggestion=str(suggestion) if suggestion else None,
    )


def _parse_recommendation(row: dict[str, object]) -> Recommendation:
    return Recommendation(
        name=str(row.get("name") or ""),
        address=str(row.get("address") or ""),
        reasoning=str(row.get("reasoning") or ""),
        is_bonus=bool(row.get("isBonus", False)),
    )
