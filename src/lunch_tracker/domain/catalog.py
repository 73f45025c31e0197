"""Domain models for the shared restaurant catalog."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Restaurant:
    """A restaurant shared by every group."""

    id: str
    name: str
    nickname: str
    address: str
    rating: int
    description: str
    last_visited: dict[str, datetime] = field(default_factory=dict)


@dataclass(frozen=True)
class GroupVisit:
    """When another group last visited a restaurant."""

    group_id: str
    group_name: str
    visited_at: datetime
