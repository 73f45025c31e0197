"""Domain models for groups and their attendance rosters."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class AttendanceEntry:
    """A person marked as attending a group today."""

    person_name: str
    joined_at: datetime
    suggestion: str | None = None


@dataclass(frozen=True)
class Recommendation:
    """A restaurant proposed for the group's next meal."""

    name: str
    address: str
    reasoning: str
    is_bonus: bool = False


@dataclass(frozen=True)
class Group:
    """An independent roster sharing the global restaurant catalog."""

    id: str
    name: str
    default_location: str
    friends: list[str] = field(default_factory=list)
    roster: list[AttendanceEntry] = field(default_factory=list)
    vibe_text: str = ""
    recommendations: list[Recommendation] = field(default_factory=list)

    def roster_names(self) -> list[str]:
        """Return the names currently on the roster."""
        return [entry.person_name for entry in self.roster]

    def entry_for(self, person_name: str) -> AttendanceEntry | None:
        """Return the roster entry for a person, if attending."""
        for entry in self.roster:
            if entry.person_name == person_name:
                return entry
        return None
