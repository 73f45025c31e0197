"""Client-local preferences with expiry."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

from lunch_tracker.services.clock import utc_now

DISPLAY_NAME = "lunchTrackerName"
DRAFT_SUGGESTION = "lunchTrackerSuggestion"
SELECTED_GROUP = "selectedGroupId"
THEME = "lunchTrackerTheme"


class PreferenceStore(Protocol):
    """Advisory key-value cache kept on the user's device."""

    def get(self, key: str) -> str | None:
        """Return a stored value if present and not expired."""

    def set(self, key: str, value: str, ttl_days: int) -> None:
        """Store a value for ttl_days."""


@dataclass
class InMemoryPreferenceStore(PreferenceStore):
    """Preferences held in process memory, expiring by the injected clock."""

    clock: Callable[[], datetime] = field(default=utc_now)
    values: dict[str, tuple[str, datetime]] = field(default_factory=dict)

    def get(self, key: str) -> str | None:
        stored = self.values.get(key)
        if stored is None:
            return None
        value, expires_at = stored
        if self.clock() >= expires_at:
            del self.values[key]
            return None
        return value

    def set(self, key: str, value: str, ttl_days: int) -> None:
        self.values[key] = (value, self.clock() + timedelta(days=ttl_days))
