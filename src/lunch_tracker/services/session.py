"""Per-device application state and the update functions that change it."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TypeVar

from lunch_tracker.domain.catalog import Restaurant
from lunch_tracker.domain.errors import LunchTrackerError, ValidationError
from lunch_tracker.domain.groups import Group
from lunch_tracker.services import preferences as keys
from lunch_tracker.services.catalog import CatalogMutator, CatalogStore
from lunch_tracker.services.clock import utc_now
from lunch_tracker.services.groups import GroupStore
from lunch_tracker.services.preferences import PreferenceStore
from lunch_tracker.services.recommendations import (
    Coordinates,
    RecommendationPipeline,
    RecommendationRequest,
    RecommendationResult,
)
from lunch_tracker.services.roster import RosterSynchronizer
from lunch_tracker.services.store import Unsubscribe
from lunch_tracker.services.views import (
    RECENT_WINDOW,
    Board,
    SortConfig,
    SortKey,
    build_board,
    toggle_sort,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATUS_FAILED = "Failed to update your status. Please try again."


@dataclass
class LunchSession:
    """State held by one person's client.

    Stores are shared with other clients through the change stream; the
    fields here are local and never authoritative. Every public method maps
    to one user action, reports failures through ``error`` and leaves the
    session idle again.
    """

    group_store: GroupStore
    catalog: CatalogStore
    catalog_mutator: CatalogMutator
    roster: RosterSynchronizer
    pipeline: RecommendationPipeline
    preferences: PreferenceStore
    preference_ttl_days: int = 365
    recent_window: timedelta = RECENT_WINDOW
    clock: Callable[[], datetime] = field(default=utc_now)
    selected_group_id: str | None = None
    my_name: str = ""
    my_suggestion: str = ""
    is_going: bool = False
    is_generating: bool = False
    error: str = ""
    sort: SortConfig = field(default_factory=SortConfig)
    search_query: str = ""
    coordinates: Coordinates | None = None
    last_result: RecommendationResult | None = None
    _generation: int = 0
    _stop_following: Unsubscribe | None = None

    def restore(self) -> None:
        """Load saved preferences and follow group changes from now on."""
        self.my_name = self.preferences.get(keys.DISPLAY_NAME) or ""
        self.my_suggestion = self.preferences.get(keys.DRAFT_SUGGESTION) or ""
        self.selected_group_id = self.preferences.get(keys.SELECTED_GROUP)
        if self._stop_following is None:
            self._stop_following = self.group_store.add_listener(self.sync_from_store)
        self.sync_from_store()

    def close(self) -> None:
        """Stop following group changes."""
        if self._stop_following is not None:
            self._stop_following()
            self._stop_following = None

    def sync_from_store(self) -> None:
        """Re-derive local fields after the groups changed."""
        groups = self.group_store.list_groups()
        if groups and self.group_store.find(self.selected_group_id) is None:
            self._select(groups[0].id)
        group = self.current_group()
        name = self.my_name.strip()
        if group is None:
            return
        if not name:
            self.is_going = False
            return
        entry = group.entry_for(name)
        self.is_going = entry is not None
        if entry is not None:
            self.my_suggestion = entry.suggestion or ""

    def current_group(self) -> Group | None:
        return self.group_store.find(self.selected_group_id)

    def set_name(self, name: str) -> None:
        self.my_name = name
        self.preferences.set(keys.DISPLAY_NAME, name, self.preference_ttl_days)
        self.sync_from_store()

    def set_suggestion(self, suggestion: str) -> None:
        """Save the draft and update the roster entry when attending."""
        self.my_suggestion = suggestion
        self.preferences.set(
            keys.DRAFT_SUGGESTION, suggestion, self.preference_ttl_days
        )
        if self.is_going and self.selected_group_id:
            group_id = self.selected_group_id
            self._attempt(
                lambda: self.roster.update_suggestion(
                    self.my_name, group_id, suggestion
                )
            )

    def set_theme(self, theme: str) -> None:
        self.preferences.set(keys.THEME, theme, self.preference_ttl_days)

    def theme(self) -> str | None:
        return self.preferences.get(keys.THEME)

    def select_group(self, group_id: str) -> bool:
        """Switch the active group."""
        if self.group_store.find(group_id) is None:
            self.error = "That group no longer exists."
            return False
        self._select(group_id)
        self.sync_from_store()
        return True

    def toggle_going(self) -> bool:
        """Flip attendance optimistically; roll back if the write fails."""
        group_id = self.selected_group_id
        if not self.my_name.strip() or not group_id:
            self.error = "Please enter your name and select a group first."
            return False
        previous = self.is_going
        self.is_going = not previous
        applied = self._attempt(
            lambda: self.roster.set_attendance(
                self.my_name, group_id, not previous, self.my_suggestion
            ),
            failure=STATUS_FAILED,
        )
        if applied is None:
            self.is_going = previous
            return False
        return True

    def change_sort(self, key: SortKey) -> None:
        self.sort = toggle_sort(self.sort, key)

    def set_search(self, query: str) -> None:
        self.search_query = query

    def board(self) -> Board | None:
        """Derived view of the selected group, or None before groups load."""
        group = self.current_group()
        if group is None:
            return None
        return build_board(
            group,
            self.group_store.list_groups(),
            self.catalog.restaurants,
            self.sort,
            self.search_query,
            self.clock(),
            self.recent_window,
        )

    def set_vibe(self, vibe_text: str) -> None:
        if self.selected_group_id:
            group_id = self.selected_group_id
            self._attempt(lambda: self.group_store.set_vibe(group_id, vibe_text))

    def create_group(self, name: str, default_location: str) -> str | None:
        """Create a group and switch to it."""
        group_id = self._attempt(
            lambda: self.group_store.create_group(name, default_location)
        )
        if group_id is not None:
            self._select(group_id)
            self.sync_from_store()
        return group_id

    def edit_group(self, group_id: str, name: str, default_location: str) -> None:
        self._attempt(
            lambda: self.group_store.update_group(group_id, name, default_location)
        )

    def delete_selected_group(self) -> bool:
        """Delete the active group and move to another one."""
        group_id = self.selected_group_id
        if group_id is None:
            return False
        try:
            self.group_store.delete_group(group_id)
        except LunchTrackerError as exc:
            self._report(exc)
            return False
        remaining = [g for g in self.group_store.list_groups() if g.id != group_id]
        self.selected_group_id = None
        if remaining:
            self._select(remaining[0].id)
        self.error = ""
        self.sync_from_store()
        return True

    async def add_restaurant(
        self, name: str, nickname: str = "", address: str = "", notes: str = ""
    ) -> Restaurant | None:
        return await self._attempt_async(
            lambda: self.catalog_mutator.add_restaurant(name, nickname, address, notes)
        )

    async def edit_restaurant(
        self,
        restaurant_id: str,
        name: str,
        nickname: str,
        address: str,
        rewrite_instruction: str | None = None,
    ) -> Restaurant | None:
        return await self._attempt_async(
            lambda: self.catalog_mutator.edit(
                restaurant_id, name, nickname, address, rewrite_instruction
            )
        )

    def rate(self, restaurant_id: str, delta: int) -> Restaurant | None:
        return self._attempt(lambda: self.catalog_mutator.rate(restaurant_id, delta))

    def mark_visited_today(self, restaurant_id: str) -> Restaurant | None:
        group_id = self.selected_group_id
        if group_id is None:
            self.error = "Please select a group first."
            return None
        return self._attempt(
            lambda: self.catalog_mutator.mark_visited_today(restaurant_id, group_id)
        )

    def remove_restaurant(self, restaurant_id: str) -> None:
        self._attempt(lambda: self.catalog_mutator.remove(restaurant_id))

    async def request_recommendations(self) -> RecommendationResult | None:
        """Run the pipeline for the selected group.

        The result is always stored on the group the request was made for. It
        is only applied locally when that group is still the active one.
        """
        if self.is_generating:
            return None
        group = self.current_group()
        if group is None:
            self.error = "Please select a group first."
            return None
        self._generation += 1
        token = (group.id, self._generation)
        self.is_generating = True
        self.error = ""
        request = RecommendationRequest(
            group=group,
            restaurants=list(self.catalog.restaurants),
            coordinates=self.coordinates,
        )
        try:
            result = await self.pipeline.run(request)
        except LunchTrackerError as exc:
            if self._is_current(token):
                self.error = (
                    str(exc)
                    if isinstance(exc, ValidationError)
                    else f"Could not get suggestions: {exc}"
                )
            return None
        finally:
            if token[1] == self._generation:
                self.is_generating = False

        if not self._is_current(token):
            logger.info("Discarding recommendations for inactive group %s", token[0])
            return None
        self.last_result = result
        if result.bonus_error:
            self.error = f"Could not get a bonus suggestion: {result.bonus_error}"
        return result

    def _is_current(self, token: tuple[str, int]) -> bool:
        group_id, generation = token
        return generation == self._generation and group_id == self.selected_group_id

    def _select(self, group_id: str) -> None:
        if group_id != self.selected_group_id:
            self.is_generating = False
            self.last_result = None
        self.selected_group_id = group_id
        self.preferences.set(keys.SELECTED_GROUP, group_id, self.preference_ttl_days)

    def _attempt(self, action: Callable[[], T], failure: str | None = None) -> T | None:
        try:
            result = action()
        except LunchTrackerError as exc:
            self._report(exc, failure)
            return None
        self.error = ""
        return result

    async def _attempt_async(self, action: Callable[[], Awaitable[T]]) -> T | None:
        try:
            result = await action()
        except LunchTrackerError as exc:
            self._report(exc)
            return None
        self.error = ""
        return result

    def _report(self, exc: LunchTrackerError, failure: str | None = None) -> None:
        if isinstance(exc, ValidationError):
            self.error = str(exc)
            return
        logger.warning("Action failed: %s", exc)
        self.error = failure or str(exc)
