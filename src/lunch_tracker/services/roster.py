"""Attendance toggling with global single-group exclusivity."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from lunch_tracker.domain.errors import StoreWriteError, ValidationError
from lunch_tracker.domain.groups import AttendanceEntry, Group
from lunch_tracker.services.clock import utc_now
from lunch_tracker.services.groups import GroupStore, group_path, serialize_roster
from lunch_tracker.services.store import BatchWrite, split_path

logger = logging.getLogger(__name__)


@dataclass
class RosterSynchronizer:
    """Keeps a person on at most one group's roster at a time.

    Every change is computed from the last observed snapshot of all groups and
    committed as a single atomic batch.
    """

    group_store: GroupStore
    clock: Callable[[], datetime] = field(default=utc_now)

    def set_attendance(
        self,
        person_name: str,
        target_group_id: str,
        attending: bool,
        suggestion: str | None = None,
    ) -> list[str]:
        """Mark a person in or out of a group and out of every other group.

        Returns the ids of the groups whose documents were written.
        """
        name = person_name.strip()
        if not name:
            raise ValidationError("Please enter your name and select a group first.")
        target = self.group_store.get(target_group_id)
        writes = self.plan_attendance(
            self.group_store.list_groups(), target, name, attending, suggestion
        )
        try:
            self.group_store.store.batch(writes)
        except StoreWriteError:
            logger.exception("Failed to update attendance for %s", name)
            raise
        logger.info(
            "%s is %s for group %s",
            name,
            "in" if attending else "out",
            target_group_id,
        )
        return [split_path(write.path)[1] for write in writes]

    def plan_attendance(  # noqa: PLR0913
        self,
        groups: list[Group],
        target: Group,
        name: str,
        attending: bool,
        suggestion: str | None,
    ) -> list[BatchWrite]:
        """Compute the batch of roster writes for an attendance change."""
        writes: list[BatchWrite] = []
        for group in groups:
            if group.id == target.id or group.entry_for(name) is None:
                continue
            remaining = [entry for entry in group.roster if entry.person_name != name]
            writes.append(
                BatchWrite(
                    path=group_path(group.id),
                    fields={"whosIn": serialize_roster(remaining)},
                )
            )

        roster = [entry for entry in target.roster if entry.person_name != name]
        if attending:
            roster.append(
                AttendanceEntry(
                    person_name=name,
                    joined_at=self.clock(),
                    suggestion=(suggestion or "").strip() or None,
                )
            )
        friends = list(dict.fromkeys([*target.friends, name]))
        writes.append(
            BatchWrite(
                path=group_path(target.id),
                fields={"whosIn": serialize_roster(roster), "friends": friends},
            )
        )
        return writes

    def update_suggestion(
        self, person_name: str, group_id: str, suggestion: str
    ) -> bool:
        """Edit an attending person's suggestion; returns False when not in."""
        name = person_name.strip()
        group = self.group_store.find(group_id)
        if not name or group is None or group.entry_for(name) is None:
            return False
        roster = [
            AttendanceEntry(
                person_name=entry.person_name,
                joined_at=self.clock(),
                suggestion=suggestion.strip() or None,
            )
            if entry.person_name == name
            else entry
            for entry in group.roster
        ]
        self.group_store.store.write_merge(
            group_path(group_id), {"whosIn": serialize_roster(roster)}
        )
        return True
