"""Read-only projections of group and catalog state for rendering."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from lunch_tracker.domain.catalog import GroupVisit, Restaurant
from lunch_tracker.domain.groups import AttendanceEntry, Group, Recommendation

RECENT_WINDOW = timedelta(hours=4)
_NEVER = datetime.min.replace(tzinfo=UTC)


class SortKey(StrEnum):
    LAST_VISITED = "lastVisited"
    RATING = "rating"


class SortDirection(StrEnum):
    ASCENDING = "ascending"
    DESCENDING = "descending"


_DEFAULT_DIRECTIONS = {
    SortKey.LAST_VISITED: SortDirection.ASCENDING,
    SortKey.RATING: SortDirection.DESCENDING,
}


@dataclass(frozen=True)
class SortConfig:
    """How the restaurant list is ordered."""

    key: SortKey = SortKey.LAST_VISITED
    direction: SortDirection = SortDirection.ASCENDING


def default_direction(key: SortKey) -> SortDirection:
    """Recency starts oldest first, rating starts best first."""
    return _DEFAULT_DIRECTIONS[key]


def toggle_sort(current: SortConfig, key: SortKey) -> SortConfig:
    """Flip direction on the same key, or switch to the key's default."""
    if current.key == key:
        flipped = (
            SortDirection.DESCENDING
            if current.direction == SortDirection.ASCENDING
            else SortDirection.ASCENDING
        )
        return SortConfig(key=key, direction=flipped)
    return SortConfig(key=key, direction=default_direction(key))


def sort_restaurants(
    restaurants: list[Restaurant], config: SortConfig, group_id: str | None
) -> list[Restaurant]:
    """Sort restaurants; never-visited ones always count as longest ago."""
    descending = config.direction == SortDirection.DESCENDING
    if config.key == SortKey.RATING:
        return sorted(restaurants, key=lambda r: r.rating, reverse=descending)

    def visited_at(restaurant: Restaurant) -> datetime:
        if group_id is None:
            return _NEVER
        return restaurant.last_visited.get(group_id, _NEVER)

    return sorted(restaurants, key=visited_at, reverse=descending)


def filter_restaurants(restaurants: list[Restaurant], query: str) -> list[Restaurant]:
    """Keep restaurants whose name, nickname or description contains query."""
    needle = query.strip().lower()
    if not needle:
        return list(restaurants)
    return [
        r
        for r in restaurants
        if needle in r.name.lower()
        or needle in r.nickname.lower()
        or needle in r.description.lower()
    ]


def recently_in(
    roster: list[AttendanceEntry],
    now: datetime,
    window: timedelta = RECENT_WINDOW,
) -> list[AttendanceEntry]:
    """Roster entries that joined within the trailing window."""
    cutoff = now - window
    return [entry for entry in roster if entry.joined_at > cutoff]


def out_list(group: Group) -> list[str]:
    """Known friends of the group who are not on its roster."""
    attending = set(group.roster_names())
    return [name for name in group.friends if name not in attending]


def other_group_visits(
    restaurant: Restaurant, groups: list[Group], selected_group_id: str | None
) -> list[GroupVisit]:
    """Visits by groups other than the selected one, newest first."""
    names = {group.id: group.name for group in groups}
    visits = [
        GroupVisit(
            group_id=group_id,
            group_name=names.get(group_id, "Unknown Group"),
            visited_at=visited_at,
        )
        for group_id, visited_at in restaurant.last_visited.items()
        if group_id != selected_group_id
    ]
    return sorted(visits, key=lambda visit: visit.visited_at, reverse=True)


def format_last_visited(visited_at: datetime | None, now: datetime) -> str:
    """Human label for how long ago a restaurant was visited."""
    if visited_at is None or visited_at < _months_before(now, 3):
        return "Not visited recently"
    local_now = now.astimezone()
    local_visit = visited_at.astimezone()
    days = (local_now.date() - local_visit.date()).days
    if days == 0:
        return "Visited: Today"
    if days == 1:
        return "Visited: Yesterday"
    seconds = (now - visited_at).total_seconds()
    months = seconds / 2592000
    if months > 1:
        return f"Visited: {int(months)} months ago"
    return f"Visited: {int(seconds / 86400)} days ago"


def format_status_time(joined_at: datetime | None, now: datetime) -> str:
    """Short label for when a person joined the roster."""
    if joined_at is None:
        return ""
    seconds = round((now - joined_at).total_seconds())
    if seconds < 5:
        return "just now"
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    return joined_at.astimezone().strftime("%I:%M %p").lstrip("0")


def _months_before(now: datetime, months: int) -> datetime:
    """Same day of an earlier month; days past its end spill into the next."""
    year, month_index = divmod(now.year * 12 + now.month - 1 - months, 12)
    first_of_month = now.replace(year=year, month=month_index + 1, day=1)
    return first_of_month + timedelta(days=now.day - 1)


@dataclass(frozen=True)
class RestaurantRow:
    """A restaurant with its labels for the selected group."""

    restaurant: Restaurant
    last_visited_label: str
    other_visits: list[GroupVisit] = field(default_factory=list)


@dataclass(frozen=True)
class Board:
    """Everything a client renders for one selected group."""

    group: Group
    restaurants: list[RestaurantRow]
    recently_in: list[AttendanceEntry]
    out: list[str]
    shortlist: list[Recommendation]
    bonus: Recommendation | None


def build_board(  # noqa: PLR0913
    group: Group,
    groups: list[Group],
    restaurants: list[Restaurant],
    sort: SortConfig,
    query: str,
    now: datetime,
    window: timedelta = RECENT_WINDOW,
) -> Board:
    """Derive the full view for a selected group."""
    ordered = filter_restaurants(sort_restaurants(restaurants, sort, group.id), query)
    rows = [
        RestaurantRow(
            restaurant=r,
            last_visited_label=format_last_visited(r.last_visited.get(group.id), now),
            other_visits=other_group_visits(r, groups, group.id),
        )
        for r in ordered
    ]
    return Board(
        group=group,
        restaurants=rows,
        recently_in=recently_in(group.roster, now, window),
        out=out_list(group),
        shortlist=[item for item in group.recommendations if not item.is_bonus],
        bonus=next((item for item in group.recommendations if item.is_bonus), None),
    )
