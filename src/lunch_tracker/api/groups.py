"""Group, roster and recommendation endpoints."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, status

from lunch_tracker.api.models import (
    AttendancePayload,
    GroupPayload,
    RecommendationPayload,
    SuggestionPayload,
    VibePayload,
)
from lunch_tracker.services.clock import utc_now
from lunch_tracker.services.recommendations import (
    Coordinates,
    RecommendationRequest,
)
from lunch_tracker.services.views import (
    SortConfig,
    SortDirection,
    SortKey,
    build_board,
    default_direction,
)

if TYPE_CHECKING:
    from lunch_tracker.containers import AppContainer

router = APIRouter(prefix="/groups", tags=["groups"])


def _container(request: Request) -> AppContainer:
    return request.app.state.container


@router.get("")
async def list_groups(request: Request) -> dict[str, object]:
    """Return every group."""
    return {"groups": _container(request).group_store.list_groups()}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_group(payload: GroupPayload, request: Request) -> dict[str, str]:
    """Create a group."""
    group_id = _container(request).group_store.create_group(
        payload.name, payload.default_location
    )
    return {"id": group_id}


@router.patch("/{group_id}")
async def edit_group(
    group_id: str, payload: GroupPayload, request: Request
) -> dict[str, str]:
    """Rename a group or change its default location."""
    _container(request).group_store.update_group(
        group_id, payload.name, payload.default_location
    )
    return {"status": "ok"}


@router.delete("/{group_id}")
async def delete_group(group_id: str, request: Request) -> dict[str, str]:
    """Delete a group unless it is the last one."""
    _container(request).group_store.delete_group(group_id)
    return {"status": "ok"}


@router.put("/{group_id}/vibe")
async def set_vibe(
    group_id: str, payload: VibePayload, request: Request
) -> dict[str, str]:
    """Store the group's vibe text."""
    _container(request).group_store.set_vibe(group_id, payload.vibe)
    return {"status": "ok"}


@router.post("/{group_id}/attendance")
async def set_attendance(
    group_id: str, payload: AttendancePayload, request: Request
) -> dict[str, object]:
    """Mark a person in or out, removing them from every other roster."""
    touched = _container(request).roster.set_attendance(
        payload.name, group_id, payload.attending, payload.suggestion
    )
    return {"status": "ok", "updated_groups": touched}


@router.put("/{group_id}/suggestion")
async def update_suggestion(
    group_id: str, payload: SuggestionPayload, request: Request
) -> dict[str, bool]:
    """Change an attending person's suggestion."""
    updated = _container(request).roster.update_suggestion(
        payload.name, group_id, payload.suggestion
    )
    return {"updated": updated}


@router.get("/{group_id}/board")
async def board(
    group_id: str,
    request: Request,
    sort: SortKey = SortKey.LAST_VISITED,
    direction: SortDirection | None = None,
    q: str = "",
) -> dict[str, object]:
    """Return the derived view of one group."""
    container = _container(request)
    group = container.group_store.get(group_id)
    config = SortConfig(key=sort, direction=direction or default_direction(sort))
    window_hours = container.settings.recent_window_hours
    return {
        "board": build_board(
            group,
            container.group_store.list_groups(),
            container.catalog_store.restaurants,
            config,
            q,
            utc_now(),
            timedelta(hours=window_hours),
        )
    }


@router.post("/{group_id}/recommendations")
async def recommend(
    group_id: str, payload: RecommendationPayload, request: Request
) -> dict[str, object]:
    """Run the recommendation pipeline for a group."""
    container = _container(request)
    coordinates = None
    if payload.latitude is not None and payload.longitude is not None:
        coordinates = Coordinates(payload.latitude, payload.longitude)
    result = await container.recommendation_pipeline.run(
        RecommendationRequest(
            group=container.group_store.get(group_id),
            restaurants=list(container.catalog_store.restaurants),
            coordinates=coordinates,
        )
    )
    return {
        "recommendations": result.recommendations,
        "bonus_error": result.bonus_error,
    }
