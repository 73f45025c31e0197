"""Catalog endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, status

from lunch_tracker.api.models import (
    RatingPayload,
    RestaurantCreatePayload,
    RestaurantEditPayload,
    VisitPayload,
)
from lunch_tracker.domain.catalog import Restaurant

if TYPE_CHECKING:
    from lunch_tracker.containers import AppContainer

router = APIRouter(prefix="/restaurants", tags=["restaurants"])


def _container(request: Request) -> AppContainer:
    return request.app.state.container


@router.get("")
async def list_restaurants(request: Request) -> dict[str, object]:
    """Return the shared catalog."""
    return {"restaurants": _container(request).catalog_store.restaurants}


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_restaurant(
    payload: RestaurantCreatePayload, request: Request
) -> Restaurant:
    """Add a restaurant with a generated description."""
    return await _container(request).catalog_mutator.add_restaurant(
        payload.name, payload.nickname, payload.address, payload.notes
    )


@router.patch("/{restaurant_id}")
async def edit_restaurant(
    restaurant_id: str, payload: RestaurantEditPayload, request: Request
) -> Restaurant:
    """Edit a restaurant, rewriting its description only on request."""
    return await _container(request).catalog_mutator.edit(
        restaurant_id,
        payload.name,
        payload.nickname,
        payload.address,
        payload.rewrite_instruction,
    )


@router.delete("/{restaurant_id}")
async def remove_restaurant(restaurant_id: str, request: Request) -> dict[str, str]:
    """Remove a restaurant from the catalog."""
    _container(request).catalog_mutator.remove(restaurant_id)
    return {"status": "ok"}


@router.post("/{restaurant_id}/rating")
async def rate_restaurant(
    restaurant_id: str, payload: RatingPayload, request: Request
) -> Restaurant:
    """Move the shared rating up or down."""
    return _container(request).catalog_mutator.rate(restaurant_id, payload.delta)


@router.post("/{restaurant_id}/visits")
async def mark_visited(
    restaurant_id: str, payload: VisitPayload, request: Request
) -> Restaurant:
    """Record that a group ate here today."""
    return _container(request).catalog_mutator.mark_visited_today(
        restaurant_id, payload.group_id
    )
