"""Recommendation pipeline: shortlist from the catalog plus one bonus pick."""

import json
import logging
from dataclasses import dataclass

from lunch_tracker.domain.catalog import Restaurant
from lunch_tracker.domain.errors import SuggestionServiceError, ValidationError
from lunch_tracker.domain.groups import Group, Recommendation
from lunch_tracker.domain.recommendations import BonusSuggestion, ShortlistResponse
from lunch_tracker.services.groups import GroupStore
from lunch_tracker.services.suggestions import SuggestionClient, parse_structured

logger = logging.getLogger(__name__)

MAX_SHORTLIST = 4
DEFAULT_LOCATION = "Irvine, CA"
DEFAULT_REASONING = "A great place!"

SHORTLIST_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "recommendations": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["recommendations"],
    "additionalProperties": False,
}

BONUS_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "address": {"type": "string"},
        "reasoning": {"type": "string"},
    },
    "required": ["name", "address", "reasoning"],
    "additionalProperties": False,
}


@dataclass(frozen=True)
class Coordinates:
    """A precise position reported by the user's device."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class RecommendationRequest:
    """Inputs for one pipeline run, tagged with the group it targets."""

    group: Group
    restaurants: list[Restaurant]
    coordinates: Coordinates | None = None


@dataclass(frozen=True)
class RecommendationResult:
    """What was persisted for the group, and why the bonus is missing."""

    group_id: str
    recommendations: list[Recommendation]
    bonus_error: str | None = None


@dataclass
class RecommendationPipeline:
    """Asks the suggestion service for picks and stores them on the group.

    The shortlist step must succeed for anything to be written. The bonus step
    is best-effort: when it fails the shortlist is stored on its own.
    """

    client: SuggestionClient
    group_store: GroupStore

    async def run(self, request: RecommendationRequest) -> RecommendationResult:
        """Run both steps once and replace the group's recommendations."""
        group = request.group
        _check_inputs(request)

        shortlist = await self._shortlist(request)
        bonus_error: str | None = None
        try:
            bonus = await self._bonus(request)
        except SuggestionServiceError as exc:
            logger.warning("Bonus suggestion failed for group %s: %s", group.id, exc)
            bonus = None
            bonus_error = str(exc)

        recommendations = [*shortlist, bonus] if bonus else shortlist
        self.group_store.save_recommendations(group.id, recommendations)
        logger.info(
            "Stored %d recommendations for group %s", len(recommendations), group.id
        )
        return RecommendationResult(
            group_id=group.id,
            recommendations=recommendations,
            bonus_error=bonus_error,
        )

    async def _shortlist(self, request: RecommendationRequest) -> list[Recommendation]:
        text = await self.client.generate(
            build_shortlist_prompt(request),
            schema=SHORTLIST_SCHEMA,
            schema_name="shortlist",
        )
        names = parse_structured(text, ShortlistResponse).recommendations
        by_name = {restaurant.name: restaurant for restaurant in request.restaurants}
        picks: list[Recommendation] = []
        for name in names:
            restaurant = by_name.get(name)
            if restaurant is None:
                continue
            picks.append(
                Recommendation(
                    name=restaurant.name,
                    address=restaurant.address,
                    reasoning=restaurant.description or DEFAULT_REASONING,
                )
            )
        return picks[:MAX_SHORTLIST]

    async def _bonus(self, request: RecommendationRequest) -> Recommendation:
        text = await self.client.generate(
            build_bonus_prompt(request),
            schema=BONUS_SCHEMA,
            schema_name="bonus",
        )
        suggestion = parse_structured(text, BonusSuggestion)
        return Recommendation(
            name=suggestion.name,
            address=suggestion.address,
            reasoning=suggestion.reasoning.strip().replace('"', ""),
            is_bonus=True,
        )


def _check_inputs(request: RecommendationRequest) -> None:
    if not request.restaurants:
        raise ValidationError("Add some restaurants first!")
    group = request.group
    if not group.vibe_text.strip() and not any(e.suggestion for e in group.roster):
        raise ValidationError(
            "Describe the lunch vibe or add individual suggestions."
        )


def group_location(group: Group) -> str:
    return group.default_location or DEFAULT_LOCATION


def build_shortlist_prompt(request: RecommendationRequest) -> str:
    """Prompt asking for up to four catalog names."""
    group = request.group
    attendees = ", ".join(group.roster_names()) or "everyone"
    preferences = ". ".join(
        f"{entry.person_name} wants {entry.suggestion}"
        for entry in group.roster
        if entry.suggestion
    )
    catalog = json.dumps(
        [
            {
                "name": r.name,
                "description": r.description,
                "rating": r.rating,
                "address": r.address,
            }
            for r in request.restaurants
        ]
    )
    return (
        "You are a fun, quirky AI assistant helping friends decide on a lunch "
        f"spot. The group's default location is {group_location(group)}. "
        f"The friends going are: {attendees}. "
        f'Their combined vibe is: "{group.vibe_text}". '
        f"Individual preferences are: {preferences or 'None specified'}. "
        f"From the list of restaurants below, please pick up to {MAX_SHORTLIST} "
        "that best match the overall vibe, individual preferences, and are a "
        "reasonable distance from the group's location. Return only the exact "
        "names of the restaurants in the recommendations array. "
        f"Restaurant List: {catalog}"
    )


def build_bonus_prompt(request: RecommendationRequest) -> str:
    """Prompt asking for one real restaurant outside the catalog."""
    group = request.group
    if request.coordinates is not None:
        location = (
            f"near latitude {request.coordinates.latitude} "
            f"and longitude {request.coordinates.longitude}"
        )
    else:
        location = f"near {group_location(group)}"
    known = ", ".join(f'"{r.name}"' for r in request.restaurants)
    return (
        f"Suggest a specific, real restaurant that is not on this list: [{known}]. "
        f'This restaurant should be {location} and match a "{group.vibe_text}" '
        "vibe. Then, write a short, fun, one-sentence reason why someone should "
        "try it. Return its name, its address, and the reason."
    )
