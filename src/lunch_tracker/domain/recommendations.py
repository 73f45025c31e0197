"""Models for structured suggestion-service output."""

from pydantic import BaseModel


class ShortlistResponse(BaseModel):
    """Catalog names picked by the suggestion service."""

    recommendations: list[str]


class BonusSuggestion(BaseModel):
    """A restaurant proposed from outside the catalog."""

    name: str
    address: str
    reasoning: str
