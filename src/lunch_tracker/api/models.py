"""Request bodies accepted by the HTTP API."""

from pydantic import BaseModel


class GroupPayload(BaseModel):
    name: str
    default_location: str = ""


class VibePayload(BaseModel):
    vibe: str


class AttendancePayload(BaseModel):
    name: str
    attending: bool
    suggestion: str | None = None


class SuggestionPayload(BaseModel):
    name: str
    suggestion: str


class RecommendationPayload(BaseModel):
    latitude: float | None = None
    longitude: float | None = None


class RestaurantCreatePayload(BaseModel):
    name: str
    nickname: str = ""
    address: str = ""
    notes: str = ""


class RestaurantEditPayload(BaseModel):
    name: str
    nickname: str = ""
    address: str = ""
    rewrite_instruction: str | None = None


class RatingPayload(BaseModel):
    delta: int


class VisitPayload(BaseModel):
    group_id: str
