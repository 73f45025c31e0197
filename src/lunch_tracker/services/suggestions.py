"""Interface to the external text-generation service."""

import json
from typing import Protocol, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from lunch_tracker.domain.errors import SuggestionServiceError

ModelT = TypeVar("ModelT", bound=BaseModel)


class SuggestionClient(Protocol):
    """Generates text, optionally constrained to a JSON schema."""

    async def generate(
        self,
        prompt: str,
        schema: dict[str, object] | None = None,
        schema_name: str = "response",
    ) -> str:
        """Return generated text; raises SuggestionServiceError on failure."""


def parse_structured(text: str, model: type[ModelT]) -> ModelT:
    """Validate structured service output against a pydantic model."""
    try:
        return model.model_validate(json.loads(text))
    except (json.JSONDecodeError, SchemaValidationError) as exc:
        raise SuggestionServiceError(
            f"Malformed response from suggestion service: {exc}"
        ) from exc
