"""Short restaurant descriptions written by the suggestion service."""

import logging
from dataclasses import dataclass

from lunch_tracker.domain.errors import SuggestionServiceError
from lunch_tracker.services.suggestions import SuggestionClient

logger = logging.getLogger(__name__)

FALLBACK_DESCRIPTION = "A great place to eat with friends!"


@dataclass
class DescriptionGenerator:
    """Turns user notes into a one-sentence description."""

    client: SuggestionClient

    async def describe(self, user_input: str) -> str:
        """Write a description from free-form notes about a restaurant."""
        notes = user_input.strip()
        if not notes:
            return FALLBACK_DESCRIPTION
        prompt = (
            f'Based on this user input: "{notes}", write a very short, punchy, '
            "and fun one-sentence description for a restaurant. "
            'Example: "Juicy burgers and crispy fries."'
        )
        return await self._generate(prompt, fallback=notes)

    async def rewrite(self, original: str, instruction: str) -> str:
        """Rewrite an existing description following an instruction."""
        prompt = (
            f'Rewrite this restaurant description: "{original}" with this '
            f'instruction: "{instruction.strip()}". Make it very short, punchy, '
            "and fun. Return only the new sentence."
        )
        return await self._generate(prompt, fallback=original or FALLBACK_DESCRIPTION)

    async def _generate(self, prompt: str, fallback: str) -> str:
        try:
            text = await self.client.generate(prompt)
        except SuggestionServiceError as exc:
            logger.warning("Description generation failed: %s", exc)
            return fallback
        cleaned = text.strip().replace('"', "")
        return cleaned or fallback
