"""OpenAI Responses API client for text and structured suggestions."""

from dataclasses import dataclass

import openai
from openai import AsyncOpenAI

from lunch_tracker.domain.errors import SuggestionServiceError
from lunch_tracker.services.suggestions import SuggestionClient


@dataclass
class OpenAISuggestionClient(SuggestionClient):
    """Suggestion client backed by OpenAI Responses API."""

    client: AsyncOpenAI | None
    model: str
    reasoning_effort: str | None = None
    store: bool = False

    @classmethod
    def create(
        cls,
        api_key: str | None,
        model: str,
        reasoning_effort: str | None = None,
        store: bool = False,
    ) -> "OpenAISuggestionClient":
        """Create a client; without a key every call fails with a clear error."""
        client = AsyncOpenAI(api_key=api_key) if api_key else None
        return cls(
            client=client,
            model=model,
            reasoning_effort=reasoning_effort,
            store=store,
        )

    async def generate(
        self,
        prompt: str,
        schema: dict[str, object] | None = None,
        schema_name: str = "response",
    ) -> str:
        """Call OpenAI, requesting JSON output when a schema is supplied."""
        if self.client is None:
            raise SuggestionServiceError("OpenAI API key is missing.")
        request_payload: dict[str, object] = {
            "model": self.model,
            "input": [
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": prompt}],
                }
            ],
            "store": self.store,
        }
        if schema is not None:
            request_payload["text"] = {
                "format": {
                    "type": "json_schema",
                    "name": schema_name,
                    "strict": True,
                    "schema": schema,
                }
            }
        if self.reasoning_effort:
            request_payload["reasoning"] = {"effort": self.reasoning_effort}

        try:
            response = await self.client.responses.create(**request_payload)
        except openai.OpenAIError as exc:
            raise SuggestionServiceError(f"OpenAI request failed: {exc}") from exc
        output_text = response.output_text
        if not output_text:
            raise SuggestionServiceError("OpenAI returned an empty response")
        return output_text

    async def close(self) -> None:
        """Release the underlying HTTP client."""
        if self.client is not None:
            await self.client.close()
