"""OpenAI Images and Responses API client for sticker generation."""

import base64
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx
import openai
from openai import AsyncOpenAI

from sticker_forge.domain.errors import GenerationFailureError, ServiceUnavailableError
from sticker_forge.services.generation import GenerationClient
from sticker_forge.services.imaging import resize_square

_API_SIZE = "1024x1024"
_UNAVAILABLE_ERRORS = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.APIConnectionError,
    openai.RateLimitError,
)

T = TypeVar("T")


@dataclass
class OpenAIImageClient(GenerationClient):
    """Generation client backed by the OpenAI Images and Responses APIs."""

    client: AsyncOpenAI | None
    http_client: httpx.AsyncClient
    image_model: str = "gpt-image-1"
    text_model: str = "gpt-4.1-mini"

    @classmethod
    def create(
        cls,
        api_key: str | None,
        image_model: str = "gpt-image-1",
        text_model: str = "gpt-4.1-mini",
    ) -> "OpenAIImageClient":
        """Create a client; a missing key defers the failure to the first call."""
        return cls(
            client=AsyncOpenAI(api_key=api_key) if api_key else None,
            http_client=httpx.AsyncClient(),
            image_model=image_model,
            text_model=text_model,
        )

    async def generate_image(
        self, prompt: str, *, edge: int, reference_image: bytes | None = None
    ) -> bytes:
        """Render a new image, guided by ``reference_image`` when given."""
        if reference_image is not None:
            return await self.edit_image(reference_image, prompt, edge=edge)
        client = self._require_client()
        response = await self._call(
            lambda: client.images.generate(
                model=self.image_model, prompt=prompt, size=_API_SIZE, n=1
            )
        )
        return resize_square(await self._first_image(response), edge)

    async def edit_image(self, image: bytes, prompt: str, *, edge: int) -> bytes:
        """Re-render ``image`` following ``prompt``."""
        client = self._require_client()
        response = await self._call(
            lambda: client.images.edit(
                model=self.image_model,
                image=("sticker.png", image, "image/png"),
                prompt=prompt,
                size=_API_SIZE,
                n=1,
            )
        )
        return resize_square(await self._first_image(response), edge)

    async def extract_json(
        self, prompt: str, schema: dict[str, object]
    ) -> dict[str, object]:
        """Call the Responses API with structured outputs."""
        client = self._require_client()
        response = await self._call(
            lambda: client.responses.create(
                model=self.text_model,
                input=[
                    {
                        "role": "user",
                        "content": [{"type": "input_text", "text": prompt}],
                    }
                ],
                text={
                    "format": {
                        "type": "json_schema",
                        "name": "prompt_split",
                        "strict": True,
                        "schema": schema,
                    }
                },
            )
        )
        output_text = response.output_text
        if not output_text:
            raise GenerationFailureError("OpenAI returned an empty response")
        return json.loads(output_text)

    async def close(self) -> None:
        """Close the underlying HTTP sessions."""
        await self.http_client.aclose()
        if self.client is not None:
            await self.client.close()

    def _require_client(self) -> AsyncOpenAI:
        if self.client is None:
            raise ServiceUnavailableError(
                "API key is missing. Please check your environment configuration."
            )
        return self.client

    async def _call(self, func: Callable[[], Awaitable[T]]) -> T:
        try:
            return await func()
        except _UNAVAILABLE_ERRORS as exc:
            raise ServiceUnavailableError(str(exc)) from exc

    async def _first_image(self, response: object) -> bytes:
        for item in getattr(response, "data", None) or []:
            if getattr(item, "b64_json", None):
                return base64.b64decode(item.b64_json)
            if getattr(item, "url", None):
                download = await self.http_client.get(item.url, timeout=60)
                download.raise_for_status()
                return download.content
        raise GenerationFailureError("No image generated by OpenAI")
