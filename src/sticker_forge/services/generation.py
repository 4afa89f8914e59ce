"""Generation service that turns prompts into flat-background sticker renders."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel

from sticker_forge.domain.errors import GenerationFailureError

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from sticker_forge.services.access import AccessGate

_logger = logging.getLogger(__name__)


class TargetSize(StrEnum):
    """Fidelity tiers, ordered from cheapest to most expensive."""

    STANDARD = "1K"
    HIGH = "2K"
    ULTRA = "4K"

    @property
    def rank(self) -> int:
        return list(TargetSize).index(self)


TARGET_EDGES: dict[TargetSize, int] = {
    TargetSize.STANDARD: 1024,
    TargetSize.HIGH: 2048,
    TargetSize.ULTRA: 4096,
}


class Background(StrEnum):
    """Flat background a render is composited over."""

    WHITE = "white"
    BLACK = "black"


SPLIT_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "prompts": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["prompts"],
    "additionalProperties": False,
}

_SPLIT_INSTRUCTION = (
    "You help a sticker generation app. Break the user's input into a list of "
    "distinct, self-contained sticker descriptions. When several subjects are "
    "described, return one description per subject. Drop request phrases such "
    "as 'generate a', 'I want' or 'make me'. "
    'Respond with a JSON object {"prompts": [...]}.'
)

_UPSCALE_INSTRUCTION = (
    "Render a high-fidelity, high resolution version of this sticker. Preserve "
    "the exact composition, colors and subject details. Keep the background "
    "pure white (#FFFFFF)."
)

_DARK_TWIN_INSTRUCTION = (
    "Change the background to solid black (#000000). Do not change the subject. "
    "Keep the sticker subject exactly identical to the original image."
)


class GenerationClient(Protocol):
    """Interface for the external image and text generation backend."""

    async def generate_image(
        self, prompt: str, *, edge: int, reference_image: bytes | None = None
    ) -> bytes:
        """Render a new square image and return encoded bytes."""

    async def edit_image(self, image: bytes, prompt: str, *, edge: int) -> bytes:
        """Re-render an existing image following an instruction."""

    async def extract_json(
        self, prompt: str, schema: dict[str, object]
    ) -> dict[str, object]:
        """Return a structured JSON response for a text prompt."""


class PromptSplit(BaseModel):
    """Structured output of the prompt splitter."""

    prompts: list[str]


@dataclass
class GenerationService:
    """Builds generation requests and enforces the generation contract."""

    client: GenerationClient
    access_gate: "AccessGate"
    variant_count: int = 4
    baseline_target_size: TargetSize = TargetSize.STANDARD
    target_edges: dict[TargetSize, int] = field(
        default_factory=lambda: dict(TARGET_EDGES)
    )

    async def split_prompts(self, raw_text: str) -> list[str]:
        """Split free text into sticker prompts, falling back to line breaks."""
        fallback = split_lines(raw_text)
        if not fallback:
            return []
        try:
            raw = await self.client.extract_json(
                f'{_SPLIT_INSTRUCTION}\nInput: "{raw_text}"', SPLIT_SCHEMA
            )
            parsed = PromptSplit.model_validate(raw)
        except Exception as exc:  # noqa: BLE001
            _logger.warning(
                "Prompt splitting failed, falling back to line split: %s", exc
            )
            return fallback
        prompts = [prompt.strip() for prompt in parsed.prompts if prompt.strip()]
        return prompts or fallback

    async def generate_drafts(
        self, prompt: str, reference_image: bytes | None = None
    ) -> list[bytes]:
        """Render ``variant_count`` independent drafts of one prompt.

        The first failing variant cancels its siblings and is re-raised as is.
        """
        full_prompt = draft_prompt(prompt)
        edge = self.target_edges[self.baseline_target_size]
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [
                    group.create_task(
                        self._require_image(
                            self.client.generate_image(
                                full_prompt, edge=edge, reference_image=reference_image
                            ),
                            action="draft",
                        )
                    )
                    for _ in range(self.variant_count)
                ]
        except ExceptionGroup as errors:
            raise errors.exceptions[0] from None
        return [task.result() for task in tasks]

    async def regenerate(
        self,
        image: bytes,
        target_size: TargetSize,
        background: Background = Background.WHITE,
    ) -> bytes:
        """Re-render an image at ``target_size`` over the given background."""
        if self.requires_elevated_access(target_size):
            await self.access_gate.ensure_elevated_access()
        instruction = (
            _DARK_TWIN_INSTRUCTION
            if background is Background.BLACK
            else _UPSCALE_INSTRUCTION
        )
        return await self._require_image(
            self.client.edit_image(
                image, instruction, edge=self.target_edges[target_size]
            ),
            action=f"regenerate:{target_size}:{background}",
        )

    def requires_elevated_access(self, target_size: TargetSize) -> bool:
        """Return True for tiers above the baseline."""
        return target_size.rank > self.baseline_target_size.rank

    async def _require_image(
        self, pending: "Awaitable[bytes]", *, action: str
    ) -> bytes:
        image = await pending
        if not image:
            raise GenerationFailureError(f"No image returned for {action}")
        return image


def draft_prompt(prompt: str) -> str:
    """Wrap a subject description in the sticker draft template."""
    return (
        f"A high quality, isolated die-cut sticker of {prompt}. Flat vector style, "
        "white border, centered on a solid white background (#FFFFFF). Ensure the "
        "background is pure white."
    )


def split_lines(raw_text: str) -> list[str]:
    """Return the trimmed, non-empty lines of ``raw_text``."""
    return [line.strip() for line in raw_text.splitlines() if line.strip()]
