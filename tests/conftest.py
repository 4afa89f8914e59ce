"""Shared test fixtures."""

import asyncio
import io
from dataclasses import dataclass, field

import numpy as np
import pytest
from PIL import Image

from sticker_forge.config import Settings
from sticker_forge.containers import AppContainer
from sticker_forge.domain.errors import ServiceUnavailableError
from sticker_forge.services.access import AccessGate
from sticker_forge.services.export import Exporter
from sticker_forge.services.generation import (
    GenerationClient,
    GenerationService,
    TargetSize,
)
from sticker_forge.services.session import SessionController

TEST_EDGES = {
    TargetSize.STANDARD: 8,
    TargetSize.HIGH: 12,
    TargetSize.ULTRA: 16,
}
SUBJECT_COLOR = (200, 40, 60)


def sticker_png(
    edge: int,
    background: tuple[int, int, int] = (255, 255, 255),
    color: tuple[int, int, int] = SUBJECT_COLOR,
) -> bytes:
    """Render a square subject in the middle of a flat background."""
    pixels = np.full((edge, edge, 3), background, dtype=np.uint8)
    start, end = edge // 4, edge - edge // 4
    pixels[start:end, start:end] = color
    output = io.BytesIO()
    Image.fromarray(pixels).save(output, format="PNG")
    return output.getvalue()


def subject_color(image_bytes: bytes) -> tuple[int, int, int]:
    with Image.open(io.BytesIO(image_bytes)) as image:
        pixels = np.asarray(image.convert("RGB"))
    center = pixels[pixels.shape[0] // 2, pixels.shape[1] // 2]
    return (int(center[0]), int(center[1]), int(center[2]))


@dataclass
class FakeGenerationClient(GenerationClient):
    """Fake generation backend rendering flat-background squares.

    Each draft gets a distinct subject color so tests can tell variants
    apart. Edits keep the subject color and switch to a black background when
    the instruction asks for one. ``fail_once`` prompts fail their first draft
    call right away while ``draft_ticks`` keeps the other calls busy;
    ``active``/``max_active`` count draft calls in flight.
    """

    split_payload: dict[str, object] | None = None
    split_error: Exception | None = None
    fail_prompts: set[str] = field(default_factory=set)
    fail_once: set[str] = field(default_factory=set)
    unavailable_prompts: set[str] = field(default_factory=set)
    fail_images: set[bytes] = field(default_factory=set)
    mismatch_colors: set[tuple[int, int, int]] = field(default_factory=set)
    draft_ticks: int = 0
    edit_gate: asyncio.Event | None = None
    events: list[tuple[str, str]] = field(default_factory=list)
    edits: list[tuple[int, str]] = field(default_factory=list)
    references: list[bytes | None] = field(default_factory=list)
    active: int = 0
    max_active: int = 0
    _counter: int = 0

    async def generate_image(
        self, prompt: str, *, edge: int, reference_image: bytes | None = None
    ) -> bytes:
        self.events.append(("start", prompt))
        self.references.append(reference_image)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if any(offline in prompt for offline in self.unavailable_prompts):
                raise ServiceUnavailableError("draft service offline")
            failing = next((name for name in self.fail_once if name in prompt), None)
            if failing is not None:
                self.fail_once.discard(failing)
                self.events.append(("end", prompt))
                return b""
            for _ in range(self.draft_ticks):
                await asyncio.sleep(0)
        finally:
            self.active -= 1
        self.events.append(("end", prompt))
        if any(failing in prompt for failing in self.fail_prompts):
            return b""
        self._counter += 1
        return sticker_png(edge, color=(200, 40, (self._counter * 10) % 256))

    async def edit_image(self, image: bytes, prompt: str, *, edge: int) -> bytes:
        self.edits.append((edge, prompt))
        if self.edit_gate is not None:
            await self.edit_gate.wait()
        else:
            await asyncio.sleep(0)
        if image in self.fail_images:
            raise RuntimeError("upscale rejected")
        color = subject_color(image)
        if "black" in prompt.lower():
            if color in self.mismatch_colors:
                edge //= 2
            return sticker_png(edge, background=(0, 0, 0), color=color)
        return sticker_png(edge, color=color)

    async def extract_json(
        self, prompt: str, schema: dict[str, object]
    ) -> dict[str, object]:
        if self.split_error is not None:
            raise self.split_error
        if self.split_payload is None:
            raise ServiceUnavailableError("splitter offline")
        return self.split_payload


@dataclass
class FakeAccessGate(AccessGate):
    """Access gate that records checks and optionally denies them."""

    allowed: bool = True
    checks: int = 0

    async def ensure_elevated_access(self) -> None:
        self.checks += 1
        if not self.allowed:
            raise ServiceUnavailableError("elevated access denied")


@dataclass
class RecordingExporter(Exporter):
    """Exporter that keeps saved files in memory."""

    saved: list[tuple[str, bytes]] = field(default_factory=list)

    def save(self, image_bytes: bytes, filename: str) -> None:
        self.saved.append((filename, image_bytes))


def build_generation(
    client: FakeGenerationClient, gate: FakeAccessGate | None = None
) -> GenerationService:
    return GenerationService(
        client=client,
        access_gate=gate or FakeAccessGate(),
        target_edges=dict(TEST_EDGES),
    )


def build_session(
    client: FakeGenerationClient,
    exporter: RecordingExporter,
    gate: FakeAccessGate | None = None,
) -> SessionController:
    return SessionController(
        generation=build_generation(client, gate),
        exporter=exporter,
        target_size=TargetSize.ULTRA,
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(openai_api_key="openai-key", export_dir=tmp_path / "exports")


@pytest.fixture
def generation_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def access_gate() -> FakeAccessGate:
    return FakeAccessGate()


@pytest.fixture
def exporter() -> RecordingExporter:
    return RecordingExporter()


@pytest.fixture
def container(
    settings: Settings,
    generation_client: FakeGenerationClient,
    access_gate: FakeAccessGate,
    exporter: RecordingExporter,
) -> AppContainer:
    generation_service = build_generation(generation_client, access_gate)
    session = SessionController(
        generation=generation_service,
        exporter=exporter,
        target_size=TargetSize.ULTRA,
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        generation_client=generation_client,
        generation_service=generation_service,
        session=session,
        close_resources=close_resources,
    )
