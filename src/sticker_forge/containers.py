"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from sticker_forge.adapters.openai_image_client import OpenAIImageClient
from sticker_forge.config import Settings
from sticker_forge.services.access import SettingsAccessGate
from sticker_forge.services.export import FileSystemExporter
from sticker_forge.services.generation import GenerationClient, GenerationService
from sticker_forge.services.matting import MattingThresholds
from sticker_forge.services.session import SessionController


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    generation_client: GenerationClient
    generation_service: GenerationService
    session: SessionController
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    openai_client = OpenAIImageClient.create(
        api_key=resolved_settings.openai_api_key,
        image_model=resolved_settings.openai_image_model,
        text_model=resolved_settings.openai_text_model,
    )
    access_gate = SettingsAccessGate(
        api_key=resolved_settings.openai_api_key,
        allow_elevated=resolved_settings.allow_elevated_access,
    )
    generation_service = GenerationService(
        client=openai_client,
        access_gate=access_gate,
        variant_count=resolved_settings.variant_count,
        baseline_target_size=resolved_settings.baseline_target_size,
    )
    session = SessionController(
        generation=generation_service,
        exporter=FileSystemExporter(resolved_settings.export_dir),
        target_size=resolved_settings.target_size,
        thresholds=MattingThresholds(
            alpha_floor=resolved_settings.alpha_floor,
            alpha_ceiling=resolved_settings.alpha_ceiling,
        ),
    )

    async def close_resources() -> None:
        await openai_client.close()

    return AppContainer(
        settings=resolved_settings,
        generation_client=openai_client,
        generation_service=generation_service,
        session=session,
        close_resources=close_resources,
    )
