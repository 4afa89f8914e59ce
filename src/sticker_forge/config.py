"""Application configuration."""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from sticker_forge.services.generation import TargetSize

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    openai_api_key: str | None = None
    openai_image_model: str = "gpt-image-1"
    openai_text_model: str = "gpt-4.1-mini"
    allow_elevated_access: bool = True
    target_size: TargetSize = TargetSize.ULTRA
    baseline_target_size: TargetSize = TargetSize.STANDARD
    variant_count: int = 4
    alpha_floor: float = 10.0
    alpha_ceiling: float = 245.0
    export_dir: Path = Path("exports")
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
