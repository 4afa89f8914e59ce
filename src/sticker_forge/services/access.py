"""Gate for generation tiers that require a paid credential."""

from dataclasses import dataclass
from typing import Protocol

from sticker_forge.domain.errors import ServiceUnavailableError


class AccessGate(Protocol):
    """Interface for confirming elevated generation access."""

    async def ensure_elevated_access(self) -> None:
        """Raise ``ServiceUnavailableError`` if elevated tiers can't be used."""


@dataclass
class SettingsAccessGate(AccessGate):
    """Access gate driven by static configuration."""

    api_key: str | None
    allow_elevated: bool = True

    async def ensure_elevated_access(self) -> None:
        """Check that a credential is present and elevated tiers are enabled."""
        if not self.api_key:
            raise ServiceUnavailableError(
                "API key is missing. Please check your environment configuration."
            )
        if not self.allow_elevated:
            raise ServiceUnavailableError("Elevated generation tiers are disabled.")
