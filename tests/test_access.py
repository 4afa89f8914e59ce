"""Tests for the elevated access gate."""

import asyncio

import pytest

from sticker_forge.domain.errors import ServiceUnavailableError
from sticker_forge.services.access import SettingsAccessGate


def test_gate_allows_configured_key() -> None:
    asyncio.run(SettingsAccessGate(api_key="key").ensure_elevated_access())


def test_gate_rejects_missing_key() -> None:
    with pytest.raises(ServiceUnavailableError):
        asyncio.run(SettingsAccessGate(api_key=None).ensure_elevated_access())


def test_gate_rejects_disabled_elevated_access() -> None:
    gate = SettingsAccessGate(api_key="key", allow_elevated=False)

    with pytest.raises(ServiceUnavailableError):
        asyncio.run(gate.ensure_elevated_access())
