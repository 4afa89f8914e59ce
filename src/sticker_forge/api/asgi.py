"""ASGI entrypoint for the sticker API."""

from sticker_forge.api.app import create_app
from sticker_forge.containers import build_container

app = create_app(build_container())
