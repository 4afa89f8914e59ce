"""Export of finished stickers."""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

_logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class Exporter(Protocol):
    """Interface for handing finished images to a save target."""

    def save(self, image_bytes: bytes, filename: str) -> None:
        """Persist image bytes under the given filename."""


@dataclass
class FileSystemExporter(Exporter):
    """Exporter that writes PNG files into a local directory."""

    directory: Path

    def save(self, image_bytes: bytes, filename: str) -> None:
        """Write image bytes to ``directory/filename``."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / filename
        path.write_bytes(image_bytes)
        _logger.info("Exported sticker: path=%s bytes=%s", path, len(image_bytes))


def export_filename(sticker_id: str, size_label: str) -> str:
    """Build a portable export filename for a finished sticker.

    Characters outside ``[A-Za-z0-9._-]`` in the id (such as the ``:`` that
    joins batch and variant) become ``_``.
    """
    safe_id = _UNSAFE_FILENAME_CHARS.sub("_", sticker_id)
    return f"sticker-{size_label.lower()}-{safe_id}.png"
