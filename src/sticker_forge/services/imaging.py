"""Decode and encode helpers between PNG bytes and pixel buffers."""

import io

import numpy as np
from PIL import Image


def decode_image(image_bytes: bytes) -> np.ndarray:
    """Decode encoded image bytes into an ``(H, W, 3)`` uint8 RGB buffer."""
    with Image.open(io.BytesIO(image_bytes)) as image:
        return np.asarray(image.convert("RGB"), dtype=np.uint8)


def encode_png(buffer: np.ndarray) -> bytes:
    """Encode an RGB or RGBA uint8 buffer as PNG bytes."""
    image = Image.fromarray(np.ascontiguousarray(buffer, dtype=np.uint8))
    output = io.BytesIO()
    image.save(output, format="PNG")
    return output.getvalue()


def image_size(image_bytes: bytes) -> tuple[int, int]:
    """Return ``(width, height)`` of encoded image bytes."""
    with Image.open(io.BytesIO(image_bytes)) as image:
        return image.size


def resize_square(image_bytes: bytes, edge: int) -> bytes:
    """Resize encoded image bytes to an ``edge`` x ``edge`` PNG."""
    with Image.open(io.BytesIO(image_bytes)) as image:
        if image.size == (edge, edge):
            return image_bytes
        resized = image.convert("RGB").resize((edge, edge), Image.Resampling.LANCZOS)
    output = io.BytesIO()
    resized.save(output, format="PNG")
    return output.getvalue()
