"""Difference matting over two flat-background renders.

A subject rendered once over white and once over black satisfies, per
channel on a 0-255 scale::

    light = alpha * F + (255 - alpha)
    dark  = alpha * F

so ``light - dark = 255 - alpha`` and ``F = dark / (alpha / 255)``. The
channel differences are averaged to estimate a single alpha per pixel, then
near-transparent and near-opaque values are snapped to clean 0/255.
"""

from dataclasses import dataclass

import numpy as np

from sticker_forge.domain.errors import DimensionMismatchError


@dataclass(frozen=True)
class MattingThresholds:
    """Alpha values snapped to fully transparent or fully opaque."""

    alpha_floor: float = 10.0
    alpha_ceiling: float = 245.0


DEFAULT_THRESHOLDS = MattingThresholds()


def matte(
    render_on_light: np.ndarray,
    render_on_dark: np.ndarray,
    thresholds: MattingThresholds = DEFAULT_THRESHOLDS,
) -> np.ndarray:
    """Recover an RGBA buffer from renders over white and over black.

    Both inputs are ``(height, width, channels)`` uint8 arrays with at least
    three channels; only RGB is read. Returns a new ``(height, width, 4)``
    uint8 array. Raises ``DimensionMismatchError`` when the two renders differ
    in height or width.
    """
    light = _rgb(render_on_light)
    dark = _rgb(render_on_dark)
    if light.shape[:2] != dark.shape[:2]:
        raise DimensionMismatchError(render_on_light.shape, render_on_dark.shape)

    diff = np.maximum(light - dark, 0.0)
    alpha = 255.0 - diff.sum(axis=2) / 3.0
    alpha[alpha < thresholds.alpha_floor] = 0.0
    alpha[alpha > thresholds.alpha_ceiling] = 255.0

    visible = alpha > 0
    color = np.zeros_like(dark)
    alpha_norm = alpha[visible] / 255.0
    color[visible] = np.minimum(255.0, dark[visible] / alpha_norm[:, np.newaxis])

    output = np.empty((*alpha.shape, 4), dtype=np.uint8)
    output[..., :3] = _to_uint8(color)
    output[..., 3] = _to_uint8(alpha)
    return output


def _rgb(buffer: np.ndarray) -> np.ndarray:
    if buffer.ndim != 3 or buffer.shape[2] < 3:  # noqa: PLR2004
        raise ValueError(f"Expected an (H, W, C>=3) pixel buffer, got {buffer.shape}")
    return buffer[..., :3].astype(np.float64)


def _to_uint8(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)
