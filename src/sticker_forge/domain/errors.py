"""Error taxonomy for sticker generation and finishing."""


class StickerForgeError(Exception):
    """Base class for sticker pipeline errors."""


class ServiceUnavailableError(StickerForgeError):
    """The generation capability cannot be used (e.g. missing credential)."""


class GenerationFailureError(StickerForgeError):
    """A generation call completed without a usable image."""


class DimensionMismatchError(StickerForgeError):
    """Two matting inputs disagree in size."""

    def __init__(
        self, light_shape: tuple[int, ...], dark_shape: tuple[int, ...]
    ) -> None:
        super().__init__(
            f"Image dimensions do not match: {light_shape[:2]} vs {dark_shape[:2]}"
        )
        self.light_shape = light_shape
        self.dark_shape = dark_shape


class StickerNotFoundError(StickerForgeError, KeyError):
    """No live sticker exists for the given id."""


class InvalidTransitionError(StickerForgeError):
    """A patch would move a sticker through a transition it does not allow."""
