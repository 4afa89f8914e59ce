"""Domain models for sticker candidates, batches and history."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


class StickerStatus(StrEnum):
    """Lifecycle of a sticker candidate."""

    QUEUED_DRAFT = "queued_draft"
    DRAFTED = "drafted"
    UPSCALING = "upscaling"
    MASKING = "masking"
    MATTING = "matting"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {StickerStatus.COMPLETE, StickerStatus.FAILED}

    @property
    def is_processing(self) -> bool:
        return self in {
            StickerStatus.UPSCALING,
            StickerStatus.MASKING,
            StickerStatus.MATTING,
        }


ALLOWED_TRANSITIONS: dict[StickerStatus, frozenset[StickerStatus]] = {
    StickerStatus.QUEUED_DRAFT: frozenset(
        {StickerStatus.DRAFTED, StickerStatus.FAILED}
    ),
    StickerStatus.DRAFTED: frozenset({StickerStatus.UPSCALING, StickerStatus.FAILED}),
    StickerStatus.UPSCALING: frozenset({StickerStatus.MASKING, StickerStatus.FAILED}),
    StickerStatus.MASKING: frozenset({StickerStatus.MATTING, StickerStatus.FAILED}),
    StickerStatus.MATTING: frozenset({StickerStatus.COMPLETE, StickerStatus.FAILED}),
    StickerStatus.COMPLETE: frozenset(),
    StickerStatus.FAILED: frozenset(),
}


def make_sticker_id(batch_id: str, variant_index: int) -> str:
    """Build the stable id of one variant within a batch."""
    return f"{batch_id}:{variant_index}"


@dataclass(frozen=True)
class StickerEntity:
    """One sticker candidate plus its processing status.

    Images are encoded PNG bytes. ``final_image`` is only ever present on a
    ``COMPLETE`` sticker and ``mask_image`` is written together with the
    move into ``MATTING``. ``run_id`` names the finishing run that owns the
    sticker from ``UPSCALING`` onwards.
    """

    id: str
    batch_id: str
    variant_index: int
    status: StickerStatus = StickerStatus.QUEUED_DRAFT
    prompt: str | None = None
    draft_image: bytes | None = None
    mask_image: bytes | None = None
    final_image: bytes | None = None
    error: str | None = None
    run_id: str | None = None


@dataclass(frozen=True)
class BatchTask:
    """One queued prompt-to-drafts request."""

    batch_id: str
    prompt: str
    reference_image: bytes | None = None
    variant_count: int = 4

    def sticker_ids(self) -> list[str]:
        return [
            make_sticker_id(self.batch_id, index) for index in range(self.variant_count)
        ]


@dataclass(frozen=True)
class HistoryRecord:
    """Append-only log entry for a submitted batch and its stickers."""

    batch_id: str
    prompt: str
    reference_image: bytes | None
    stickers: tuple[StickerEntity, ...]
    resolved: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
