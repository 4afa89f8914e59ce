"""Pydantic models for the sticker HTTP API."""

from enum import StrEnum

from pydantic import BaseModel, Field

from sticker_forge.domain.stickers import HistoryRecord, StickerEntity, StickerStatus


class ImageKind(StrEnum):
    """Image slots exposed per sticker."""

    DRAFT = "draft"
    MASK = "mask"
    FINAL = "final"


class SubmitRequest(BaseModel):
    """Free text to split into sticker prompts."""

    text: str = Field(min_length=1)
    reference_image_b64: str | None = None


class StickerView(BaseModel):
    """Sticker state without image payloads."""

    id: str
    batch_id: str
    variant_index: int
    status: StickerStatus
    prompt: str | None = None
    error: str | None = None
    selected: bool = False
    has_draft: bool = False
    has_mask: bool = False
    has_final: bool = False

    @classmethod
    def from_entity(cls, sticker: StickerEntity, selected: bool) -> "StickerView":
        return cls(
            id=sticker.id,
            batch_id=sticker.batch_id,
            variant_index=sticker.variant_index,
            status=sticker.status,
            prompt=sticker.prompt,
            error=sticker.error,
            selected=selected,
            has_draft=sticker.draft_image is not None,
            has_mask=sticker.mask_image is not None,
            has_final=sticker.final_image is not None,
        )


class SessionView(BaseModel):
    """Snapshot of the session for the UI."""

    stickers: list[StickerView]
    selected_ids: list[str]
    is_generating: bool
    is_processing: bool = False
    error: str | None = None


class BatchView(BaseModel):
    """A queued batch and the placeholder ids it created."""

    batch_id: str
    prompt: str
    sticker_ids: list[str]


class HistoryView(BaseModel):
    """History record summary."""

    batch_id: str
    prompt: str
    resolved: bool
    created_at: str
    stickers: list[StickerView]

    @classmethod
    def from_record(cls, record: HistoryRecord) -> "HistoryView":
        return cls(
            batch_id=record.batch_id,
            prompt=record.prompt,
            resolved=record.resolved,
            created_at=record.created_at.isoformat(),
            stickers=[
                StickerView.from_entity(sticker, selected=False)
                for sticker in record.stickers
            ],
        )
