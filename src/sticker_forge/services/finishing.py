"""Per-sticker finishing: upscale, dark twin, difference matte, export."""

import logging
from dataclasses import dataclass, field
from typing import Protocol
from uuid import uuid4

from sticker_forge.domain.errors import InvalidTransitionError
from sticker_forge.domain.stickers import StickerEntity, StickerStatus
from sticker_forge.services.export import Exporter, export_filename
from sticker_forge.services.generation import Background, GenerationService, TargetSize
from sticker_forge.services.imaging import decode_image, encode_png
from sticker_forge.services.matting import DEFAULT_THRESHOLDS, MattingThresholds, matte

_logger = logging.getLogger(__name__)


class StickerStore(Protocol):
    """Keyed access to the live sticker collection."""

    def get(self, sticker_id: str) -> StickerEntity | None:
        """Return the current sticker for an id, if it is still live."""

    def patch(
        self,
        sticker_id: str,
        status: StickerStatus,
        *,
        expect_run: str | None = None,
        **changes: object,
    ) -> StickerEntity | None:
        """Apply a transition to the current sticker; None if it was dropped."""

    def fail(
        self, sticker_id: str, message: str, *, expect_run: str | None = None
    ) -> StickerEntity | None:
        """Move a live, non-terminal sticker to FAILED."""


@dataclass
class FinishingPipeline:
    """Drives one sticker from DRAFTED to COMPLETE.

    Every write goes through the store against the sticker's current value
    and carries the run id minted when the run claimed the sticker, so a run
    that was superseded (session cleared, sticker restored or re-processed)
    can no longer touch it.
    """

    generation: GenerationService
    store: StickerStore = field(repr=False)
    exporter: Exporter
    target_size: TargetSize = TargetSize.ULTRA
    thresholds: MattingThresholds = DEFAULT_THRESHOLDS

    async def run(self, sticker_id: str) -> StickerStatus | None:
        """Finish one sticker and return its resulting status."""
        sticker = self.store.get(sticker_id)
        if sticker is None:
            _logger.info("Finishing skipped, unknown sticker: id=%s", sticker_id)
            return None
        if sticker.final_image is not None:
            self._export(sticker)
            return sticker.status
        if sticker.status is not StickerStatus.DRAFTED or sticker.draft_image is None:
            _logger.info(
                "Finishing skipped: id=%s status=%s", sticker_id, sticker.status
            )
            return sticker.status

        run_id = uuid4().hex
        try:
            finished = await self._finish(sticker, run_id)
        except InvalidTransitionError as exc:
            _logger.warning("Finishing result discarded: id=%s %s", sticker_id, exc)
            return None
        except Exception as exc:
            _logger.exception("Failed to finish sticker: id=%s", sticker_id)
            failed = self.store.fail(sticker_id, str(exc), expect_run=run_id)
            return failed.status if failed and failed.run_id == run_id else None
        if finished is None:
            _logger.info("Finishing discarded for superseded run: id=%s", sticker_id)
            return None
        self._export(finished)
        return finished.status

    async def _finish(
        self, sticker: StickerEntity, run_id: str
    ) -> StickerEntity | None:
        current = self.store.patch(sticker.id, StickerStatus.UPSCALING, run_id=run_id)
        if current is None or current.draft_image is None:
            return None
        upscaled = await self.generation.regenerate(
            current.draft_image, self.target_size
        )

        masking = self.store.patch(
            sticker.id, StickerStatus.MASKING, expect_run=run_id, draft_image=upscaled
        )
        if masking is None:
            return None
        mask = await self.generation.regenerate(
            upscaled, self.target_size, Background.BLACK
        )

        matting = self.store.patch(
            sticker.id, StickerStatus.MATTING, expect_run=run_id, mask_image=mask
        )
        if matting is None:
            return None
        rgba = matte(decode_image(upscaled), decode_image(mask), self.thresholds)
        return self.store.patch(
            sticker.id,
            StickerStatus.COMPLETE,
            expect_run=run_id,
            final_image=encode_png(rgba),
        )

    def _export(self, sticker: StickerEntity) -> None:
        if sticker.final_image is None:
            return
        filename = export_filename(sticker.id, self.target_size)
        try:
            self.exporter.save(sticker.final_image, filename)
        except Exception:
            _logger.exception("Failed to export sticker: id=%s", sticker.id)
