"""Session controller owning the live sticker collection."""

import asyncio
import itertools
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field, replace

from sticker_forge.domain.errors import InvalidTransitionError, StickerNotFoundError
from sticker_forge.domain.stickers import (
    ALLOWED_TRANSITIONS,
    BatchTask,
    HistoryRecord,
    StickerEntity,
    StickerStatus,
    make_sticker_id,
)
from sticker_forge.services.batch_queue import BatchQueue
from sticker_forge.services.export import Exporter
from sticker_forge.services.finishing import FinishingPipeline
from sticker_forge.services.generation import GenerationService, TargetSize
from sticker_forge.services.matting import DEFAULT_THRESHOLDS, MattingThresholds

_logger = logging.getLogger(__name__)

_UNSELECTABLE = {StickerStatus.QUEUED_DRAFT, StickerStatus.FAILED}


@dataclass
class SessionController:
    """Owns stickers, selection and history, and wires the queue and pipelines.

    All sticker mutation happens in ``patch``: it reads the sticker currently
    stored under an id, validates the transition and stores the replacement.
    Results for ids that are no longer live are discarded.
    """

    generation: GenerationService
    exporter: Exporter
    target_size: TargetSize = TargetSize.ULTRA
    thresholds: MattingThresholds = DEFAULT_THRESHOLDS
    error: str | None = field(default=None, init=False)
    queue: BatchQueue = field(init=False, repr=False)
    pipeline: FinishingPipeline = field(init=False, repr=False)
    _stickers: dict[str, StickerEntity] = field(default_factory=dict, init=False)
    _selection: set[str] = field(default_factory=set, init=False)
    _history: dict[str, HistoryRecord] = field(default_factory=dict, init=False)
    _batch_ids: Iterator[int] = field(
        default_factory=lambda: itertools.count(1), init=False
    )

    def __post_init__(self) -> None:
        self.queue = BatchQueue(generation=self.generation, sink=self)
        self.pipeline = FinishingPipeline(
            generation=self.generation,
            store=self,
            exporter=self.exporter,
            target_size=self.target_size,
            thresholds=self.thresholds,
        )

    @property
    def is_generating(self) -> bool:
        return not self.queue.is_idle

    def stickers(self) -> list[StickerEntity]:
        """Return live stickers in creation order."""
        return list(self._stickers.values())

    def selected_ids(self) -> list[str]:
        """Return selected ids in creation order."""
        return [sid for sid in self._stickers if sid in self._selection]

    def history(self) -> list[HistoryRecord]:
        """Return history records, oldest first."""
        return list(self._history.values())

    def history_record(self, batch_id: str) -> HistoryRecord:
        record = self._history.get(batch_id)
        if record is None:
            raise StickerNotFoundError(batch_id)
        return record

    async def submit(
        self, raw_text: str, reference_image: bytes | None = None
    ) -> list[BatchTask]:
        """Split text into prompts and queue one batch per prompt."""
        prompts = await self.generation.split_prompts(raw_text)
        tasks = [self._enqueue_prompt(prompt, reference_image) for prompt in prompts]
        _logger.info("Submitted prompts: batches=%s", len(tasks))
        return tasks

    def regenerate(self, sticker_id: str) -> BatchTask:
        """Queue a fresh batch for the prompt that produced a sticker."""
        sticker = self._require(sticker_id)
        record = self._history.get(sticker.batch_id)
        prompt = sticker.prompt or (record.prompt if record else None)
        if not prompt:
            raise StickerNotFoundError(sticker_id)
        return self._enqueue_prompt(
            prompt, record.reference_image if record else None
        )

    def toggle_select(self, sticker_id: str) -> bool:
        """Flip selection of a sticker and return whether it is now selected."""
        self._require(sticker_id)
        if sticker_id in self._selection:
            self._selection.discard(sticker_id)
            return False
        self._selection.add(sticker_id)
        return True

    def select_all(self) -> list[str]:
        """Select every sticker that has a draft and has not failed."""
        self._selection = {
            sid
            for sid, sticker in self._stickers.items()
            if sticker.status not in _UNSELECTABLE
        }
        return self.selected_ids()

    def clear_selection(self) -> None:
        self._selection.clear()

    async def process_selected(self) -> dict[str, StickerStatus | None]:
        """Run the finishing pipeline for every selected sticker concurrently."""
        ids = self.selected_ids()
        results = await asyncio.gather(
            *(self.pipeline.run(sid) for sid in ids), return_exceptions=True
        )
        outcome: dict[str, StickerStatus | None] = {}
        for sid, result in zip(ids, results, strict=True):
            if isinstance(result, BaseException):
                _logger.error("Finishing crashed: id=%s error=%s", sid, result)
                outcome[sid] = None
            else:
                outcome[sid] = result
        return outcome

    def clear_session(self) -> None:
        """Drop stickers, selection and queued batches.

        In-flight work keeps running; its results are discarded by id lookup.
        """
        for task in self.queue.clear():
            self._cancel_history(task)
        self._stickers.clear()
        self._selection.clear()
        self.error = None
        _logger.info("Session cleared")

    def restore_from_history(self, record: HistoryRecord) -> list[str]:
        """Reinsert a history record's stickers that are not already live."""
        restored = []
        for sticker in record.stickers:
            if sticker.id not in self._stickers:
                self._stickers[sticker.id] = sticker
                restored.append(sticker.id)
        return restored

    def dismiss_error(self) -> None:
        self.error = None

    async def wait_until_idle(self) -> None:
        await self.queue.wait_until_idle()

    def get(self, sticker_id: str) -> StickerEntity | None:
        return self._stickers.get(sticker_id)

    def patch(
        self,
        sticker_id: str,
        status: StickerStatus,
        *,
        expect_run: str | None = None,
        **changes: object,
    ) -> StickerEntity | None:
        """Apply a keyed transition against the sticker's current value.

        With ``expect_run`` the write only lands if that finishing run still
        owns the sticker; writes from a superseded run return None.
        """
        current = self._stickers.get(sticker_id)
        if current is None:
            _logger.info(
                "Discarding update for dropped sticker: id=%s status=%s",
                sticker_id,
                status,
            )
            return None
        if expect_run is not None and current.run_id != expect_run:
            _logger.info(
                "Discarding update from stale run: id=%s run=%s status=%s",
                sticker_id,
                expect_run,
                status,
            )
            return None
        if status not in ALLOWED_TRANSITIONS[current.status]:
            raise InvalidTransitionError(
                f"{sticker_id}: {current.status} -> {status}"
            )
        if "mask_image" in changes and status is not StickerStatus.MATTING:
            raise InvalidTransitionError(f"{sticker_id}: mask set outside matting")
        if "final_image" in changes and status is not StickerStatus.COMPLETE:
            raise InvalidTransitionError(f"{sticker_id}: final set before complete")
        updated = replace(current, status=status, **changes)  # type: ignore[arg-type]
        self._stickers[sticker_id] = updated
        return updated

    def fail(
        self, sticker_id: str, message: str, *, expect_run: str | None = None
    ) -> StickerEntity | None:
        """Mark a live sticker FAILED unless it already reached a terminal state."""
        current = self._stickers.get(sticker_id)
        if current is None or current.status.is_terminal:
            return current
        return self.patch(
            sticker_id, StickerStatus.FAILED, expect_run=expect_run, error=message
        )

    def apply_drafts(self, task: BatchTask, images: list[bytes]) -> None:
        """Attach draft variants to the placeholders of a resolved batch."""
        drafted = []
        for index, image in enumerate(images):
            placeholder = _placeholder(task, index)
            drafted.append(
                replace(placeholder, status=StickerStatus.DRAFTED, draft_image=image)
            )
            live = self._stickers.get(placeholder.id)
            if live is not None and live.status is StickerStatus.QUEUED_DRAFT:
                self.patch(
                    placeholder.id,
                    StickerStatus.DRAFTED,
                    prompt=task.prompt,
                    draft_image=image,
                )
        self._resolve_history(task, tuple(drafted))

    def apply_batch_failure(self, task: BatchTask, exc: Exception) -> None:
        """Fail every live placeholder of a batch and raise a recoverable notice.

        A batch whose placeholders were all cleared fails silently.
        """
        message = str(exc) or exc.__class__.__name__
        failed_any = False
        for sid in task.sticker_ids():
            live = self._stickers.get(sid)
            if live is not None and live.status is StickerStatus.QUEUED_DRAFT:
                self.patch(sid, StickerStatus.FAILED, error=message)
                failed_any = True
        if failed_any:
            self.error = (
                f"Failed to generate stickers for {task.prompt!r}. Please try again."
            )
        self._resolve_history(
            task,
            tuple(
                _placeholder(task, index, StickerStatus.FAILED, message)
                for index in range(task.variant_count)
            ),
        )

    def _enqueue_prompt(self, prompt: str, reference_image: bytes | None) -> BatchTask:
        task = BatchTask(
            batch_id=str(next(self._batch_ids)),
            prompt=prompt,
            reference_image=reference_image,
            variant_count=self.generation.variant_count,
        )
        placeholders = tuple(
            _placeholder(task, index) for index in range(task.variant_count)
        )
        for placeholder in placeholders:
            self._stickers[placeholder.id] = placeholder
        self._history[task.batch_id] = HistoryRecord(
            batch_id=task.batch_id,
            prompt=task.prompt,
            reference_image=task.reference_image,
            stickers=placeholders,
        )
        self.queue.enqueue(task)
        return task

    def _resolve_history(
        self, task: BatchTask, stickers: tuple[StickerEntity, ...]
    ) -> None:
        record = self._history.get(task.batch_id)
        if record is None or record.resolved:
            return
        self._history[task.batch_id] = replace(
            record, stickers=stickers, resolved=True
        )

    def _cancel_history(self, task: BatchTask) -> None:
        self._resolve_history(
            task,
            tuple(
                _placeholder(task, index, StickerStatus.FAILED, "cancelled")
                for index in range(task.variant_count)
            ),
        )

    def _require(self, sticker_id: str) -> StickerEntity:
        sticker = self._stickers.get(sticker_id)
        if sticker is None:
            raise StickerNotFoundError(sticker_id)
        return sticker


def _placeholder(
    task: BatchTask,
    index: int,
    status: StickerStatus = StickerStatus.QUEUED_DRAFT,
    error: str | None = None,
) -> StickerEntity:
    return StickerEntity(
        id=make_sticker_id(task.batch_id, index),
        batch_id=task.batch_id,
        variant_index=index,
        status=status,
        prompt=task.prompt,
        error=error,
    )
