"""Serialized queue that turns prompts into draft variants."""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Protocol

from sticker_forge.domain.stickers import BatchTask
from sticker_forge.services.generation import GenerationService

_logger = logging.getLogger(__name__)


class BatchSink(Protocol):
    """Receives the resolution of each batch task."""

    def apply_drafts(self, task: BatchTask, images: list[bytes]) -> None:
        """Attach generated drafts to the placeholders of ``task``."""

    def apply_batch_failure(self, task: BatchTask, exc: Exception) -> None:
        """Mark the placeholders of ``task`` as failed."""


@dataclass
class BatchQueue:
    """FIFO of batch tasks with at most one task in flight.

    Draining is event driven: it runs once after every enqueue and once after
    every resolution has been applied to the sink.
    """

    generation: GenerationService
    sink: BatchSink = field(repr=False)
    _pending: deque[BatchTask] = field(default_factory=deque, init=False)
    _in_flight: BatchTask | None = field(default=None, init=False)
    _worker: "asyncio.Task[None] | None" = field(default=None, init=False)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def in_flight(self) -> BatchTask | None:
        return self._in_flight

    @property
    def is_idle(self) -> bool:
        return self._in_flight is None and not self._pending

    def enqueue(self, task: BatchTask) -> None:
        """Append a task and start it if the queue is idle."""
        self._pending.append(task)
        _logger.info(
            "Batch queued: batch_id=%s pending=%s", task.batch_id, len(self._pending)
        )
        self._drain()

    def clear(self) -> list[BatchTask]:
        """Drop every task that has not started yet and return them."""
        dropped = list(self._pending)
        self._pending.clear()
        return dropped

    async def wait_until_idle(self) -> None:
        """Wait until the in-flight task and everything queued behind it resolve."""
        while self._worker is not None:
            await asyncio.shield(self._worker)

    def _drain(self) -> None:
        if self._in_flight is not None or not self._pending:
            return
        task = self._pending.popleft()
        self._in_flight = task
        self._worker = asyncio.get_running_loop().create_task(self._process(task))

    async def _process(self, task: BatchTask) -> None:
        try:
            images = await self.generation.generate_drafts(
                task.prompt, task.reference_image
            )
        except Exception as exc:  # noqa: BLE001
            _logger.warning(
                "Batch failed: batch_id=%s prompt=%r error=%s",
                task.batch_id,
                task.prompt,
                exc,
            )
            self.sink.apply_batch_failure(task, exc)
        else:
            _logger.info(
                "Batch drafted: batch_id=%s variants=%s", task.batch_id, len(images)
            )
            self.sink.apply_drafts(task, images)
        finally:
            self._in_flight = None
            self._worker = None
            self._drain()
