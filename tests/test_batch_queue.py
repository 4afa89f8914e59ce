"""Tests for the serialized batch queue."""

import asyncio
from dataclasses import dataclass, field

from sticker_forge.domain.stickers import BatchTask
from sticker_forge.services.batch_queue import BatchQueue, BatchSink
from sticker_forge.services.generation import draft_prompt
from tests.conftest import FakeGenerationClient, build_generation


@dataclass
class RecordingSink(BatchSink):
    """Sink that records resolutions in order."""

    resolved: list[tuple[str, str]] = field(default_factory=list)

    def apply_drafts(self, task: BatchTask, images: list[bytes]) -> None:
        self.resolved.append((task.batch_id, f"drafted:{len(images)}"))

    def apply_batch_failure(self, task: BatchTask, exc: Exception) -> None:
        self.resolved.append((task.batch_id, "failed"))


def _first(events: list[tuple[str, str]], kind: str, prompt: str) -> int:
    return events.index((kind, draft_prompt(prompt)))


def _last(events: list[tuple[str, str]], kind: str, prompt: str) -> int:
    target = (kind, draft_prompt(prompt))
    return max(i for i, event in enumerate(events) if event == target)


def test_queue_runs_one_batch_at_a_time() -> None:
    client = FakeGenerationClient()
    sink = RecordingSink()

    async def scenario() -> BatchQueue:
        queue = BatchQueue(generation=build_generation(client), sink=sink)
        queue.enqueue(BatchTask(batch_id="1", prompt="robot"))
        queue.enqueue(BatchTask(batch_id="2", prompt="cactus"))
        assert queue.in_flight is not None
        assert queue.in_flight.batch_id == "1"
        assert queue.pending_count == 1
        await queue.wait_until_idle()
        return queue

    queue = asyncio.run(scenario())

    assert queue.is_idle
    assert _last(client.events, "end", "robot") < _first(
        client.events, "start", "cactus"
    )
    assert sink.resolved == [("1", "drafted:4"), ("2", "drafted:4")]


def test_queue_keeps_draining_after_a_failure() -> None:
    client = FakeGenerationClient(fail_prompts={"cactus"})
    sink = RecordingSink()

    async def scenario() -> None:
        queue = BatchQueue(generation=build_generation(client), sink=sink)
        for batch_id, prompt in (("1", "cactus"), ("2", "robot")):
            queue.enqueue(BatchTask(batch_id=batch_id, prompt=prompt))
        await queue.wait_until_idle()

    asyncio.run(scenario())

    assert sink.resolved == [("1", "failed"), ("2", "drafted:4")]


def test_failed_variant_cancels_its_siblings_before_next_batch() -> None:
    client = FakeGenerationClient(fail_once={"cactus"}, draft_ticks=20)
    sink = RecordingSink()

    async def scenario() -> None:
        queue = BatchQueue(generation=build_generation(client), sink=sink)
        for batch_id, prompt in (("1", "cactus"), ("2", "robot")):
            queue.enqueue(BatchTask(batch_id=batch_id, prompt=prompt))
        await queue.wait_until_idle()

    asyncio.run(scenario())

    assert sink.resolved == [("1", "failed"), ("2", "drafted:4")]
    assert client.max_active <= 4
    assert client.active == 0
    assert client.events.count(("end", draft_prompt("cactus"))) == 1
    assert _last(client.events, "end", "cactus") < _first(
        client.events, "start", "robot"
    )


def test_queue_clear_drops_only_pending_tasks() -> None:
    client = FakeGenerationClient()
    sink = RecordingSink()

    async def scenario() -> list[BatchTask]:
        queue = BatchQueue(generation=build_generation(client), sink=sink)
        for batch_id, prompt in (("1", "robot"), ("2", "cactus"), ("3", "owl")):
            queue.enqueue(BatchTask(batch_id=batch_id, prompt=prompt))
        dropped = queue.clear()
        await queue.wait_until_idle()
        return dropped

    dropped = asyncio.run(scenario())

    assert [task.batch_id for task in dropped] == ["2", "3"]
    assert sink.resolved == [("1", "drafted:4")]
