"""
Speech Task Scheduler.

FIFO of speak tasks played one chunk at a time through a TTS backend and an
audio player. Runs entirely on one event loop: ``enqueue`` only appends and
raises a flag, the run loop does all the I/O.

Pacing:
    Each task gets a speed override computed at enqueue time from the number
    of tasks already waiting (backlog) and the length of its text:

        backlog  = min(1.5, 1 + 0.1 * waiting)
        length   = 1.4 if chars > 200 else 1.2 if chars > 100 else 1.0
        override = min(2.0, base_speed * max(backlog, length))

    The override is only set when it differs from the base speed.

Preemption:
    Enqueueing while a task is playing asks that task to stop. The request is
    honoured at the next chunk boundary: the chunk in flight always finishes,
    the remaining chunks are discarded and the task settles as PREEMPTED.

Failures:
    A synthesis or playback failure skips that chunk only. There are no
    retries and the run loop never stops because of one task.

Usage:
    scheduler = SpeechScheduler(backend, player, config.scheduler)
    handle = scheduler.enqueue("Build finished. Two tests failed.")
    settled = await handle          # TaskSettled
    await scheduler.close()
"""
from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Generator, List, Optional

from log_narrator.core.config import Defaults, SchedulerConfig
from log_narrator.core.errors import InvalidInputError, NarratorError
from log_narrator.core.events import Subscribers, TaskOutcome, TaskSettled
from log_narrator.core.logging import debug, error, get_logger, info, set_task_id, verbose, warn
from log_narrator.core.metrics import metrics
from log_narrator.speech.backend import SpeechBackend
from log_narrator.speech.playback import AudioArtifacts, AudioPlayer
from log_narrator.speech.segmenter import Chunk, segment
from log_narrator.utils.text import preview
from log_narrator.utils.timeit import timeit

_LOG = get_logger("log-narrator.scheduler")

MAX_SPEED = 2.0
MAX_BACKLOG_FACTOR = 1.5
BACKLOG_STEP = 0.1


def compute_speed_override(base_speed: float, queue_depth: int, text_length: int) -> Optional[float]:
    """
    Speed for a new task, or None when it would equal ``base_speed``.

    Args:
        base_speed: Configured backend speed.
        queue_depth: Tasks waiting, not counting the one playing.
        text_length: Characters in the task's text.

    Returns:
        A value in (base_speed, 2.0], rounded to 3 decimals, or None.
    """
    backlog = min(MAX_BACKLOG_FACTOR, 1.0 + BACKLOG_STEP * queue_depth)
    if text_length > 200:
        length = 1.4
    elif text_length > 100:
        length = 1.2
    else:
        length = 1.0

    speed = min(MAX_SPEED, base_speed * max(backlog, length))
    if speed <= base_speed:
        return None
    return max(round(speed, 3), base_speed)


@dataclass
class SpeakTask:
    """One enqueued utterance. Chunks are computed when the task first runs."""
    id: int
    original_text: str
    speed_override: Optional[float] = None
    chunks: Optional[List[Chunk]] = None
    next_chunk_index: int = 0
    enqueued_at: float = field(default_factory=time.monotonic)
    played: int = 0
    skipped: int = 0
    discarded: int = 0


@dataclass(frozen=True)
class SchedulerStats:
    """Read-only snapshot of scheduler state."""
    is_active: bool
    current_task_id: Optional[int]
    queue_depth: int
    preemption_requested: bool
    tasks_enqueued: int
    tasks_settled: int
    chunks_played: int
    chunks_skipped: int
    chunks_discarded: int


class SpeakHandle:
    """
    Returned by ``enqueue``. Await it to get the task's TaskSettled event.

    Cancelling a coroutine that awaits the handle does not cancel the task.
    """

    def __init__(self, task_id: int, speed_override: Optional[float], future: "asyncio.Future[TaskSettled]"):
        self.task_id = task_id
        self.speed_override = speed_override
        self._future = future

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> TaskSettled:
        """The settled event; raises InvalidStateError while the task is pending."""
        return self._future.result()

    def __await__(self) -> Generator[object, None, TaskSettled]:
        return asyncio.shield(self._future).__await__()

    def __repr__(self) -> str:
        state = self._future.result().outcome.value if self._future.done() else "pending"
        return f"SpeakHandle(task_id={self.task_id}, speed_override={self.speed_override}, state={state})"


class SpeechScheduler:
    """
    Sequential synthesize -> play loop over a FIFO of speak tasks.

    Attributes:
        settled: Subscribers notified with TaskSettled, in settlement order.
    """

    def __init__(
        self,
        backend: SpeechBackend,
        player: AudioPlayer,
        config: Optional[SchedulerConfig] = None,
        artifacts: Optional[AudioArtifacts] = None,
        preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS,
    ):
        self.backend = backend
        self.player = player
        self.config = config or SchedulerConfig()
        self.artifacts = artifacts or AudioArtifacts(self.config.scratch_dir)
        self.preview_chars = preview_chars
        self.settled: Subscribers[TaskSettled] = Subscribers("task_settled")

        self._queue: Deque[SpeakTask] = deque()
        self._current: Optional[SpeakTask] = None
        self._preemption_requested = False
        self._runner: Optional[asyncio.Task] = None
        self._futures: Dict[int, "asyncio.Future[TaskSettled]"] = {}
        self._next_id = 1
        self._closed = False

        self._tasks_enqueued = 0
        self._tasks_settled = 0
        self._chunks_played = 0
        self._chunks_skipped = 0
        self._chunks_discarded = 0

    @property
    def is_active(self) -> bool:
        return self._runner is not None and not self._runner.done()

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    def enqueue(self, text: str) -> SpeakHandle:
        """
        Queue ``text`` for speaking. Must be called on the scheduler's event loop.

        Raises:
            InvalidInputError: Text is empty or whitespace.
            NarratorError: The scheduler has been closed.
        """
        if self._closed:
            raise NarratorError("scheduler is closed")
        if not text or not text.strip():
            raise InvalidInputError("text to speak is empty")

        loop = asyncio.get_running_loop()
        depth = len(self._queue)
        task = SpeakTask(
            id=self._next_id,
            original_text=text,
            speed_override=compute_speed_override(self.config.base_speed, depth, len(text)),
        )
        self._next_id += 1
        self._tasks_enqueued += 1

        future: "asyncio.Future[TaskSettled]" = loop.create_future()
        self._futures[task.id] = future
        self._queue.append(task)
        metrics.set_queue_depth(len(self._queue))

        if self.is_active:
            if self._current is not None:
                self._preemption_requested = True
                debug(_LOG, "preemption_requested", current=self._current.id, by=task.id)
        else:
            self._runner = loop.create_task(self._run())

        info(
            _LOG, "task_enqueued",
            task=task.id,
            chars=len(text),
            queue_depth=depth,
            speed=task.speed_override,
            text=preview(text, self.preview_chars),
        )
        return SpeakHandle(task.id, task.speed_override, future)

    async def wait_idle(self) -> None:
        """Return once the queue is drained and nothing is playing."""
        while self._runner is not None and not self._runner.done():
            await asyncio.wait({self._runner})

    async def close(self) -> None:
        """Stop the run loop. Every unsettled task settles as CANCELLED."""
        self._closed = True
        runner = self._runner
        if runner is not None and not runner.done():
            runner.cancel()
            try:
                await runner
            except asyncio.CancelledError:
                pass
        self._runner = None

        pending: List[SpeakTask] = []
        if self._current is not None:
            pending.append(self._current)
        pending.extend(self._queue)
        self._queue.clear()
        self._current = None
        self._preemption_requested = False
        metrics.set_queue_depth(0)

        for task in pending:
            remaining = len(task.chunks) - task.next_chunk_index if task.chunks is not None else 0
            self._discard(task, remaining)
            self._settle(task, TaskOutcome.CANCELLED)

        if pending:
            info(_LOG, "scheduler_closed", cancelled=len(pending))

    def stats(self) -> SchedulerStats:
        return SchedulerStats(
            is_active=self.is_active,
            current_task_id=self._current.id if self._current is not None else None,
            queue_depth=len(self._queue),
            preemption_requested=self._preemption_requested,
            tasks_enqueued=self._tasks_enqueued,
            tasks_settled=self._tasks_settled,
            chunks_played=self._chunks_played,
            chunks_skipped=self._chunks_skipped,
            chunks_discarded=self._chunks_discarded,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Run loop
    # ─────────────────────────────────────────────────────────────────────────

    async def _run(self) -> None:
        while self._queue:
            task = self._queue.popleft()
            self._current = task
            self._preemption_requested = False
            metrics.set_queue_depth(len(self._queue))
            set_task_id(str(task.id))

            try:
                outcome = await self._process(task)
            except Exception as e:
                error(_LOG, "task_failed", exc_info=True, task=task.id, error=repr(e))
                outcome = TaskOutcome.COMPLETED

            self._settle(task, outcome)
            self._current = None
            set_task_id("-")
        debug(_LOG, "scheduler_idle")

    async def _process(self, task: SpeakTask) -> TaskOutcome:
        if task.chunks is None:
            task.chunks = segment(task.original_text, self.config.max_chunk_chars, task_id=task.id)
        total = len(task.chunks)

        while task.next_chunk_index < total:
            index = task.next_chunk_index
            if index > 0 and self._preemption_requested:
                self._discard(task, total - index)
                info(_LOG, "task_preempted", task=task.id, at_chunk=index, discarded=total - index)
                return TaskOutcome.PREEMPTED

            await self._speak_chunk(task, task.chunks[index])
            task.next_chunk_index += 1

            if task.next_chunk_index < total and not self._preemption_requested:
                await asyncio.sleep(self.config.inter_chunk_pause_s)

        return TaskOutcome.COMPLETED

    async def _speak_chunk(self, task: SpeakTask, chunk: Chunk) -> None:
        effects = {"speed": task.speed_override} if task.speed_override is not None else None
        try:
            with timeit("synthesize") as synth:
                audio = await self.backend.synthesize(chunk.text, effects=effects)
            metrics.observe_synthesis(synth.seconds)

            with timeit("play") as play:
                async with self.artifacts.acquire(audio) as path:
                    await self.player.play(path)
        except NarratorError as e:
            self._skip(task)
            warn(_LOG, "chunk_skipped", index=chunk.index, error=e.code, message=e.message)
            return
        except Exception as e:
            self._skip(task)
            error(_LOG, "chunk_failed", exc_info=True, index=chunk.index, error=repr(e))
            return

        task.played += 1
        self._chunks_played += 1
        metrics.record_chunk("played")
        verbose(
            _LOG, "chunk_played",
            index=chunk.index,
            chars=len(chunk.text),
            synth_s=round(synth.seconds, 3),
            seconds=play.seconds,
        )

    def _skip(self, task: SpeakTask) -> None:
        task.skipped += 1
        self._chunks_skipped += 1
        metrics.record_chunk("skipped")

    def _discard(self, task: SpeakTask, count: int) -> None:
        task.discarded += count
        self._chunks_discarded += count
        metrics.record_chunk("discarded", count)

    def _settle(self, task: SpeakTask, outcome: TaskOutcome) -> None:
        event = TaskSettled(
            task_id=task.id,
            outcome=outcome,
            chunks_total=len(task.chunks) if task.chunks is not None else 0,
            chunks_played=task.played,
            chunks_skipped=task.skipped,
            chunks_discarded=task.discarded,
            speed_override=task.speed_override,
        )
        self._tasks_settled += 1
        metrics.record_task(outcome.value)

        future = self._futures.pop(task.id, None)
        if future is not None and not future.done():
            future.set_result(event)

        info(
            _LOG, "task_settled",
            task=task.id,
            outcome=outcome.value,
            played=task.played,
            skipped=task.skipped,
            discarded=task.discarded,
            seconds=time.monotonic() - task.enqueued_at,
        )
        self.settled.publish(event)
