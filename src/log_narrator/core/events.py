"""
Produced Events and Ordered Subscriber Lists.

Two event types leave the pipeline:
    - UtteranceExtracted: one per qualifying assistant content item
    - TaskSettled: one per enqueued speak task (completed, preempted or cancelled)

Each source owns a ``Subscribers`` list. Callbacks run synchronously in
registration order; a callback that raises is logged and does not stop
delivery to the ones after it.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, TypeVar

from log_narrator.core.logging import error, get_logger

_LOG = get_logger("log-narrator.events")

E = TypeVar("E")


class TaskOutcome(str, enum.Enum):
    """How a speak task ended."""
    COMPLETED = "completed"   # every chunk was handled (played or skipped)
    PREEMPTED = "preempted"   # a newer task arrived; remaining chunks discarded
    CANCELLED = "cancelled"   # scheduler shut down before the task finished


@dataclass(frozen=True)
class UtteranceExtracted:
    """An utterance was pulled out of an assistant record."""
    text: str
    record_uuid: Optional[str] = None
    item_index: int = 0


@dataclass(frozen=True)
class TaskSettled:
    """
    A speak task finished.

    Attributes:
        task_id: Scheduler-assigned task id.
        outcome: How the task ended.
        chunks_total: Chunks the task was segmented into (0 if never started).
        chunks_played: Chunks synthesized and played successfully.
        chunks_skipped: Chunks whose synthesis or playback failed.
        chunks_discarded: Chunks dropped by preemption or cancellation.
        speed_override: Speed used for this task, if it differed from the base.
    """
    task_id: int
    outcome: TaskOutcome
    chunks_total: int = 0
    chunks_played: int = 0
    chunks_skipped: int = 0
    chunks_discarded: int = 0
    speed_override: Optional[float] = None


class Subscribers(Generic[E]):
    """Ordered list of callbacks for one event source."""

    def __init__(self, name: str):
        self.name = name
        self._callbacks: List[Callable[[E], None]] = []

    def subscribe(self, callback: Callable[[E], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def publish(self, event: E) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception as e:
                error(_LOG, "subscriber_failed", exc_info=True, source=self.name, error=repr(e))

    def __len__(self) -> int:
        return len(self._callbacks)
