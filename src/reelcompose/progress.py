"""Progress aggregation and stage timeouts.

A multi-stage operation declares its sub-stages with weights summing to
100. Each stage reports a 0-1 fraction and a label; the tracker maps
that onto the stage's slice of the overall percentage and forwards it
to the caller's progress(percent, label) callback. Overall progress
never goes backwards, even when a fallback restarts work.

Timeouts are a race between the operation and a timer (with_timeout).
There is no cooperative cancellation of an engine command: a timed-out
stage is cancelled, its result discarded, and the caller cleans up.
"""

import asyncio
import logging
from typing import Awaitable, TypeVar

from .errors import StageTimeoutError
from .models import ProgressCallback

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], seconds: float | None, stage: str) -> T:
    """Await with a time budget, raising StageTimeoutError on expiry.

    None means no limit. The awaited operation is cancelled on timeout.
    """
    if seconds is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        logger.warning("Stage '%s' timed out after %.1fs", stage, seconds)
        raise StageTimeoutError(stage, seconds) from e


class StageProgress:
    """Progress reporter for one weighted stage."""

    def __init__(self, tracker: "ProgressTracker", name: str, start: float, weight: float):
        self.tracker = tracker
        self.name = name
        self.start = start
        self.weight = weight
        self.fraction = 0.0

    def update(self, fraction: float, label: str | None = None) -> None:
        """Report 0-1 completion of this stage. Lower values are ignored."""
        fraction = max(0.0, min(1.0, fraction))
        if fraction < self.fraction:
            fraction = self.fraction
        self.fraction = fraction
        self.tracker._emit(self.start + self.weight * fraction, label or self.name)

    def complete(self, label: str | None = None) -> None:
        self.update(1.0, label)


class ProgressTracker:
    """Aggregate weighted sub-stage progress into one 0-100 stream.

    Args:
        callback: progress(percent, label), or None to discard updates.
        stages: Ordered mapping of stage name to weight. Weights must
            sum to 100.
    """

    def __init__(self, callback: ProgressCallback | None, stages: dict[str, float]):
        total = sum(stages.values())
        if abs(total - 100) > 1e-6:
            raise ValueError(f"Stage weights must sum to 100, got {total}")
        if any(w < 0 for w in stages.values()):
            raise ValueError("Stage weights must be >= 0")
        self.callback = callback
        self.percent = 0.0
        self.label = ""
        self._stages: dict[str, StageProgress] = {}
        start = 0.0
        for name, weight in stages.items():
            self._stages[name] = StageProgress(self, name, start, weight)
            start += weight

    def stage(self, name: str) -> StageProgress:
        try:
            return self._stages[name]
        except KeyError:
            raise KeyError(
                f"Unknown stage '{name}'. Declared: {list(self._stages)}"
            ) from None

    def finish(self, label: str = "Completed") -> None:
        self._emit(100.0, label)

    def _emit(self, percent: float, label: str) -> None:
        percent = min(100.0, max(self.percent, percent))
        self.percent = percent
        self.label = label
        if self.callback is not None:
            self.callback(round(percent, 1), label)


class Heartbeat:
    """Nudge a stage forward while an opaque operation runs.

    Used around engine commands that report no progress of their own
    (demuxer concat). Every interval the stage advances by step, never
    past cap.

    Usage:
        async with Heartbeat(stage, "Concatenating", step=0.02, cap=0.9):
            await session.exec(args)
    """

    def __init__(self, stage: StageProgress, label: str, *, interval: float = 1.5,
                 step: float = 0.02, cap: float = 0.95):
        self.stage = stage
        self.label = label
        self.interval = interval
        self.step = step
        self.cap = cap
        self._task: asyncio.Task | None = None

    async def __aenter__(self) -> "Heartbeat":
        self.stage.update(self.stage.fraction, self.label)
        self._task = asyncio.ensure_future(self._beat())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _beat(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.stage.update(min(self.cap, self.stage.fraction + self.step), self.label)
