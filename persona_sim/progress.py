from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)

SNAP_THRESHOLD = 95.0
COMPLETE = 100.0
MIN_STEP = 2.0
MAX_STEP = 10.0


class ProgressSimulator:
    """Synthetic 0-100 progress used to pace the wait for analysis.

    Every ``tick`` seconds the value grows by a random step in [2, 10). A tick
    that finds the value at 95 or more snaps it to 100 and ends the loop. The
    completion hook then runs after two fixed pauses (``settle_delay`` followed
    by ``think_delay``); neither pause depends on how long the real work takes.
    """

    def __init__(
        self,
        on_complete: Optional[Callable[[], Awaitable[None]]] = None,
        *,
        tick: float = 0.3,
        settle_delay: float = 1.0,
        think_delay: float = 3.0,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._on_complete = on_complete
        self.tick = tick
        self.settle_delay = settle_delay
        self.think_delay = think_delay
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._on_progress = on_progress
        self._task: Optional[asyncio.Task] = None
        self.value: float = 0.0
        self.history: List[float] = []
        self.completed = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start a run from 0; returns False when a run is already active."""
        if self.running:
            logger.debug("evt=progress_start_ignored reason=already_running value=%.1f", self.value)
            return False
        self.value = 0.0
        self.history = [0.0]
        self.completed = False
        self._emit()
        self._task = asyncio.create_task(self._run(), name="progress-simulator")
        return True

    def cancel(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("evt=progress_cancel value=%.1f", self.value)

    async def wait(self) -> None:
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _emit(self) -> None:
        if self._on_progress is not None:
            self._on_progress(self.value)

    def _advance(self) -> bool:
        if self.value >= SNAP_THRESHOLD:
            self.value = COMPLETE
        else:
            step = self._rng.uniform(MIN_STEP, MAX_STEP)
            # uniform() may return the upper bound; keep the step half-open.
            if step >= MAX_STEP:
                step = MIN_STEP
            self.value = min(self.value + step, COMPLETE)
        self.history.append(self.value)
        self._emit()
        return self.value >= COMPLETE

    async def _run(self) -> None:
        while True:
            await self._sleep(self.tick)
            if self._advance():
                break
        self.completed = True
        logger.debug("evt=progress_done ticks=%d", len(self.history) - 1)
        await self._sleep(self.settle_delay)
        await self._sleep(self.think_delay)
        if self._on_complete is not None:
            await self._on_complete()


__all__ = ["ProgressSimulator"]
