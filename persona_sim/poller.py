from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .errors import SimulationError, StalledError
from .models import PersonaSet, PollerState

logger = logging.getLogger(__name__)

Fetch = Callable[[str], Awaitable[PersonaSet]]
OnResult = Callable[[str, PersonaSet], None]
OnStalled = Callable[[str, StalledError], None]


class CompletionPoller:
    """Re-fetch a job's personas until the set reports ``completed``.

    The first fetch happens immediately, later ones every ``interval`` seconds
    with no backoff. After ``max_attempts`` unsuccessful ticks (failed fetches
    included) the poller gives up in the STALLED state; ``None`` polls forever.
    """

    def __init__(
        self,
        fetch: Fetch,
        *,
        interval: float = 0.5,
        max_attempts: Optional[int] = None,
        on_result: Optional[OnResult] = None,
        on_stalled: Optional[OnStalled] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._fetch = fetch
        self.interval = interval
        self.max_attempts = max_attempts
        self._on_result = on_result
        self._on_stalled = on_stalled
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.job_id: Optional[str] = None
        self.state: PollerState = PollerState.stopped
        self.fetch_count = 0
        self.error: Optional[StalledError] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, job_id: str) -> None:
        self.cancel()
        self.job_id = job_id
        self.fetch_count = 0
        self.error = None
        self.state = PollerState.polling
        self._task = asyncio.create_task(self._run(job_id), name=f"persona-poller-{job_id}")
        logger.debug("evt=poll_start job_id=%s interval=%s max_attempts=%s", job_id, self.interval, self.max_attempts)

    def cancel(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("evt=poll_cancel job_id=%s fetches=%d", self.job_id, self.fetch_count)
        if self.state is PollerState.polling:
            self.state = PollerState.stopped

    async def wait(self) -> None:
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self, job_id: str) -> None:
        failed = 0
        while True:
            self.fetch_count += 1
            completed = False
            try:
                result = await self._fetch(job_id)
            except SimulationError as exc:
                logger.warning("evt=poll_fetch_failed job_id=%s attempt=%d error=%s", job_id, self.fetch_count, exc)
            else:
                completed = result.completed
                logger.debug(
                    "evt=poll_tick job_id=%s attempt=%d personas=%d completed=%s",
                    job_id,
                    self.fetch_count,
                    len(result.personas),
                    completed,
                )
                if self._on_result is not None:
                    self._on_result(job_id, result)

            if completed:
                self.state = PollerState.stopped
                logger.debug("evt=poll_done job_id=%s fetches=%d", job_id, self.fetch_count)
                return

            failed += 1
            if self.max_attempts is not None and failed >= self.max_attempts:
                self.state = PollerState.stalled
                self.error = StalledError(job_id, failed)
                logger.warning("evt=poll_stalled job_id=%s attempts=%d", job_id, failed)
                if self._on_stalled is not None:
                    self._on_stalled(job_id, self.error)
                return

            await self._sleep(self.interval)


__all__ = ["CompletionPoller"]
