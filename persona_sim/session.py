"""Per-job orchestration session.

A session is the server-side counterpart of one mounted simulation page: it
owns the fetched data for the active job, recomputes the stage view after every
refresh, runs the persona poller and the progress simulator, and routes user
intent (prompt edits, "run simulation") to the trigger coordinator.

Every asynchronous result is tagged with the job id and epoch it was requested
for. Switching jobs or closing the session bumps the epoch, so late results for
an abandoned job are dropped instead of overwriting current state.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, List, Optional

from .accessors import StageDataAccessors
from .coordinator import TriggerCoordinator
from .errors import SimulationError, StalledError, ValidationError
from .models import (
    Analysis,
    ConversationRow,
    Job,
    PersonaResponse,
    PersonaSet,
    RunOutcome,
    SessionSnapshot,
    SimulationTimings,
    Stage,
    StageView,
)
from .navigation import Navigator
from .poller import CompletionPoller
from .progress import ProgressSimulator
from .stage import build_stage_view

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


def conversation_rows(responses: Optional[List[PersonaResponse]]) -> List[ConversationRow]:
    rows: List[ConversationRow] = []
    for response in responses or []:
        persona = response.persona
        rows.append(
            ConversationRow(
                id=response.id,
                name=(persona.name if persona and persona.name else UNKNOWN),
                location=(persona.location if persona and persona.location else UNKNOWN),
                feedback=response.conversation.response,
            )
        )
    return rows


class SimulationSession:
    def __init__(
        self,
        accessors: StageDataAccessors,
        *,
        navigator: Optional[Navigator] = None,
        timings: Optional[SimulationTimings] = None,
        coordinator: Optional[TriggerCoordinator] = None,
        durable_guard: bool = True,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.accessors = accessors
        self.navigator = navigator or Navigator()
        self.timings = timings or SimulationTimings()
        self.coordinator = coordinator or TriggerCoordinator(
            accessors, self.navigator, durable_guard=durable_guard
        )
        self._rng = rng
        self._sleep = sleep
        self._epoch = 0

        self.job_id: Optional[str] = None
        self.job: Optional[Job] = None
        self.personas: Optional[PersonaSet] = None
        self.responses: Optional[List[PersonaResponse]] = None
        self.analysis: Optional[Analysis] = None
        self.prompt = ""
        self.error: Optional[str] = None
        self.view: StageView = build_stage_view(None, None, None)

        self.poller = self._make_poller()
        self.progress = self._make_progress(None, 0)

    # Construction helpers
    def _make_poller(self) -> CompletionPoller:
        epoch = self._epoch
        return CompletionPoller(
            self.accessors.fetch_personas,
            interval=self.timings.poll_interval,
            max_attempts=self.timings.poll_max_attempts,
            on_result=lambda job_id, result: self._apply(job_id, epoch, personas=result),
            on_stalled=lambda job_id, exc: self._on_stalled(job_id, epoch, exc),
            sleep=self._sleep,
        )

    def _make_progress(self, job_id: Optional[str], epoch: int) -> ProgressSimulator:
        async def _complete() -> None:
            await self._on_progress_complete(job_id, epoch)

        return ProgressSimulator(
            _complete,
            tick=self.timings.progress_tick,
            settle_delay=self.timings.progress_settle_delay,
            think_delay=self.timings.progress_think_delay,
            rng=self._rng,
            sleep=self._sleep,
        )

    # State
    @property
    def stage(self) -> Stage:
        return Stage(self.view.kind)

    def _is_current(self, job_id: Optional[str], epoch: int) -> bool:
        return job_id is not None and job_id == self.job_id and epoch == self._epoch

    def _recompute(self) -> None:
        previous = self.view.kind
        self.view = build_stage_view(self.job, self.personas, self.responses, self.analysis)
        if self.view.kind != previous:
            logger.debug("evt=stage_change job_id=%s from=%s to=%s", self.job_id, previous, self.view.kind)

    def _apply(
        self,
        job_id: str,
        epoch: int,
        *,
        job: Optional[Job] = None,
        personas: Optional[PersonaSet] = None,
        responses: Optional[List[PersonaResponse]] = None,
    ) -> bool:
        if not self._is_current(job_id, epoch):
            logger.debug(
                "evt=stale_result_dropped job_id=%s epoch=%d active_job_id=%s active_epoch=%d",
                job_id,
                epoch,
                self.job_id,
                self._epoch,
            )
            return False
        if job is not None:
            self.job = job
        if personas is not None:
            self.personas = personas
        if responses is not None:
            self.responses = responses
        self._recompute()
        return True

    def _stop_tasks(self) -> None:
        self.poller.cancel()
        self.progress.cancel()

    # Lifecycle
    async def activate(self, job_id: str) -> SessionSnapshot:
        """Make ``job_id`` the active job and load its current data."""
        job_id = (job_id or "").strip()
        if not job_id:
            raise ValidationError("job_id is required")

        self._stop_tasks()
        self._epoch += 1
        epoch = self._epoch
        self.job_id = job_id
        self.job = None
        self.personas = None
        self.responses = None
        self.analysis = None
        self.prompt = ""
        self.error = None
        self._recompute()
        logger.debug("evt=session_activate job_id=%s epoch=%d", job_id, epoch)

        self.poller = self._make_poller()
        self.progress = self._make_progress(job_id, epoch)
        self.poller.start(job_id)
        await self._load(job_id, epoch, include_personas=False)
        self._maybe_start_progress(job_id, epoch)
        return self.snapshot()

    async def refresh(self) -> SessionSnapshot:
        job_id, epoch = self.job_id, self._epoch
        if job_id is None:
            return self.snapshot()
        await self._load(job_id, epoch, include_personas=True)
        self._maybe_start_progress(job_id, epoch)
        return self.snapshot()

    def close(self) -> None:
        self._stop_tasks()
        self._epoch += 1
        logger.debug("evt=session_close job_id=%s", self.job_id)

    async def _load(self, job_id: str, epoch: int, *, include_personas: bool) -> None:
        calls = [self.accessors.fetch_job(job_id), self.accessors.fetch_responses(job_id)]
        if include_personas:
            calls.append(self.accessors.fetch_personas(job_id))
        results = await asyncio.gather(*calls, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, SimulationError):
                raise result

        job, responses = results[0], results[1]
        personas = results[2] if include_personas else None
        for name, result in (("job", job), ("responses", responses), ("personas", personas)):
            if isinstance(result, SimulationError):
                # Degrade to the loading state; the data already shown stays.
                logger.warning("evt=fetch_failed job_id=%s what=%s error=%s", job_id, name, result)
        self._apply(
            job_id,
            epoch,
            job=None if isinstance(job, SimulationError) else job,
            responses=None if isinstance(responses, SimulationError) else responses,
            personas=None if isinstance(personas, SimulationError) else personas,
        )

    async def _reload_responses(self, job_id: str, epoch: int) -> None:
        try:
            responses = await self.accessors.fetch_responses(job_id)
        except SimulationError as exc:
            logger.warning("evt=fetch_failed job_id=%s what=responses error=%s", job_id, exc)
            return
        self._apply(job_id, epoch, responses=responses)

    # Progress and analysis
    def _maybe_start_progress(self, job_id: str, epoch: int) -> None:
        if not self._is_current(job_id, epoch):
            return
        if not self.responses or self.analysis is not None:
            return
        if self.coordinator.analysis_in_flight(job_id):
            return
        if self.progress.completed:
            return
        if self.progress.start():
            logger.debug("evt=progress_start job_id=%s responses=%d", job_id, len(self.responses))

    async def _on_progress_complete(self, job_id: Optional[str], epoch: int) -> None:
        if not self._is_current(job_id, epoch):
            return
        try:
            analysis = await self.coordinator.ensure_analysis(job_id, self.responses, self.analysis)
        except SimulationError as exc:
            if self._is_current(job_id, epoch):
                self.error = f"Analysis failed: {exc}"
            return
        if analysis is not None and self._is_current(job_id, epoch):
            self.analysis = analysis
            self._recompute()

    def _on_stalled(self, job_id: str, epoch: int, exc: StalledError) -> None:
        if self._is_current(job_id, epoch):
            self.error = str(exc)

    # User intent
    def prompt_change(self, text: str) -> None:
        self.prompt = text or ""

    @property
    def can_run(self) -> bool:
        if self.job_id is None or not self.prompt.strip():
            return False
        return not self.coordinator.responses_in_flight(self.job_id)

    async def run_simulation(self) -> RunOutcome:
        """Trigger response generation (or skip it) and hand off to the progress run.

        Requires a non-empty trimmed prompt. Trigger failures are recorded in
        ``error`` and re-raised; nothing is retried.
        """
        job_id, epoch = self.job_id, self._epoch
        if job_id is None:
            raise ValidationError("no active job")
        if not self.prompt.strip():
            raise ValidationError("prompt is required", job_id=job_id)

        self.error = None
        try:
            outcome = await self.coordinator.run_simulation(job_id, self.responses)
        except SimulationError as exc:
            if self._is_current(job_id, epoch):
                self.error = f"Response generation failed: {exc}"
            raise

        if outcome is not RunOutcome.pending and self._is_current(job_id, epoch):
            # A fresh run restarts the paced progress.
            self.progress.completed = False
            if outcome is RunOutcome.triggered or not self.responses:
                await self._reload_responses(job_id, epoch)
            self._maybe_start_progress(job_id, epoch)
        return outcome

    def snapshot(self) -> SessionSnapshot:
        job_id = self.job_id
        return SessionSnapshot(
            job_id=job_id,
            stage=self.stage,
            view=self.view,
            job=self.job,
            personas=list(self.personas.personas) if self.personas else [],
            personas_completed=bool(self.personas and self.personas.completed),
            responses=list(self.responses or []),
            conversations=conversation_rows(self.responses),
            analysis=self.analysis,
            responses_in_flight=bool(job_id and self.coordinator.responses_in_flight(job_id)),
            analysis_in_flight=bool(job_id and self.coordinator.analysis_in_flight(job_id)),
            progress=round(self.progress.value, 2),
            prompt=self.prompt,
            can_run=self.can_run,
            poller_state=self.poller.state if job_id else None,
            route=self.navigator.current,
            error=self.error,
        )


__all__ = ["SimulationSession", "conversation_rows"]
