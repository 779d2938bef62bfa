from __future__ import annotations

import logging
from typing import Optional, Sequence

from .accessors import StageDataAccessors
from .errors import SimulationError, TriggerConflict
from .models import Analysis, GenerationStatus, PersonaResponse, RunOutcome
from .navigation import Navigator
from .single_flight import SingleFlight

logger = logging.getLogger(__name__)

RESPONSES = "responses"
ANALYSIS = "analysis"


class TriggerCoordinator:
    """Issues the two non-idempotent triggers at most once per stage transition.

    Session-local suppression uses a single-flight guard keyed by
    ``(job_id, stage)``. With ``durable_guard`` enabled, response generation
    is also claimed in the store (``response_status`` none -> pending) before
    the service call, so a second tab or process sees the claim and backs off.
    """

    def __init__(
        self,
        accessors: StageDataAccessors,
        navigator: Navigator,
        *,
        guard: Optional[SingleFlight] = None,
        durable_guard: bool = True,
    ) -> None:
        self.accessors = accessors
        self.navigator = navigator
        self.guard = guard or SingleFlight()
        self.durable_guard = durable_guard

    def responses_in_flight(self, job_id: str) -> bool:
        return self.guard.in_flight((job_id, RESPONSES))

    def analysis_in_flight(self, job_id: str) -> bool:
        return self.guard.in_flight((job_id, ANALYSIS))

    async def run_simulation(self, job_id: str, responses: Optional[Sequence[PersonaResponse]]) -> RunOutcome:
        if responses:
            logger.debug("evt=trigger_skipped job_id=%s reason=responses_exist count=%d", job_id, len(responses))
            self.navigator.push("simulation", job_id)
            return RunOutcome.skipped

        try:
            outcome = await self.guard.run((job_id, RESPONSES), lambda: self._generate_responses(job_id))
        except TriggerConflict:
            return RunOutcome.pending

        if outcome is not RunOutcome.pending:
            self.navigator.push("simulation", job_id)
        return outcome

    async def _generate_responses(self, job_id: str) -> RunOutcome:
        if self.durable_guard and not await self.accessors.claim_response_generation(job_id):
            job = await self.accessors.fetch_job(job_id)
            if job.response_status is GenerationStatus.done:
                logger.debug("evt=trigger_skipped job_id=%s reason=durable_done", job_id)
                return RunOutcome.skipped
            logger.debug("evt=trigger_suppressed job_id=%s reason=durable_pending", job_id)
            return RunOutcome.pending

        logger.debug("evt=trigger_start job_id=%s stage=%s", job_id, RESPONSES)
        try:
            await self.accessors.generate_responses(job_id)
        except BaseException as exc:
            # Any non-success (cancellation included) hands the claim back so a manual retry can run.
            if isinstance(exc, SimulationError):
                logger.warning("evt=trigger_fail job_id=%s stage=%s error=%s", job_id, RESPONSES, exc)
            else:
                logger.warning("evt=trigger_abort job_id=%s stage=%s error=%r", job_id, RESPONSES, exc)
            if self.durable_guard:
                await self._release(job_id, GenerationStatus.none)
            raise
        logger.debug("evt=trigger_done job_id=%s stage=%s", job_id, RESPONSES)
        if self.durable_guard:
            await self._release(job_id, GenerationStatus.done)
        return RunOutcome.triggered

    async def _release(self, job_id: str, status: GenerationStatus) -> None:
        try:
            await self.accessors.set_response_status(job_id, status)
        except SimulationError as exc:
            logger.warning("evt=response_status_write_failed job_id=%s status=%s error=%s", job_id, status.value, exc)

    async def ensure_analysis(
        self,
        job_id: str,
        responses: Optional[Sequence[PersonaResponse]],
        cached: Optional[Analysis],
    ) -> Optional[Analysis]:
        """Request the analysis unless it is cached, unneeded or already in flight.

        Returns the cached or newly produced analysis, or ``None`` when the
        request was not issued. Service errors propagate to the caller.
        """
        if cached is not None:
            return cached
        if not responses:
            logger.debug("evt=analysis_skipped job_id=%s reason=no_responses", job_id)
            return None
        try:
            return await self.guard.run((job_id, ANALYSIS), lambda: self._generate_analysis(job_id))
        except TriggerConflict:
            return None

    async def _generate_analysis(self, job_id: str) -> Analysis:
        logger.debug("evt=trigger_start job_id=%s stage=%s", job_id, ANALYSIS)
        try:
            analysis = await self.accessors.generate_analysis(job_id)
        except SimulationError as exc:
            logger.warning("evt=trigger_fail job_id=%s stage=%s error=%s", job_id, ANALYSIS, exc)
            raise
        logger.debug("evt=trigger_done job_id=%s stage=%s themes=%d", job_id, ANALYSIS, len(analysis.themes))
        return analysis


__all__ = ["TriggerCoordinator"]
