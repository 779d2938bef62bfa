from __future__ import annotations

from typing import Optional, Sequence

from .models import (
    Analysis,
    AnalysisReady,
    AwaitingPersonas,
    Job,
    PersonaResponse,
    PersonaSet,
    PersonasReady,
    ResponsesReady,
    Stage,
    StageView,
)


def infer_stage(
    job: Optional[Job],
    personas: Optional[PersonaSet],
    responses: Optional[Sequence[PersonaResponse]],
    analysis: Optional[Analysis] = None,
) -> Stage:
    """Map the current fetch results to a pipeline stage.

    ``None`` means "not fetched yet". A non-empty response set always wins over
    the persona completion flag, whatever its value.
    """
    if analysis is not None:
        return Stage.analysis_ready
    if responses:
        return Stage.responses_ready
    if personas is not None and (personas.completed or personas.personas):
        return Stage.personas_ready
    return Stage.awaiting_personas


def build_stage_view(
    job: Optional[Job],
    personas: Optional[PersonaSet],
    responses: Optional[Sequence[PersonaResponse]],
    analysis: Optional[Analysis] = None,
) -> StageView:
    stage = infer_stage(job, personas, responses, analysis)
    if stage is Stage.analysis_ready:
        return AnalysisReady(analysis=analysis)
    if stage is Stage.responses_ready:
        return ResponsesReady(responses=list(responses or []))
    if stage is Stage.personas_ready:
        return PersonasReady(personas=list(personas.personas))
    return AwaitingPersonas()


__all__ = ["build_stage_view", "infer_stage"]
