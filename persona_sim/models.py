from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, confloat, field_validator


class Stage(str, Enum):
    awaiting_personas = "AWAITING_PERSONAS"
    personas_ready = "PERSONAS_READY"
    responses_ready = "RESPONSES_READY"
    analysis_ready = "ANALYSIS_READY"


class GenerationStatus(str, Enum):
    none = "none"
    pending = "pending"
    done = "done"


class PollerState(str, Enum):
    polling = "POLLING"
    stopped = "STOPPED"
    stalled = "STALLED"


class RunOutcome(str, Enum):
    triggered = "triggered"
    skipped = "skipped"
    pending = "pending"


class Job(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    demographic: Optional[str] = None
    ads_id: Optional[str] = None
    is_dog_walker: bool = False
    personas_completed: bool = False
    response_status: GenerationStatus = GenerationStatus.none

    @field_validator("is_dog_walker", "personas_completed", mode="before")
    @classmethod
    def _null_is_false(cls, value):
        return bool(value) if value is not None else False

    @field_validator("response_status", mode="before")
    @classmethod
    def _null_status(cls, value):
        return value or GenerationStatus.none


class Ad(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    video_url: Optional[str] = None
    description: Optional[str] = None


class Persona(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    job_id: Optional[str] = None
    name: str
    title: Optional[str] = None
    location: Optional[str] = None
    industry: Optional[str] = None
    generation: Optional[str] = None
    description: Optional[str] = None


class PersonaSet(BaseModel):
    """Persona fetch result; ``completed`` is an aggregate flag for the whole set."""

    personas: List[Persona] = Field(default_factory=list)
    completed: bool = False


class ConversationPayload(BaseModel):
    # Extra keys produced by the generator (transcripts, reactions) are kept.
    model_config = ConfigDict(extra="allow")

    response: str = Field(..., min_length=1)


class PersonaRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None


class PersonaResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    job_id: str
    persona_id: str
    conversation: ConversationPayload
    created_at: Optional[datetime] = None
    persona: Optional[PersonaRef] = None


class ConversationRow(BaseModel):
    id: str
    name: str
    location: str
    feedback: str


class SentimentBreakdown(BaseModel):
    positive: confloat(ge=0, le=100) = 0.0
    neutral: confloat(ge=0, le=100) = 0.0
    negative: confloat(ge=0, le=100) = 0.0

    @property
    def total(self) -> float:
        return self.positive + self.neutral + self.negative


class DemographicEngagement(BaseModel):
    label: str
    value: confloat(ge=0, le=100)


class Analysis(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sentiment: SentimentBreakdown
    themes: List[str] = Field(default_factory=list)
    highlights: List[str] = Field(default_factory=list)
    demographics: List[DemographicEngagement] = Field(default_factory=list)


class AwaitingPersonas(BaseModel):
    kind: Literal["AWAITING_PERSONAS"] = "AWAITING_PERSONAS"


class PersonasReady(BaseModel):
    kind: Literal["PERSONAS_READY"] = "PERSONAS_READY"
    personas: List[Persona] = Field(default_factory=list)


class ResponsesReady(BaseModel):
    kind: Literal["RESPONSES_READY"] = "RESPONSES_READY"
    responses: List[PersonaResponse]


class AnalysisReady(BaseModel):
    kind: Literal["ANALYSIS_READY"] = "ANALYSIS_READY"
    analysis: Analysis


StageView = Union[AwaitingPersonas, PersonasReady, ResponsesReady, AnalysisReady]


class SimulationTimings(BaseModel):
    poll_interval: confloat(gt=0) = 0.5
    poll_max_attempts: Optional[int] = 600
    progress_tick: confloat(gt=0) = 0.3
    progress_settle_delay: confloat(ge=0) = 1.0
    progress_think_delay: confloat(ge=0) = 3.0


class VideoAnalysisStatus(BaseModel):
    is_analyzing: bool
    description: Optional[str] = None


class JobUpdateRequest(BaseModel):
    demographic: str
    ads_id: str
    is_dog_walker: bool = False


class RunResponse(BaseModel):
    job_id: str
    outcome: RunOutcome
    stage: Stage
    route: Optional[str] = None


class SessionSnapshot(BaseModel):
    job_id: Optional[str]
    stage: Stage
    view: StageView = Field(discriminator="kind")
    job: Optional[Job] = None
    personas: List[Persona] = Field(default_factory=list)
    personas_completed: bool = False
    responses: List[PersonaResponse] = Field(default_factory=list)
    conversations: List[ConversationRow] = Field(default_factory=list)
    analysis: Optional[Analysis] = None
    responses_in_flight: bool = False
    analysis_in_flight: bool = False
    progress: float = 0.0
    prompt: str = ""
    can_run: bool = False
    poller_state: Optional[PollerState] = None
    route: Optional[str] = None
    error: Optional[str] = None


__all__ = [
    "Ad",
    "Analysis",
    "AnalysisReady",
    "AwaitingPersonas",
    "ConversationPayload",
    "ConversationRow",
    "DemographicEngagement",
    "GenerationStatus",
    "Job",
    "JobUpdateRequest",
    "Persona",
    "PersonaRef",
    "PersonaResponse",
    "PersonaSet",
    "PersonasReady",
    "PollerState",
    "ResponsesReady",
    "RunOutcome",
    "RunResponse",
    "SentimentBreakdown",
    "SessionSnapshot",
    "SimulationTimings",
    "Stage",
    "StageView",
    "VideoAnalysisStatus",
]
