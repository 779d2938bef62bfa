from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .errors import SimulationError, ValidationError
from .models import Analysis, GenerationStatus, Job, PersonaResponse, PersonaSet, VideoAnalysisStatus
from .services.service_client import ServiceClient
from .services.store import StoreClient

logger = logging.getLogger(__name__)


def _check_job_id(job_id: Optional[str]) -> str:
    value = (job_id or "").strip()
    if not value:
        raise ValidationError("job_id is required")
    return value


class StageDataAccessors:
    """Per-stage reads and triggers for one job id.

    Reads are safe to repeat. ``generate_responses`` and ``generate_analysis``
    are not idempotent at the service; the trigger coordinator guards them.
    """

    def __init__(self, store: StoreClient, service: ServiceClient) -> None:
        self.store = store
        self.service = service

    async def fetch_job(self, job_id: str) -> Job:
        return await self.store.get_job(_check_job_id(job_id))

    async def fetch_personas(self, job_id: str) -> PersonaSet:
        return await self.store.get_personas_by_job(_check_job_id(job_id))

    async def fetch_responses(self, job_id: str) -> List[PersonaResponse]:
        return await self.store.get_persona_responses(_check_job_id(job_id))

    async def generate_responses(self, job_id: str) -> Any:
        return await self.service.generate_responses(_check_job_id(job_id))

    async def generate_analysis(self, job_id: str) -> Analysis:
        return await self.service.generate_analysis(_check_job_id(job_id))

    async def claim_response_generation(self, job_id: str) -> bool:
        return await self.store.claim_response_generation(_check_job_id(job_id))

    async def set_response_status(self, job_id: str, status: GenerationStatus) -> None:
        await self.store.set_response_status(_check_job_id(job_id), status)

    async def update_job(self, job_id: str, demographic: str, ads_id: str, is_dog_walker: bool = False) -> Job:
        fields: Dict[str, Any] = {
            "demographic": demographic,
            "ads_id": ads_id,
            "is_dog_walker": is_dog_walker,
        }
        return await self.store.update_job(_check_job_id(job_id), fields)

    async def video_analysis_status(self, job_id: str) -> VideoAnalysisStatus:
        """Report whether the job's ad is still being analysed.

        No ad yet means analysis has not started; an ad whose description is
        still empty is being analysed. Lookup failures degrade to "not
        analysing" and are logged.
        """
        job_id = _check_job_id(job_id)
        try:
            job = await self.store.get_job(job_id)
            if not job.ads_id:
                return VideoAnalysisStatus(is_analyzing=False)
            ad = await self.store.get_ad(job.ads_id, job_id=job_id)
        except SimulationError as exc:
            logger.warning("evt=video_status_failed job_id=%s error=%s", job_id, exc)
            return VideoAnalysisStatus(is_analyzing=False)
        return VideoAnalysisStatus(is_analyzing=ad.description is None, description=ad.description)

    async def start_persona_call(self, job_id: str) -> Any:
        job = await self.store.get_job(_check_job_id(job_id))
        logger.debug("evt=call_start job_id=%s female_voice=%s", job.id, job.is_dog_walker)
        return await self.service.start_call(job.id, female_voice=job.is_dog_walker)


__all__ = ["StageDataAccessors"]
