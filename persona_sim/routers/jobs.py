from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from ..accessors import StageDataAccessors
from ..dependencies import get_accessors, http_error
from ..errors import SimulationError
from ..models import Job, JobUpdateRequest, VideoAnalysisStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.patch("/{job_id}", response_model=Job)
async def update_job(
    job_id: str,
    payload: JobUpdateRequest,
    accessors: StageDataAccessors = Depends(get_accessors),
) -> Job:
    try:
        return await accessors.update_job(job_id, payload.demographic, payload.ads_id, payload.is_dog_walker)
    except SimulationError as exc:
        logger.warning("evt=job_update_failed job_id=%s error=%s", job_id, exc)
        raise http_error(exc) from exc


@router.get("/{job_id}/video-status", response_model=VideoAnalysisStatus)
async def get_video_status(
    job_id: str,
    accessors: StageDataAccessors = Depends(get_accessors),
) -> VideoAnalysisStatus:
    return await accessors.video_analysis_status(job_id)


@router.post("/{job_id}/calls")
async def start_call(
    job_id: str,
    accessors: StageDataAccessors = Depends(get_accessors),
) -> dict[str, Any]:
    try:
        result = await accessors.start_persona_call(job_id)
    except SimulationError as exc:
        logger.warning("evt=call_failed job_id=%s error=%s", job_id, exc)
        raise http_error(exc) from exc
    return {"ok": True, "job_id": job_id, "call": result}


__all__ = ["router"]
