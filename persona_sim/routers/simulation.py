from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Form, HTTPException

from ..dependencies import get_session_manager, http_error
from ..errors import SimulationError
from ..models import RunResponse, SessionSnapshot
from ..session_manager import SimulationSessionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/simulations", tags=["simulation"])


@router.get("/{job_id}", response_model=SessionSnapshot)
async def get_simulation(
    job_id: str,
    manager: SimulationSessionManager = Depends(get_session_manager),
) -> SessionSnapshot:
    try:
        session = await manager.get_or_create(job_id)
    except SimulationError as exc:
        raise http_error(exc) from exc
    return session.snapshot()


@router.post("/{job_id}/prompt", response_model=SessionSnapshot)
async def change_prompt(
    job_id: str,
    prompt: str = Form(""),
    manager: SimulationSessionManager = Depends(get_session_manager),
) -> SessionSnapshot:
    try:
        session = await manager.get_or_create(job_id)
    except SimulationError as exc:
        raise http_error(exc) from exc
    session.prompt_change(prompt)
    return session.snapshot()


@router.post("/{job_id}/run", response_model=RunResponse)
async def run_simulation(
    job_id: str,
    manager: SimulationSessionManager = Depends(get_session_manager),
) -> RunResponse:
    try:
        session = await manager.get_or_create(job_id)
        outcome = await session.run_simulation()
    except SimulationError as exc:
        logger.warning("evt=run_failed job_id=%s error=%s", job_id, exc)
        raise http_error(exc) from exc
    return RunResponse(job_id=job_id, outcome=outcome, stage=session.stage, route=session.navigator.current)


@router.post("/{job_id}/refresh", response_model=SessionSnapshot)
async def refresh_simulation(
    job_id: str,
    manager: SimulationSessionManager = Depends(get_session_manager),
) -> SessionSnapshot:
    try:
        session = await manager.get_or_create(job_id)
        return await session.refresh()
    except SimulationError as exc:
        raise http_error(exc) from exc


@router.delete("/{job_id}")
async def close_simulation(
    job_id: str,
    manager: SimulationSessionManager = Depends(get_session_manager),
) -> dict:
    closed = await manager.close(job_id)
    if not closed:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"ok": True, "job_id": job_id}


__all__ = ["router"]
