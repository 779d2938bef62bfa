"""Query/Update client for the relational store.

The store is reached through its PostgREST surface (``/rest/v1``): reads are
``GET`` requests with ``eq.`` filters and updates are ``PATCH`` requests that
ask for the updated rows back (``Prefer: return=representation``), so an
empty result means nothing matched the filter.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..errors import MalformedResponseError, NotFound
from ..models import Ad, GenerationStatus, Job, Persona, PersonaResponse, PersonaSet
from ..settings import Settings
from .http import EnvKeyAuth, decode_json, send

logger = logging.getLogger(__name__)

RESPONSE_SELECT = "*,persona:personas(name,location,description)"
_RETURN_ROWS = {"Prefer": "return=representation"}


class StoreClient:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_settings(
        cls, settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "StoreClient":
        client = httpx.AsyncClient(
            base_url=f"{settings.store_url}/rest/v1",
            auth=EnvKeyAuth("STORE_API_KEY", fallback=settings.store_api_key, apikey_header=True),
            timeout=settings.http_timeout,
            transport=transport,
        )
        return cls(client)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _select(self, table: str, params: Dict[str, str], *, job_id: Optional[str]) -> List[dict]:
        response = await send(self._client, "GET", f"/{table}", job_id=job_id, params=params)
        rows = decode_json(response, job_id=job_id)
        if not isinstance(rows, list):
            raise MalformedResponseError(f"{table} query did not return a list", job_id=job_id)
        return rows

    async def _update(
        self,
        table: str,
        filters: Dict[str, str],
        fields: Dict[str, Any],
        *,
        job_id: Optional[str],
    ) -> List[dict]:
        response = await send(
            self._client,
            "PATCH",
            f"/{table}",
            job_id=job_id,
            params=filters,
            json=fields,
            headers=_RETURN_ROWS,
        )
        rows = decode_json(response, job_id=job_id)
        return rows if isinstance(rows, list) else []

    async def get_job(self, job_id: str) -> Job:
        rows = await self._select("jobs", {"id": f"eq.{job_id}", "select": "*"}, job_id=job_id)
        if not rows:
            raise NotFound(f"job {job_id} not found", job_id=job_id)
        return _parse(Job, rows[0], job_id=job_id)

    async def get_personas_by_job(self, job_id: str) -> PersonaSet:
        persona_rows, job_rows = await asyncio.gather(
            self._select(
                "personas",
                {"job_id": f"eq.{job_id}", "select": "*", "order": "created_at.asc"},
                job_id=job_id,
            ),
            self._select("jobs", {"id": f"eq.{job_id}", "select": "personas_completed"}, job_id=job_id),
        )
        if not job_rows:
            raise NotFound(f"job {job_id} not found", job_id=job_id)
        personas = [_parse(Persona, row, job_id=job_id) for row in persona_rows]
        completed = bool(job_rows[0].get("personas_completed"))
        return PersonaSet(personas=personas, completed=completed)

    async def get_persona_responses(self, job_id: str) -> List[PersonaResponse]:
        rows = await self._select(
            "persona_responses",
            {"job_id": f"eq.{job_id}", "select": RESPONSE_SELECT, "order": "created_at.asc"},
            job_id=job_id,
        )
        return [_parse(PersonaResponse, row, job_id=job_id) for row in rows]

    async def update_job(self, job_id: str, fields: Dict[str, Any]) -> Job:
        rows = await self._update("jobs", {"id": f"eq.{job_id}"}, fields, job_id=job_id)
        if not rows:
            raise NotFound(f"job {job_id} not found", job_id=job_id)
        return _parse(Job, rows[0], job_id=job_id)

    async def claim_response_generation(self, job_id: str) -> bool:
        """Move ``response_status`` from none to pending; False when already claimed."""
        rows = await self._update(
            "jobs",
            {
                "id": f"eq.{job_id}",
                "or": "(response_status.is.null,response_status.eq.none)",
            },
            {"response_status": GenerationStatus.pending.value},
            job_id=job_id,
        )
        claimed = bool(rows)
        logger.debug("evt=response_claim job_id=%s claimed=%s", job_id, claimed)
        return claimed

    async def set_response_status(self, job_id: str, status: GenerationStatus) -> None:
        await self._update("jobs", {"id": f"eq.{job_id}"}, {"response_status": status.value}, job_id=job_id)

    async def get_ad(self, ads_id: str, *, job_id: Optional[str] = None) -> Ad:
        rows = await self._select("ads", {"id": f"eq.{ads_id}", "select": "*"}, job_id=job_id)
        if not rows:
            raise NotFound(f"ad {ads_id} not found", job_id=job_id)
        return _parse(Ad, rows[0], job_id=job_id)


def _parse(model, row: dict, *, job_id: Optional[str]):
    try:
        return model.model_validate(row)
    except PydanticValidationError as exc:
        raise MalformedResponseError(
            f"malformed {model.__name__} row from store: {exc.errors()[0].get('msg')}",
            job_id=job_id,
        ) from exc


__all__ = ["RESPONSE_SELECT", "StoreClient"]
