from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..errors import MalformedResponseError, ValidationError
from ..models import Analysis
from ..settings import Settings
from .http import EnvKeyAuth, decode_json, send

logger = logging.getLogger(__name__)

CALL_ENDPOINT_FEMALE = "/vapi/calls/female"
CALL_ENDPOINT_MALE = "/vapi/calls/male"


class ServiceClient:
    """REST trigger client for the external AI/voice/video service.

    Both generation endpoints are non-idempotent; duplicate suppression is the
    caller's job.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_settings(
        cls, settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "ServiceClient":
        client = httpx.AsyncClient(
            base_url=settings.service_url,
            auth=EnvKeyAuth("SERVICE_API_KEY", fallback=settings.service_api_key),
            timeout=settings.http_timeout,
            transport=transport,
        )
        return cls(client)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def generate_responses(self, job_id: str) -> Any:
        _require_job_id(job_id)
        response = await send(self._client, "POST", f"/{job_id}/responses", job_id=job_id)
        return decode_json(response, job_id=job_id) if response.content else None

    async def generate_analysis(self, job_id: str) -> Analysis:
        _require_job_id(job_id)
        response = await send(self._client, "POST", f"/{job_id}/analysis", job_id=job_id)
        payload = decode_json(response, job_id=job_id)
        # Some deployments wrap the result as {"analysis": {...}}.
        if isinstance(payload, dict) and isinstance(payload.get("analysis"), dict):
            payload = payload["analysis"]
        try:
            analysis = Analysis.model_validate(payload)
        except PydanticValidationError as exc:
            raise MalformedResponseError(f"malformed analysis for job {job_id}", job_id=job_id) from exc
        if analysis.sentiment.total > 100:
            logger.warning(
                "evt=sentiment_overflow job_id=%s total=%.1f",
                job_id,
                analysis.sentiment.total,
            )
        return analysis

    async def start_call(self, job_id: str, *, female_voice: bool) -> Any:
        endpoint = CALL_ENDPOINT_FEMALE if female_voice else CALL_ENDPOINT_MALE
        response = await send(self._client, "POST", endpoint, job_id=job_id, json={})
        return decode_json(response, job_id=job_id) if response.content else None


def _require_job_id(job_id: str) -> None:
    if not job_id or not str(job_id).strip():
        raise ValidationError("job_id path parameter is required")


__all__ = ["CALL_ENDPOINT_FEMALE", "CALL_ENDPOINT_MALE", "ServiceClient"]
