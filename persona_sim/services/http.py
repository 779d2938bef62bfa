from __future__ import annotations

import logging
import os
from typing import Any, Generator, Optional

import httpx

from ..errors import NotFound, TransportError, ValidationError

logger = logging.getLogger(__name__)


class EnvKeyAuth(httpx.Auth):
    """Attach the API key held in ``env_var`` to each outgoing request.

    The key is read per request, so a key saved through ``POST /settings`` is
    used by long-lived clients without rebuilding them. ``fallback`` applies
    only while the variable is unset.
    """

    def __init__(self, env_var: str, *, fallback: Optional[str] = None, apikey_header: bool = False) -> None:
        self.env_var = env_var
        self.fallback = fallback
        self.apikey_header = apikey_header

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        key = os.getenv(self.env_var) or self.fallback
        if key:
            request.headers["Authorization"] = f"Bearer {key}"
            if self.apikey_header:
                request.headers["apikey"] = key
        yield request


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    job_id: Optional[str] = None,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request and translate httpx failures into the core error taxonomy.

    404 -> ``NotFound``; 400/422 -> ``ValidationError``; any other HTTP status
    error or transport failure -> ``TransportError``.
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.HTTPError as exc:
        logger.debug("evt=http_transport_error method=%s url=%s job_id=%s error=%s", method, url, job_id, exc)
        raise TransportError(f"{method} {url} failed: {exc}", job_id=job_id) from exc

    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        status = response.status_code
        detail = response.text[:500]
        logger.debug(
            "evt=http_status_error method=%s url=%s job_id=%s status=%s body=%s",
            method,
            url,
            job_id,
            status,
            detail,
        )
        if status == 404:
            raise NotFound(f"{method} {url} returned 404", job_id=job_id) from exc
        if status in (400, 422):
            raise ValidationError(f"{method} {url} rejected request: {detail}", job_id=job_id) from exc
        raise TransportError(f"{method} {url} returned {status}: {detail}", job_id=job_id, status_code=status) from exc
    return response


def decode_json(response: httpx.Response, *, job_id: Optional[str] = None) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise TransportError(f"Invalid JSON from {response.request.url}", job_id=job_id) from exc


__all__ = ["EnvKeyAuth", "decode_json", "send"]
