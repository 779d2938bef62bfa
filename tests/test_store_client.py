import json

import httpx
import pytest

from persona_sim.errors import MalformedResponseError, NotFound, TransportError, ValidationError
from persona_sim.models import GenerationStatus
from persona_sim.services.store import RESPONSE_SELECT, StoreClient


def _client(handler) -> StoreClient:
    transport = httpx.MockTransport(handler)
    return StoreClient(httpx.AsyncClient(transport=transport, base_url="http://store.test/rest/v1"))


@pytest.mark.asyncio
async def test_get_job_parses_row_and_missing_job_is_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/rest/v1/jobs"
        if request.url.params["id"] == "eq.job-1":
            return httpx.Response(
                200,
                json=[{"id": "job-1", "demographic": "Runners", "ads_id": "ad-9", "is_dog_walker": None, "response_status": None}],
            )
        return httpx.Response(200, json=[])

    store = _client(handler)
    job = await store.get_job("job-1")
    assert job.demographic == "Runners"
    assert job.is_dog_walker is False
    assert job.response_status is GenerationStatus.none

    with pytest.raises(NotFound):
        await store.get_job("missing")
    await store.aclose()


@pytest.mark.asyncio
async def test_personas_carry_aggregate_completed_flag() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/rest/v1/personas":
            assert request.url.params["job_id"] == "eq.job-1"
            return httpx.Response(
                200,
                json=[
                    {"id": "p1", "job_id": "job-1", "name": "Maya", "location": "Austin"},
                    {"id": "p2", "job_id": "job-1", "name": "Leo", "generation": "Gen Z"},
                ],
            )
        assert request.url.params["select"] == "personas_completed"
        return httpx.Response(200, json=[{"personas_completed": True}])

    store = _client(handler)
    result = await store.get_personas_by_job("job-1")

    assert result.completed is True
    assert [p.name for p in result.personas] == ["Maya", "Leo"]


@pytest.mark.asyncio
async def test_responses_embed_persona_and_validate_conversation() -> None:
    rows = [
        {
            "id": "r1",
            "job_id": "job-1",
            "persona_id": "p1",
            "conversation": {"response": "Love the dog in the ad.", "turns": 3},
            "created_at": "2025-03-01T12:00:00Z",
            "persona": {"name": "Maya", "location": "Austin", "description": "Dog walker"},
        }
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["select"] == RESPONSE_SELECT
        return httpx.Response(200, json=rows)

    store = _client(handler)
    responses = await store.get_persona_responses("job-1")

    assert responses[0].conversation.response == "Love the dog in the ad."
    assert responses[0].persona.name == "Maya"

    rows[0]["conversation"] = {"transcript": []}
    with pytest.raises(MalformedResponseError):
        await store.get_persona_responses("job-1")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, error",
    [(404, NotFound), (400, ValidationError), (500, TransportError), (503, TransportError)],
)
async def test_http_errors_map_to_taxonomy(status: int, error: type) -> None:
    store = _client(lambda request: httpx.Response(status, text="nope"))

    with pytest.raises(error):
        await store.get_persona_responses("job-1")


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    store = _client(handler)
    with pytest.raises(TransportError):
        await store.get_job("job-1")


@pytest.mark.asyncio
async def test_claim_is_conditional_update() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        assert request.method == "PATCH"
        assert request.headers["Prefer"] == "return=representation"
        body = json.loads(request.content)
        assert body == {"response_status": "pending"}
        if len(seen) == 1:
            return httpx.Response(200, json=[{"id": "job-1", "response_status": "pending"}])
        return httpx.Response(200, json=[])

    store = _client(handler)

    assert await store.claim_response_generation("job-1") is True
    assert await store.claim_response_generation("job-1") is False
    assert seen[0].url.params["or"] == "(response_status.is.null,response_status.eq.none)"


@pytest.mark.asyncio
async def test_update_job_returns_updated_row() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        return httpx.Response(200, json=[{"id": "job-1", **body}])

    store = _client(handler)
    job = await store.update_job("job-1", {"demographic": "Parents", "ads_id": "ad-2", "is_dog_walker": True})

    assert job.demographic == "Parents"
    assert job.ads_id == "ad-2"
    assert job.is_dog_walker is True
