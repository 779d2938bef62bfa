import httpx
import pytest

from persona_sim.accessors import StageDataAccessors
from persona_sim.errors import MalformedResponseError, ValidationError
from persona_sim.services.service_client import ServiceClient
from persona_sim.services.store import StoreClient

ANALYSIS = {
    "sentiment": {"positive": 55, "neutral": 30, "negative": 15},
    "themes": ["humor", "pricing"],
    "highlights": ["Made me smile."],
    "demographics": [{"label": "Gen Z", "value": 64}],
}


def _service(handler) -> ServiceClient:
    return ServiceClient(httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://svc.test"))


def _store(handler) -> StoreClient:
    return StoreClient(httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://store.test/rest/v1"))


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [ANALYSIS, {"analysis": ANALYSIS}])
async def test_generate_analysis_parses_plain_and_wrapped(payload) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/job-1/analysis"
        return httpx.Response(200, json=payload)

    analysis = await _service(handler).generate_analysis("job-1")

    assert analysis.sentiment.positive == 55
    assert analysis.themes == ["humor", "pricing"]
    assert analysis.demographics[0].label == "Gen Z"


@pytest.mark.asyncio
async def test_malformed_analysis_fails_fast() -> None:
    service = _service(lambda request: httpx.Response(200, json={"themes": "not-a-list"}))

    with pytest.raises(MalformedResponseError):
        await service.generate_analysis("job-1")


@pytest.mark.asyncio
async def test_generate_responses_posts_once_and_requires_job_id() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"created": 5})

    service = _service(handler)
    assert await service.generate_responses("job-1") == {"created": 5}
    assert calls == ["/job-1/responses"]

    with pytest.raises(ValidationError):
        await service.generate_responses("  ")
    assert len(calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("flag, endpoint", [(True, "/vapi/calls/female"), (False, "/vapi/calls/male")])
async def test_persona_call_picks_voice_from_job_flag(flag: bool, endpoint: str) -> None:
    calls = []

    def store_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"id": "job-1", "is_dog_walker": flag}])

    def service_handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"call_id": "c1", "status": "queued", "message": "ok"})

    accessors = StageDataAccessors(_store(store_handler), _service(service_handler))
    result = await accessors.start_persona_call("job-1")

    assert calls == [endpoint]
    assert result["call_id"] == "c1"


@pytest.mark.asyncio
async def test_video_status_states() -> None:
    jobs = {
        "no-ad": {"id": "no-ad", "ads_id": None},
        "analyzing": {"id": "analyzing", "ads_id": "ad-1"},
        "done": {"id": "done", "ads_id": "ad-2"},
    }
    ads = {"ad-1": {"id": "ad-1", "description": None}, "ad-2": {"id": "ad-2", "description": "A dog runs."}}

    def store_handler(request: httpx.Request) -> httpx.Response:
        key = request.url.params["id"].removeprefix("eq.")
        if request.url.path.endswith("/jobs"):
            return httpx.Response(200, json=[jobs[key]] if key in jobs else [])
        return httpx.Response(200, json=[ads[key]])

    accessors = StageDataAccessors(_store(store_handler), _service(lambda r: httpx.Response(500)))

    assert (await accessors.video_analysis_status("no-ad")).is_analyzing is False
    assert (await accessors.video_analysis_status("analyzing")).is_analyzing is True
    done = await accessors.video_analysis_status("done")
    assert done.is_analyzing is False and done.description == "A dog runs."
    missing = await accessors.video_analysis_status("missing")
    assert missing.is_analyzing is False and missing.description is None
