import random
import time

import httpx
import pytest
from fastapi.testclient import TestClient

from persona_sim.accessors import StageDataAccessors
from persona_sim.dependencies import get_accessors, get_session_manager
from persona_sim.errors import TransportError
from persona_sim.main import create_app
from persona_sim.models import PersonaSet
from persona_sim.navigation import Navigator
from persona_sim.services.service_client import ServiceClient
from persona_sim.services.store import StoreClient
from persona_sim.session import SimulationSession
from persona_sim.session_manager import SimulationSessionManager

from fakes import FakeAccessors, instant_sleep, make_persona, make_response


def _app_with(accessors) -> TestClient:
    manager = SimulationSessionManager(
        accessors,
        session_factory=lambda: SimulationSession(
            accessors,
            navigator=Navigator("ana"),
            rng=random.Random(0),
            sleep=instant_sleep,
        ),
    )
    app = create_app()
    app.dependency_overrides[get_session_manager] = lambda: manager
    app.dependency_overrides[get_accessors] = lambda: accessors
    return TestClient(app)


def _wait_for_stage(client: TestClient, job_id: str, stage: str) -> dict:
    body = {}
    for _ in range(200):
        body = client.get(f"/simulations/{job_id}").json()
        if body["stage"] == stage:
            return body
        time.sleep(0.01)
    return body


def test_run_simulation_over_http() -> None:
    accessors = FakeAccessors()
    accessors.add_job("J", demographic="Dog walkers")
    accessors.persona_sets["J"] = [PersonaSet(personas=[make_persona(i, "J") for i in range(5)], completed=True)]
    accessors.responses_after_generate["J"] = [make_response(i, "J") for i in range(5)]

    with _app_with(accessors) as client:
        body = client.post("/simulations/J/refresh").json()
        assert body["stage"] == "PERSONAS_READY"
        assert len(body["personas"]) == 5
        assert body["can_run"] is False

        rejected = client.post("/simulations/J/run")
        assert rejected.status_code == 400

        body = client.post("/simulations/J/prompt", data={"prompt": "test"}).json()
        assert body["prompt"] == "test"
        assert body["can_run"] is True

        run = client.post("/simulations/J/run")
        assert run.status_code == 200
        assert run.json()["outcome"] == "triggered"
        assert run.json()["route"] == "/ana/projects/J/simulation"

        body = _wait_for_stage(client, "J", "ANALYSIS_READY")
        assert body["stage"] == "ANALYSIS_READY"
        assert body["view"]["kind"] == "ANALYSIS_READY"
        assert body["analysis"]["sentiment"]["positive"] == 60.0
        assert body["progress"] == 100.0
        assert accessors.calls["generate_responses"] == 1
        assert accessors.calls["generate_analysis"] == 1

        assert client.delete("/simulations/J").json() == {"ok": True, "job_id": "J"}
        assert client.delete("/simulations/J").status_code == 404


def test_trigger_errors_map_to_http_status() -> None:
    accessors = FakeAccessors()
    accessors.add_job("J")
    accessors.persona_sets["J"] = [PersonaSet(personas=[make_persona(1, "J")], completed=True)]
    accessors.generate_error = TransportError("service unavailable", job_id="J")

    with _app_with(accessors) as client:
        client.post("/simulations/J/prompt", data={"prompt": "go"})
        failed = client.post("/simulations/J/run")
        assert failed.status_code == 502
        assert "service unavailable" in failed.json()["detail"]
        body = client.get("/simulations/J").json()
        assert body["stage"] == "PERSONAS_READY"
        assert body["route"] is None
        assert "service unavailable" in body["error"]

        client.post("/simulations/ghost/prompt", data={"prompt": "go"})
        missing = client.post("/simulations/ghost/run")
        assert missing.status_code == 404
        client.delete("/simulations/J")
        client.delete("/simulations/ghost")


def test_job_routes_use_store_and_service() -> None:
    def store_handler(request: httpx.Request) -> httpx.Response:
        if request.method == "PATCH":
            return httpx.Response(200, json=[{"id": "job-1", "demographic": "Parents", "ads_id": "ad-1", "is_dog_walker": True}])
        if request.url.path.endswith("/ads"):
            return httpx.Response(200, json=[{"id": "ad-1", "description": None}])
        return httpx.Response(200, json=[{"id": "job-1", "ads_id": "ad-1", "is_dog_walker": True}])

    def service_handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/vapi/calls/female"
        return httpx.Response(200, json={"call_id": "c-1", "status": "queued", "message": "ok"})

    accessors = StageDataAccessors(
        StoreClient(httpx.AsyncClient(transport=httpx.MockTransport(store_handler), base_url="http://store.test/rest/v1")),
        ServiceClient(httpx.AsyncClient(transport=httpx.MockTransport(service_handler), base_url="http://svc.test")),
    )

    with _app_with(accessors) as client:
        updated = client.patch("/jobs/job-1", json={"demographic": "Parents", "ads_id": "ad-1", "is_dog_walker": True})
        assert updated.status_code == 200
        assert updated.json()["demographic"] == "Parents"

        status = client.get("/jobs/job-1/video-status").json()
        assert status == {"is_analyzing": True, "description": None}

        call = client.post("/jobs/job-1/calls").json()
        assert call["call"]["call_id"] == "c-1"


def test_settings_status_masks_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STORE_API_KEY", "abcd1234efgh5678")
    monkeypatch.delenv("SERVICE_API_KEY", raising=False)

    with _app_with(FakeAccessors()) as client:
        keys = client.get("/settings/status").json()["keys"]

    assert keys["store"] == {"ready": True, "masked": "abcd********5678"}
    assert keys["service"] == {"ready": False, "masked": ""}


def test_blank_job_id_is_rejected_on_every_route() -> None:
    accessors = FakeAccessors()

    with _app_with(accessors) as client:
        assert client.get("/simulations/%20").status_code == 400
        assert client.post("/simulations/%20/prompt", data={"prompt": "go"}).status_code == 400
        assert client.post("/simulations/%20/run").status_code == 400
        assert client.post("/simulations/%20/refresh").status_code == 400
