import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from api.app import create_app
from timed_exam_cbt.models.result_model import RawAnswersData

from fakes import FakeGateway, gateway_error


@pytest.fixture
def gateways():
    return []


@pytest.fixture
def client(gateways):
    def factory(auth_header):
        gateway = FakeGateway()
        gateway.auth_header = auth_header
        gateways.append(gateway)
        return gateway

    with TestClient(create_app(gateway_factory=factory)) as c:
        yield c


def _load_and_start(client):
    resp = client.post(
        "/api/exams/math-package/algebra-basics/load",
        headers={"Authorization": "Bearer user-token", "User-Agent": "Mozilla Chrome/120"},
    )
    assert resp.status_code == 200
    resp = client.post("/api/exam/start")
    assert resp.status_code == 200
    return resp.json()


def test_state_without_exam_is_404(client):
    assert client.get("/api/exam/state").status_code == 404


def test_load_returns_instructions(client, gateways):
    resp = client.post("/api/exams/math-package/algebra-basics/load", headers={"Authorization": "Bearer t"})
    state = resp.json()

    assert state["phase"] == "instructions"
    assert state["exam"]["title"] == "Algebra Basics"
    assert state["time_remaining"] == 1800
    assert gateways[0].auth_header == "Bearer t"
    assert gateways[0].meta_calls == ["algebra-basics"]


def test_full_attempt(client, gateways):
    state = _load_and_start(client)
    assert state["phase"] == "exam"
    assert state["session_id"] == "sess-1"
    assert state["time_remaining"] == 1200
    assert [q["id"] for q in state["questions"]] == [1, 3, 7]

    resp = client.put("/api/exam/answer", json={"question_id": 1, "selections": ["b"]})
    assert resp.json() == {"ok": True, "answered_count": 1, "can_submit": True}

    resp = client.post("/api/exam/navigate", json={"index": 2})
    assert resp.json()["index"] == 2
    assert client.post("/api/exam/navigate", json={"index": 9}).status_code == 400

    assert client.post("/api/exam/review").json()["phase"] == "review"
    assert client.post("/api/exam/back").json()["phase"] == "exam"

    state = client.post("/api/exam/submit").json()
    assert state["phase"] == "results"
    assert state["result"]["score"] == 66.67
    assert state["timer_running"] is False
    assert gateways[0].submit_calls == ["sess-1"]

    body = client.get("/api/exam/results").json()
    assert body["result"]["is_passed"] is True
    assert body["summary"]["correct_count"] == 1
    assert body["summary"]["unanswered_count"] == 1


def test_answers_after_submit_are_rejected(client):
    _load_and_start(client)
    client.post("/api/exam/submit")

    resp = client.put("/api/exam/answer", json={"question_id": 1, "selections": ["a"]})
    assert resp.status_code == 409


def test_unknown_question_is_404(client):
    _load_and_start(client)
    resp = client.put("/api/exam/answer", json={"question_id": 99, "selections": ["a"]})
    assert resp.status_code == 404


def test_start_twice_is_conflict(client):
    _load_and_start(client)
    assert client.post("/api/exam/start").status_code == 409


def test_results_before_submit_is_400(client):
    _load_and_start(client)
    assert client.get("/api/exam/results").status_code == 400


def test_results_lookup_failure(client, gateways):
    _load_and_start(client)
    client.post("/api/exam/submit")
    gateways[0].results_error = gateway_error("get_results", 404, {"error": "Session not found"})

    resp = client.get("/api/exam/results")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Session not found"


def test_reload_closes_previous_controller(client, gateways):
    _load_and_start(client)
    client.post("/api/exams/math-package/algebra-basics/load")

    assert gateways[0].closed
    assert not gateways[1].closed
    # 인증 헤더는 세션에 남아 있다
    assert gateways[1].auth_header == "Bearer user-token"
    assert client.get("/api/exam/state").json()["phase"] == "instructions"


def test_reset_drops_controller(client, gateways):
    _load_and_start(client)
    assert client.post("/api/reset").json() == {"ok": True}

    assert gateways[0].closed
    assert client.get("/api/exam/state").status_code == 404


def test_malformed_results_body_is_bad_gateway(client, gateways):
    _load_and_start(client)
    client.post("/api/exam/submit")
    with pytest.raises(ValidationError) as excinfo:
        RawAnswersData.model_validate({"answers": [{"question_id": "not-a-number"}]})
    gateways[0].results_error = excinfo.value

    resp = client.get("/api/exam/results")
    assert resp.status_code == 502
