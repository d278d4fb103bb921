import json

import pytest
import requests

from timed_exam_cbt.models.exam_model import DeviceInfo, StartExamRequest, SyncAnswer
from timed_exam_cbt.services.error_classifier import ErrorKind, classify_error
from timed_exam_cbt.services.errors import GatewayError
from timed_exam_cbt.services.exam_gateway import ExamGateway


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text
        self.content = text.encode("utf-8")

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return json.loads(self.text)


class FakeHTTPSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []
        self.closed = False

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.requests.append({"method": method, "url": url, "json": json, "headers": headers, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        self.closed = True


def make_gateway(*responses, token="secret"):
    http = FakeHTTPSession(responses)
    gateway = ExamGateway("http://exam.local/api/", token=token, timeout_seconds=5, session=http)
    return gateway, http


def test_get_exam_meta():
    gateway, http = make_gateway(
        FakeResponse(
            payload={
                "id": 1,
                "title": "Algebra Basics",
                "slug": "algebra-basics",
                "duration_minutes": 30,
                "total_questions": 3,
                "passing_score": 60,
                "total_marks": 100,
                "max_attempts": 2,
                "instructions": None,
            }
        )
    )
    meta = gateway.get_exam_meta("algebra-basics")

    assert meta.duration_seconds == 1800
    call = http.requests[0]
    assert call["method"] == "GET"
    assert call["url"] == "http://exam.local/api/exams/meta/algebra-basics"
    assert call["headers"]["Authorization"] == "Bearer secret"
    assert call["timeout"] == 5


def test_start_exam_sends_package_and_device():
    gateway, http = make_gateway(FakeResponse(payload={"session_id": "sess-1", "attempt_id": 11}))
    request = StartExamRequest(package_slug="math-package", device_info=DeviceInfo.from_user_agent("Mozilla Firefox/120"))
    response = gateway.start_exam("algebra-basics", request)

    assert response.session_id == "sess-1"
    body = http.requests[0]["json"]
    assert http.requests[0]["url"] == "http://exam.local/api/exams/algebra-basics/start"
    assert body["package_slug"] == "math-package"
    assert body["device_info"]["browser"] == "Firefox"


def test_get_session_normalizes_questions_and_saved_answers():
    gateway, _ = make_gateway(
        FakeResponse(
            payload={
                "exam": {
                    "id": 1,
                    "questions": [
                        {
                            "id": 3,
                            "question_text": "Mark each",
                            "question_type": "TRUE_FALSE",
                            "options": {"a": {"text": "x"}, "b": {"text": "y"}},
                            "points": 2,
                        },
                        {
                            "id": 4,
                            "question_text": "Pick one",
                            "question_type": "MULTIPLE_CHOICE",
                            "options": {"a": {"text": "x"}},
                            "points": 1,
                        },
                    ],
                },
                "session": {"time_remaining": -4, "saved_answers": None},
            }
        )
    )
    snapshot = gateway.get_session("sess-1")

    questions = snapshot.exam.questions
    assert questions[0].option_keys == ["a", "b"]
    assert questions[0].question_type.value == "TRUE_FALSE"
    assert questions[1].question_type.value == "SBA"
    assert snapshot.session.time_remaining == 0
    assert snapshot.session.saved_answers == []


def test_sync_session_body():
    gateway, http = make_gateway(FakeResponse(payload={"synced_count": 1, "time_remaining": 1100}))
    response = gateway.sync_session("sess-1", [SyncAnswer(question_id=1, selected_option="c")])

    assert response.synced_count == 1
    assert http.requests[0]["method"] == "PUT"
    assert http.requests[0]["json"] == {"answers": [{"question_id": 1, "selected_option": "c"}]}


def test_http_errors_become_gateway_errors():
    body = {"error_code": "EXAM_ALREADY_SUBMITTED", "message": "Exam has already been submitted"}
    gateway, _ = make_gateway(FakeResponse(status_code=409, payload=body))

    with pytest.raises(GatewayError) as excinfo:
        gateway.submit_exam("sess-1")

    assert excinfo.value.status_code == 409
    assert excinfo.value.operation == "submit_exam"
    assert classify_error(excinfo.value).kind is ErrorKind.CONFLICT


def test_transport_errors_become_gateway_errors():
    gateway, _ = make_gateway(requests.ConnectionError("connection refused"))

    with pytest.raises(GatewayError) as excinfo:
        gateway.get_session("sess-1")

    assert excinfo.value.status_code is None
    assert classify_error(excinfo.value).kind is ErrorKind.UNKNOWN


def test_get_results_unwraps_envelope():
    gateway, http = make_gateway(
        FakeResponse(
            payload={
                "success": True,
                "message": "ok",
                "data": {"answers": [], "exam_snapshot": {"total_questions": 3, "actual_time_spent": 610}},
            }
        )
    )
    data = gateway.get_results("sess-1")

    assert data.exam_snapshot.actual_time_spent == 610
    assert http.requests[0]["url"] == "http://exam.local/api/exams/results/sess-1"


def test_no_token_means_no_authorization_header():
    gateway, http = make_gateway(FakeResponse(payload={"synced_count": 0}), token="")
    gateway.sync_session("sess-1", [])
    assert "Authorization" not in http.requests[0]["headers"]


def test_close_closes_http_session():
    gateway, http = make_gateway()
    gateway.close()
    assert http.closed
