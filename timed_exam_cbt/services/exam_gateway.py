"""
services/exam_gateway.py

원격 시험 서비스 HTTP 클라이언트 (JSON over HTTP).

ENDPOINTS:
  - GET  /exams/meta/{slug}
  - POST /exams/{slug}/start
  - GET  /exams/session/{session_id}
  - PUT  /exams/session/{session_id}/sync
  - POST /exams/submit
  - GET  /exams/results/{session_id}

설계:
- 인증은 이미 끝난 상태를 전제로 한다 (Bearer 토큰만 헤더에 실어 보냄).
- 실패는 전부 GatewayError 로 변환한다. 분류는 error_classifier 담당.
- 재시도 없음. timeout 은 전송 기본값(HTTP_TIMEOUT_SECONDS)만 사용.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from config import EXAM_API_URL, EXAM_API_TOKEN, HTTP_TIMEOUT_SECONDS
from timed_exam_cbt.models.exam_model import (
    ExamMetadata,
    SessionSnapshot,
    StartExamRequest,
    StartExamResponse,
    SubmitExamResponse,
    SyncAnswer,
    SyncAnswerResponse,
    payload_of,
)
from timed_exam_cbt.models.result_model import RawAnswersData
from timed_exam_cbt.services.errors import GatewayError

logger = logging.getLogger(__name__)


class ExamGateway:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        token: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        base_url = base_url or EXAM_API_URL
        if not base_url:
            raise ValueError("base_url is required")

        self._base_url = str(base_url).rstrip("/")
        self._timeout = float(timeout_seconds or HTTP_TIMEOUT_SECONDS)
        self._headers = {"Content-Type": "application/json"}

        token = token if token is not None else EXAM_API_TOKEN
        if token:
            self._headers["Authorization"] = token if token.startswith("Bearer ") else f"Bearer {token}"

        # keep-alive 재사용 + close 가능
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    # --------------------------------------------------
    # 공통 요청 처리
    # --------------------------------------------------

    def _request(self, method: str, path: str, operation: str, json: Any = None) -> Any:
        url = f"{self._base_url}{path}"
        try:
            resp = self._session.request(
                method,
                url,
                json=json,
                headers=self._headers,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error(f"{operation}: 요청 실패 - {e}")
            raise GatewayError(operation, str(e) or "네트워크 오류") from e

        if not resp.ok:
            raise GatewayError(
                operation,
                f"{operation} 실패 (HTTP {resp.status_code})",
                status_code=resp.status_code,
                body=resp.text,
            )
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise GatewayError(
                operation,
                f"{operation}: JSON 응답이 아닙니다.",
                status_code=resp.status_code,
                body=resp.text,
            ) from e

    # --------------------------------------------------
    # 시험 작업
    # --------------------------------------------------

    def get_exam_meta(self, exam_slug: str) -> ExamMetadata:
        data = self._request("GET", f"/exams/meta/{exam_slug}", "get_exam_meta")
        return ExamMetadata.model_validate(data)

    def start_exam(self, exam_slug: str, request: StartExamRequest) -> StartExamResponse:
        data = self._request("POST", f"/exams/{exam_slug}/start", "start_exam", json=payload_of(request))
        return StartExamResponse.model_validate(data)

    def get_session(self, session_id: str) -> SessionSnapshot:
        data = self._request("GET", f"/exams/session/{session_id}", "get_session")
        return SessionSnapshot.model_validate(data)

    def sync_session(self, session_id: str, answers: List[SyncAnswer]) -> SyncAnswerResponse:
        body: Dict[str, Any] = {"answers": [payload_of(a) for a in answers]}
        data = self._request("PUT", f"/exams/session/{session_id}/sync", "sync_session", json=body)
        return SyncAnswerResponse.model_validate(data)

    def submit_exam(self, session_id: str) -> SubmitExamResponse:
        data = self._request("POST", "/exams/submit", "submit_exam", json={"session_id": session_id})
        return SubmitExamResponse.model_validate(data)

    def get_results(self, session_id: str) -> RawAnswersData:
        data = self._request("GET", f"/exams/results/{session_id}", "get_results")
        # {"success", "message", "data"} 래핑 응답이면 data 만 꺼낸다
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        return RawAnswersData.model_validate(data)
