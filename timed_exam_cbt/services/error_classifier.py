"""
services/error_classifier.py

게이트웨이 실패 → 잘 알려진 오류 종류(kind) + 메시지 + payload 매핑.
순수 함수. 어떤 입력에도 예외를 던지지 않는다.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import requests

from timed_exam_cbt.models.session_state import ExamErrorKind, ExamErrorState
from timed_exam_cbt.services.errors import GatewayError


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    FORBIDDEN = "FORBIDDEN"
    NOT_AVAILABLE = "NOT_AVAILABLE"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class ClassifiedError:
    kind: ErrorKind
    message: str
    payload: Optional[Dict[str, Any]] = None


# 세션 ID로 주소 지정되는 작업: 404 는 SESSION_NOT_FOUND 로 본다.
SESSION_OPERATIONS = frozenset({"get_session", "sync_session", "submit_exam", "get_results"})

_ERROR_CODE_KINDS = {
    "EXAM_ALREADY_SUBMITTED": ErrorKind.CONFLICT,
    "MAX_ATTEMPTS_EXCEEDED": ErrorKind.FORBIDDEN,
    "EXAM_NOT_AVAILABLE": ErrorKind.NOT_AVAILABLE,
    "SESSION_EXPIRED": ErrorKind.SESSION_EXPIRED,
    "SESSION_NOT_FOUND": ErrorKind.SESSION_NOT_FOUND,
}

_DEFAULT_MESSAGES = {
    ErrorKind.NOT_FOUND: "시험을 찾을 수 없습니다.",
    ErrorKind.CONFLICT: "이미 제출된 시험입니다.",
    ErrorKind.FORBIDDEN: "최대 응시 횟수를 초과했습니다.",
    ErrorKind.NOT_AVAILABLE: "현재 응시할 수 없는 시험입니다.",
    ErrorKind.SESSION_EXPIRED: "시험 세션이 만료되었습니다.",
    ErrorKind.SESSION_NOT_FOUND: "시험 세션을 찾을 수 없거나 만료되었습니다.",
    ErrorKind.UNKNOWN: "예기치 않은 오류가 발생했습니다.",
}


def _parse_body(body: Optional[str]) -> Optional[Dict[str, Any]]:
    if not body:
        return None
    try:
        parsed = json.loads(body)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _kind_from_status(status_code: Optional[int], operation: str) -> ErrorKind:
    if status_code == 409:
        return ErrorKind.CONFLICT
    if status_code == 403:
        return ErrorKind.FORBIDDEN
    if status_code == 410:
        return ErrorKind.SESSION_EXPIRED
    if status_code == 404:
        return ErrorKind.SESSION_NOT_FOUND if operation in SESSION_OPERATIONS else ErrorKind.NOT_FOUND
    return ErrorKind.UNKNOWN


def classify_error(exc: BaseException) -> ClassifiedError:
    """
    실패 예외를 ClassifiedError 로 분류한다.

    판정 순서:
      1. 응답 본문의 error_code / code (구조화된 거절 사유)
      2. HTTP 상태 코드 (409/403/410/404)
      3. 그 외 (전송 오류 포함) → UNKNOWN

    본문이 JSON 이 아니면 payload 는 None, 메시지는 원문 텍스트를 쓴다.
    """
    if not isinstance(exc, GatewayError):
        if isinstance(exc, requests.RequestException):
            message = str(exc) or "네트워크 오류가 발생했습니다."
        else:
            message = str(exc) or _DEFAULT_MESSAGES[ErrorKind.UNKNOWN]
        return ClassifiedError(ErrorKind.UNKNOWN, message)

    payload = _parse_body(exc.body)
    kind = ErrorKind.UNKNOWN
    if payload:
        code = payload.get("error_code") or payload.get("code")
        if isinstance(code, str):
            kind = _ERROR_CODE_KINDS.get(code.upper(), ErrorKind.UNKNOWN)
    if kind is ErrorKind.UNKNOWN:
        kind = _kind_from_status(exc.status_code, exc.operation)

    message = None
    if payload:
        for field in ("message", "error", "detail"):
            value = payload.get(field)
            if isinstance(value, str) and value:
                message = value
                break
    elif exc.body:
        message = exc.body.strip() or None
    if not message:
        message = exc.message if kind is ErrorKind.UNKNOWN else _DEFAULT_MESSAGES[kind]

    return ClassifiedError(kind, message, payload)


def to_error_state(classified: ClassifiedError) -> ExamErrorState:
    """분류 결과 → error 단계에 보관할 ExamErrorState."""
    if classified.kind is ErrorKind.CONFLICT:
        kind = ExamErrorKind.ALREADY_SUBMITTED
    elif classified.kind is ErrorKind.FORBIDDEN:
        kind = ExamErrorKind.MAX_ATTEMPTS_EXCEEDED
    elif classified.kind is ErrorKind.NOT_AVAILABLE:
        kind = ExamErrorKind.NOT_AVAILABLE
    elif classified.kind in (ErrorKind.SESSION_EXPIRED, ErrorKind.SESSION_NOT_FOUND):
        kind = ExamErrorKind.SESSION_EXPIRED
    else:
        kind = ExamErrorKind.UNKNOWN
    return ExamErrorState(kind=kind, message=classified.message, payload=classified.payload)
