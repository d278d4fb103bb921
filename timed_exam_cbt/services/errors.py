"""
services/errors.py

시험 세션 코어에서 발생하는 예외.
"""

from typing import Optional


class ExamSessionError(Exception):
    """코어 예외의 공통 부모."""


class ExamStateError(ExamSessionError):
    """현재 단계에서 허용되지 않는 조작."""


class UnknownQuestionError(ExamSessionError, KeyError):
    """세션 문제 목록에 없는 question_id."""

    def __init__(self, question_id: int):
        super().__init__(question_id)
        self.question_id = question_id

    def __str__(self) -> str:
        return f"세션에 없는 문제입니다: {self.question_id}"


class GatewayError(ExamSessionError):
    """
    원격 시험 서비스 호출 실패.

    Attributes:
        operation:   호출한 게이트웨이 작업 이름 (예: "start_exam").
        status_code: HTTP 상태 코드. 전송 단계 실패면 None.
        body:        응답 본문 원문 (파싱하지 않음).
    """

    def __init__(
        self,
        operation: str,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.message = message
        self.status_code = status_code
        self.body = body
