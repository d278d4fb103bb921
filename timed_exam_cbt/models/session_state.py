"""
models/session_state.py

시험 진행 상태 모델: 단계(phase), 답안, 오류 상태, 최종 결과.
Pydantic BaseModel 기반. UI 코드 없음.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, model_validator


class SessionPhase(str, Enum):
    """
    loading → instructions → exam ⇄ review → results
    error 는 results 를 제외한 모든 단계에서 진입 가능한 흡수 상태.
    """

    LOADING = "loading"
    INSTRUCTIONS = "instructions"
    EXAM = "exam"
    REVIEW = "review"
    RESULTS = "results"
    ERROR = "error"

    @property
    def is_live(self) -> bool:
        """타이머가 돌아가는(응시 중인) 단계인지."""
        return self in (SessionPhase.EXAM, SessionPhase.REVIEW)


# 허용 전이표. restart()에 의한 loading 복귀는 컨트롤러가 별도로 처리한다.
PHASE_TRANSITIONS: Dict[SessionPhase, FrozenSet[SessionPhase]] = {
    SessionPhase.LOADING: frozenset({SessionPhase.INSTRUCTIONS, SessionPhase.ERROR}),
    SessionPhase.INSTRUCTIONS: frozenset({SessionPhase.EXAM, SessionPhase.ERROR}),
    SessionPhase.EXAM: frozenset({SessionPhase.REVIEW, SessionPhase.RESULTS, SessionPhase.ERROR}),
    SessionPhase.REVIEW: frozenset({SessionPhase.EXAM, SessionPhase.RESULTS, SessionPhase.ERROR}),
    SessionPhase.RESULTS: frozenset(),
    SessionPhase.ERROR: frozenset(),
}


def can_transition(current: SessionPhase, target: SessionPhase) -> bool:
    return target in PHASE_TRANSITIONS.get(current, frozenset())


class UserAnswer(BaseModel):
    """
    한 문제에 대한 사용자 답안.

    Attributes:
        question_id:      세션 문제 ID (문제당 하나).
        selected_options: 선택한 보기 키 리스트. TRUE_FALSE 는 "a:true" 형식.
        is_skipped:       선택이 비어 있으면 True. 선택 리스트로부터 결정된다.
        answered_at:      로컬 기록 시각.
    """

    question_id: int
    selected_options: List[str] = Field(default_factory=list)
    is_skipped: bool = False
    answered_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def derive_skip_flag(self) -> "UserAnswer":
        # skip 은 선택 리스트가 비어 있을 때에만 참이다.
        self.is_skipped = not self.selected_options
        return self

    @property
    def is_answered(self) -> bool:
        return not self.is_skipped and bool(self.selected_options)


class ExamErrorKind(str, Enum):
    ALREADY_SUBMITTED = "ALREADY_SUBMITTED"
    MAX_ATTEMPTS_EXCEEDED = "MAX_ATTEMPTS_EXCEEDED"
    NOT_AVAILABLE = "NOT_AVAILABLE"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    UNKNOWN = "UNKNOWN"


class ExamErrorState(BaseModel):
    """error 단계에서 화면에 보여줄 오류. payload 는 서버 거절 응답 본문 그대로."""

    kind: ExamErrorKind
    message: str
    payload: Optional[Dict[str, Any]] = None


class ExamResult(BaseModel):
    """제출 완료 후 호출자에게 전달되는 최종 결과."""

    score: float
    correct_answers: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=0)
    time_spent: int = Field(..., ge=0, description="소요 시간 (초)")
    is_passed: bool
    answers: List[UserAnswer] = Field(default_factory=list)
