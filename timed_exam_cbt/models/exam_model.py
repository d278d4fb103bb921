"""
models/exam_model.py

시험 메타데이터 / 문제 / 세션 모델 및 원격 시험 서비스 wire DTO.
Pydantic v2 적용. 응답 JSON을 model_validate()로 바로 검증한다.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class QuestionType(str, Enum):
    """문제 유형. SBA = 단일 정답, TRUE_FALSE = 보기별 참/거짓."""

    SBA = "SBA"
    TRUE_FALSE = "TRUE_FALSE"

    @classmethod
    def from_wire(cls, value: Optional[str]) -> "QuestionType":
        # 서버는 SINGLE_CHOICE / TRUE_FALSE / 기타를 보낸다. 모르는 유형은 SBA로 취급.
        if value == "TRUE_FALSE":
            return cls.TRUE_FALSE
        return cls.SBA


class ExamMetadata(BaseModel):
    """
    시험 메타데이터. 시도(attempt) 생명주기당 한 번 조회되며 이후 불변.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="시험 ID")
    title: str = Field(..., description="시험 제목")
    slug: str = Field("", description="시험 slug")
    total_questions: int = Field(0, ge=0, description="총 문항 수")
    duration_minutes: int = Field(..., ge=0, description="제한 시간 (분)")
    passing_score: float = Field(0, description="합격 기준 점수")
    total_marks: float = Field(0, description="총점")
    max_attempts: int = Field(0, ge=0, description="최대 응시 횟수 (0 = 제한 없음)")
    instructions: Optional[str] = Field(None, description="응시 안내문")

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60


class QuestionOption(BaseModel):
    key: str = Field(..., min_length=1, description="보기 키 (예: a, b, c)")
    text: str = Field("", description="보기 내용")


class Question(BaseModel):
    """
    세션에 포함된 문제. 정답/해설은 보안상 응답에 포함되지 않는다.
    """

    id: int = Field(..., description="문제 ID (세션 내 고유)")
    question_text: str = Field(..., description="발문")
    question_type: QuestionType = Field(QuestionType.SBA, description="문제 유형")
    options: List[QuestionOption] = Field(default_factory=list, description="보기 리스트 (서버 순서 유지)")
    points: float = Field(1, description="배점")

    @field_validator("question_type", mode="before")
    @classmethod
    def normalize_question_type(cls, v: Any) -> QuestionType:
        if isinstance(v, QuestionType):
            return v
        return QuestionType.from_wire(v)

    @field_validator("options", mode="before")
    @classmethod
    def normalize_options(cls, v: Any) -> Any:
        """
        서버는 보기를 {"a": {"text": ...}, ...} 형태의 객체로 보낸다.
        리스트 형태([{"key": ..., "text": ...}])도 그대로 허용.
        """
        if v is None:
            return []
        if isinstance(v, dict):
            return [
                {"key": key, "text": (opt or {}).get("text", "") if isinstance(opt, dict) else str(opt)}
                for key, opt in v.items()
            ]
        return v

    @property
    def option_keys(self) -> List[str]:
        return [opt.key for opt in self.options]


class ExamSession(BaseModel):
    """
    진행 중인 시험 세션. start() 성공 시 생성되고 제출/포기 시 논리적으로 소멸한다.

    Attributes:
        session_id:     서버가 발급한 불투명 세션 토큰.
        attempt_id:     서버 측 응시 ID.
        questions:      순서가 유지된 문제 리스트.
        time_remaining: 남은 시간 (초). 생성 시점에는 서버 값, 이후 로컬에서 감소.
    """

    session_id: str = Field(..., min_length=1)
    attempt_id: int
    questions: List[Question] = Field(default_factory=list)
    time_remaining: int = Field(0, ge=0)

    @property
    def question_ids(self) -> List[int]:
        return [q.id for q in self.questions]


# ── Wire DTO ─────────────────────────────────────────────────────────────────

class DeviceInfo(BaseModel):
    browser: str = "Unknown"
    user_agent: str = ""
    ip_address: str = "0.0.0.0"  # 실제 값은 백엔드가 결정

    @classmethod
    def from_user_agent(cls, user_agent: str) -> "DeviceInfo":
        if "Chrome" in user_agent:
            browser = "Chrome"
        elif "Firefox" in user_agent:
            browser = "Firefox"
        elif "Safari" in user_agent:
            browser = "Safari"
        else:
            browser = "Unknown"
        return cls(browser=browser, user_agent=user_agent)


class StartExamRequest(BaseModel):
    package_slug: str
    device_info: DeviceInfo = Field(default_factory=DeviceInfo)


class StartExamResponse(BaseModel):
    session_id: str
    attempt_id: int
    exam_meta: Optional[ExamMetadata] = None


class SavedAnswer(BaseModel):
    """캐시에 저장된 답안. selected_option은 단일 키 또는 JSON 배열 문자열."""

    question_id: int
    selected_option: str = ""

    @field_validator("selected_option", mode="before")
    @classmethod
    def coerce_selected_option(cls, v: Any) -> str:
        # null/객체는 빈 값(복원 시 건너뜀), 배열은 JSON 문자열로. 해석은 복원 단계에서 한다.
        if v is None or isinstance(v, dict):
            return ""
        if isinstance(v, list):
            return json.dumps([str(item) for item in v])
        return str(v)


class SessionExam(BaseModel):
    id: int
    title: str = ""
    slug: str = ""
    duration_minutes: int = 0
    passing_score: float = 0
    questions: List[Question] = Field(default_factory=list)


class SessionState(BaseModel):
    session_id: str = ""
    attempt_id: int = 0
    status: str = ""
    time_remaining: int = Field(0, ge=0)
    time_limit_seconds: int = 0
    saved_answers: List[SavedAnswer] = Field(default_factory=list)

    @field_validator("saved_answers", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return v or []

    @field_validator("time_remaining", mode="before")
    @classmethod
    def clamp_time_remaining(cls, v: Any) -> Any:
        # 서버 시계 오차로 음수가 올 수 있다.
        if isinstance(v, (int, float)) and v < 0:
            return 0
        return v


class SessionSnapshot(BaseModel):
    """GET /exams/session/{session_id} 응답."""

    exam: SessionExam
    session: SessionState


class SyncAnswer(BaseModel):
    question_id: int
    selected_option: str


class SyncAnswerResponse(BaseModel):
    success: bool = True
    synced_count: int = 0
    last_sync_at: Optional[datetime] = None
    time_remaining: int = 0


class SubmitExamResponse(BaseModel):
    session_id: str = ""
    score: float
    passed: bool
    total_questions: int
    correct_answers: int
    time_taken_seconds: int
    submitted_at: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_counts(self) -> "SubmitExamResponse":
        if self.correct_answers > self.total_questions:
            raise ValueError(
                f"정답 수({self.correct_answers})가 전체 문항 수({self.total_questions})보다 많습니다."
            )
        return self


def payload_of(model: BaseModel) -> Dict[str, Any]:
    """요청 본문용 dict (JSON 호환)."""
    return model.model_dump(mode="json")
