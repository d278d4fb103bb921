"""
models/result_model.py

GET /exams/results/{session_id} 응답 모델 (채점 결과 원본) 및 화면용 변환 결과.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from timed_exam_cbt.models.exam_model import QuestionType


class RawQuestionOption(BaseModel):
    key: str
    text: str = ""
    is_correct: bool = False


class RawQuestionData(BaseModel):
    question_id: int
    question_text: str = ""
    question_type: QuestionType = QuestionType.SBA
    options: List[RawQuestionOption] = Field(default_factory=list)
    # SBA: "c" / TRUE_FALSE: {"a": true, "b": false, ...}
    correct_answer: Union[Dict[str, bool], str, None] = None
    # SBA: ["c"] / TRUE_FALSE: ["a:true", "b:false", ...]
    user_answer: List[str] = Field(default_factory=list)
    is_correct: bool = False
    points_earned: float = 0
    max_points: float = 0
    explanation: Optional[str] = None

    @field_validator("question_type", mode="before")
    @classmethod
    def normalize_question_type(cls, v: Any) -> QuestionType:
        if isinstance(v, QuestionType):
            return v
        return QuestionType.from_wire(v)

    @field_validator("user_answer", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return v or []


class ExamSnapshot(BaseModel):
    duration_minutes: int = 0
    passing_score: float = 0
    total_questions: int = 0
    actual_time_spent: int = 0
    score: Optional[float] = None
    correct_answers: Optional[int] = None
    is_passed: Optional[bool] = None


class RawAnswersData(BaseModel):
    answers: List[RawQuestionData] = Field(default_factory=list)
    exam_snapshot: ExamSnapshot = Field(default_factory=ExamSnapshot)
    submission_timestamp: Optional[datetime] = None


class QuestionReview(BaseModel):
    """
    오답 노트용 문항 결과.

    correct_answer / user_answer:
      - SBA        : 보기 인덱스 (미응답이면 user_answer 는 None)
      - TRUE_FALSE : 보기별 bool 리스트 (응답하지 않은 보기는 None)
    """

    id: int
    question: str
    question_type: QuestionType
    options: List[RawQuestionOption]
    correct_answer: Union[int, List[bool], None]
    user_answer: Union[int, List[Optional[bool]], None]
    is_correct: bool
    points: float
    max_points: float
    explanation: Optional[str] = None


class ResultSummary(BaseModel):
    score: Optional[float]
    is_passed: Optional[bool]
    total_questions: int
    correct_count: int
    incorrect_count: int
    unanswered_count: int
    time_spent: int
    questions: List[QuestionReview] = Field(default_factory=list)
