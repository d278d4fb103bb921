"""
services/result_service.py

채점 결과(서버 산출) → 결과 화면용 데이터 변환.
순수 Python 함수로 구성. 채점은 하지 않는다 (원격 시험 서비스 담당).
"""

from typing import List, Optional, Union

from timed_exam_cbt.models.exam_model import QuestionType
from timed_exam_cbt.models.result_model import (
    QuestionReview,
    RawAnswersData,
    RawQuestionData,
    ResultSummary,
)


def _option_index(raw: RawQuestionData, key: Optional[str]) -> Optional[int]:
    for idx, option in enumerate(raw.options):
        if option.key == key:
            return idx
    return None


def _parse_true_false(user_answer: List[str]) -> dict:
    """["a:true", "b:false"] → {"a": True, "b": False}. 형식이 어긋난 항목은 무시."""
    parsed = {}
    for item in user_answer:
        key, sep, value = item.partition(":")
        if not sep:
            continue
        parsed[key] = value.strip().lower() == "true"
    return parsed


def transform_question_result(raw: RawQuestionData) -> QuestionReview:
    """
    서버 원본 문항 결과를 화면용 형식으로 변환한다.

    Args:
        raw: GET /exams/results 응답의 answers 항목.

    Returns:
        SBA 는 보기 인덱스, TRUE_FALSE 는 보기별 bool 리스트로 바꾼 QuestionReview.
        SBA 정답 키가 보기에 없으면 correct_answer 는 None.
    """
    correct: Union[int, List[bool], None]
    user: Union[int, List[Optional[bool]], None] = None

    if raw.question_type is QuestionType.SBA:
        correct_key = raw.correct_answer if isinstance(raw.correct_answer, str) else None
        correct = _option_index(raw, correct_key)
        if raw.user_answer and raw.user_answer[0]:
            user = _option_index(raw, raw.user_answer[0])
    else:
        correct_map = raw.correct_answer if isinstance(raw.correct_answer, dict) else {}
        correct = [bool(correct_map.get(opt.key, False)) for opt in raw.options]
        if raw.user_answer:
            user_map = _parse_true_false(raw.user_answer)
            user = [user_map.get(opt.key) for opt in raw.options]

    return QuestionReview(
        id=raw.question_id,
        question=raw.question_text,
        question_type=raw.question_type,
        options=raw.options,
        correct_answer=correct,
        user_answer=user,
        is_correct=raw.is_correct,
        points=raw.points_earned,
        max_points=raw.max_points,
        explanation=raw.explanation,
    )


def summarize_results(data: RawAnswersData) -> ResultSummary:
    """
    결과 요약: 정답/오답/미응답 수와 서버가 계산한 점수·합격 여부.

    미응답 판정: user_answer 가 비어 있는 문항.
    total_questions 는 스냅샷 값을 우선하고, 없으면 응답 문항 수를 쓴다.
    """
    reviews = [transform_question_result(raw) for raw in data.answers]

    unanswered = sum(1 for raw in data.answers if not raw.user_answer)
    correct = sum(1 for raw in data.answers if raw.user_answer and raw.is_correct)
    incorrect = len(data.answers) - unanswered - correct

    snapshot = data.exam_snapshot
    return ResultSummary(
        score=snapshot.score,
        is_passed=snapshot.is_passed,
        total_questions=snapshot.total_questions or len(data.answers),
        correct_count=correct,
        incorrect_count=incorrect,
        unanswered_count=unanswered,
        time_spent=snapshot.actual_time_spent,
        questions=reviews,
    )
