"""
services/answer_store.py

현재 응시의 답안지(OMR 카드) 관리 + 원격 동기화용 인코딩.

Public API:
  - encode_selection(selections) -> str       : 동기화 전송 형식으로 인코딩
  - decode_selection(raw) -> List[str]         : 캐시 복원 시 디코딩 (예외 없음)
  - AnswerStore                                : question_id 키 답안 저장소

인코딩 규칙:
- 단일 선택  → 보기 키 문자열 그대로 ("c")
- 복수 선택  → JSON 배열 문자열 ('["a:true", "b:false"]')
원격 저장소는 문제당 스칼라 하나만 저장하므로 디코딩이 모호하지 않은 형식을 고른다.
"""

import json
import logging
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from timed_exam_cbt.models.exam_model import SavedAnswer, SyncAnswer
from timed_exam_cbt.models.session_state import UserAnswer
from timed_exam_cbt.services.errors import ExamStateError, UnknownQuestionError

logger = logging.getLogger(__name__)


def _parse_list(raw: str) -> Optional[List[str]]:
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(parsed, list):
        return None
    return [str(item) for item in parsed]


def encode_selection(selections: Sequence[str]) -> str:
    """
    선택 리스트 → 동기화 전송 문자열.

    단일 선택이라도 그 값 자체가 JSON 배열로 읽히면 1원소 배열로 감싸서 보낸다.
    (그대로 보내면 복원 시 복수 선택으로 오인된다.)
    """
    if len(selections) == 1:
        only = str(selections[0])
        if _parse_list(only) is None:
            return only
    return json.dumps([str(s) for s in selections])


def decode_selection(raw: str) -> List[str]:
    """
    캐시 값 → 선택 리스트. JSON 배열이면 복수 선택, 그 외(파싱 실패 포함)는 단일 선택.
    """
    parsed = _parse_list(raw)
    if parsed is None:
        return [raw]
    return parsed


class AnswerStore:
    """
    question_id → UserAnswer 저장소.

    - 키 집합은 항상 세션 문제 ID 집합의 부분집합이다.
    - 답안은 삭제되지 않고 문제별로 덮어쓰기만 된다 (빈 선택 = skip).
    - freeze() 이후에는 어떤 변경도 허용하지 않는다 (results 단계).
    """

    def __init__(self, question_ids: Iterable[int] = ()):
        self._allowed = set(question_ids)
        self._answers: Dict[int, UserAnswer] = {}
        self._frozen = False

    def reset(self, question_ids: Iterable[int]) -> None:
        self._allowed = set(question_ids)
        self._answers = {}
        self._frozen = False

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def set(self, question_id: int, selections: Sequence[str]) -> UserAnswer:
        if self._frozen:
            raise ExamStateError("제출이 완료된 시험의 답안은 변경할 수 없습니다.")
        if question_id not in self._allowed:
            raise UnknownQuestionError(question_id)
        answer = UserAnswer(question_id=question_id, selected_options=list(selections))
        self._answers[question_id] = answer
        return answer

    def get(self, question_id: int) -> Optional[UserAnswer]:
        return self._answers.get(question_id)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._answers

    def __len__(self) -> int:
        return len(self._answers)

    def __iter__(self) -> Iterator[UserAnswer]:
        return iter(list(self._answers.values()))

    def snapshot(self) -> Dict[int, UserAnswer]:
        return dict(self._answers)

    @property
    def answered_count(self) -> int:
        return sum(1 for a in self._answers.values() if a.is_answered)

    @property
    def has_answers(self) -> bool:
        return self.answered_count > 0

    def sync_payload(self) -> List[SyncAnswer]:
        """skip 이 아닌 답안 전체 (델타가 아님)."""
        return [
            SyncAnswer(question_id=a.question_id, selected_option=encode_selection(a.selected_options))
            for a in self._answers.values()
            if a.is_answered
        ]

    def restore(self, saved_answers: Iterable[SavedAnswer]) -> int:
        """
        서버 캐시 답안을 디코딩하여 적재한다.

        Returns:
            복원된 답안 수. 세션에 없는 문제/빈 선택은 건너뛴다.
        """
        restored = 0
        for saved in saved_answers:
            if saved.question_id not in self._allowed:
                logger.warning(f"복원 건너뜀 - 세션에 없는 문제 ID: {saved.question_id}")
                continue
            if not saved.selected_option.strip():
                logger.warning(f"복원 건너뜀 - 빈 답안 값: {saved.question_id}")
                continue
            selections = [s for s in decode_selection(saved.selected_option) if s]
            if not selections:
                continue
            self.set(saved.question_id, selections)
            restored += 1
        return restored
