"""
services/session_controller.py

시험 1회 응시를 구동하는 상태 머신.

흐름:
  load_metadata()  : loading → instructions (남은 시간 = 제한 시간으로 초기화)
  start()          : 원격 세션 생성 → 문제/저장 답안 복원 → exam, 타이머 시작
  update_answer()  : 답안지 갱신 → 전체 답안 동기화 (fire-and-forget)
  enter/exit_review: exam ⇄ review (타이머는 계속 진행)
  submit()         : 타이머 정지 → 제출 → results
  시간 종료        : 0 으로 전이하는 순간 submit() 을 정확히 한 번 예약

실행 모델:
- 단일 asyncio 이벤트 루프 위에서만 상태를 바꾼다 (락 불필요).
- 블로킹 게이트웨이 호출은 asyncio.to_thread 로 내보낸다.
- restart()/close() 는 세대(generation)를 올려 진행 중이던 응답을 무효화한다.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from config import TICK_INTERVAL_SECONDS
from timed_exam_cbt.models.exam_model import (
    DeviceInfo,
    ExamMetadata,
    ExamSession,
    Question,
    StartExamRequest,
)
from timed_exam_cbt.models.session_state import (
    ExamErrorState,
    ExamResult,
    SessionPhase,
    UserAnswer,
    can_transition,
)
from timed_exam_cbt.services.answer_store import AnswerStore
from timed_exam_cbt.services.countdown import CountdownTimer
from timed_exam_cbt.services.error_classifier import (
    ClassifiedError,
    ErrorKind,
    classify_error,
    to_error_state,
)
from timed_exam_cbt.services.errors import ExamStateError

logger = logging.getLogger(__name__)

ResultSink = Callable[[ExamResult], None]

_SUBMIT_RETRY_MESSAGE = "시험 제출에 실패했습니다. 다시 시도해 주세요."
_SUBMIT_EXPIRED_MESSAGE = "시험 세션이 만료되었습니다. 시험을 다시 시작해 주세요."


class SessionController:
    def __init__(
        self,
        gateway: Any,
        package_slug: str,
        exam_slug: str,
        *,
        device_info: Optional[DeviceInfo] = None,
        tick_interval: Optional[float] = None,
        owns_gateway: bool = False,
    ):
        self._gateway = gateway
        self._owns_gateway = owns_gateway
        self.package_slug = package_slug
        self.exam_slug = exam_slug
        self._device_info = device_info or DeviceInfo()

        self._phase = SessionPhase.LOADING
        self.metadata: Optional[ExamMetadata] = None
        self.session: Optional[ExamSession] = None
        self.error_state: Optional[ExamErrorState] = None
        self.error_message: Optional[str] = None
        self.result: Optional[ExamResult] = None
        self.current_index = 0
        self.loading = False

        self._answers = AnswerStore()
        self._timer = CountdownTimer(
            on_expire=self._handle_time_expired,
            interval=tick_interval or TICK_INTERVAL_SECONDS,
        )
        self._submitting = False
        self._auto_submit_fired = False
        self._generation = 0
        self._closed = False
        self._tasks: Set[asyncio.Task] = set()

    # ── 상태 전이 ────────────────────────────────────────────────────────────

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    def _transition(self, target: SessionPhase) -> None:
        if not can_transition(self._phase, target):
            raise ExamStateError(f"허용되지 않는 단계 전이: {self._phase.value} → {target.value}")
        logger.info(f"[{self.exam_slug}] 단계 전이: {self._phase.value} → {target.value}")
        self._phase = target

    def _fail(self, classified: ClassifiedError) -> None:
        self._timer.stop()
        self.error_state = to_error_state(classified)
        self.error_message = self.error_state.message
        self._transition(SessionPhase.ERROR)

    def _require_open(self) -> None:
        if self._closed:
            raise ExamStateError("종료된 시험 세션입니다.")

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(fn, *args)

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ── 메타데이터 / 시작 ────────────────────────────────────────────────────

    async def load_metadata(self) -> Optional[ExamMetadata]:
        """
        시험 메타데이터 조회. 실패하면 분류된 오류를 보관하고 error 로 전이한다.
        같은 응시 안에서는 복구 불가. restart() 로 처음부터 다시 시작해야 한다.
        """
        self._require_open()
        if self._phase is not SessionPhase.LOADING or self.loading:
            raise ExamStateError("메타데이터는 loading 단계에서 한 번만 불러올 수 있습니다.")

        generation = self._generation
        self.loading = True
        self.error_state = None
        self.error_message = None
        try:
            meta: ExamMetadata = await self._call(self._gateway.get_exam_meta, self.exam_slug)
        except Exception as e:
            if generation != self._generation:
                return None
            classified = classify_error(e)
            logger.error(f"[{self.exam_slug}] 메타데이터 조회 실패 ({classified.kind.value}): {classified.message}")
            self.loading = False
            self._fail(classified)
            return None

        if generation != self._generation:
            return None
        self.loading = False
        self.metadata = meta
        self._timer.seed(meta.duration_seconds)
        self._transition(SessionPhase.INSTRUCTIONS)
        return meta

    async def start(self) -> Optional[ExamSession]:
        """
        원격 세션을 만들고 시험을 시작한다.

        남은 시간은 로컬 제한 시간이 아니라 서버가 알려준 time_remaining 으로 설정한다
        (이어하기 세션 대응). 저장된 답안이 있으면 exam 전이 전에 복원한다.
        """
        self._require_open()
        if self._phase is not SessionPhase.INSTRUCTIONS or self.loading:
            raise ExamStateError("시험은 안내 단계에서만 시작할 수 있습니다.")

        generation = self._generation
        self.loading = True
        self.error_message = None
        request = StartExamRequest(package_slug=self.package_slug, device_info=self._device_info)
        try:
            started = await self._call(self._gateway.start_exam, self.exam_slug, request)
            snapshot = await self._call(self._gateway.get_session, started.session_id)
        except Exception as e:
            if generation != self._generation:
                return None
            classified = classify_error(e)
            logger.error(f"[{self.exam_slug}] 시험 시작 실패 ({classified.kind.value}): {classified.message}")
            self.loading = False
            self._fail(classified)
            return None

        if generation != self._generation:
            return None
        self.loading = False

        session = ExamSession(
            session_id=started.session_id,
            attempt_id=started.attempt_id,
            questions=snapshot.exam.questions,
            time_remaining=snapshot.session.time_remaining,
        )
        self.session = session
        self.current_index = 0
        self._answers.reset(session.question_ids)
        restored = self._answers.restore(snapshot.session.saved_answers)
        if restored:
            logger.info(f"[{self.exam_slug}] 저장된 답안 {restored}개 복원")

        self._auto_submit_fired = False
        self._timer.seed(session.time_remaining)
        self._transition(SessionPhase.EXAM)
        self._timer.start()

        if self._timer.remaining == 0:
            # 이미 시간이 소진된 세션. 전이 이벤트가 없으므로 즉시 제출을 예약한다.
            self._trigger_auto_submit()
        return session

    # ── 답안 ────────────────────────────────────────────────────────────────

    def update_answer(self, question_id: int, selections: List[str]) -> UserAnswer:
        """답안을 덮어쓰고 전체 답안 동기화를 예약한다. 동기화 결과는 기다리지 않는다."""
        self._require_open()
        if not self._phase.is_live:
            raise ExamStateError("시험 진행 중에만 답안을 변경할 수 있습니다.")
        if self._submitting:
            raise ExamStateError("제출 처리 중에는 답안을 변경할 수 없습니다.")

        answer = self._answers.set(question_id, selections)
        self._schedule_sync()
        return answer

    def _schedule_sync(self) -> None:
        payload = self._answers.sync_payload()
        if not payload or self.session is None:
            return
        self._spawn(self._sync(self.session.session_id, payload))

    async def _sync(self, session_id: str, payload: list) -> None:
        # 실패해도 화면 상태에는 영향 없음. 다음 동기화가 전체 답안을 다시 보낸다.
        try:
            response = await self._call(self._gateway.sync_session, session_id, payload)
        except Exception as e:
            classified = classify_error(e)
            logger.warning(f"답안 동기화 실패 ({classified.kind.value}): {classified.message}")
            return
        logger.debug(f"답안 {response.synced_count}개 동기화 완료")

    @property
    def answers(self) -> Dict[int, UserAnswer]:
        return self._answers.snapshot()

    # ── 검토 ────────────────────────────────────────────────────────────────

    def enter_review(self) -> None:
        if self._phase is not SessionPhase.EXAM:
            raise ExamStateError("시험 진행 중에만 검토 화면으로 이동할 수 있습니다.")
        self._transition(SessionPhase.REVIEW)

    def exit_review(self) -> None:
        if self._phase is not SessionPhase.REVIEW:
            raise ExamStateError("검토 중이 아닙니다.")
        self._transition(SessionPhase.EXAM)

    # ── 제출 ────────────────────────────────────────────────────────────────

    async def submit(self, result_sink: Optional[ResultSink] = None) -> Optional[ExamResult]:
        """
        시험을 제출한다.

        Returns:
            제출 결과. 다음 경우에는 None:
              - 이미 다른 제출이 진행 중
              - 서버가 "이미 제출됨"으로 거절 (제출 완료와 동일하게 results 로 전이)
              - 그 외 실패 (exam 으로 돌아가고 error_message 설정, 타이머는 멈춘 상태 유지)
        """
        self._require_open()
        if self._phase is SessionPhase.RESULTS:
            return self.result
        if self.session is None or not self._phase.is_live:
            raise ExamStateError("진행 중인 시험이 없습니다.")
        if self._submitting:
            return None

        self._timer.stop()
        self._submitting = True
        self.error_message = None
        generation = self._generation
        try:
            response = await self._call(self._gateway.submit_exam, self.session.session_id)
        except Exception as e:
            if generation != self._generation:
                return None
            classified = classify_error(e)
            if classified.kind is ErrorKind.CONFLICT:
                logger.info(f"[{self.exam_slug}] 이미 제출된 시험, 제출 완료로 처리")
                self._finalize(None)
                return None
            logger.error(f"[{self.exam_slug}] 시험 제출 실패 ({classified.kind.value}): {classified.message}")
            if classified.kind in (ErrorKind.SESSION_NOT_FOUND, ErrorKind.SESSION_EXPIRED):
                self.error_message = _SUBMIT_EXPIRED_MESSAGE
            else:
                self.error_message = _SUBMIT_RETRY_MESSAGE
            if self._phase is SessionPhase.REVIEW:
                self._transition(SessionPhase.EXAM)
            return None
        finally:
            self._submitting = False

        if generation != self._generation:
            return None

        result = ExamResult(
            score=response.score,
            correct_answers=response.correct_answers,
            total_questions=response.total_questions,
            time_spent=response.time_taken_seconds,
            is_passed=response.passed,
            answers=list(self._answers),
        )
        self._finalize(result)
        if result_sink is not None:
            result_sink(result)
        return result

    def _finalize(self, result: Optional[ExamResult]) -> None:
        self._timer.stop()
        self._answers.freeze()
        self.result = result
        self._transition(SessionPhase.RESULTS)

    # ── 타이머 ──────────────────────────────────────────────────────────────

    @property
    def time_remaining(self) -> int:
        return self._timer.remaining

    @property
    def timer_running(self) -> bool:
        return self._timer.running

    def tick(self, seconds: int = 1) -> bool:
        """
        경과 시간만큼 남은 시간을 줄인다. 0 으로 전이하면 자동 제출이 예약된다.
        응시 중(exam/review)이 아니거나, 타이머가 멈춰 있거나(제출 중 포함), 닫힌 컨트롤러면 무시.
        """
        if self._closed or not self._phase.is_live or self._submitting or not self._timer.running:
            return False
        return self._timer.advance(seconds)

    def _handle_time_expired(self) -> None:
        if not self._phase.is_live:
            return
        self._trigger_auto_submit()

    def _trigger_auto_submit(self) -> None:
        if self._auto_submit_fired or self._submitting or self.session is None:
            return
        self._auto_submit_fired = True
        self._timer.stop()
        logger.info(f"[{self.exam_slug}] 시간 종료, 자동 제출")
        self._spawn(self.submit())

    def resume(self) -> None:
        """제출 실패 후 타이머 재개. 이미 줄어든 남은 시간을 그대로 이어간다."""
        self._require_open()
        if self._phase is not SessionPhase.EXAM or self._submitting:
            raise ExamStateError("시험 진행 중에만 타이머를 재개할 수 있습니다.")
        if self._timer.running:
            return
        self.error_message = None
        self._timer.start()
        if self._timer.remaining == 0:
            # 멈춘 동안 0 에 도달해 전이 이벤트가 없었던 경우. 자동 제출은 여전히 응시당 한 번.
            self._trigger_auto_submit()

    # ── 네비게이션 ──────────────────────────────────────────────────────────

    @property
    def questions(self) -> List[Question]:
        return self.session.questions if self.session else []

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Optional[Question]:
        questions = self.questions
        if not questions:
            return None
        return questions[self.current_index]

    @property
    def current_answer(self) -> Optional[UserAnswer]:
        question = self.current_question
        return self._answers.get(question.id) if question else None

    @property
    def can_go_next(self) -> bool:
        return self.current_index < self.total_questions - 1

    @property
    def can_go_previous(self) -> bool:
        return self.current_index > 0

    def go_to_question(self, index: int) -> bool:
        if not 0 <= index < self.total_questions:
            return False
        self.current_index = index
        return True

    def next_question(self) -> bool:
        return self.go_to_question(self.current_index + 1)

    def previous_question(self) -> bool:
        if not self.can_go_previous:
            return False
        return self.go_to_question(self.current_index - 1)

    # ── 파생 값 ─────────────────────────────────────────────────────────────

    @property
    def answered_count(self) -> int:
        return self._answers.answered_count

    @property
    def progress(self) -> float:
        total = self.total_questions
        return self.answered_count / total * 100 if total else 0.0

    @property
    def can_submit(self) -> bool:
        return self._answers.has_answers

    @property
    def submitting(self) -> bool:
        return self._submitting

    # ── 수명 주기 ───────────────────────────────────────────────────────────

    def _teardown(self) -> None:
        self._generation += 1
        self._timer.stop()
        for task in list(self._tasks):
            task.cancel()

    async def restart(self) -> Optional[ExamMetadata]:
        """현재 응시를 버리고 메타데이터 조회부터 다시 시작한다."""
        self._require_open()
        self._teardown()
        logger.info(f"[{self.exam_slug}] 시험 재시작")
        self._phase = SessionPhase.LOADING
        self.metadata = None
        self.session = None
        self.error_state = None
        self.error_message = None
        self.result = None
        self.current_index = 0
        self.loading = False
        self._answers.reset(())
        self._timer.seed(0)
        self._submitting = False
        self._auto_submit_fired = False
        return await self.load_metadata()

    def close(self) -> None:
        """컨트롤러 해제. 이후 틱/동기화가 상태를 바꾸지 못하도록 모두 정리한다."""
        if self._closed:
            return
        self._teardown()
        self._closed = True
        if self._owns_gateway:
            self._gateway.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def gateway(self) -> Any:
        return self._gateway

    async def wait_idle(self) -> None:
        """예약된 백그라운드 작업(동기화, 자동 제출)이 모두 끝날 때까지 대기."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def snapshot(self) -> Dict[str, Any]:
        """HTTP 응답용 상태 스냅샷 (JSON 호환)."""
        current = self.current_question
        return {
            "phase": self._phase.value,
            "loading": self.loading,
            "submitting": self._submitting,
            "exam": self.metadata.model_dump(mode="json") if self.metadata else None,
            "session_id": self.session.session_id if self.session else None,
            "questions": [q.model_dump(mode="json") for q in self.questions],
            "time_remaining": self.time_remaining,
            "timer_running": self.timer_running,
            "current_index": self.current_index,
            "current_question_id": current.id if current else None,
            "answers": {
                str(qid): answer.model_dump(mode="json") for qid, answer in self._answers.snapshot().items()
            },
            "answered_count": self.answered_count,
            "total_questions": self.total_questions,
            "progress": round(self.progress, 2),
            "can_submit": self.can_submit,
            "can_go_next": self.can_go_next,
            "can_go_previous": self.can_go_previous,
            "error": self.error_state.model_dump(mode="json") if self.error_state else None,
            "error_message": self.error_message,
            "result": self.result.model_dump(mode="json") if self.result else None,
        }
