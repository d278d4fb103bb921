"""
api/routes.py — FastAPI 엔드포인트

모든 엔드포인트는 쿠키 세션의 SessionController 를 조작하고 상태 스냅샷을 돌려준다.
"""

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

import api.session as session
from timed_exam_cbt.models.exam_model import DeviceInfo
from timed_exam_cbt.models.session_state import SessionPhase
from timed_exam_cbt.services.error_classifier import ErrorKind, classify_error
from timed_exam_cbt.services.errors import ExamStateError, UnknownQuestionError
from timed_exam_cbt.services.result_service import summarize_results
from timed_exam_cbt.services.session_controller import SessionController

logger = logging.getLogger(__name__)

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class AnswerBody(BaseModel):
    question_id: int
    selections: list[str] = []

class NavigateBody(BaseModel):
    index: int = 0


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _sid(request: Request) -> str:
    return request.state.session_id


def _controller(request: Request) -> SessionController:
    controller = session.get_controller(_sid(request))
    if controller is None:
        raise HTTPException(status_code=404, detail="시험 세션이 없습니다.")
    return controller


def _conflict(e: ExamStateError) -> HTTPException:
    return HTTPException(status_code=409, detail=str(e))


# ── 엔드포인트 ───────────────────────────────────────────────────────────────

@router.post("/api/exams/{package_slug}/{exam_slug}/load")
async def load_exam(package_slug: str, exam_slug: str, request: Request):
    sid = _sid(request)
    auth_header = request.headers.get("authorization", "")
    if auth_header:
        session.put(sid, "auth_header", auth_header)

    gateway = request.app.state.gateway_factory(session.get(sid, "auth_header", ""))
    controller = SessionController(
        gateway,
        package_slug,
        exam_slug,
        device_info=DeviceInfo.from_user_agent(request.headers.get("user-agent", "")),
        owns_gateway=True,
    )
    session.set_controller(sid, controller)
    await controller.load_metadata()
    return controller.snapshot()


@router.get("/api/exam/state")
async def get_exam_state(request: Request):
    return _controller(request).snapshot()


@router.post("/api/exam/start")
async def start_exam(request: Request):
    controller = _controller(request)
    try:
        await controller.start()
    except ExamStateError as e:
        raise _conflict(e)
    return controller.snapshot()


@router.put("/api/exam/answer")
async def save_answer(body: AnswerBody, request: Request):
    controller = _controller(request)
    try:
        controller.update_answer(body.question_id, body.selections)
    except UnknownQuestionError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ExamStateError as e:
        raise _conflict(e)
    return {"ok": True, "answered_count": controller.answered_count, "can_submit": controller.can_submit}


@router.post("/api/exam/navigate")
async def navigate(body: NavigateBody, request: Request):
    controller = _controller(request)
    if not controller.go_to_question(body.index):
        raise HTTPException(status_code=400, detail="문제 번호가 범위를 벗어났습니다.")
    return {"index": controller.current_index, "ok": True}


@router.post("/api/exam/review")
async def enter_review(request: Request):
    controller = _controller(request)
    try:
        controller.enter_review()
    except ExamStateError as e:
        raise _conflict(e)
    return controller.snapshot()


@router.post("/api/exam/back")
async def exit_review(request: Request):
    controller = _controller(request)
    try:
        controller.exit_review()
    except ExamStateError as e:
        raise _conflict(e)
    return controller.snapshot()


@router.post("/api/exam/submit")
async def submit_exam(request: Request):
    controller = _controller(request)
    try:
        await controller.submit()
    except ExamStateError as e:
        raise _conflict(e)
    return controller.snapshot()


@router.post("/api/exam/resume")
async def resume_exam(request: Request):
    controller = _controller(request)
    try:
        controller.resume()
    except ExamStateError as e:
        raise _conflict(e)
    return controller.snapshot()


@router.post("/api/exam/restart")
async def restart_exam(request: Request):
    controller = _controller(request)
    try:
        await controller.restart()
    except ExamStateError as e:
        raise _conflict(e)
    return controller.snapshot()


@router.get("/api/exam/results")
async def get_results(request: Request):
    controller = _controller(request)
    if controller.phase is not SessionPhase.RESULTS or controller.session is None:
        raise HTTPException(status_code=400, detail="시험이 아직 제출되지 않았습니다.")

    try:
        data = await asyncio.to_thread(controller.gateway.get_results, controller.session.session_id)
    except Exception as e:
        # 전송/HTTP 실패 외에 응답 본문 검증 실패(ValidationError)도 여기서 처리
        classified = classify_error(e)
        logger.error(f"결과 조회 실패 ({classified.kind.value}): {classified.message}")
        not_found = classified.kind in (ErrorKind.NOT_FOUND, ErrorKind.SESSION_NOT_FOUND)
        raise HTTPException(status_code=404 if not_found else 502, detail=classified.message)

    summary = summarize_results(data)
    return {
        "result": controller.result.model_dump(mode="json") if controller.result else None,
        "summary": summary.model_dump(mode="json"),
    }


@router.post("/api/reset")
async def reset_session(request: Request):
    session.reset(_sid(request))
    return {"ok": True}
