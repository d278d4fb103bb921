"""
api/session.py — 멀티유저 인메모리 세션 (쿠키 기반)

각 사용자에게 UUID 세션 ID를 발급하고, 세션별로 독립된 SessionController 를 유지.
TTL(기본 1시간) 경과 시 만료되며, 만료/초기화 시 컨트롤러를 닫아 타이머를 정리한다.
"""

import threading
import time
import uuid
from typing import Any, Optional

from config import SESSION_TTL
from timed_exam_cbt.services.session_controller import SessionController

_lock = threading.Lock()
_sessions: dict[str, dict[str, Any]] = {}
_timestamps: dict[str, float] = {}


def _new_state() -> dict[str, Any]:
    return {
        "controller": None,
        "auth_header": "",
    }


def _close_state(state: dict[str, Any]) -> None:
    controller: Optional[SessionController] = state.get("controller")
    if controller is not None:
        controller.close()


def create_session() -> str:
    """새 세션을 생성하고 세션 ID를 반환."""
    sid = uuid.uuid4().hex
    with _lock:
        _sessions[sid] = _new_state()
        _timestamps[sid] = time.time()
    return sid


def get_session(sid: str) -> dict[str, Any] | None:
    """세션 ID로 세션 데이터를 가져옴. 만료되었거나 없으면 None."""
    with _lock:
        if sid not in _sessions:
            return None
        if time.time() - _timestamps[sid] > SESSION_TTL:
            _close_state(_sessions.pop(sid))
            del _timestamps[sid]
            return None
        _timestamps[sid] = time.time()  # 접근 시 갱신
        return _sessions[sid]


def get(sid: str, key: str, default=None):
    """세션에서 값 읽기."""
    session = get_session(sid)
    if session is None:
        return default
    return session.get(key, default)


def put(sid: str, key: str, value) -> None:
    """세션에 값 쓰기."""
    with _lock:
        if sid in _sessions:
            _sessions[sid][key] = value
            _timestamps[sid] = time.time()


def get_controller(sid: str) -> Optional[SessionController]:
    return get(sid, "controller")


def set_controller(sid: str, controller: SessionController) -> None:
    """세션의 컨트롤러 교체. 기존 컨트롤러는 닫는다."""
    with _lock:
        if sid not in _sessions:
            return
        previous = _sessions[sid].get("controller")
        _sessions[sid]["controller"] = controller
        _timestamps[sid] = time.time()
    if previous is not None and previous is not controller:
        previous.close()


def reset(sid: str) -> None:
    """세션 초기화 (인증 헤더는 유지)."""
    with _lock:
        if sid in _sessions:
            state = _sessions[sid]
            saved_auth = state.get("auth_header", "")
            _close_state(state)
            _sessions[sid] = _new_state()
            _sessions[sid]["auth_header"] = saved_auth
            _timestamps[sid] = time.time()


def cleanup_expired() -> int:
    """만료된 세션을 정리. 제거된 수 반환."""
    now = time.time()
    removed = 0
    with _lock:
        expired = [sid for sid, ts in _timestamps.items() if now - ts > SESSION_TTL]
        for sid in expired:
            _close_state(_sessions.pop(sid))
            del _timestamps[sid]
            removed += 1
    return removed


def close_all() -> None:
    """앱 종료 시 모든 컨트롤러를 닫고 세션을 비운다."""
    with _lock:
        for state in _sessions.values():
            _close_state(state)
        _sessions.clear()
        _timestamps.clear()
