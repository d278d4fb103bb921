"""
api/app.py — FastAPI 앱 인스턴스 + 세션 미들웨어 + static 파일 서빙
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import FileResponse

from config import SESSION_CLEANUP_INTERVAL, STATIC_DIR
from api.routes import router
import api.session as session
from timed_exam_cbt.services.exam_gateway import ExamGateway

SESSION_COOKIE = "cbt_session"

logger = logging.getLogger(__name__)


def _default_gateway_factory(auth_header: str) -> ExamGateway:
    # 클라이언트가 보낸 Authorization 헤더가 있으면 그대로 전달, 없으면 설정값 토큰 사용
    return ExamGateway(token=auth_header or None)


def create_app(gateway_factory: Optional[Callable[[str], object]] = None) -> FastAPI:
    # 만료 세션 주기적 정리. 컨트롤러 타이머가 같은 이벤트 루프에 있으므로 루프 안에서 정리한다
    async def _cleanup_loop():
        while True:
            await asyncio.sleep(SESSION_CLEANUP_INTERVAL)
            removed = session.cleanup_expired()
            if removed:
                logger.info(f"만료 세션 {removed}개 정리")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cleanup = asyncio.create_task(_cleanup_loop())
        try:
            yield
        finally:
            cleanup.cancel()
            session.close_all()

    app = FastAPI(title="Timed Exam CBT", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.gateway_factory = gateway_factory or _default_gateway_factory

    # CORS (모바일 브라우저 등 다양한 출처 허용)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 세션 미들웨어: 쿠키에서 세션 ID를 읽고, 없으면 새로 발급
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=session.SESSION_TTL,
        )
        return response

    app.include_router(router)

    # static 파일 마운트
    if os.path.isdir(STATIC_DIR):
        app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    # 루트 → index.html
    @app.get("/")
    async def serve_index():
        index_path = os.path.join(STATIC_DIR, "index.html")
        if os.path.exists(index_path):
            return FileResponse(index_path)
        return {"error": "index.html not found"}

    return app
