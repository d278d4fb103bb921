"""
services/countdown.py

남은 시험 시간 카운트다운.

- advance(seconds): 순수 리듀서 단계. remaining = max(0, remaining - seconds)
  0 으로 "전이"하는 순간에만 True 를 반환한다 (이미 0 이면 False).
- start()/stop(): asyncio 틱 태스크. 중복 start 는 기존 태스크를 교체하고,
  이미 멈춘 상태의 stop 은 아무 일도 하지 않는다.
"""

import asyncio
from typing import Callable, Optional


class CountdownTimer:
    def __init__(
        self,
        remaining: int = 0,
        on_expire: Optional[Callable[[], None]] = None,
        interval: float = 1.0,
        step: int = 1,
    ):
        if remaining < 0:
            raise ValueError("remaining 은 음수일 수 없습니다.")
        self._remaining = int(remaining)
        self._on_expire = on_expire
        self._interval = interval
        self._step = step
        self._task: Optional[asyncio.Task] = None

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def seed(self, seconds: int) -> None:
        """남은 시간 재설정. 타이머가 멈춰 있을 때만 호출한다."""
        self._remaining = max(0, int(seconds))

    def advance(self, seconds: int = 1) -> bool:
        if seconds < 0:
            raise ValueError("경과 시간은 음수일 수 없습니다.")
        before = self._remaining
        self._remaining = max(0, before - int(seconds))
        crossed = before > 0 and self._remaining == 0
        if crossed and self._on_expire is not None:
            self._on_expire()
        return crossed

    def start(self) -> None:
        # 실행 중인 이벤트 루프가 필요하다.
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.advance(self._step)
