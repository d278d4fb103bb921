import asyncio
import random

import pytest

from timed_exam_cbt.services.countdown import CountdownTimer


def test_advance_never_goes_negative_and_reports_zero_edge_once():
    expired = []
    timer = CountdownTimer(3, on_expire=lambda: expired.append(True))

    assert timer.advance(1) is False
    assert timer.advance(5) is True
    assert timer.remaining == 0
    assert timer.advance(1) is False
    assert timer.remaining == 0
    assert expired == [True]


def test_advance_rejects_negative_step():
    timer = CountdownTimer(10)
    with pytest.raises(ValueError):
        timer.advance(-1)
    assert timer.remaining == 10


def test_remaining_is_non_increasing():
    rng = random.Random(7)
    timer = CountdownTimer(50)
    previous = timer.remaining
    for _ in range(200):
        timer.advance(rng.randint(0, 3))
        assert 0 <= timer.remaining <= previous
        previous = timer.remaining


def test_seed_clamps_to_zero():
    timer = CountdownTimer()
    timer.seed(-5)
    assert timer.remaining == 0


def test_start_replaces_task_and_stop_is_idempotent():
    async def scenario():
        timer = CountdownTimer(100, interval=3600)
        timer.start()
        first = timer._task
        timer.start()
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert timer.running
        assert first.cancelled()
        assert timer._task is not first

        timer.stop()
        timer.stop()
        assert not timer.running

    asyncio.run(scenario())


def test_ticks_drive_the_countdown_to_zero():
    async def scenario():
        expired = []
        timer = CountdownTimer(3, on_expire=lambda: expired.append(True), interval=0.01)
        timer.start()
        for _ in range(200):
            if timer.remaining == 0:
                break
            await asyncio.sleep(0.01)
        timer.stop()
        return timer.remaining, expired

    remaining, expired = asyncio.run(scenario())
    assert remaining == 0
    assert expired == [True]
