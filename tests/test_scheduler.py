import asyncio

import pytest

from joke_video_service.scheduler import FrameLoop, LoopScheduler


def test_frame_loop_runs_until_callback_declines(scheduler):
    calls = []

    def tick() -> bool:
        calls.append(scheduler.time())
        return len(calls) < 3

    loop = FrameLoop(scheduler, tick, 0.5).start()
    scheduler.advance(5)

    assert calls == [0.5, 1.0, 1.5]
    assert not loop.active
    assert scheduler.pending == 0


def test_frame_loop_cancel_stops_rescheduling(scheduler):
    calls = []
    loop = FrameLoop(scheduler, lambda: calls.append(1) or True, 0.25).start()
    scheduler.advance(0.5)
    loop.cancel()
    scheduler.advance(1)

    assert len(calls) == 2
    assert scheduler.pending == 0


def test_frame_loop_starts_once(scheduler):
    loop = FrameLoop(scheduler, lambda: False, 1).start()
    with pytest.raises(RuntimeError):
        loop.start()


def test_frame_loop_rejects_bad_interval(scheduler):
    with pytest.raises(ValueError):
        FrameLoop(scheduler, lambda: False, 0)


def test_loop_scheduler_uses_running_loop():
    async def scenario():
        scheduler = LoopScheduler()
        fired = asyncio.Event()
        scheduler.call_later(-1, fired.set)
        await asyncio.wait_for(fired.wait(), timeout=1)
        return scheduler.time() == pytest.approx(asyncio.get_running_loop().time(), abs=0.5)

    assert asyncio.run(scenario())
