from __future__ import annotations

import asyncio

import pytest

from statmap.scheduler import AsyncioFrameScheduler, ManualFrameScheduler


def test_tick_runs_only_callbacks_queued_before_the_frame() -> None:
    scheduler = ManualFrameScheduler()
    seen: list[tuple[str, float]] = []

    def first(now: float) -> None:
        seen.append(("first", now))
        scheduler.request_frame(lambda t: seen.append(("second", t)))

    scheduler.request_frame(first)
    assert scheduler.tick(16.0) == 1
    assert seen == [("first", 16.0)]
    assert scheduler.pending == 1
    assert scheduler.advance(16.0) == 1
    assert seen[-1] == ("second", 32.0)
    assert scheduler.now() == 32.0


def test_cancelled_frames_never_run() -> None:
    scheduler = ManualFrameScheduler()
    seen: list[float] = []
    handle = scheduler.request_frame(seen.append)
    scheduler.cancel_frame(handle)
    scheduler.cancel_frame(handle)
    assert scheduler.tick(5.0) == 0
    assert seen == []


def test_clock_cannot_move_backwards() -> None:
    scheduler = ManualFrameScheduler(start_ms=100.0)
    with pytest.raises(ValueError):
        scheduler.tick(50.0)


def test_run_until_idle_follows_chained_requests() -> None:
    scheduler = ManualFrameScheduler()
    remaining = [3]

    def again(now: float) -> None:
        remaining[0] -= 1
        if remaining[0] > 0:
            scheduler.request_frame(again)

    scheduler.request_frame(again)
    assert scheduler.run_until_idle(frame_ms=10.0) == 3
    assert scheduler.now() == pytest.approx(30.0)
    assert scheduler.pending == 0


def test_asyncio_scheduler_fires_and_cancels() -> None:
    async def scenario() -> tuple[list[float], int]:
        scheduler = AsyncioFrameScheduler(frame_rate=200.0)
        fired: list[float] = []
        scheduler.request_frame(fired.append)
        dropped = scheduler.request_frame(fired.append)
        scheduler.cancel_frame(dropped)
        await scheduler.wait_idle(timeout_s=2.0)
        return fired, scheduler.pending

    fired, pending = asyncio.run(scenario())
    assert len(fired) == 1
    assert pending == 0


def test_asyncio_scheduler_rejects_bad_rate() -> None:
    with pytest.raises(ValueError):
        AsyncioFrameScheduler(frame_rate=0)
