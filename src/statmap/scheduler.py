"""Per-frame callback scheduling for redraws and projection transitions."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from typing import Callable, Protocol


_LOGGER = logging.getLogger("statmap.scheduler")

FrameCallback = Callable[[float], None]


class FrameScheduler(Protocol):
    """Host frame clock. Times are milliseconds on a monotonic clock."""

    def request_frame(self, callback: FrameCallback) -> int: ...

    def cancel_frame(self, handle: int) -> None: ...

    def now(self) -> float: ...


class ManualFrameScheduler:
    """Frame clock driven explicitly by the host (CLI exports, tests)."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = float(start_ms)
        self._pending: dict[int, FrameCallback] = {}
        self._ids = itertools.count(1)

    def request_frame(self, callback: FrameCallback) -> int:
        handle = next(self._ids)
        self._pending[handle] = callback
        return handle

    def cancel_frame(self, handle: int) -> None:
        self._pending.pop(handle, None)

    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        return len(self._pending)

    def tick(self, now: float | None = None) -> int:
        """Run the callbacks queued before this frame; returns how many ran.

        Callbacks requested while the frame runs wait for the next tick.
        """
        if now is not None:
            if now < self._now:
                raise ValueError("Frame clock cannot move backwards")
            self._now = float(now)
        due = self._pending
        self._pending = {}
        for callback in due.values():
            callback(self._now)
        return len(due)

    def advance(self, delta_ms: float) -> int:
        return self.tick(self._now + delta_ms)

    def run_until_idle(self, frame_ms: float = 1000.0 / 60.0, max_frames: int = 10_000) -> int:
        frames = 0
        while self._pending and frames < max_frames:
            self.advance(frame_ms)
            frames += 1
        return frames


class AsyncioFrameScheduler:
    """Frame clock on an asyncio event loop at a fixed frame rate."""

    def __init__(self, frame_rate: float = 60.0, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if frame_rate <= 0:
            raise ValueError("frame_rate must be > 0")
        self.frame_interval_s = 1.0 / frame_rate
        self._loop = loop
        self._handles: dict[int, asyncio.TimerHandle] = {}
        self._ids = itertools.count(1)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def request_frame(self, callback: FrameCallback) -> int:
        handle = next(self._ids)
        self._handles[handle] = self.loop.call_later(self.frame_interval_s, self._fire, handle, callback)
        return handle

    def cancel_frame(self, handle: int) -> None:
        timer = self._handles.pop(handle, None)
        if timer is not None:
            timer.cancel()

    def now(self) -> float:
        if self._loop is None:
            return time.monotonic() * 1000.0
        return self._loop.time() * 1000.0

    @property
    def pending(self) -> int:
        return len(self._handles)

    def _fire(self, handle: int, callback: FrameCallback) -> None:
        if self._handles.pop(handle, None) is None:
            return
        try:
            callback(self.now())
        except Exception:
            _LOGGER.exception("Frame callback failed")

    async def wait_idle(self, timeout_s: float = 10.0) -> None:
        """Wait until no frame is pending."""
        deadline = self.loop.time() + timeout_s
        while self._handles:
            if self.loop.time() > deadline:
                raise TimeoutError("Frame scheduler did not become idle")
            await asyncio.sleep(self.frame_interval_s)
