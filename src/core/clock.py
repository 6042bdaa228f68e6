"""Clock and frame-cadence sources.

The rate limiter and the scroller only ever ask these objects for time, so
tests can drive them with a fake clock instead of real timers.
"""

from __future__ import annotations

import asyncio
import time

FRAME_INTERVAL_MS = 1000 / 60


def wall_ms() -> float:
    """Current wall-clock time in milliseconds."""

    return time.time() * 1000


class AsyncioFrameScheduler:
    """Animation-frame cadence on top of asyncio (about 60 frames/s)."""

    def __init__(self, frame_interval_ms: float = FRAME_INTERVAL_MS) -> None:
        self._frame_interval = frame_interval_ms / 1000

    def now(self) -> float:
        return time.monotonic() * 1000

    async def next_frame(self) -> float:
        await asyncio.sleep(self._frame_interval)
        return self.now()

    async def sleep(self, ms: float) -> None:
        await asyncio.sleep(max(ms, 0) / 1000)
