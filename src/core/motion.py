"""Human-like scroll motion (core domain).

A scroll is a single eased trajectory: the distance is jittered, the
duration is randomized around 400ms, the position follows a cubic Bezier
ease-in-out, and some scrolls end with a short micro-pause.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Optional

from core.ports import FrameScheduler, ScrollTarget

LOGGER = logging.getLogger(__name__)

DISTANCE_VARIANCE = 0.15
BASE_DURATION_MS = 400
DURATION_VARIANCE_MS = 100
MICRO_PAUSE_CHANCE = 0.3
MICRO_PAUSE_MIN_MS = 50
MICRO_PAUSE_MAX_MS = 200

# Standard ease-in-out control points.
EASE_IN_OUT = (0.0, 0.42, 0.58, 1.0)


def cubic_bezier(t: float, p0: float, p1: float, p2: float, p3: float) -> float:
    """Evaluate a one-dimensional cubic Bezier curve in Bernstein form."""

    inv = 1 - t
    return inv**3 * p0 + 3 * inv**2 * t * p1 + 3 * inv * t**2 * p2 + t**3 * p3


def ease_in_out(progress: float) -> float:
    clamped = min(max(progress, 0.0), 1.0)
    return cubic_bezier(clamped, *EASE_IN_OUT)


def jitter(base: float, variance: float, rng: random.Random) -> float:
    """Return ``base`` moved uniformly by up to +/- ``variance``."""

    return base + (rng.random() - 0.5) * 2 * variance


@dataclass(frozen=True)
class MotionProfile:
    """One sampled trajectory: how far, how long, and the trailing pause."""

    distance: float
    duration: float
    micro_pause: Optional[float]

    @classmethod
    def sample(cls, target_distance: float, rng: random.Random) -> "MotionProfile":
        distance = jitter(target_distance, target_distance * DISTANCE_VARIANCE, rng)
        duration = jitter(BASE_DURATION_MS, DURATION_VARIANCE_MS, rng)
        micro_pause = None
        if rng.random() < MICRO_PAUSE_CHANCE:
            micro_pause = MICRO_PAUSE_MIN_MS + rng.random() * (MICRO_PAUSE_MAX_MS - MICRO_PAUSE_MIN_MS)
        return cls(distance=distance, duration=duration, micro_pause=micro_pause)

    def progress_at(self, elapsed: float) -> float:
        if self.duration <= 0:
            return 1.0
        return min(elapsed / self.duration, 1.0)

    def position_at(self, elapsed: float) -> float:
        """Displacement from the start after ``elapsed`` milliseconds."""

        return self.distance * ease_in_out(self.progress_at(elapsed))


@dataclass(frozen=True)
class ScrollResult:
    distance: float
    duration: float


class HeuristicScroller:
    """Drives a ScrollTarget along sampled motion profiles.

    The returned coroutine yields once per animation frame and again during
    the micro-pause. Abandoning it stops the motion where it is; movement
    already applied is not rolled back.
    """

    def __init__(self, frames: FrameScheduler, rng: Optional[random.Random] = None) -> None:
        self._frames = frames
        self._rng = rng or random.Random()

    async def scroll_up(self, target: ScrollTarget, distance: float) -> ScrollResult:
        return await self._perform(target, distance, -1)

    async def scroll_down(self, target: ScrollTarget, distance: float) -> ScrollResult:
        return await self._perform(target, distance, 1)

    async def _perform(self, target: ScrollTarget, target_distance: float, sign: int) -> ScrollResult:
        profile = MotionProfile.sample(target_distance, self._rng)
        start_position = await target.get_scroll_top()
        start_time = self._frames.now()

        while True:
            current_time = await self._frames.next_frame()
            elapsed = current_time - start_time
            await target.set_scroll_top(start_position + sign * profile.position_at(elapsed))
            if profile.progress_at(elapsed) >= 1:
                break

        if profile.micro_pause is not None:
            await self._frames.sleep(profile.micro_pause)

        final_position = await target.get_scroll_top()
        result = ScrollResult(
            distance=abs(final_position - start_position),
            duration=self._frames.now() - start_time,
        )
        LOGGER.debug("Scrolled %.1fpx in %.0fms", result.distance, result.duration)
        return result
