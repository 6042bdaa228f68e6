"""Token bucket with mandatory cooldown windows (core domain).

Admission control for extraction batches: tokens refill continuously, and
every ``pause_interval`` a randomized break is armed during which nothing is
admitted. All expiry is lazy; there are no background timers.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Callable, Optional

from core.clock import wall_ms
from core.config import RateLimiterConfig


@dataclass(frozen=True)
class RateLimitStatus:
    tokens_remaining: int
    is_paused: bool
    resume_at: Optional[float]


class RateLimiter:
    """Single-owner limiter; callers serialize access themselves."""

    def __init__(
        self,
        config: RateLimiterConfig,
        clock: Callable[[], float] = wall_ms,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._rng = rng or random.Random()
        now = clock()
        self._tokens = float(config.max_tokens)
        self._last_refill = now
        self._last_pause_check = now
        self._paused_until: Optional[float] = None

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        self._tokens = min(self._config.max_tokens, self._tokens + elapsed * self._config.refill_rate)
        self._last_refill = now

    def _check_mandatory_pause(self) -> None:
        # Arms a fresh window even if one is already running.
        now = self._clock()
        if now - self._last_pause_check >= self._config.pause_interval:
            duration = self._config.pause_min + self._rng.random() * (
                self._config.pause_max - self._config.pause_min
            )
            self._paused_until = now + duration
            self._last_pause_check = now

    def try_consume(self, count: float = 1) -> bool:
        """Debit ``count`` tokens if available and not inside a cooldown."""

        self._check_mandatory_pause()
        if self.is_paused():
            return False

        self._refill()
        if self._tokens < count:
            return False
        self._tokens -= count
        return True

    def is_paused(self) -> bool:
        if self._paused_until is None:
            return False
        if self._clock() >= self._paused_until:
            self._paused_until = None
            return False
        return True

    def get_tokens(self) -> int:
        self._refill()
        return math.floor(self._tokens)

    def get_resume_time(self) -> Optional[float]:
        return self._paused_until

    def status(self) -> RateLimitStatus:
        paused = self.is_paused()
        return RateLimitStatus(
            tokens_remaining=self.get_tokens(),
            is_paused=paused,
            resume_at=self._paused_until,
        )

    def reset(self) -> None:
        now = self._clock()
        self._tokens = float(self._config.max_tokens)
        self._last_refill = now
        self._last_pause_check = now
        self._paused_until = None
