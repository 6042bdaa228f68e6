"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimiterConfig:
    """Token bucket and mandatory cooldown settings (milliseconds)."""

    max_tokens: float
    refill_rate: float  # tokens per millisecond
    pause_interval: float
    pause_min: float
    pause_max: float


# 50 batches per minute, with a 2-5 minute break every 15 minutes.
DEFAULT_RATE_LIMITER = RateLimiterConfig(
    max_tokens=50,
    refill_rate=50 / 60_000,
    pause_interval=15 * 60 * 1000,
    pause_min=2 * 60 * 1000,
    pause_max=5 * 60 * 1000,
)


@dataclass(frozen=True)
class SessionConfig:
    """Settings for one extraction session."""

    scroll_depth: float
    scroll_step: float = 300
    message_component: str = "Message"
    max_nodes: int = 500
    poll_interval_ms: float = 1000
