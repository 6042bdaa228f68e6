"""Events emitted by an extraction session.

Each event carries a timestamp and a correlation id so sinks can order and
deduplicate what they receive.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

from core.models import NormalizedMessage, ThreadInfo


def _now_ms() -> int:
    return int(time.time() * 1000)


def _correlation_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class DataExtracted:
    messages: Tuple[NormalizedMessage, ...]
    thread: ThreadInfo
    batch_index: int
    is_complete: bool
    timestamp: int = field(default_factory=_now_ms)
    correlation_id: str = field(default_factory=_correlation_id)


@dataclass(frozen=True)
class RateLimited:
    tokens_remaining: int
    is_paused: bool
    resume_at: Optional[float]
    timestamp: int = field(default_factory=_now_ms)
    correlation_id: str = field(default_factory=_correlation_id)


@dataclass(frozen=True)
class VersionChecked:
    current_hash: str
    is_compatible: bool
    timestamp: int = field(default_factory=_now_ms)
    correlation_id: str = field(default_factory=_correlation_id)


@dataclass(frozen=True)
class SessionError:
    """Error surfaced to the sink; ``fatal`` ends the session."""

    code: str
    message: str
    fatal: bool
    timestamp: int = field(default_factory=_now_ms)
    correlation_id: str = field(default_factory=_correlation_id)


SessionEvent = Union[DataExtracted, RateLimited, VersionChecked, SessionError]
