"""Ports (interfaces) used by the core.

Ports define the minimal contracts for the host page, the fingerprint store
and the event sink so that the core can be driven by a real browser in
production and by plain fakes in tests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Protocol, Sequence

from core.models import ThreadInfo, UiNode

if TYPE_CHECKING:
    from core.drift import LandmarkProbe
    from core.events import SessionEvent


class FingerprintStore(Protocol):
    """Durable key-value store; failures are tolerated by callers."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class HostDocument(Protocol):
    """Structural probes against the host page."""

    async def probe_landmarks(self, selectors: Sequence[str]) -> list[Optional["LandmarkProbe"]]:
        ...


class TreeRootSupplier(Protocol):
    """Returns the UI tree rooted at the chat container, if reachable."""

    async def get_tree_root(self) -> Optional[UiNode]:
        ...


class ThreadInfoSupplier(Protocol):
    async def read_thread_info(self) -> ThreadInfo:
        ...


class ScrollTarget(Protocol):
    """A scrollable viewport whose position the scroller drives."""

    async def get_scroll_top(self) -> float:
        ...

    async def set_scroll_top(self, value: float) -> None:
        ...


class FrameScheduler(Protocol):
    """Animation-frame cadence and millisecond clock for motion."""

    def now(self) -> float:
        ...

    async def next_frame(self) -> float:
        ...

    async def sleep(self, ms: float) -> None:
        ...


class EventSink(Protocol):
    """Receives every event emitted during a session."""

    async def send(self, event: "SessionEvent") -> None:
        ...


class ChatHost(HostDocument, TreeRootSupplier, ThreadInfoSupplier, Protocol):
    """Everything a session needs from the page hosting the chat."""

    async def find_scroll_target(self) -> Optional[ScrollTarget]:
        ...
