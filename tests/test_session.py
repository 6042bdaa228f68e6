from __future__ import annotations

import asyncio
import itertools
from typing import Any, Optional, Sequence

from adapters.fiber_snapshot import build_tree
from core.config import RateLimiterConfig, SessionConfig
from core.drift import VersionGuard
from core.events import DataExtracted, RateLimited, SessionError, VersionChecked
from core.models import ParseErrorType, ThreadInfo
from core.motion import HeuristicScroller
from core.rate_limiter import RateLimiter
from core.session import ExtractionSession


class FakeFrames:
    def __init__(self) -> None:
        self.time = 0.0
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.time

    async def next_frame(self) -> float:
        self.time += 16
        return self.time

    async def sleep(self, ms: float) -> None:
        self.sleeps.append(ms)
        self.time += ms


class FakeTarget:
    def __init__(self, top: float) -> None:
        self.top = top

    async def get_scroll_top(self) -> float:
        return self.top

    async def set_scroll_top(self, value: float) -> None:
        self.top = max(value, 0.0)


class FakeHost:
    def __init__(self, trees: Sequence[Any], target: Optional[FakeTarget], thread_id: str = "") -> None:
        self._trees = list(trees)
        self._target = target
        self._thread_id = thread_id
        self.tree_calls = 0

    async def probe_landmarks(self, selectors):
        return [None for _ in selectors]

    async def get_tree_root(self):
        tree = self._trees[min(self.tree_calls, len(self._trees) - 1)]
        self.tree_calls += 1
        return tree

    async def read_thread_info(self) -> ThreadInfo:
        return ThreadInfo(id=self._thread_id, name="Family", is_group=True)

    async def find_scroll_target(self):
        return self._target


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[Any] = []

    async def send(self, event) -> None:
        self.events.append(event)

    def of_type(self, kind):
        return [event for event in self.events if isinstance(event, kind)]


class MemoryStore:
    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self.values = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value


class FixedRandom:
    def random(self) -> float:
        return 0.5


def _tree(*messages: dict):
    return build_tree(
        {
            "type": "div",
            "children": [
                {"type": {"name": "Message"}, "props": {"message": message}} for message in messages
            ],
        }
    )


def _message(message_id: str, t: int) -> dict:
    return {"id": message_id, "t": t, "from": "1@c.us", "body": message_id}


def _session(host, sink, frames, store=None, limiter_config=None, depth=600):
    limiter_config = limiter_config or RateLimiterConfig(
        max_tokens=100,
        refill_rate=1,
        pause_interval=10**12,
        pause_min=0,
        pause_max=0,
    )
    counter = itertools.count(1)
    return ExtractionSession(
        host=host,
        guard=VersionGuard(host, store or MemoryStore()),
        limiter=RateLimiter(limiter_config, clock=frames.now),
        scroller=HeuristicScroller(frames, FixedRandom()),
        sink=sink,
        config=SessionConfig(scroll_depth=depth, scroll_step=300),
        frames=frames,
        clock=frames.now,
        id_factory=lambda: f"id-{next(counter)}",
    )


def test_session_scrolls_to_depth_and_marks_last_batch_complete() -> None:
    trees = [
        _tree(_message("m3", 3), _message("m4", 4)),
        _tree(_message("m2", 2), _message("m3", 3)),
        _tree(_message("m1", 1), _message("m2", 2)),
    ]
    target = FakeTarget(top=1000)
    host = FakeHost(trees, target)
    sink = RecordingSink()

    report = asyncio.run(_session(host, sink, FakeFrames()).run())

    assert report.succeeded
    assert report.batches == 3
    assert [message.id for message in report.messages] == ["m3", "m4", "m2", "m1"]
    assert target.top == 400

    batches = sink.of_type(DataExtracted)
    assert [batch.batch_index for batch in batches] == [0, 1, 2]
    assert [batch.is_complete for batch in batches] == [False, False, True]
    assert [len(batch.messages) for batch in batches] == [2, 1, 1]
    assert isinstance(sink.events[0], VersionChecked)


def test_session_assigns_one_thread_id_when_host_has_none() -> None:
    host = FakeHost([_tree(_message("m1", 1))], FakeTarget(top=1000))
    sink = RecordingSink()

    asyncio.run(_session(host, sink, FakeFrames()).run())

    thread_ids = {batch.thread.id for batch in sink.of_type(DataExtracted)}
    assert len(thread_ids) == 1
    assert thread_ids.pop().startswith("id-")


def test_session_keeps_host_thread_id() -> None:
    host = FakeHost([_tree(_message("m1", 1))], FakeTarget(top=1000), thread_id="123@g.us")
    sink = RecordingSink()

    asyncio.run(_session(host, sink, FakeFrames()).run())

    assert {batch.thread.id for batch in sink.of_type(DataExtracted)} == {"123@g.us"}


def test_session_stops_at_top_of_conversation() -> None:
    target = FakeTarget(top=120)
    host = FakeHost([_tree(_message("m1", 1))], target)
    sink = RecordingSink()

    report = asyncio.run(_session(host, sink, FakeFrames(), depth=10_000).run())

    assert target.top == 0
    assert report.batches == 2
    assert sink.of_type(DataExtracted)[-1].is_complete


def test_version_mismatch_ends_session_before_reading() -> None:
    host = FakeHost([_tree(_message("m1", 1))], FakeTarget(top=1000))
    sink = RecordingSink()
    store = MemoryStore({"fiberscope-version-hash": "deadbeef"})

    report = asyncio.run(_session(host, sink, FakeFrames(), store=store).run())

    assert not report.succeeded
    assert report.error.type is ParseErrorType.VERSION_MISMATCH
    assert report.error.context["stored_hash"] == "deadbeef"
    assert host.tree_calls == 0
    checked, error = sink.events
    assert isinstance(checked, VersionChecked) and not checked.is_compatible
    assert isinstance(error, SessionError)
    assert error.code == "VERSION_MISMATCH" and error.fatal
    assert store.values["fiberscope-version-hash"] == "deadbeef"


def test_missing_scroll_target_is_reported() -> None:
    host = FakeHost([_tree()], None)
    sink = RecordingSink()

    report = asyncio.run(_session(host, sink, FakeFrames()).run())

    assert report.error.type is ParseErrorType.FIBER_NOT_FOUND
    assert sink.of_type(SessionError)[0].code == "FIBER_NOT_FOUND"
    assert not sink.of_type(DataExtracted)


def test_unreachable_tree_yields_empty_batches() -> None:
    host = FakeHost([None], FakeTarget(top=1000))
    sink = RecordingSink()

    report = asyncio.run(_session(host, sink, FakeFrames()).run())

    assert report.succeeded
    assert report.messages == ()
    errors = sink.of_type(SessionError)
    assert errors and all(not error.fatal for error in errors)


def test_bad_records_are_counted_as_skipped() -> None:
    host = FakeHost([_tree(_message("m1", 1), {"t": 5}, {"id": "m2"})], FakeTarget(top=1000))
    sink = RecordingSink()

    report = asyncio.run(_session(host, sink, FakeFrames(), depth=300).run())

    assert [message.id for message in report.messages] == ["m1"]
    assert report.skipped == 2 * report.batches


def test_rate_limiter_waits_between_batches() -> None:
    frames = FakeFrames()
    host = FakeHost([_tree(_message("m1", 1))], FakeTarget(top=1000))
    sink = RecordingSink()
    config = RateLimiterConfig(
        max_tokens=1,
        refill_rate=1 / 1000,
        pause_interval=10**12,
        pause_min=0,
        pause_max=0,
    )

    report = asyncio.run(_session(host, sink, frames, limiter_config=config).run())

    assert report.succeeded
    limited = sink.of_type(RateLimited)
    assert limited
    assert all(not event.is_paused for event in limited)
    assert 1000 in frames.sleeps
