"""Extraction session orchestration.

This module is integration-agnostic. It only relies on ports for the host
page and for event delivery. One session runs in a strict order:
1) Drift check; a mismatch ends the session before anything is read
2) Rate-limit admission for every batch (waiting out cooldowns)
3) Locate message nodes in the UI tree and extract records
4) Emit the batch, then scroll up like a person would
5) Stop on the depth budget or at the top of the conversation
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from core.clock import wall_ms
from core.config import SessionConfig
from core.drift import VersionGuard
from core.events import DataExtracted, RateLimited, SessionError, VersionChecked
from core.models import NormalizedMessage, ParseError, ParseErrorType, ThreadInfo
from core.motion import HeuristicScroller
from core.parsers import IdFactory, extract_messages, new_id
from core.ports import ChatHost, EventSink, FrameScheduler, ScrollTarget
from core.rate_limiter import RateLimiter
from core.traversal import by_type, collect_nodes

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionReport:
    batches: int
    messages: Tuple[NormalizedMessage, ...]
    skipped: int
    error: Optional[ParseError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class _Batch:
    messages: Tuple[NormalizedMessage, ...]
    thread: ThreadInfo
    skipped: int


class ExtractionSession:
    """Runs one scrape of the open conversation."""

    def __init__(
        self,
        host: ChatHost,
        guard: VersionGuard,
        limiter: RateLimiter,
        scroller: HeuristicScroller,
        sink: EventSink,
        config: SessionConfig,
        frames: FrameScheduler,
        clock: Callable[[], float] = wall_ms,
        id_factory: IdFactory = new_id,
    ) -> None:
        self._host = host
        self._guard = guard
        self._limiter = limiter
        self._scroller = scroller
        self._sink = sink
        self._config = config
        self._frames = frames
        self._clock = clock
        self._id_factory = id_factory
        self._seen_ids: set[str] = set()
        self._thread_id: Optional[str] = None

    async def run(self) -> SessionReport:
        check = await self._guard.check()
        await self._sink.send(VersionChecked(current_hash=check.current_hash, is_compatible=check.is_compatible))
        if not check.is_compatible:
            message = "Host page structure changed. Manual update required."
            await self._sink.send(SessionError(code="VERSION_MISMATCH", message=message, fatal=True))
            return SessionReport(
                batches=0,
                messages=(),
                skipped=0,
                error=ParseError(
                    ParseErrorType.VERSION_MISMATCH,
                    message,
                    {"current_hash": check.current_hash, "stored_hash": self._guard.get_stored_hash()},
                ),
            )

        target = await self._host.find_scroll_target()
        if target is None:
            message = "Conversation container not found"
            LOGGER.warning(message)
            await self._sink.send(SessionError(code="FIBER_NOT_FOUND", message=message, fatal=False))
            return SessionReport(
                batches=0,
                messages=(),
                skipped=0,
                error=ParseError(ParseErrorType.FIBER_NOT_FOUND, message),
            )

        return await self._scrape(target)

    async def _scrape(self, target: ScrollTarget) -> SessionReport:
        collected: List[NormalizedMessage] = []
        skipped = 0
        total_scrolled = 0.0
        batch_index = 0

        while total_scrolled < self._config.scroll_depth:
            batch = await self._next_batch()
            collected.extend(batch.messages)
            skipped += batch.skipped
            await self._sink.send(
                DataExtracted(
                    messages=batch.messages,
                    thread=batch.thread,
                    batch_index=batch_index,
                    is_complete=False,
                )
            )

            result = await self._scroller.scroll_up(target, self._config.scroll_step)
            total_scrolled += result.distance
            batch_index += 1

            # Top of the conversation, or the viewport refused to move.
            if result.distance <= 0 or await target.get_scroll_top() <= 0:
                break

        batch = await self._next_batch()
        collected.extend(batch.messages)
        skipped += batch.skipped
        await self._sink.send(
            DataExtracted(
                messages=batch.messages,
                thread=batch.thread,
                batch_index=batch_index,
                is_complete=True,
            )
        )

        LOGGER.info(
            "Session complete: batches=%s, messages=%s, skipped=%s, scrolled=%.0fpx",
            batch_index + 1,
            len(collected),
            skipped,
            total_scrolled,
        )
        return SessionReport(batches=batch_index + 1, messages=tuple(collected), skipped=skipped)

    async def _admit(self) -> None:
        """Block until the rate limiter lets one more batch through."""

        while not self._limiter.try_consume(1):
            status = self._limiter.status()
            await self._sink.send(
                RateLimited(
                    tokens_remaining=status.tokens_remaining,
                    is_paused=status.is_paused,
                    resume_at=status.resume_at,
                )
            )
            wait_ms = self._config.poll_interval_ms
            if status.is_paused and status.resume_at is not None:
                wait_ms = max(status.resume_at - self._clock(), 0)
                LOGGER.info("Mandatory pause, resuming in %.0fs", wait_ms / 1000)
            await self._frames.sleep(wait_ms)

    async def _next_batch(self) -> _Batch:
        await self._admit()
        thread = await self._thread_info()

        root = await self._host.get_tree_root()
        if root is None:
            await self._sink.send(
                SessionError(code="FIBER_NOT_FOUND", message="UI tree not reachable from container", fatal=False)
            )
            return _Batch(messages=(), thread=thread, skipped=0)

        nodes = collect_nodes(root, by_type(self._config.message_component), self._config.max_nodes)
        extraction = extract_messages(nodes, self._id_factory)

        fresh = []
        for message in extraction.messages:
            if message.id in self._seen_ids:
                continue
            self._seen_ids.add(message.id)
            fresh.append(message)

        if extraction.errors:
            LOGGER.info("Skipped %s unparseable message nodes", len(extraction.errors))
        return _Batch(messages=tuple(fresh), thread=thread, skipped=len(extraction.errors))

    async def _thread_info(self) -> ThreadInfo:
        info = await self._host.read_thread_info()
        if info.id:
            return info
        # The page does not always expose a chat id; keep one per session.
        if self._thread_id is None:
            self._thread_id = self._id_factory()
        return ThreadInfo(id=self._thread_id, name=info.name, is_group=info.is_group)
