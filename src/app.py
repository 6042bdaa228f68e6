"""Application entry point for the fiberscope extractor."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import random
from logging.handlers import RotatingFileHandler
from typing import Iterable, Mapping, Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.export_formatting import EXPORT_FORMATS, default_export_path, write_export
from adapters.playwright_host import PlaywrightHost
from adapters.sqlite_storage import SQLiteStorage
from client import open_page
from core.clock import AsyncioFrameScheduler
from core.config import SessionConfig
from core.drift import VersionGuard
from core.motion import HeuristicScroller
from core.rate_limiter import RateLimiter
from core.session import ExtractionSession, SessionReport

NAME = "FIBERSCOPE"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    """Masks configured values (profile paths, tokens) in every rendered line."""

    def __init__(self, secrets: Iterable[str], fmt: str, datefmt: Optional[str] = None, mask: str = "***") -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        # Longest first so a path is masked before any shorter value inside it.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)
        self._mask = mask

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, self._mask)
        return message


def _redaction_values(redact_cfg: dict, environ: Mapping[str, str] = os.environ) -> list[str]:
    """Values of the environment variables named under ``redact.patterns``."""

    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = environ.get(name)
        if not value:
            continue
        values.append(value)
        # Directories also appear resolved, e.g. in Playwright launch errors.
        if name.endswith("_DIR"):
            values.append(os.path.abspath(os.path.expanduser(value)))
    return values


def _build_handlers(config: dict, level: int, environ: Mapping[str, str] = os.environ) -> list[logging.Handler]:
    formatter = _RedactingFormatter(
        _redaction_values(config.get("redact", {}), environ),
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/fiberscope.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                path,
                maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
                backupCount=int(file_cfg.get("backup_count", 5)),
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    # Redacted values come from .env, so load it before reading them.
    load_dotenv()
    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)
    handlers = _build_handlers(config, level)
    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # Keep asyncio's slow-callback chatter out of INFO logs.
    logging.getLogger("asyncio").setLevel(max(level, logging.WARNING))


def _open_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    return storage


async def _run_session(storage: SQLiteStorage, session_config: SessionConfig) -> SessionReport:
    async with open_page(settings.TARGET_URL) as page:
        host = PlaywrightHost(page)
        LOGGER.info("Waiting for an open conversation at %s", settings.TARGET_URL)
        await host.wait_for_chat(settings.CHAT_WAIT_TIMEOUT_MS)

        # One scheduler drives both the scroll animation and rate-limit waits.
        frames = AsyncioFrameScheduler()
        session = ExtractionSession(
            host=host,
            guard=VersionGuard(host, storage, settings.LANDMARKS, settings.FINGERPRINT_KEY),
            limiter=RateLimiter(settings.RATE_LIMIT, rng=random.Random()),
            scroller=HeuristicScroller(frames, random.Random()),
            sink=storage,
            config=session_config,
            frames=frames,
        )
        return await session.run()


def _run(depth: Optional[float]) -> int:
    _print_banner()
    _configure_logging()

    LOGGER.info("Starting fiberscope")
    storage = _open_storage()

    session_config = settings.SESSION
    if depth is not None:
        session_config = SessionConfig(
            scroll_depth=depth,
            scroll_step=session_config.scroll_step,
            message_component=session_config.message_component,
            max_nodes=session_config.max_nodes,
            poll_interval_ms=session_config.poll_interval_ms,
        )

    try:
        report = asyncio.run(_run_session(storage, session_config))
    except Exception:
        LOGGER.exception("Extraction session failed")
        return 1

    if not report.succeeded:
        LOGGER.error("Session stopped: %s", report.error.message)
        return 1
    LOGGER.info(
        "Extracted %s messages in %s batches (%s skipped)",
        len(report.messages),
        report.batches,
        report.skipped,
    )
    return 0


def _export(fmt: str, output: Optional[str]) -> int:
    _configure_logging()
    storage = _open_storage()
    path = output or default_export_path(settings.EXPORT_DIR, fmt)
    try:
        count = write_export(storage.export_all(), fmt, path)
    except OSError as exc:
        LOGGER.error("Export failed: %s", exc.strerror or exc)
        return 1
    print(f"Exported {count} messages to {path}")
    return 0


def _status() -> int:
    storage = _open_storage()
    threads = storage.list_threads()
    fingerprint = storage.get(settings.FINGERPRINT_KEY)
    print(f"Database:    {settings.DB_PATH}")
    print(f"Fingerprint: {fingerprint or 'not recorded'}")
    print(f"Threads:     {len(threads)}")
    for thread in threads:
        count = len(storage.get_messages_by_thread(thread.id))
        kind = "group" if thread.is_group else "direct"
        print(f"  {thread.name} | {kind} | {count} messages")
    return 0


def _reset_fingerprint() -> int:
    storage = _open_storage()
    if storage.delete(settings.FINGERPRINT_KEY):
        print("Stored fingerprint removed; the next run records a new one.")
    else:
        print("No fingerprint stored.")
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="fiberscope")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Extract the open conversation")
    run_parser.add_argument("--depth", type=float, help="Pixels to scroll back through history")

    export_parser = subparsers.add_parser("export", help="Export extracted messages")
    export_parser.add_argument("--format", dest="fmt", choices=EXPORT_FORMATS, default="json")
    export_parser.add_argument("--output", help="Destination file (default: exports/messages-<time>.<fmt>)")

    subparsers.add_parser("status", help="Show stored fingerprint and thread counts")
    subparsers.add_parser(
        "reset-fingerprint",
        help="Forget the stored page fingerprint after reviewing a host update.",
    )

    args = parser.parse_args(argv)
    if args.command == "export":
        code = _export(args.fmt, args.output)
    elif args.command == "status":
        code = _status()
    elif args.command == "reset-fingerprint":
        code = _reset_fingerprint()
    else:
        code = _run(getattr(args, "depth", None))
    if code:
        raise SystemExit(code)


if __name__ == "__main__":
    main()
