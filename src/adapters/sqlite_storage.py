"""SQLite storage adapter.

Implements the core FingerprintStore and EventSink ports using a simple
SQLite database, and keeps the extracted threads, messages and attachments.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from core.events import DataExtracted, RateLimited, SessionError, SessionEvent
from core.models import (
    Attachment,
    AttachmentType,
    ChatThread,
    MessageStatus,
    NormalizedMessage,
    Sender,
)

LOGGER = logging.getLogger(__name__)


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the FingerprintStore and EventSink contracts."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - kv: small key-value store (drift fingerprint)
        - threads: one row per conversation
        - messages: normalized messages, sender flattened into columns
        - attachments: media metadata keyed by message
        """

        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS threads (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    is_group INTEGER NOT NULL,
                    last_activity INTEGER NOT NULL,
                    unread_count INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            # Messages are keyed by the host's own message id; re-scraping the
            # same conversation overwrites rows instead of duplicating them.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id TEXT PRIMARY KEY,
                    thread_id TEXT NOT NULL,
                    timestamp INTEGER NOT NULL,
                    sender_id TEXT NOT NULL,
                    sender_name TEXT NOT NULL,
                    sender_push_name TEXT,
                    sender_is_contact INTEGER NOT NULL,
                    body TEXT NOT NULL,
                    is_from_me INTEGER NOT NULL,
                    quoted_message_id TEXT,
                    status TEXT NOT NULL,
                    is_forwarded INTEGER NOT NULL,
                    is_starred INTEGER NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS messages_by_thread ON messages (thread_id, timestamp)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS attachments (
                    id TEXT PRIMARY KEY,
                    message_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    url TEXT,
                    mime_type TEXT NOT NULL,
                    file_name TEXT,
                    file_size REAL,
                    thumbnail_url TEXT,
                    duration REAL,
                    width REAL,
                    height REAL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS attachments_by_message ON attachments (message_id)")

    def get(self, key: str) -> Optional[str]:
        """Return the stored value for ``key``, if any."""

        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return str(row["value"]) if row else None

    def set(self, key: str, value: str) -> None:
        """Upsert a key-value pair."""

        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, now.isoformat()),
            )

    def delete(self, key: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            return cur.rowcount > 0

    def save_thread(self, thread: ChatThread) -> None:
        """Upsert the thread row and every message it carries."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO threads (id, name, is_group, last_activity, unread_count)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    is_group = excluded.is_group,
                    last_activity = excluded.last_activity,
                    unread_count = excluded.unread_count
                """,
                (thread.id, thread.name, int(thread.is_group), thread.last_activity, thread.unread_count),
            )
            self._insert_messages(conn, thread.messages, thread.id)

    def save_messages(self, messages: Iterable[NormalizedMessage], thread_id: str) -> None:
        with self._connect() as conn:
            self._insert_messages(conn, messages, thread_id)

    def _insert_messages(
        self,
        conn: sqlite3.Connection,
        messages: Iterable[NormalizedMessage],
        thread_id: str,
    ) -> None:
        for message in messages:
            conn.execute(
                """
                INSERT OR REPLACE INTO messages (
                    id, thread_id, timestamp, sender_id, sender_name, sender_push_name,
                    sender_is_contact, body, is_from_me, quoted_message_id, status,
                    is_forwarded, is_starred
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    message.id,
                    thread_id,
                    message.timestamp,
                    message.sender.id,
                    message.sender.name,
                    message.sender.push_name,
                    int(message.sender.is_contact),
                    message.body,
                    int(message.is_from_me),
                    message.quoted_message_id,
                    message.status.value,
                    int(message.is_forwarded),
                    int(message.is_starred),
                ),
            )
            # Attachment ids are generated per extraction, so replace the
            # whole set for the message rather than accumulating copies.
            conn.execute("DELETE FROM attachments WHERE message_id = ?", (message.id,))
            for attachment in message.attachments:
                conn.execute(
                    """
                    INSERT INTO attachments (
                        id, message_id, type, url, mime_type, file_name, file_size,
                        thumbnail_url, duration, width, height
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        attachment.id,
                        message.id,
                        attachment.type.value,
                        attachment.url,
                        attachment.mime_type,
                        attachment.file_name,
                        attachment.file_size,
                        attachment.thumbnail_url,
                        attachment.duration,
                        attachment.width,
                        attachment.height,
                    ),
                )

    def get_attachments_by_message(self, message_id: str) -> list[Attachment]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM attachments WHERE message_id = ? ORDER BY rowid",
                (message_id,),
            ).fetchall()
        return [_attachment_from_row(row) for row in rows]

    def get_messages_by_thread(self, thread_id: str) -> list[NormalizedMessage]:
        """Return a thread's messages in timestamp order."""

        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM messages WHERE thread_id = ? ORDER BY timestamp, rowid",
                (thread_id,),
            ).fetchall()
        return [_message_from_row(row, self.get_attachments_by_message(row["id"])) for row in rows]

    def list_threads(self) -> list[ChatThread]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM threads ORDER BY last_activity DESC").fetchall()
        return [
            ChatThread(
                id=row["id"],
                name=row["name"],
                is_group=bool(row["is_group"]),
                last_activity=int(row["last_activity"]),
                unread_count=int(row["unread_count"]),
            )
            for row in rows
        ]

    def export_all(self) -> dict[str, list[dict[str, Any]]]:
        """Return every thread, message and attachment as plain rows."""

        with self._connect() as conn:
            return {
                "threads": [dict(row) for row in conn.execute("SELECT * FROM threads ORDER BY last_activity DESC")],
                "messages": [dict(row) for row in conn.execute("SELECT * FROM messages ORDER BY thread_id, timestamp")],
                "attachments": [dict(row) for row in conn.execute("SELECT * FROM attachments ORDER BY message_id")],
            }

    def clear_all(self) -> None:
        """Delete extracted data; the stored fingerprint is kept."""

        with self._connect() as conn:
            conn.execute("DELETE FROM attachments")
            conn.execute("DELETE FROM messages")
            conn.execute("DELETE FROM threads")

    async def send(self, event: SessionEvent) -> None:
        """EventSink entry point: persist extracted batches, log the rest."""

        if isinstance(event, DataExtracted):
            thread = ChatThread(
                id=event.thread.id,
                name=event.thread.name,
                is_group=event.thread.is_group,
                last_activity=int(time.time() * 1000),
                messages=event.messages,
            )
            self.save_thread(thread)
            LOGGER.info(
                "Batch %s saved for %s (%s messages%s)",
                event.batch_index,
                event.thread.name,
                len(event.messages),
                ", final" if event.is_complete else "",
            )
        elif isinstance(event, SessionError):
            log = LOGGER.error if event.fatal else LOGGER.warning
            log("%s: %s", event.code, event.message)
        elif isinstance(event, RateLimited):
            LOGGER.info("Rate limited (tokens=%s, paused=%s)", event.tokens_remaining, event.is_paused)


def _attachment_from_row(row: sqlite3.Row) -> Attachment:
    return Attachment(
        id=row["id"],
        type=AttachmentType(row["type"]),
        url=row["url"],
        mime_type=row["mime_type"],
        file_name=row["file_name"],
        file_size=row["file_size"],
        thumbnail_url=row["thumbnail_url"],
        duration=row["duration"],
        width=row["width"],
        height=row["height"],
    )


def _message_from_row(row: sqlite3.Row, attachments: list[Attachment]) -> NormalizedMessage:
    return NormalizedMessage(
        id=row["id"],
        timestamp=int(row["timestamp"]),
        sender=Sender(
            id=row["sender_id"],
            name=row["sender_name"],
            push_name=row["sender_push_name"],
            is_contact=bool(row["sender_is_contact"]),
        ),
        body=row["body"],
        is_from_me=bool(row["is_from_me"]),
        quoted_message_id=row["quoted_message_id"],
        attachments=tuple(attachments),
        status=MessageStatus(row["status"]),
        is_forwarded=bool(row["is_forwarded"]),
        is_starred=bool(row["is_starred"]),
    )
