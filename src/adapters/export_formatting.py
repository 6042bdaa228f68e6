"""Export helpers for persisted chat data.

JSON keeps the full structure (threads, messages, attachments). CSV is one
row per message so it opens cleanly in a spreadsheet; thread name and
attachment count are joined in.
"""

from __future__ import annotations

import csv
import io
import json
import os
from datetime import datetime
from typing import Any, Optional

EXPORT_FORMATS = ("json", "csv")

CSV_FIELDS = [
    "thread_id",
    "thread_name",
    "id",
    "timestamp",
    "sent_at",
    "sender_id",
    "sender_name",
    "body",
    "is_from_me",
    "status",
    "is_forwarded",
    "is_starred",
    "quoted_message_id",
    "attachments",
]


def _format_timestamp(value: Any) -> str:
    if not isinstance(value, (int, float)) or value <= 0:
        return ""
    return datetime.fromtimestamp(value).astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _format_json(data: dict[str, list[dict[str, Any]]]) -> str:
    return json.dumps(data, indent=2, ensure_ascii=True)


def _format_csv(data: dict[str, list[dict[str, Any]]]) -> str:
    thread_names = {row["id"]: row["name"] for row in data.get("threads", [])}
    attachment_counts: dict[str, int] = {}
    for row in data.get("attachments", []):
        attachment_counts[row["message_id"]] = attachment_counts.get(row["message_id"], 0) + 1

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_FIELDS, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for message in data.get("messages", []):
        row = dict(message)
        row["thread_name"] = thread_names.get(message["thread_id"], "")
        row["sent_at"] = _format_timestamp(message.get("timestamp"))
        row["attachments"] = attachment_counts.get(message["id"], 0)
        writer.writerow(row)
    return buffer.getvalue()


def format_export(data: dict[str, list[dict[str, Any]]], fmt: str) -> str:
    """Return the exported data rendered in the requested format."""

    if fmt == "json":
        return _format_json(data)
    if fmt == "csv":
        return _format_csv(data)
    raise ValueError(f"Unsupported export format: {fmt}")


def default_export_path(directory: str, fmt: str, now: Optional[datetime] = None) -> str:
    timestamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    return os.path.join(directory, f"messages-{timestamp}.{fmt}")


def write_export(data: dict[str, list[dict[str, Any]]], fmt: str, path: str) -> int:
    """Write the export to ``path`` and return the number of messages in it."""

    content = format_export(data, fmt)
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as handle:
        handle.write(content)
    return len(data.get("messages", []))
