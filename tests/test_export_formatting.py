from __future__ import annotations

import csv
import io
import json
from datetime import datetime

import pytest

from adapters.export_formatting import default_export_path, format_export, write_export


DATA = {
    "threads": [{"id": "t1", "name": "Family", "is_group": 1, "last_activity": 5, "unread_count": 0}],
    "messages": [
        {
            "id": "m1",
            "thread_id": "t1",
            "timestamp": 0,
            "sender_id": "1@c.us",
            "sender_name": "Ann",
            "sender_push_name": None,
            "sender_is_contact": 1,
            "body": "hi, there",
            "is_from_me": 0,
            "quoted_message_id": None,
            "status": "read",
            "is_forwarded": 0,
            "is_starred": 0,
        }
    ],
    "attachments": [
        {"id": "a1", "message_id": "m1", "type": "image"},
        {"id": "a2", "message_id": "m1", "type": "image"},
    ],
}


def test_json_export_keeps_structure() -> None:
    assert json.loads(format_export(DATA, "json")) == DATA


def test_csv_export_one_row_per_message() -> None:
    rows = list(csv.DictReader(io.StringIO(format_export(DATA, "csv"))))

    assert len(rows) == 1
    row = rows[0]
    assert row["thread_name"] == "Family"
    assert row["body"] == "hi, there"
    assert row["attachments"] == "2"
    assert row["sent_at"] == ""
    assert "sender_push_name" not in row


def test_unknown_format_is_rejected() -> None:
    with pytest.raises(ValueError):
        format_export(DATA, "xml")


def test_write_export(tmp_path) -> None:
    path = default_export_path(str(tmp_path / "exports"), "csv", datetime(2024, 1, 2, 3, 4, 5))
    assert path.endswith("messages-20240102-030405.csv")

    assert write_export(DATA, "csv", path) == 1
    with open(path, encoding="utf-8") as handle:
        assert handle.readline().startswith("thread_id,thread_name,id")


def test_csv_sent_at_reads_timestamp_as_seconds() -> None:
    message = dict(DATA["messages"][0], timestamp=1700000000)
    data = dict(DATA, messages=[message])

    (row,) = csv.DictReader(io.StringIO(format_export(data, "csv")))

    expected = datetime.fromtimestamp(1700000000).astimezone().strftime("%Y-%m-%d %H:%M:%S")
    assert row["sent_at"] == expected
    assert row["sent_at"].startswith("2023-11-1")
