from __future__ import annotations

import asyncio
from dataclasses import fields

from adapters.sqlite_storage import SQLiteStorage
from core.events import DataExtracted, SessionError
from core.models import (
    Attachment,
    AttachmentType,
    ChatThread,
    MessageStatus,
    NormalizedMessage,
    Sender,
    ThreadInfo,
)


def _storage(tmp_path) -> SQLiteStorage:
    storage = SQLiteStorage(str(tmp_path / "fiberscope.db"))
    storage.init_db()
    return storage


def _message(message_id: str, timestamp: int, attachments=()) -> NormalizedMessage:
    return NormalizedMessage(
        id=message_id,
        timestamp=timestamp,
        sender=Sender(id="1@c.us", name="Ann", push_name="Annie", is_contact=True),
        body=f"body {message_id}",
        status=MessageStatus.DELIVERED,
        attachments=tuple(attachments),
    )


def test_key_value_store(tmp_path) -> None:
    storage = _storage(tmp_path)

    assert storage.get("fiberscope-version-hash") is None
    storage.set("fiberscope-version-hash", "1a2b")
    storage.set("fiberscope-version-hash", "-3c")
    assert storage.get("fiberscope-version-hash") == "-3c"
    assert storage.delete("fiberscope-version-hash")
    assert not storage.delete("fiberscope-version-hash")


def test_init_db_is_idempotent(tmp_path) -> None:
    storage = _storage(tmp_path)
    storage.init_db()
    assert storage.list_threads() == []


def test_save_thread_round_trips_messages(tmp_path) -> None:
    storage = _storage(tmp_path)
    attachment = Attachment(id="a1", type=AttachmentType.IMAGE, url="blob:x", width=640, height=480)
    thread = ChatThread(
        id="t1",
        name="Family",
        is_group=True,
        last_activity=1000,
        messages=(_message("m2", 20), _message("m1", 10, [attachment])),
    )

    storage.save_thread(thread)

    (stored,) = storage.list_threads()
    assert stored.id == "t1" and stored.is_group and stored.messages == ()
    messages = storage.get_messages_by_thread("t1")
    assert [message.id for message in messages] == ["m1", "m2"]
    assert messages[0] == _message("m1", 10, [attachment])
    assert storage.get_attachments_by_message("m1") == [attachment]


def test_resaving_replaces_rows(tmp_path) -> None:
    storage = _storage(tmp_path)
    first = Attachment(id="a1", type=AttachmentType.AUDIO, duration=3.5)
    second = Attachment(id="a2", type=AttachmentType.AUDIO, duration=3.5)

    storage.save_messages([_message("m1", 10, [first])], "t1")
    storage.save_messages([_message("m1", 10, [second])], "t1")

    assert len(storage.get_messages_by_thread("t1")) == 1
    assert [a.id for a in storage.get_attachments_by_message("m1")] == ["a2"]


def test_send_persists_extracted_batches(tmp_path) -> None:
    storage = _storage(tmp_path)
    event = DataExtracted(
        messages=(_message("m1", 10),),
        thread=ThreadInfo(id="t1", name="Family", is_group=True),
        batch_index=0,
        is_complete=False,
    )

    asyncio.run(storage.send(event))
    asyncio.run(storage.send(SessionError(code="FIBER_NOT_FOUND", message="gone", fatal=False)))

    assert [thread.name for thread in storage.list_threads()] == ["Family"]
    assert [message.id for message in storage.get_messages_by_thread("t1")] == ["m1"]


def test_export_and_clear(tmp_path) -> None:
    storage = _storage(tmp_path)
    storage.set("fiberscope-version-hash", "1a2b")
    storage.save_thread(ChatThread(id="t1", name="Family", is_group=False, last_activity=5))
    storage.save_messages(
        [_message("m1", 10, [Attachment(id="a1", type=AttachmentType.DOCUMENT)])],
        "t1",
    )

    data = storage.export_all()
    assert [row["id"] for row in data["threads"]] == ["t1"]
    assert data["messages"][0]["sender_name"] == "Ann"
    assert data["attachments"][0]["mime_type"] == "application/octet-stream"

    storage.clear_all()
    assert storage.export_all() == {"threads": [], "messages": [], "attachments": []}
    assert storage.get("fiberscope-version-hash") == "1a2b"


def test_thread_rows_cover_every_thread_field(tmp_path) -> None:
    storage = _storage(tmp_path)
    storage.save_thread(ChatThread(id="t1", name="Family", is_group=True, last_activity=5, unread_count=2))

    (row,) = storage.export_all()["threads"]
    persisted = {f.name for f in fields(ChatThread)} - {"messages"}
    assert set(row) == persisted
    assert storage.list_threads() == [ChatThread(id="t1", name="Family", is_group=True, last_activity=5, unread_count=2)]
