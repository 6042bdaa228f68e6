"""Record extraction pipeline (core domain).

Turns the untyped property bag of a matched UI node into typed records.
Validation failures come back as ``Err(ParseError)`` so a batch can skip a
bad record and keep going.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple

from core.models import (
    Attachment,
    AttachmentType,
    DEFAULT_MIME_TYPE,
    MessageStatus,
    NormalizedMessage,
    ParseError,
    ParseErrorType,
    Sender,
    UNKNOWN_SENDER,
    UiNode,
)
from core.result import Err, Ok, Result, err, ok

LOGGER = logging.getLogger(__name__)

IdFactory = Callable[[], str]

_STATUS_BY_ACK = {
    0: MessageStatus.PENDING,
    1: MessageStatus.SENT,
    2: MessageStatus.DELIVERED,
    3: MessageStatus.READ,
    4: MessageStatus.PLAYED,
}

_ATTACHMENT_TYPES = {member.value: member for member in AttachmentType}

# Every prop name read below. Serializers outside the core must carry these
# through even when the host keeps them behind getters.
PARSED_FIELDS = (
    "message",
    "msg",
    "id",
    "t",
    "from",
    "body",
    "self",
    "ack",
    "quotedMsg",
    "mediaData",
    "isForwarded",
    "isStarred",
    "type",
    "url",
    "mimetype",
    "filename",
    "size",
    "thumbnailUrl",
    "duration",
    "width",
    "height",
    "name",
    "pushname",
    "isContact",
)


def new_id() -> str:
    return str(uuid.uuid4())


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    return type(value).__name__


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a valid numeric field; NaN and the
    # infinities cannot become an integer timestamp.
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def expect_string(value: Any, field_name: str) -> Result[str, ParseError]:
    if isinstance(value, str):
        return ok(value)
    return err(
        ParseError(
            ParseErrorType.INVALID_PROPS,
            f"Expected string for {field_name}, got {_type_name(value)}",
        )
    )


def expect_number(value: Any, field_name: str) -> Result[float, ParseError]:
    if _is_number(value):
        return ok(value)
    return err(
        ParseError(
            ParseErrorType.INVALID_PROPS,
            f"Expected number for {field_name}, got {_type_name(value)}",
        )
    )


def coerce_boolean(value: Any) -> bool:
    """True for ``True``, ``"true"`` or numeric 1; False for anything else."""

    if value is True or value == "true":
        return True
    return _is_number(value) and value == 1


def optional_string(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def optional_number(value: Any) -> Optional[float]:
    return value if _is_number(value) else None


def parse_status(ack: Any) -> MessageStatus:
    """Map the host's numeric ack to a delivery status (pending by default)."""

    if not _is_number(ack):
        return MessageStatus.PENDING
    return _STATUS_BY_ACK.get(ack, MessageStatus.PENDING)


def parse_attachment_type(value: Any) -> Optional[AttachmentType]:
    if not isinstance(value, str):
        return None
    return _ATTACHMENT_TYPES.get(value)


def parse_sender(props: Any) -> Result[Sender, ParseError]:
    if not isinstance(props, Mapping):
        return err(ParseError(ParseErrorType.INVALID_PROPS, "Sender props must be an object"))

    if props.get("id") is None:
        return err(ParseError(ParseErrorType.MISSING_REQUIRED_FIELD, "Sender ID is required"))

    id_result = expect_string(props["id"], "sender.id")
    if isinstance(id_result, Err):
        return id_result
    sender_id = id_result.value
    name = optional_string(props.get("name"))

    return ok(
        Sender(
            id=sender_id,
            name=sender_id if name is None else name,
            push_name=optional_string(props.get("pushname")),
            is_contact=coerce_boolean(props.get("isContact")),
        )
    )


def parse_attachment(props: Any, id_factory: IdFactory = new_id) -> Result[Attachment, ParseError]:
    if not isinstance(props, Mapping):
        return err(ParseError(ParseErrorType.INVALID_PROPS, "Attachment props must be an object"))

    attachment_type = parse_attachment_type(props.get("type"))
    if attachment_type is None:
        return err(
            ParseError(
                ParseErrorType.INVALID_PROPS,
                "Invalid attachment type",
                {"type": props.get("type")},
            )
        )

    mime_type = optional_string(props.get("mimetype"))
    return ok(
        Attachment(
            id=id_factory(),
            type=attachment_type,
            url=optional_string(props.get("url")),
            mime_type=DEFAULT_MIME_TYPE if mime_type is None else mime_type,
            file_name=optional_string(props.get("filename")),
            file_size=optional_number(props.get("size")),
            thumbnail_url=optional_string(props.get("thumbnailUrl")),
            duration=optional_number(props.get("duration")),
            width=optional_number(props.get("width")),
            height=optional_number(props.get("height")),
        )
    )


def _sender_from(value: Any) -> Sender:
    if isinstance(value, str):
        return Sender(id=value, name=value)
    if isinstance(value, Mapping):
        result = parse_sender(value)
        if isinstance(result, Ok):
            return result.value
    return UNKNOWN_SENDER


def _quoted_message_id(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        return optional_string(value.get("id"))
    return None


def parse_message(props: Any, id_factory: IdFactory = new_id) -> Result[NormalizedMessage, ParseError]:
    """Validate a raw message prop bag and build a NormalizedMessage.

    ``id`` and ``t`` are both required and reported separately when missing.
    A broken ``mediaData`` payload drops the attachment, not the message.
    """

    if not isinstance(props, Mapping):
        return err(ParseError(ParseErrorType.INVALID_PROPS, "Message props must be an object"))

    if props.get("id") is None:
        return err(ParseError(ParseErrorType.MISSING_REQUIRED_FIELD, "Message ID is required"))

    if props.get("t") is None:
        return err(
            ParseError(
                ParseErrorType.MISSING_REQUIRED_FIELD,
                "Message timestamp is required",
                {"id": props.get("id")},
            )
        )

    id_result = expect_string(props["id"], "id")
    if isinstance(id_result, Err):
        return id_result

    timestamp_result = expect_number(props["t"], "timestamp")
    if isinstance(timestamp_result, Err):
        return timestamp_result

    attachments: List[Attachment] = []
    media = props.get("mediaData")
    if media is not None:
        attachment_result = parse_attachment(media, id_factory)
        if isinstance(attachment_result, Ok):
            attachments.append(attachment_result.value)

    return ok(
        NormalizedMessage(
            id=id_result.value,
            timestamp=int(timestamp_result.value),
            sender=_sender_from(props.get("from")),
            body=optional_string(props.get("body")) or "",
            is_from_me=coerce_boolean(props.get("self")),
            quoted_message_id=_quoted_message_id(props.get("quotedMsg")),
            attachments=tuple(attachments),
            status=parse_status(props.get("ack")),
            is_forwarded=coerce_boolean(props.get("isForwarded")),
            is_starred=coerce_boolean(props.get("isStarred")),
        )
    )


def extract_from_node(node: UiNode, id_factory: IdFactory = new_id) -> Result[NormalizedMessage, ParseError]:
    """Parse the ``message`` (or legacy ``msg``) prop of a message node."""

    props = node.props
    raw = props.get("message")
    if raw is None and "msg" in props:
        raw = props["msg"]
    elif raw is None:
        return err(
            ParseError(
                ParseErrorType.MISSING_REQUIRED_FIELD,
                "No message property found in node props",
            )
        )
    return parse_message(raw, id_factory)


@dataclass(frozen=True)
class BatchExtraction:
    messages: Tuple[NormalizedMessage, ...]
    errors: Tuple[ParseError, ...]


def extract_messages(nodes: Iterable[UiNode], id_factory: IdFactory = new_id) -> BatchExtraction:
    """Extract every node, skipping (and keeping) per-record failures."""

    messages: List[NormalizedMessage] = []
    errors: List[ParseError] = []
    for node in nodes:
        result = extract_from_node(node, id_factory)
        if isinstance(result, Ok):
            messages.append(result.value)
        else:
            LOGGER.debug("Skipping node: %s (%s)", result.error.message, result.error.type.value)
            errors.append(result.error)
    return BatchExtraction(messages=tuple(messages), errors=tuple(errors))
