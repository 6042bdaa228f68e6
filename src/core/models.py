"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to the host page or to any storage backend. Every record is frozen:
the extraction pipeline builds them once from validated input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Protocol, Tuple, Union


@dataclass(frozen=True)
class ComponentType:
    """Function-component descriptor found in a node's ``type`` slot."""

    name: str
    display_name: Optional[str] = None


NodeType = Union[str, ComponentType, None]


class UiNode(Protocol):
    """Read-only view of one node in the host page's UI tree.

    Nodes are owned by whoever produced the tree. The core only follows the
    links and reads the property bag.
    """

    tag: int
    type: Any
    key: Optional[str]
    props: Mapping[str, Any]
    state: Any
    element: Any
    parent: Optional["UiNode"]
    child: Optional["UiNode"]
    sibling: Optional["UiNode"]
    index: int


class AttachmentType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"
    CONTACT = "contact"
    LOCATION = "location"


class MessageStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    PLAYED = "played"
    ERROR = "error"


class ParseErrorType(str, Enum):
    INVALID_PROPS = "invalid-props"
    MISSING_REQUIRED_FIELD = "missing-required-field"
    INVALID_MESSAGE_FORMAT = "invalid-message-format"
    TRAVERSAL_FAILED = "traversal-failed"
    VERSION_MISMATCH = "version-mismatch"
    FIBER_NOT_FOUND = "fiber-not-found"


@dataclass(frozen=True)
class ParseError:
    """Typed failure returned (never raised) by parsers and traversals."""

    type: ParseErrorType
    message: str
    context: Optional[Mapping[str, Any]] = None


DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class Sender:
    id: str
    name: str
    push_name: Optional[str] = None
    is_contact: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "push_name": self.push_name,
            "is_contact": self.is_contact,
        }


UNKNOWN_SENDER = Sender(id="unknown", name="Unknown")


@dataclass(frozen=True)
class Attachment:
    """Media attached to a message. Blob retrieval happens elsewhere."""

    id: str
    type: AttachmentType
    url: Optional[str] = None
    mime_type: str = DEFAULT_MIME_TYPE
    file_name: Optional[str] = None
    file_size: Optional[float] = None
    thumbnail_url: Optional[str] = None
    duration: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "url": self.url,
            "mime_type": self.mime_type,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "thumbnail_url": self.thumbnail_url,
            "duration": self.duration,
            "width": self.width,
            "height": self.height,
        }


@dataclass(frozen=True)
class NormalizedMessage:
    """Message record produced by the extraction pipeline."""

    id: str
    timestamp: int
    sender: Sender
    body: str = ""
    is_from_me: bool = False
    quoted_message_id: Optional[str] = None
    attachments: Tuple[Attachment, ...] = ()
    status: MessageStatus = MessageStatus.PENDING
    is_forwarded: bool = False
    is_starred: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "sender": self.sender.to_dict(),
            "body": self.body,
            "is_from_me": self.is_from_me,
            "quoted_message_id": self.quoted_message_id,
            "attachments": [attachment.to_dict() for attachment in self.attachments],
            "status": self.status.value,
            "is_forwarded": self.is_forwarded,
            "is_starred": self.is_starred,
        }


@dataclass(frozen=True)
class ThreadInfo:
    """Partial thread description read from the conversation header."""

    id: str
    name: str
    is_group: bool

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "is_group": self.is_group}


@dataclass(frozen=True)
class ChatThread:
    """A conversation together with the messages extracted from it."""

    id: str
    name: str
    is_group: bool
    last_activity: int
    unread_count: int = 0
    messages: Tuple[NormalizedMessage, ...] = field(default=())
