"""Core types and constants shared by the engine and its backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Optional

UNSUPPORTED_CONTENT = "[Unsupported Content]"
UNKNOWN_PEER = "Unknown"
GROUP_LABEL = "Group Chat"

NANOS_PER_MILLI = 1_000_000


class SessionState(str, Enum):
    """Client lifecycle states."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class IdentifierKind(str, Enum):
    """Kinds of account identifiers known to the messaging directory."""

    ETHEREUM = "ethereum"
    PASSKEY = "passkey"


class ListDirection(IntEnum):
    """Sort direction for message pages."""

    ASCENDING = 0
    DESCENDING = 1


@dataclass(frozen=True)
class Identifier:
    """An account identifier such as a chain address."""

    identifier: str
    kind: IdentifierKind = IdentifierKind.ETHEREUM


@dataclass(frozen=True)
class InboxState:
    """Identity state of an inbox: the identifiers bound to it."""

    inbox_id: str
    identifiers: tuple[Identifier, ...] = ()


@dataclass(frozen=True)
class DecodedMessage:
    """A message as returned by the backend."""

    content: Any
    sender_inbox_id: str
    sent_at_ns: int
    conversation_id: str
    id: Optional[str] = None


@dataclass(frozen=True)
class ClientOptions:
    """Options passed to the backend when creating a client."""

    env: str = "production"
    db_path: Optional[str] = None
    structured_logging: bool = True
    logging_level: str = "info"


def ns_to_ms(sent_at_ns: int) -> int:
    """Convert a nanosecond timestamp to milliseconds (integer division)."""
    return int(sent_at_ns) // NANOS_PER_MILLI


def ms_to_datetime(ms: int) -> datetime:
    """UTC datetime for a millisecond epoch timestamp."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def text_content(content: Any) -> str:
    """Return *content* if it is non-empty text, else the unsupported marker."""
    if isinstance(content, str) and content:
        return content
    return UNSUPPORTED_CONTENT


def message_id_for(message: DecodedMessage) -> str:
    """Backend id, or one synthesized from conversation id and timestamp."""
    if message.id:
        return message.id
    return f"msg-{message.conversation_id}-{ns_to_ms(message.sent_at_ns)}"


@dataclass(frozen=True)
class LastMessage:
    """Summary of the most recent message in a conversation."""

    content: str
    sent_at_ms: int
    sender_display_identity: str

    @property
    def sent_at(self) -> datetime:
        return ms_to_datetime(self.sent_at_ms)


@dataclass(frozen=True)
class ConversationSummary:
    """A conversation as presented to the caller."""

    id: str
    peer_display_identity: str
    created_at_ms: int
    last_message: Optional[LastMessage] = None

    @property
    def created_at(self) -> datetime:
        return ms_to_datetime(self.created_at_ms)

    @property
    def activity_ms(self) -> int:
        """Sort key: last message time, falling back to creation time."""
        if self.last_message is not None:
            return self.last_message.sent_at_ms
        return self.created_at_ms


@dataclass(frozen=True)
class MessageRecord:
    """A message as delivered to the caller."""

    id: str
    content: str
    sender_display_identity: str
    sent_at_ms: int
    conversation_id: str

    @property
    def sent_at(self) -> datetime:
        return ms_to_datetime(self.sent_at_ms)


@dataclass
class ClientSession:
    """Lifecycle state of the single backend client.

    Mutated only by :class:`inboxsync.sdk.lifecycle.ClientLifecycleManager`.
    """

    state: SessionState = SessionState.UNINITIALIZED
    inbox_id: Optional[str] = None
    attempt_count: int = 0
    client: Any = field(default=None, repr=False)

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY and self.client is not None
