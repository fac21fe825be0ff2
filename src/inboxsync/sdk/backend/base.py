"""Abstract interface of the messaging backend the engine consumes."""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Optional

from inboxsync.protocol import (
    ClientOptions,
    DecodedMessage,
    Identifier,
    InboxState,
    ListDirection,
)

if TYPE_CHECKING:
    from inboxsync.sdk.signer import Signer


class Conversation(abc.ABC):
    """A conversation handle: either a direct message or a group."""

    id: str
    created_at_ns: Optional[int] = None
    is_direct: bool = True
    name: Optional[str] = None

    @abc.abstractmethod
    async def peer_inbox_id(self) -> Optional[str]:
        """Inbox id of the other party (direct conversations only)."""

    @abc.abstractmethod
    async def messages(
        self,
        limit: int = 50,
        direction: ListDirection = ListDirection.DESCENDING,
    ) -> list[DecodedMessage]:
        """Return one page of messages."""

    @abc.abstractmethod
    async def send(self, content: str) -> None:
        """Send a text message."""


class MessagingClient(abc.ABC):
    """A client bound to one inbox."""

    inbox_id: str

    @abc.abstractmethod
    async def sync_all(self) -> None:
        """Pull new conversations and messages from the network."""

    @abc.abstractmethod
    async def list_conversations(self) -> list[Conversation]:
        """List locally known conversations."""

    @abc.abstractmethod
    async def find_inbox_id(self, identifier: Identifier) -> Optional[str]:
        """Look up the inbox bound to *identifier*; None if unregistered."""

    @abc.abstractmethod
    async def new_dm(self, inbox_id: str) -> Optional[Conversation]:
        """Find or create a direct conversation with *inbox_id*."""

    @abc.abstractmethod
    async def inbox_states(
        self, inbox_ids: list[str], refresh: bool = True
    ) -> list[InboxState]:
        """Identity state for each inbox id."""

    async def close(self) -> None:
        """Release client resources (optional)."""


class MessagingBackend(abc.ABC):
    """Factory for clients plus directory-level queries."""

    @abc.abstractmethod
    async def create_client(
        self, signer: "Signer", options: ClientOptions
    ) -> Optional[MessagingClient]:
        """Create (or restore) a client for the signer's identity."""

    @abc.abstractmethod
    async def can_message(
        self, identifiers: list[Identifier], env: str = "production"
    ) -> dict[str, bool]:
        """Reachability per identifier string."""
