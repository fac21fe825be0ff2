"""Write operations (send, start conversation) and reachability checks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from inboxsync.protocol import (
    ClientNotReadyError,
    ConversationNotFoundError,
    Identifier,
    IdentifierKind,
    ListDirection,
    MessageRecord,
    NotRegisteredError,
    SyncError,
    ValidationError,
    classify,
    is_chain_address,
    message_id_for,
    normalize_address,
    ns_to_ms,
    parse_chain_address,
    text_content,
)
from inboxsync.sdk.safe_call import safe_call

if TYPE_CHECKING:
    from inboxsync.sdk.backend import Conversation, MessagingClient
    from inboxsync.sdk.engine import SynchronizationEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecipientCheck:
    """Outcome of :meth:`MessagingFacade.validate_recipient`."""

    is_valid: bool
    can_receive: Optional[bool] = None
    error: Optional[str] = None


def _typed(exc: Exception, context: str) -> SyncError:
    fault = classify(exc)
    logger.error("%s: %s", context, fault.message)
    return fault.to_error()


class MessagingFacade:
    """Caller-facing operations composed from the engine's components.

    Faults here are essential to the caller's request and propagate as
    typed :class:`~inboxsync.protocol.SyncError` subclasses.
    """

    def __init__(self, engine: SynchronizationEngine) -> None:
        self._engine = engine

    def _require_client(self) -> MessagingClient:
        client = self._engine.client
        if client is None:
            raise ClientNotReadyError("Client not ready")
        return client

    async def _find(self, client: MessagingClient, conversation_id: str) -> Conversation:
        for convo in await client.list_conversations():
            if convo.id == conversation_id:
                return convo
        raise ConversationNotFoundError(
            "Conversation not found. It may have been deleted or is not synchronized."
        )

    async def send(self, conversation_id: str, content: str) -> None:
        """Send *content* to an existing conversation."""
        client = self._require_client()
        text = content.strip() if content else ""
        if not text:
            raise ValidationError("Message content cannot be empty")

        try:
            await safe_call(client.sync_all, None)
            conversation = await self._find(client, conversation_id)
            await safe_call(lambda: conversation.send(text), None)
        except SyncError:
            raise
        except Exception as exc:
            raise _typed(exc, "Failed to send message") from exc

        logger.info("Message sent to conversation %s", conversation_id)
        self._engine.schedule(
            self._engine.config.post_send_sync_delay,
            self._engine.sync_all,
            "sync after sending message",
        )

    async def start_conversation(self, peer_address: str) -> str:
        """Return the id of the direct conversation with *peer_address*.

        Reuses an existing conversation with the same peer; otherwise
        creates one and schedules a conversation reload.
        """
        client = self._require_client()
        address = parse_chain_address(peer_address)

        try:
            inbox_id = await safe_call(
                lambda: client.find_inbox_id(Identifier(address, IdentifierKind.ETHEREUM)),
                None,
            )
            if not inbox_id:
                raise NotRegisteredError(
                    "This address is not registered with the messaging network."
                )

            await safe_call(client.sync_all, None)

            for convo in await client.list_conversations():
                if not convo.is_direct:
                    continue
                try:
                    peer = await safe_call(convo.peer_inbox_id, None)
                except Exception as exc:
                    logger.warning("Error checking peer of conversation %s: %s", convo.id, exc)
                    continue
                if peer == inbox_id:
                    logger.info("Using existing conversation %s with %s", convo.id, address)
                    return convo.id

            conversation = await safe_call(lambda: client.new_dm(inbox_id), None)
            if conversation is None:
                raise NotRegisteredError(
                    "Unable to create conversation. The address may not be registered."
                )
        except SyncError:
            raise
        except Exception as exc:
            raise _typed(exc, "Failed to start conversation") from exc

        logger.info("New conversation %s created with %s", conversation.id, address)
        self._engine.schedule(
            self._engine.config.post_create_reconcile_delay,
            self._engine.load_conversations,
            "reload conversations after creation",
        )
        return conversation.id

    async def get_messages(self, conversation_id: str, limit: int = 50) -> list[MessageRecord]:
        """Return up to *limit* recent messages, oldest first."""
        client = self._engine.client
        if client is None:
            return []

        try:
            conversation = await self._find(client, conversation_id)
            page = await safe_call(
                lambda: conversation.messages(
                    limit=limit, direction=ListDirection.DESCENDING
                ),
                [],
            )
        except SyncError:
            raise
        except Exception as exc:
            raise _typed(exc, "Failed to get messages") from exc

        senders = await asyncio.gather(
            *(self._engine.resolver.display(m.sender_inbox_id) for m in page)
        )
        records = [
            MessageRecord(
                id=message_id_for(m),
                content=text_content(m.content),
                sender_display_identity=sender,
                sent_at_ms=ns_to_ms(m.sent_at_ns),
                conversation_id=m.conversation_id or conversation.id,
            )
            for m, sender in zip(page, senders)
        ]
        records.sort(key=lambda r: r.sent_at_ms)
        logger.debug("Retrieved %d messages for %s", len(records), conversation_id)
        return records

    async def can_message(self, addresses: list[str]) -> dict[str, bool]:
        """Reachability per normalised address.  Fails closed."""
        normalized = [normalize_address(a) for a in addresses]
        if not normalized:
            return {}

        wallet = self._engine.wallet
        if wallet is None or not wallet.address:
            logger.error("Wallet not connected, cannot check reachability")
            return dict.fromkeys(normalized, False)

        try:
            results = await safe_call(
                lambda: self._engine.backend.can_message(
                    [Identifier(a, IdentifierKind.ETHEREUM) for a in normalized],
                    self._engine.config.env,
                ),
                {},
            )
        except Exception as exc:
            logger.error("Failed to check message capability: %s", exc)
            return dict.fromkeys(normalized, False)

        results = {normalize_address(k): v for k, v in (results or {}).items()}
        return {a: bool(results.get(a, False)) for a in normalized}

    async def validate_recipient(self, address: str) -> RecipientCheck:
        """Check that *address* is well formed, not our own, and reachable."""
        if not address or not address.strip():
            return RecipientCheck(is_valid=False)

        if not is_chain_address(address):
            return RecipientCheck(
                is_valid=False,
                error="Invalid address format (must be 0x followed by 40 hex characters)",
            )

        normalized = normalize_address(address)
        wallet = self._engine.wallet
        if wallet is not None and normalized == normalize_address(wallet.address):
            return RecipientCheck(is_valid=False, error="You cannot send messages to yourself")

        reachable = await self.can_message([normalized])
        can_receive = reachable.get(normalized, False)
        return RecipientCheck(
            is_valid=True,
            can_receive=can_receive,
            error=None if can_receive else (
                "This address is not registered and cannot receive messages"
            ),
        )
