"""Conversation list reconciliation with structural change detection."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from inboxsync.protocol import (
    GROUP_LABEL,
    UNKNOWN_PEER,
    ConversationSummary,
    LastMessage,
    ListDirection,
    classify,
    ns_to_ms,
    text_content,
)
from inboxsync.sdk.safe_call import list_with_retry, safe_call, sync_best_effort

if TYPE_CHECKING:
    from inboxsync.sdk.backend import Conversation
    from inboxsync.sdk.engine import SynchronizationEngine

logger = logging.getLogger(__name__)


class ConversationReconciler:
    """Builds the conversation snapshot and reports whether it changed.

    The snapshot is an immutable tuple rebuilt wholesale on every pass and
    only replaced when the new one differs structurally, so callers can use
    the return value of :meth:`reconcile` to skip redundant updates.
    """

    def __init__(self, engine: SynchronizationEngine) -> None:
        self._engine = engine
        self._snapshot: tuple[ConversationSummary, ...] = ()

    @property
    def snapshot(self) -> tuple[ConversationSummary, ...]:
        return self._snapshot

    def reset(self) -> None:
        self._snapshot = ()

    async def reconcile(self) -> bool:
        """Refresh the snapshot.  Returns True if it changed.  Never raises."""
        client = self._engine.client
        if client is None:
            logger.debug("Client not ready, skipping conversation reconcile")
            return False

        try:
            await sync_best_effort(client, "before loading conversations")
            convos = await list_with_retry(client, "while loading conversations")
            logger.debug("Found %d conversations", len(convos))

            summaries = await asyncio.gather(
                *(self._summarize(convo) for convo in convos)
            )
        except Exception as exc:
            logger.error("Failed to load conversations: %s", classify(exc).user_message)
            return False

        # Session torn down or replaced while we were suspended
        if self._engine.client is not client:
            return False

        # Stable sort: ties keep fetch order
        ordered = tuple(sorted(summaries, key=lambda s: s.activity_ms, reverse=True))
        if ordered == self._snapshot:
            return False

        self._snapshot = ordered
        logger.info("Loaded %d conversations", len(ordered))
        return True

    async def _summarize(self, convo: Conversation) -> ConversationSummary:
        """Summarize one conversation; failures degrade to sentinel fields."""
        resolver = self._engine.resolver
        peer = UNKNOWN_PEER
        last_message = None

        try:
            if convo.is_direct:
                peer_inbox_id = await safe_call(convo.peer_inbox_id, None)
                if peer_inbox_id:
                    peer = await resolver.resolve(peer_inbox_id) or peer_inbox_id
            else:
                peer = convo.name or GROUP_LABEL
        except Exception as exc:
            logger.warning("Could not get peer info for conversation %s: %s", convo.id, exc)

        try:
            page = await safe_call(
                lambda: convo.messages(
                    limit=self._engine.config.summary_page_size,
                    direction=ListDirection.DESCENDING,
                ),
                [],
            )
            if page:
                recent = max(page, key=lambda m: m.sent_at_ns)
                last_message = LastMessage(
                    content=text_content(recent.content),
                    sent_at_ms=ns_to_ms(recent.sent_at_ns),
                    sender_display_identity=await resolver.display(recent.sender_inbox_id),
                )
        except Exception as exc:
            logger.warning("Could not load messages for conversation %s: %s", convo.id, exc)

        created_at_ms = ns_to_ms(convo.created_at_ns) if convo.created_at_ns else 0
        return ConversationSummary(
            id=convo.id,
            peer_display_identity=peer,
            created_at_ms=created_at_ms,
            last_message=last_message,
        )
