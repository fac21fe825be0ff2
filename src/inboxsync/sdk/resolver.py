"""Peer identity resolution with a positive-result cache."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from inboxsync.protocol import UNKNOWN_PEER, IdentifierKind
from inboxsync.sdk.safe_call import safe_call

if TYPE_CHECKING:
    from inboxsync.sdk.engine import SynchronizationEngine

logger = logging.getLogger(__name__)


class PeerIdentityResolver:
    """Resolves opaque inbox ids to chain addresses for display.

    Only successful lookups are cached; identities are treated as immutable
    for the lifetime of a session, so entries are never invalidated until
    :meth:`clear` (called on session cleanup).  Resolution never raises.
    """

    def __init__(self, engine: SynchronizationEngine) -> None:
        self._engine = engine
        self._cache: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def cached(self, inbox_id: str) -> str | None:
        return self._cache.get(inbox_id)

    def clear(self) -> None:
        self._cache.clear()

    async def resolve(self, inbox_id: str | None) -> str | None:
        """Return the chain address bound to *inbox_id*, or None."""
        if not inbox_id:
            return None
        client = self._engine.client
        if client is None:
            return None

        hit = self._cache.get(inbox_id)
        if hit is not None:
            return hit

        try:
            states = await safe_call(
                lambda: client.inbox_states([inbox_id], refresh=True), []
            )
        except Exception as exc:
            logger.warning("Failed to resolve address for inbox %s: %s", inbox_id, exc)
            return None

        if not states:
            return None
        for identifier in states[0].identifiers:
            if identifier.kind is IdentifierKind.ETHEREUM:
                self._cache[inbox_id] = identifier.identifier
                return identifier.identifier
        return None

    async def display(self, inbox_id: str | None) -> str:
        """Resolved address, else the raw inbox id, else ``"Unknown"``."""
        resolved = await self.resolve(inbox_id)
        return resolved or inbox_id or UNKNOWN_PEER
