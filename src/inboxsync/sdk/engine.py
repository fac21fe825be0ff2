"""SynchronizationEngine -- the primary interface.

Owns the session, the backend client and every component that works
against it.  Components receive the engine by reference instead of
reaching for module-level state.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from inboxsync.protocol import (
    ClientSession,
    ConversationSummary,
    Fault,
    MessageRecord,
    SessionState,
)
from inboxsync.sdk.backend import MessagingBackend, MessagingClient, create_backend
from inboxsync.sdk.channel import EventChannel, Subscription
from inboxsync.sdk.config import SyncConfig
from inboxsync.sdk.facade import MessagingFacade, RecipientCheck
from inboxsync.sdk.lifecycle import ClientLifecycleManager
from inboxsync.sdk.poller import (
    ConversationCallback,
    ConversationPoller,
    MessageCallback,
    MessagePoller,
)
from inboxsync.sdk.reconciler import ConversationReconciler
from inboxsync.sdk.resolver import PeerIdentityResolver
from inboxsync.sdk.safe_call import sync_best_effort
from inboxsync.sdk.signer import Wallet
from inboxsync.sdk.watermark import WatermarkTracker

logger = logging.getLogger(__name__)


class SynchronizationEngine:
    """A live, deduplicated view over a request/response messaging backend.

    Usage::

        engine = SynchronizationEngine(wallet)
        await engine.initialize()
        stop = engine.stream_messages(lambda m: print(m.content))
        await engine.send_message(conversation_id, "Hello!")
        ...
        stop()
        await engine.cleanup()

    Async context manager::

        async with SynchronizationEngine(wallet) as engine:
            print(engine.inbox_id)
    """

    def __init__(
        self,
        wallet: Wallet | None = None,
        *,
        config: SyncConfig | None = None,
        backend: MessagingBackend | None = None,
    ) -> None:
        """Create an engine.  No I/O happens here -- call ``initialize()``."""
        self.config = config or SyncConfig()
        self.backend = backend or create_backend(self.config)
        self.wallet = wallet
        self.session = ClientSession()
        self.error: Fault | None = None

        self.tracker = WatermarkTracker(self.config.dedup_horizon_ms)
        self.message_channel: EventChannel[MessageRecord] = EventChannel(
            self.config.channel_capacity
        )
        self.conversation_channel: EventChannel[tuple[ConversationSummary, ...]] = (
            EventChannel(self.config.channel_capacity)
        )
        self.resolver = PeerIdentityResolver(self)
        self.reconciler = ConversationReconciler(self)
        self.message_poller = MessagePoller(self)
        self.conversation_poller = ConversationPoller(self)
        self.lifecycle = ClientLifecycleManager(self)
        self.facade = MessagingFacade(self)

        self._background: set[asyncio.Task] = set()

    # -- Observables ---------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def is_ready(self) -> bool:
        return self.session.is_ready

    @property
    def is_initializing(self) -> bool:
        return self.lifecycle.is_initializing

    @property
    def is_streaming(self) -> bool:
        """Whether message polling is switched on."""
        return self.message_poller.is_polling

    @property
    def inbox_id(self) -> str | None:
        return self.session.inbox_id

    @property
    def address(self) -> str | None:
        return self.wallet.address if self.wallet is not None else None

    @property
    def client(self) -> MessagingClient | None:
        """The backend client, or None unless the session is ready."""
        return self.session.client if self.session.is_ready else None

    @property
    def error_message(self) -> str | None:
        return self.error.user_message if self.error is not None else None

    @property
    def conversations(self) -> tuple[ConversationSummary, ...]:
        """The latest conversation snapshot."""
        return self.reconciler.snapshot

    # -- Lifecycle -----------------------------------------------------------

    async def initialize(self) -> SessionState:
        """Create the backend client (bounded retries, single flight)."""
        return await self.lifecycle.initialize()

    async def cleanup(self) -> None:
        """Stop polling, close subscriptions and reset all session state.  Idempotent."""
        await self.lifecycle.cleanup()

    async def __aenter__(self) -> SynchronizationEngine:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.cleanup()

    # -- Conversations -------------------------------------------------------

    async def load_conversations(self) -> bool:
        """Reconcile the conversation list.  Returns True if it changed."""
        changed = await self.reconciler.reconcile()
        if changed:
            self.conversation_channel.publish(self.reconciler.snapshot)
        return changed

    async def list_conversations(self) -> list[ConversationSummary]:
        """Reconcile, then return the snapshot as a list."""
        await self.load_conversations()
        return list(self.reconciler.snapshot)

    async def sync_all(self) -> None:
        """Best-effort network sync.  Never raises."""
        client = self.client
        if client is None:
            return
        if await sync_best_effort(client, "on request"):
            logger.debug("Sync completed")

    async def refresh(self, conversation_id: str | None = None) -> list[MessageRecord] | None:
        """Sync, reconcile and optionally reload one conversation's messages."""
        jobs: list[Awaitable] = [self.sync_all(), self.load_conversations()]
        if conversation_id is not None:
            jobs.append(self.get_messages(conversation_id))
        results = await asyncio.gather(*jobs)
        return results[2] if conversation_id is not None else None

    # -- Messaging -----------------------------------------------------------

    async def send_message(self, conversation_id: str, content: str) -> None:
        await self.facade.send(conversation_id, content)

    async def start_conversation(self, peer_address: str) -> str:
        return await self.facade.start_conversation(peer_address)

    async def get_messages(self, conversation_id: str, limit: int = 50) -> list[MessageRecord]:
        return await self.facade.get_messages(conversation_id, limit)

    async def can_message(self, addresses: list[str]) -> dict[str, bool]:
        return await self.facade.can_message(addresses)

    async def validate_recipient(self, address: str) -> RecipientCheck:
        return await self.facade.validate_recipient(address)

    # -- Streaming -----------------------------------------------------------

    def stream_messages(self, callback: MessageCallback) -> Callable[[], None]:
        """Deliver new messages to *callback*; returns a deactivation handle."""
        return self.message_poller.stream(callback)

    def stream_conversations(self, callback: ConversationCallback) -> Callable[[], None]:
        """Deliver changed conversation snapshots to *callback*."""
        return self.conversation_poller.stream(callback)

    def subscribe_messages(self, capacity: int | None = None) -> Subscription[MessageRecord]:
        return self.message_channel.subscribe(capacity)

    def subscribe_conversations(
        self, capacity: int | None = None
    ) -> Subscription[tuple[ConversationSummary, ...]]:
        return self.conversation_channel.subscribe(capacity)

    def start_polling(self) -> None:
        self.message_poller.start()

    def stop_polling(self) -> None:
        self.message_poller.stop()

    # -- Internal ------------------------------------------------------------

    def _set_error(self, fault: Fault) -> None:
        self.error = fault

    def schedule(
        self,
        delay: float,
        job: Callable[[], Awaitable[object]],
        label: str,
    ) -> asyncio.Task:
        """Run *job* after *delay* seconds, fire-and-forget.

        Failures are logged at warning level.  Pending jobs are cancelled
        by :meth:`cleanup`.
        """

        async def _run() -> None:
            await asyncio.sleep(delay)
            try:
                await job()
            except Exception as exc:
                logger.warning("Failed to %s: %s", label, exc)

        return self.adopt(asyncio.create_task(_run()))

    def adopt(self, task: asyncio.Task) -> asyncio.Task:
        """Track *task* so that cleanup cancels it."""
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def cancel_background(self) -> None:
        for task in list(self._background):
            task.cancel()
        self._background.clear()
