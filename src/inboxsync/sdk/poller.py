"""Interval polling loops that turn request/response fetches into streams.

Two independent loops run on the engine's event loop:

- :class:`MessagePoller` (every ``message_poll_interval`` seconds) scans the
  newest page of every conversation and delivers messages above the
  watermark that have not been seen yet.
- :class:`ConversationPoller` (every ``conversation_poll_interval`` seconds)
  reconciles the conversation list and reports structural changes.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable

from inboxsync.protocol import (
    ConversationSummary,
    Fault,
    FaultKind,
    ListDirection,
    MessageRecord,
    classify,
    is_transient_memory_error,
    message_id_for,
    ns_to_ms,
    text_content,
)
from inboxsync.sdk.safe_call import list_with_retry, safe_call, sync_best_effort

if TYPE_CHECKING:
    from inboxsync.sdk.engine import SynchronizationEngine

logger = logging.getLogger(__name__)

POLLING_MEMORY_MESSAGE = "Memory error in polling. Please refresh the page."

MessageCallback = Callable[[MessageRecord], Any]
ConversationCallback = Callable[[tuple[ConversationSummary, ...]], Any]


def _noop() -> None:
    pass


async def _invoke(callback: Callable[[Any], Any], payload: Any) -> None:
    """Call a sync or async callback.  Only buffer faults propagate."""
    try:
        result = callback(payload)
        if inspect.isawaitable(result):
            await result
    except Exception as exc:
        if is_transient_memory_error(exc):
            raise
        logger.exception("Event callback raised")


class _PollingLoop:
    """Sleep-then-tick loop owned by a single asyncio task.

    Stopping cancels the task only while it sleeps; a tick that is already
    running finishes and the loop exits after it.
    """

    def __init__(self, interval: float) -> None:
        self._interval = interval
        self._task: asyncio.Task | None = None
        self._busy: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None

    def _start_task(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    def _stop_task(self) -> None:
        task, self._task = self._task, None
        if task is not None and task is not self._busy:
            task.cancel()

    async def _run(self) -> None:
        me = asyncio.current_task()
        while self._task is me:
            await asyncio.sleep(self._interval)
            if self._task is not me:
                break
            self._busy = me
            try:
                keep_going = await self._tick()
            finally:
                if self._busy is me:
                    self._busy = None
            if not keep_going:
                break

    async def _tick(self) -> bool:
        raise NotImplementedError


class MessagePoller(_PollingLoop):
    """Pseudo-streaming of new messages across all conversations.

    ``stream()`` returns a deactivation handle that detaches the callback
    and stops the timer but leaves the polling flag set; ``stop()`` is the
    explicit switch that ends polling.
    """

    def __init__(self, engine: SynchronizationEngine) -> None:
        super().__init__(engine.config.message_poll_interval)
        self._engine = engine
        self._callback: MessageCallback | None = None
        self._is_polling = False

    @property
    def is_polling(self) -> bool:
        return self._is_polling

    @property
    def callback(self) -> MessageCallback | None:
        return self._callback

    def stream(self, callback: MessageCallback) -> Callable[[], None]:
        """Register *callback* and start polling if not already polling."""
        if not self._engine.is_ready:
            return _noop

        self._callback = callback
        self._is_polling = True
        if not self.running:
            self._start_task()
            logger.info("Message polling started")

        def deactivate() -> None:
            self._callback = None
            self._stop_task()

        return deactivate

    def start(self) -> None:
        if not self._engine.is_ready:
            return
        self._is_polling = True
        if not self.running:
            self._start_task()
            logger.info("Message polling started")

    def stop(self) -> None:
        self._stop_task()
        if self._is_polling:
            logger.info("Message polling stopped")
        self._is_polling = False

    def reset(self) -> None:
        self.stop()
        self._callback = None

    async def poll(self) -> list[MessageRecord]:
        """Run one poll pass and return the messages it delivered."""
        engine = self._engine
        client = engine.client
        if client is None:
            logger.debug("Client not ready, skipping message poll")
            return []

        tracker = engine.tracker
        floor = tracker.watermark
        delivered: list[MessageRecord] = []

        await sync_best_effort(client, "during polling")
        convos = await list_with_retry(client, "during polling")

        for convo in convos:
            if engine.client is not client:
                return delivered
            try:
                page = await safe_call(
                    lambda c=convo: c.messages(
                        limit=engine.config.message_page_size,
                        direction=ListDirection.DESCENDING,
                    ),
                    [],
                )
                for message in page:
                    # Session torn down or replaced while suspended
                    if engine.client is not client:
                        return delivered
                    sent_at_ms = ns_to_ms(message.sent_at_ns)
                    message_id = message_id_for(message)
                    if not tracker.is_new(message_id, sent_at_ms, floor):
                        continue

                    sender = await engine.resolver.display(message.sender_inbox_id)
                    if engine.client is not client:
                        return delivered
                    if not tracker.admit(message_id, sent_at_ms, floor):
                        continue

                    record = MessageRecord(
                        id=message_id,
                        content=text_content(message.content),
                        sender_display_identity=sender,
                        sent_at_ms=sent_at_ms,
                        conversation_id=message.conversation_id or convo.id,
                    )
                    logger.debug("New message %s in %s", record.id, record.conversation_id)
                    delivered.append(record)
                    await self._deliver(record)
            except Exception as exc:
                if is_transient_memory_error(exc):
                    raise
                logger.warning("Warning checking messages in conversation %s: %s", convo.id, exc)

        pruned = tracker.prune()
        if pruned:
            logger.debug("Pruned %d ids below the dedup horizon", pruned)
        return delivered

    async def _deliver(self, record: MessageRecord) -> None:
        self._engine.message_channel.publish(record)
        if self._callback is not None:
            await _invoke(self._callback, record)

    async def _tick(self) -> bool:
        try:
            await self.poll()
        except Exception as exc:
            fault = classify(exc)
            if fault.kind is FaultKind.TRANSIENT_MEMORY:
                logger.error("Buffer error in polling, stopping: %s", fault.message)
                self._halt()
                self._engine._set_error(
                    Fault(fault.kind, fault.message, exc, display=POLLING_MEMORY_MESSAGE)
                )
                return False
            logger.error("Error during message polling: %s", fault.user_message)
        return True

    def _halt(self) -> None:
        self._task = None
        self._is_polling = False


class ConversationPoller(_PollingLoop):
    """Periodic reconciliation; the callback fires only on real change."""

    def __init__(self, engine: SynchronizationEngine) -> None:
        super().__init__(engine.config.conversation_poll_interval)
        self._engine = engine
        self._callback: ConversationCallback | None = None

    @property
    def callback(self) -> ConversationCallback | None:
        return self._callback

    def stream(self, callback: ConversationCallback) -> Callable[[], None]:
        if not self._engine.is_ready:
            return _noop

        self._callback = callback
        if not self.running:
            self._start_task()
            logger.info("Conversation polling started")

        def deactivate() -> None:
            self._callback = None
            self._stop_task()

        return deactivate

    def stop(self) -> None:
        self._stop_task()
        self._callback = None

    async def poll(self) -> bool:
        """Run one reconcile pass; notify subscribers if it changed."""
        changed = await self._engine.reconciler.reconcile()
        if changed:
            snapshot = self._engine.reconciler.snapshot
            self._engine.conversation_channel.publish(snapshot)
            if self._callback is not None:
                await _invoke(self._callback, snapshot)
        return changed

    async def _tick(self) -> bool:
        try:
            await self.poll()
        except Exception as exc:
            logger.warning("Error during conversation polling: %s", exc)
        return True
