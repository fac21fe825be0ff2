"""Client lifecycle state machine (bounded retries, single flight, timeout).

::

    UNINITIALIZED -> INITIALIZING -> READY
                          |   ^
                          v   |
                         FAILED
    READY -> UNINITIALIZED      (cleanup)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from inboxsync.protocol import (
    MEMORY_REFRESH_MESSAGE,
    Fault,
    FaultKind,
    SessionState,
    TransientMemoryError,
    classify,
)
from inboxsync.sdk.safe_call import safe_call
from inboxsync.sdk.signer import Signer

if TYPE_CHECKING:
    from inboxsync.sdk.engine import SynchronizationEngine

logger = logging.getLogger(__name__)

BUDGET_MESSAGE = "Maximum initialization attempts reached. Please refresh the page."
TIMEOUT_MESSAGE = "Initialization timeout. Please try again."


async def _close_quietly(client) -> None:
    try:
        await client.close()
    except Exception:
        logger.debug("Error closing messaging client", exc_info=True)


class ClientLifecycleManager:
    """Owns the single backend client of a :class:`SynchronizationEngine`.

    Parameters
    ----------
    engine:
        The owning engine; provides config, backend, wallet, session and
        the components torn down on cleanup.

    Lifecycle faults never raise out of :meth:`initialize`; they are
    recorded on the engine (``engine.error``) and the session moves to
    ``FAILED``.
    """

    def __init__(self, engine: SynchronizationEngine) -> None:
        self._engine = engine
        self._inflight: asyncio.Future | None = None
        self._timeout_task: asyncio.Task | None = None
        # Bumped on every attempt and cleanup; stale attempts compare unequal
        self._generation = 0

    @property
    def is_initializing(self) -> bool:
        return self._inflight is not None

    # -- public lifecycle --------------------------------------------------

    async def initialize(self) -> SessionState:
        """Create the client.  Returns the resulting session state."""
        engine = self._engine
        session = engine.session
        wallet = engine.wallet

        if wallet is None or not wallet.address:
            logger.debug("No connected wallet, skipping initialization")
            return session.state

        if self._inflight is not None:
            # Single flight: collapse into the attempt already running
            await asyncio.shield(self._inflight)
            return session.state

        if session.attempt_count >= engine.config.max_init_attempts:
            logger.error("Client creation budget of %d attempts exhausted", session.attempt_count)
            session.state = SessionState.FAILED
            engine._set_error(Fault(FaultKind.ATTEMPT_BUDGET_EXCEEDED, BUDGET_MESSAGE))
            return session.state

        done = asyncio.get_running_loop().create_future()
        self._inflight = done
        self._generation += 1
        generation = self._generation
        guard: asyncio.Task | None = None
        try:
            session.attempt_count += 1
            session.state = SessionState.INITIALIZING
            engine.error = None
            await self._teardown()

            guard = asyncio.create_task(self._timeout_guard(generation))
            self._timeout_task = guard
            attempt = engine.adopt(asyncio.create_task(self._attempt(generation)))
            # The guard resolves `done` on timeout; a hung attempt is left behind
            await asyncio.wait({attempt, done}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if guard is not None:
                guard.cancel()
                if self._timeout_task is guard:
                    self._timeout_task = None
            if self._inflight is done:
                self._inflight = None
            if not done.done():
                done.set_result(None)
        return session.state

    async def cleanup(self) -> None:
        """Tear down the session completely.  Idempotent."""
        self._generation += 1
        if self._timeout_task is not None:
            self._timeout_task.cancel()
            self._timeout_task = None
        if self._inflight is not None:
            if not self._inflight.done():
                self._inflight.set_result(None)
            self._inflight = None

        await self._teardown()
        # Ends `async for` consumers once their buffered events are drained
        self._engine.message_channel.close()
        self._engine.conversation_channel.close()

        session = self._engine.session
        session.state = SessionState.UNINITIALIZED
        session.attempt_count = 0
        self._engine.error = None
        logger.info("Client cleanup completed")

    # -- internals ---------------------------------------------------------

    async def _attempt(self, generation: int) -> None:
        engine = self._engine
        session = engine.session
        wallet = engine.wallet
        logger.info(
            "Initializing messaging client for %s (attempt %d/%d)",
            wallet.address,
            session.attempt_count,
            engine.config.max_init_attempts,
        )

        try:
            signer = Signer(wallet)
            options = engine.config.client_options(wallet.address)
            client = await safe_call(
                lambda: engine.backend.create_client(signer, options), None
            )
            if client is None:
                raise TransientMemoryError(
                    "Failed to create messaging client due to buffer issues"
                )

            try:
                await safe_call(client.sync_all, None)
            except Exception as exc:
                logger.warning("Initial sync failed, continuing: %s", exc)

            if generation != self._generation or session.state is not SessionState.INITIALIZING:
                logger.warning("Discarding client created after initialization was abandoned")
                await _close_quietly(client)
                return

            session.client = client
            session.inbox_id = client.inbox_id or None
            session.state = SessionState.READY
            session.attempt_count = 0
            logger.info("Messaging client ready with inbox %s", session.inbox_id)
        except Exception as exc:
            fault = classify(exc)
            logger.error("Messaging client initialization failed: %s", fault.message)
            if generation != self._generation:
                return
            if fault.kind is FaultKind.TRANSIENT_MEMORY:
                fault = replace(fault, display=MEMORY_REFRESH_MESSAGE)
            engine._set_error(fault)
            session.state = SessionState.FAILED

    async def _timeout_guard(self, generation: int) -> None:
        await asyncio.sleep(self._engine.config.init_timeout)
        session = self._engine.session
        if generation == self._generation and session.state is SessionState.INITIALIZING:
            logger.error(
                "Initialization still running after %.0fs, marking failed",
                self._engine.config.init_timeout,
            )
            session.state = SessionState.FAILED
            self._engine._set_error(Fault(FaultKind.TIMEOUT, TIMEOUT_MESSAGE))
            # Release the single-flight guard so a retry can start
            if self._inflight is not None and not self._inflight.done():
                self._inflight.set_result(None)
            self._inflight = None

    async def _teardown(self) -> None:
        """Stop timers and reset caches; keeps attempt count and state."""
        engine = self._engine
        engine.message_poller.reset()
        engine.conversation_poller.stop()
        engine.cancel_background()
        engine.tracker.reset()
        engine.reconciler.reset()
        engine.resolver.clear()

        session = engine.session
        client, session.client = session.client, None
        session.inbox_id = None
        if client is not None:
            await _close_quietly(client)
