"""Fault-tolerant invocation of backend operations.

Only transient-memory faults are absorbed: they are spurious and safe to
treat as "this attempt returned nothing".  Every other exception carries
information the caller must act on and is re-raised unchanged.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from inboxsync.protocol import is_transient_memory_error

logger = logging.getLogger(__name__)

T = TypeVar("T")
F = TypeVar("F")


async def safe_call(operation: Callable[[], Awaitable[T]], fallback: F) -> T | F:
    """Await ``operation()``; return *fallback* on a transient-memory fault."""
    try:
        return await operation()
    except Exception as exc:
        if is_transient_memory_error(exc):
            logger.warning("Buffer operation failed, using fallback: %s", exc)
            return fallback
        raise


def safe_call_sync(operation: Callable[[], T], fallback: F) -> T | F:
    """Synchronous variant of :func:`safe_call`."""
    try:
        return operation()
    except Exception as exc:
        if is_transient_memory_error(exc):
            logger.warning("Buffer sync operation failed, using fallback: %s", exc)
            return fallback
        raise


async def sync_best_effort(client, context: str) -> bool:
    """Run ``client.sync_all()``; log and swallow any failure.

    Returns True if the sync completed without raising.
    """
    try:
        await safe_call(client.sync_all, None)
    except Exception as exc:
        logger.warning("Sync failed %s, continuing anyway: %s", context, exc)
        return False
    return True


async def list_with_retry(client, context: str) -> list:
    """List conversations, retrying once through :func:`safe_call`.

    Never raises: a second failure degrades to an empty list.
    """
    try:
        convos = await client.list_conversations()
    except Exception as exc:
        logger.error("Error listing conversations %s: %s", context, exc)
        try:
            convos = await safe_call(client.list_conversations, [])
        except Exception as retry_exc:
            logger.error("Retry listing conversations %s also failed: %s", context, retry_exc)
            return []
    if not isinstance(convos, list):
        logger.warning("Invalid conversation list %s, treating as empty", context)
        return []
    return convos
