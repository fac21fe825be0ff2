"""Fault classification (heuristic, best-effort).

Maps any raised exception to a tagged :class:`Fault`.  Matching is done on
exception type first and message fingerprints second; anything that does
not match falls through to ``FaultKind.GENERIC``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import httpx

from inboxsync.protocol.errors import ERROR_TYPES, FaultKind, SyncError

# Known signatures of corrupted or detached low-level buffers.
TRANSIENT_MEMORY_FINGERPRINTS: tuple[str, ...] = (
    "detached ArrayBuffer",
    "Cannot perform %TypedArray%.prototype.set",
    "memory access out of bounds",
    "released memoryview",
)

_NETWORK_FINGERPRINTS = ("network", "fetch", "connection refused", "connection reset")
_NOT_REGISTERED_FINGERPRINTS = ("not registered", "not found", "identity")
_TIMEOUT_FINGERPRINTS = ("timeout", "timed out")

MEMORY_REFRESH_MESSAGE = "Memory error detected. Please refresh the page to continue."


@dataclass(frozen=True)
class Fault:
    """A classified fault.

    ``cause`` is excluded from equality so two faults of the same kind and
    message compare equal regardless of the original exception object.
    """

    kind: FaultKind
    message: str
    cause: BaseException | None = field(default=None, compare=False, repr=False)
    display: str | None = None

    @property
    def user_message(self) -> str:
        """Human-readable text suitable for display."""
        if self.display is not None:
            return self.display
        if self.kind is FaultKind.TRANSIENT_MEMORY:
            return "Memory buffer error detected. Please refresh the page."
        if self.kind is FaultKind.NETWORK:
            if "CORS" in self.message:
                return "CORS Error: Please check your browser settings."
            return "Network Error: Unable to connect to the messaging network."
        return self.message or "An unexpected error occurred"

    def to_error(self) -> SyncError:
        """Return the typed exception for this fault."""
        if isinstance(self.cause, SyncError):
            return self.cause
        return ERROR_TYPES[self.kind](self.user_message)


def is_transient_memory_error(exc: BaseException) -> bool:
    """Return True if *exc* looks like a spurious buffer corruption."""
    if isinstance(exc, SyncError):
        return exc.kind is FaultKind.TRANSIENT_MEMORY
    if not isinstance(exc, (TypeError, ValueError, BufferError)):
        return False
    msg = str(exc)
    return any(p in msg for p in TRANSIENT_MEMORY_FINGERPRINTS)


def classify(exc: BaseException) -> Fault:
    """Classify *exc* into a :class:`Fault`.  Never raises."""
    msg = str(exc)
    lowered = msg.lower()

    if isinstance(exc, SyncError):
        return Fault(exc.kind, msg, exc)

    if is_transient_memory_error(exc):
        return Fault(FaultKind.TRANSIENT_MEMORY, msg, exc)

    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return Fault(FaultKind.TIMEOUT, msg or "Operation timed out", exc)

    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return Fault(FaultKind.NETWORK, msg, exc)

    if "CORS" in msg or any(p in lowered for p in _NETWORK_FINGERPRINTS):
        return Fault(FaultKind.NETWORK, msg, exc)

    if any(p in lowered for p in _NOT_REGISTERED_FINGERPRINTS):
        return Fault(FaultKind.NOT_REGISTERED, msg, exc)

    if any(p in lowered for p in _TIMEOUT_FINGERPRINTS):
        return Fault(FaultKind.TIMEOUT, msg, exc)

    return Fault(FaultKind.GENERIC, msg, exc)
