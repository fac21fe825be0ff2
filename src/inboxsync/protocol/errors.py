"""inboxsync exception hierarchy.

Every fault surfaced by the engine is a :class:`SyncError` carrying a
:class:`FaultKind` tag.  Downstream code matches on ``kind``; message text
is inspected exactly once, by :func:`inboxsync.protocol.faults.classify`.
"""

from __future__ import annotations

from enum import Enum


class FaultKind(str, Enum):
    """Closed set of fault categories."""

    TRANSIENT_MEMORY = "transient_memory"
    NETWORK = "network"
    NOT_REGISTERED = "not_registered"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    ATTEMPT_BUDGET_EXCEEDED = "attempt_budget_exceeded"
    GENERIC = "generic"


class SyncError(Exception):
    """Base exception for all inboxsync errors."""

    kind: FaultKind = FaultKind.GENERIC


class TransientMemoryError(SyncError):
    """Raised for spurious low-level buffer corruption that escaped wrapping."""

    kind = FaultKind.TRANSIENT_MEMORY


class NetworkError(SyncError):
    """Raised when the messaging network cannot be reached."""

    kind = FaultKind.NETWORK


class NotRegisteredError(SyncError):
    """Raised when a peer is absent from the messaging directory."""

    kind = FaultKind.NOT_REGISTERED


class ConversationNotFoundError(SyncError):
    """Raised when a conversation was deleted or is not synchronized yet."""

    kind = FaultKind.NOT_FOUND


class InitTimeoutError(SyncError):
    """Raised when client initialization exceeds its time budget."""

    kind = FaultKind.TIMEOUT


class ValidationError(SyncError):
    """Raised on malformed caller input."""

    kind = FaultKind.VALIDATION


class ClientNotReadyError(ValidationError):
    """Raised when an operation needs a ready client session."""


class AttemptBudgetExceededError(SyncError):
    """Raised when client creation has been attempted too many times."""

    kind = FaultKind.ATTEMPT_BUDGET_EXCEEDED


class SigningError(SyncError):
    """Raised when the wallet fails to sign a message."""


ERROR_TYPES: dict[FaultKind, type[SyncError]] = {
    FaultKind.TRANSIENT_MEMORY: TransientMemoryError,
    FaultKind.NETWORK: NetworkError,
    FaultKind.NOT_REGISTERED: NotRegisteredError,
    FaultKind.NOT_FOUND: ConversationNotFoundError,
    FaultKind.TIMEOUT: InitTimeoutError,
    FaultKind.VALIDATION: ValidationError,
    FaultKind.ATTEMPT_BUDGET_EXCEEDED: AttemptBudgetExceededError,
    FaultKind.GENERIC: SyncError,
}
