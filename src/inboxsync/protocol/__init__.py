"""inboxsync protocol -- data types, errors and fault classification.

Public API re-exports for ``inboxsync.protocol``.
"""

from inboxsync.protocol.types import (
    GROUP_LABEL,
    UNKNOWN_PEER,
    UNSUPPORTED_CONTENT,
    ClientOptions,
    ClientSession,
    ConversationSummary,
    DecodedMessage,
    Identifier,
    IdentifierKind,
    InboxState,
    LastMessage,
    ListDirection,
    MessageRecord,
    SessionState,
    message_id_for,
    ms_to_datetime,
    ns_to_ms,
    text_content,
)

from inboxsync.protocol.errors import (
    AttemptBudgetExceededError,
    ClientNotReadyError,
    ConversationNotFoundError,
    FaultKind,
    InitTimeoutError,
    NetworkError,
    NotRegisteredError,
    SigningError,
    SyncError,
    TransientMemoryError,
    ValidationError,
)

from inboxsync.protocol.faults import (
    MEMORY_REFRESH_MESSAGE,
    Fault,
    classify,
    is_transient_memory_error,
)

from inboxsync.protocol.address import (
    is_chain_address,
    normalize_address,
    parse_chain_address,
)

__all__ = [
    # types
    "GROUP_LABEL",
    "UNKNOWN_PEER",
    "UNSUPPORTED_CONTENT",
    "ClientOptions",
    "ClientSession",
    "ConversationSummary",
    "DecodedMessage",
    "Identifier",
    "IdentifierKind",
    "InboxState",
    "LastMessage",
    "ListDirection",
    "MessageRecord",
    "SessionState",
    "message_id_for",
    "ms_to_datetime",
    "ns_to_ms",
    "text_content",
    # errors
    "AttemptBudgetExceededError",
    "ClientNotReadyError",
    "ConversationNotFoundError",
    "FaultKind",
    "InitTimeoutError",
    "NetworkError",
    "NotRegisteredError",
    "SigningError",
    "SyncError",
    "TransientMemoryError",
    "ValidationError",
    # faults
    "MEMORY_REFRESH_MESSAGE",
    "Fault",
    "classify",
    "is_transient_memory_error",
    # address
    "is_chain_address",
    "normalize_address",
    "parse_chain_address",
]
