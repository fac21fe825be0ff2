"""inboxsync -- live chat sessions over request/response messaging backends.

Top-level convenience re-exports::

    from inboxsync import SynchronizationEngine, SyncConfig
    from inboxsync.protocol import FaultKind, classify  # protocol helpers
"""

__version__ = "0.1.0"

from inboxsync.sdk.config import SyncConfig
from inboxsync.sdk.engine import SynchronizationEngine

__all__ = ["__version__", "SyncConfig", "SynchronizationEngine"]
