"""inboxsync SDK -- the synchronization engine and its components."""

from inboxsync.sdk.channel import EventChannel, Subscription, SubscriptionClosed
from inboxsync.sdk.config import SyncConfig
from inboxsync.sdk.engine import SynchronizationEngine
from inboxsync.sdk.facade import RecipientCheck
from inboxsync.sdk.safe_call import safe_call, safe_call_sync
from inboxsync.sdk.signer import KeyWallet, Signer, Wallet

__all__ = [
    "EventChannel",
    "KeyWallet",
    "RecipientCheck",
    "Signer",
    "Subscription",
    "SubscriptionClosed",
    "SyncConfig",
    "SynchronizationEngine",
    "Wallet",
    "safe_call",
    "safe_call_sync",
]
