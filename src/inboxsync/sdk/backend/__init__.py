"""Messaging backend interface and adapters."""

from inboxsync.sdk.backend.base import Conversation, MessagingBackend, MessagingClient
from inboxsync.sdk.backend.http import HTTPBackend, HTTPClient, HTTPConversation


def create_backend(config, *, transport=None) -> MessagingBackend:
    """Factory for the backend described by *config*."""
    return HTTPBackend(config.node_url, transport=transport)


__all__ = [
    "Conversation",
    "MessagingBackend",
    "MessagingClient",
    "HTTPBackend",
    "HTTPClient",
    "HTTPConversation",
    "create_backend",
]
