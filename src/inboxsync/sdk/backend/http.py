"""HTTP gateway backend via httpx with connection pooling.

Talks to a messaging gateway that exposes the backend operations as a
small REST API.  Client creation is a challenge/response: the gateway
issues a challenge, the signer signs it, and the gateway returns the inbox
id and a bearer token.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

import httpx

from inboxsync.protocol import (
    ClientOptions,
    DecodedMessage,
    Identifier,
    IdentifierKind,
    InboxState,
    ListDirection,
)
from inboxsync.sdk.backend.base import Conversation, MessagingBackend, MessagingClient

if TYPE_CHECKING:
    from inboxsync.sdk.signer import Signer

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def _identifier_dict(identifier: Identifier) -> dict[str, str]:
    return {"identifier": identifier.identifier, "kind": identifier.kind.value}


def _inbox_state_from_dict(data: dict[str, Any]) -> InboxState:
    identifiers = []
    for item in data.get("identifiers", []):
        try:
            kind = IdentifierKind(item.get("kind", "ethereum"))
        except ValueError:
            continue
        identifiers.append(Identifier(item["identifier"], kind))
    return InboxState(inbox_id=data["inbox_id"], identifiers=tuple(identifiers))


class HTTPConversation(Conversation):
    """Conversation handle backed by gateway endpoints."""

    def __init__(self, client: "HTTPClient", data: dict[str, Any]) -> None:
        self._client = client
        self.id = data["id"]
        self.created_at_ns = data.get("created_at_ns")
        self.is_direct = data.get("kind", "dm") == "dm"
        self.name = data.get("name")
        self._peer_inbox_id: Optional[str] = data.get("peer_inbox_id")

    async def peer_inbox_id(self) -> Optional[str]:
        if not self.is_direct:
            return None
        if self._peer_inbox_id is None:
            data = await self._client._request(
                "GET", f"/conversations/{self.id}/peer"
            )
            self._peer_inbox_id = data.get("peer_inbox_id")
        return self._peer_inbox_id

    async def messages(
        self,
        limit: int = 50,
        direction: ListDirection = ListDirection.DESCENDING,
    ) -> list[DecodedMessage]:
        data = await self._client._request(
            "GET",
            f"/conversations/{self.id}/messages",
            params={"limit": limit, "direction": int(direction)},
        )
        return [
            DecodedMessage(
                id=m.get("id"),
                content=m.get("content"),
                sender_inbox_id=m.get("sender_inbox_id", ""),
                sent_at_ns=int(m.get("sent_at_ns", 0)),
                conversation_id=m.get("conversation_id", self.id),
            )
            for m in data.get("messages", [])
        ]

    async def send(self, content: str) -> None:
        await self._client._request(
            "POST", f"/conversations/{self.id}/messages", json={"content": content}
        )


class HTTPClient(MessagingClient):
    """Client bound to one inbox, sharing a single ``httpx.AsyncClient``."""

    def __init__(self, http: httpx.AsyncClient, inbox_id: str) -> None:
        self._http = http
        self.inbox_id = inbox_id

    async def _request(
        self, method: str, path: str, **kwargs: Any
    ) -> dict[str, Any]:
        resp = await self._http.request(method, f"{API_PREFIX}{path}", **kwargs)
        resp.raise_for_status()
        if not resp.content:
            return {}
        return resp.json()

    async def sync_all(self) -> None:
        await self._request("POST", "/sync")

    async def list_conversations(self) -> list[Conversation]:
        data = await self._request("GET", "/conversations")
        return [HTTPConversation(self, c) for c in data.get("conversations", [])]

    async def find_inbox_id(self, identifier: Identifier) -> Optional[str]:
        resp = await self._http.post(
            f"{API_PREFIX}/identities/lookup", json=_identifier_dict(identifier)
        )
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json().get("inbox_id")

    async def new_dm(self, inbox_id: str) -> Optional[Conversation]:
        data = await self._request("POST", "/dms", json={"peer_inbox_id": inbox_id})
        if not data:
            return None
        return HTTPConversation(self, data)

    async def inbox_states(
        self, inbox_ids: list[str], refresh: bool = True
    ) -> list[InboxState]:
        data = await self._request(
            "POST",
            "/inbox-states",
            json={"inbox_ids": inbox_ids, "refresh": refresh},
        )
        return [_inbox_state_from_dict(s) for s in data.get("states", [])]

    async def close(self) -> None:
        await self._http.aclose()


class HTTPBackend(MessagingBackend):
    """Messaging backend reached through an HTTP gateway.

    *transport* lets tests substitute ``httpx.MockTransport`` or
    ``httpx.ASGITransport``.
    """

    def __init__(
        self,
        node_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._node_url = node_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _make_http(self, token: str | None = None) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        return httpx.AsyncClient(
            base_url=self._node_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def create_client(
        self, signer: "Signer", options: ClientOptions
    ) -> Optional[MessagingClient]:
        identifier = signer.get_identifier()
        async with self._make_http() as http:
            resp = await http.post(
                f"{API_PREFIX}/clients",
                json={
                    **_identifier_dict(identifier),
                    "env": options.env,
                    "db_path": options.db_path,
                },
            )
            resp.raise_for_status()
            challenge = resp.json()["challenge"]

            signature = await signer.sign_message(challenge)
            resp = await http.post(
                f"{API_PREFIX}/clients/verify",
                json={
                    **_identifier_dict(identifier),
                    "challenge": challenge,
                    "signature": "0x" + signature.hex(),
                },
            )
            resp.raise_for_status()
            data = resp.json()

        logger.debug("Gateway issued inbox %s", data["inbox_id"])
        return HTTPClient(self._make_http(data["token"]), data["inbox_id"])

    async def can_message(
        self, identifiers: list[Identifier], env: str = "production"
    ) -> dict[str, bool]:
        async with self._make_http() as http:
            resp = await http.post(
                f"{API_PREFIX}/can-message",
                json={
                    "env": env,
                    "identifiers": [_identifier_dict(i) for i in identifiers],
                },
            )
            resp.raise_for_status()
            data = resp.json()
        return {k: bool(v) for k, v in data.get("results", {}).items()}
