"""Tests for send, start_conversation, get_messages and reachability."""

from __future__ import annotations

import httpx
import pytest

from fakes import ALICE, BOB, CAROL, FakeConversation, buffer_fault, eventually, make_message
from inboxsync.protocol import (
    ClientNotReadyError,
    ConversationNotFoundError,
    NetworkError,
    NotRegisteredError,
    ValidationError,
)


class TestSend:
    async def test_sends_trimmed_text(self, ready_engine, fake_client):
        convo = fake_client.add(FakeConversation("c1", peer_inbox_id="inbox-bob"))
        await ready_engine.send_message("c1", "  hello  ")
        assert convo.sent == ["hello"]

    async def test_empty_content_rejected_before_backend(self, ready_engine, fake_client):
        fake_client.add(FakeConversation("c1"))
        syncs, lists = fake_client.sync_calls, fake_client.list_calls

        with pytest.raises(ValidationError):
            await ready_engine.send_message("c1", "")
        with pytest.raises(ValidationError):
            await ready_engine.send_message("c1", "   ")
        assert (fake_client.sync_calls, fake_client.list_calls) == (syncs, lists)

    async def test_not_ready(self, engine, backend):
        with pytest.raises(ClientNotReadyError):
            await engine.send_message("c1", "hello")
        assert backend.create_calls == 0

    async def test_unknown_conversation(self, ready_engine):
        with pytest.raises(ConversationNotFoundError):
            await ready_engine.send_message("missing", "hello")

    async def test_network_failure_is_typed(self, ready_engine, fake_client):
        convo = fake_client.add(FakeConversation("c1"))
        convo.send_error = httpx.ConnectError("offline")
        with pytest.raises(NetworkError) as exc_info:
            await ready_engine.send_message("c1", "hello")
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    async def test_buffer_fault_on_send_is_absorbed(self, ready_engine, fake_client):
        convo = fake_client.add(FakeConversation("c1"))
        convo.send_error = buffer_fault()
        await ready_engine.send_message("c1", "hello")

    async def test_schedules_follow_up_sync(self, ready_engine, fake_client):
        fake_client.add(FakeConversation("c1"))
        await ready_engine.send_message("c1", "hello")
        after_send = fake_client.sync_calls
        await eventually(lambda: fake_client.sync_calls > after_send)


class TestStartConversation:
    async def test_creates_dm(self, ready_engine, fake_client):
        cid = await ready_engine.start_conversation(BOB)
        assert cid == "dm-inbox-bob"
        assert fake_client.created == ["inbox-bob"]

    async def test_idempotent(self, ready_engine, fake_client):
        first = await ready_engine.start_conversation(BOB)
        second = await ready_engine.start_conversation(BOB.upper().replace("0X", "0x"))
        assert first == second
        assert fake_client.created == ["inbox-bob"]

    async def test_reuses_existing(self, ready_engine, fake_client):
        fake_client.add(FakeConversation("g1", is_direct=False))
        fake_client.add(FakeConversation("existing", peer_inbox_id="inbox-bob"))
        assert await ready_engine.start_conversation(BOB) == "existing"
        assert fake_client.created == []

    async def test_peer_lookup_error_skips_conversation(self, ready_engine, fake_client):
        broken = fake_client.add(FakeConversation("broken", peer_inbox_id="inbox-bob"))
        broken.peer_error = RuntimeError("peer lookup failed")
        assert await ready_engine.start_conversation(BOB) == "dm-inbox-bob"

    async def test_invalid_address(self, ready_engine, fake_client):
        with pytest.raises(ValidationError):
            await ready_engine.start_conversation("not-an-address")
        assert fake_client.created == []

    async def test_not_registered(self, ready_engine, fake_client):
        with pytest.raises(NotRegisteredError):
            await ready_engine.start_conversation(CAROL)
        assert fake_client.created == []

    async def test_lookup_buffer_fault_is_not_registered(
        self, ready_engine, fake_client, monkeypatch
    ):
        async def find_inbox_id(identifier):
            raise buffer_fault()

        monkeypatch.setattr(fake_client, "find_inbox_id", find_inbox_id)
        with pytest.raises(NotRegisteredError):
            await ready_engine.start_conversation(BOB)
        assert fake_client.created == []

    async def test_lookup_network_error_is_typed(self, ready_engine, fake_client, monkeypatch):
        async def find_inbox_id(identifier):
            raise httpx.ConnectError("offline")

        monkeypatch.setattr(fake_client, "find_inbox_id", find_inbox_id)
        with pytest.raises(NetworkError):
            await ready_engine.start_conversation(BOB)

    async def test_creation_returns_nothing(self, ready_engine, fake_client):
        fake_client.new_dm_result = None
        with pytest.raises(NotRegisteredError):
            await ready_engine.start_conversation(BOB)

    async def test_not_ready(self, engine):
        with pytest.raises(ClientNotReadyError):
            await engine.start_conversation(BOB)

    async def test_schedules_reload(self, ready_engine):
        await ready_engine.start_conversation(BOB)
        await eventually(lambda: ready_engine.conversations)
        assert ready_engine.conversations[0].id == "dm-inbox-bob"


class TestGetMessages:
    async def test_oldest_first(self, ready_engine, fake_client):
        fake_client.add(
            FakeConversation(
                "c1",
                messages=[
                    make_message("c1", 3_000, content="third"),
                    make_message("c1", 1_000, content="first", sender="inbox-alice"),
                    make_message("c1", 2_000, content="second"),
                ],
            )
        )
        records = await ready_engine.get_messages("c1")
        assert [r.content for r in records] == ["first", "second", "third"]
        assert records[1].sender_display_identity == BOB
        assert records[0].sender_display_identity == "inbox-alice"

    async def test_limit_keeps_newest(self, ready_engine, fake_client):
        history = [make_message("c1", ms) for ms in (1_000, 2_000, 3_000)]
        fake_client.add(FakeConversation("c1", messages=history))
        records = await ready_engine.get_messages("c1", limit=2)
        assert [r.sent_at_ms for r in records] == [2_000, 3_000]

    async def test_not_ready_returns_empty(self, engine):
        assert await engine.get_messages("c1") == []

    async def test_missing_conversation(self, ready_engine):
        with pytest.raises(ConversationNotFoundError):
            await ready_engine.get_messages("missing")

    async def test_backend_failure_is_typed(self, ready_engine, fake_client):
        convo = fake_client.add(FakeConversation("c1"))
        convo.messages_error = httpx.ConnectError("offline")
        with pytest.raises(NetworkError):
            await ready_engine.get_messages("c1")

    async def test_buffer_fault_returns_empty(self, ready_engine, fake_client):
        convo = fake_client.add(FakeConversation("c1"))
        convo.messages_error = buffer_fault()
        assert await ready_engine.get_messages("c1") == []


class TestCanMessage:
    async def test_results_per_address(self, engine, backend):
        backend.reachable = {BOB}
        result = await engine.can_message([BOB.upper().replace("0X", "0x"), CAROL])
        assert result == {BOB: True, CAROL: False}

    async def test_empty_input(self, engine, backend):
        assert await engine.can_message([]) == {}
        assert backend.can_message_calls == 0

    async def test_fails_closed(self, engine, backend):
        backend.can_message_error = RuntimeError("directory down")
        assert await engine.can_message([BOB]) == {BOB: False}

    async def test_no_wallet_fails_closed(self, backend, sync_config):
        from inboxsync.sdk.engine import SynchronizationEngine

        engine = SynchronizationEngine(config=sync_config, backend=backend)
        assert await engine.can_message([BOB]) == {BOB: False}
        assert backend.can_message_calls == 0


class TestValidateRecipient:
    async def test_blank(self, engine):
        check = await engine.validate_recipient("  ")
        assert not check.is_valid
        assert check.error is None

    async def test_malformed(self, engine):
        check = await engine.validate_recipient("0x123")
        assert not check.is_valid
        assert "Invalid address format" in check.error

    async def test_self(self, engine):
        check = await engine.validate_recipient(ALICE)
        assert not check.is_valid
        assert check.error == "You cannot send messages to yourself"

    async def test_reachable(self, engine, backend):
        backend.reachable = {BOB}
        check = await engine.validate_recipient(BOB)
        assert check.is_valid
        assert check.can_receive is True
        assert check.error is None

    async def test_unreachable(self, engine):
        check = await engine.validate_recipient(CAROL)
        assert check.is_valid
        assert check.can_receive is False
        assert "not registered" in check.error
