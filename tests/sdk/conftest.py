"""Shared fixtures for inboxsync SDK tests."""

from __future__ import annotations

import pytest

from fakes import BOB, FakeBackend, FakeClient, FakeWallet
from inboxsync.sdk.config import SyncConfig
from inboxsync.sdk.engine import SynchronizationEngine


@pytest.fixture()
def sync_config(tmp_path):
    """SyncConfig with short intervals, pointed at a tmp data directory."""
    return SyncConfig(
        node_url="http://testserver",
        data_dir=tmp_path / ".inboxsync",
        message_poll_interval=0.01,
        conversation_poll_interval=0.01,
        init_timeout=5.0,
        post_send_sync_delay=0.01,
        post_create_reconcile_delay=0.01,
    )


@pytest.fixture()
def fake_client():
    client = FakeClient()
    client.register(BOB, "inbox-bob")
    return client


@pytest.fixture()
def backend(fake_client):
    return FakeBackend(fake_client)


@pytest.fixture()
def wallet():
    return FakeWallet()


@pytest.fixture()
def engine(wallet, backend, sync_config):
    """An engine that has not been initialized yet."""
    return SynchronizationEngine(wallet, config=sync_config, backend=backend)


@pytest.fixture()
async def ready_engine(engine):
    """An initialized engine; cleaned up after the test."""
    await engine.initialize()
    assert engine.is_ready
    yield engine
    await engine.cleanup()
