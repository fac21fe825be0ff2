"""CLI tests using click.testing.CliRunner.

Uses INBOXSYNC_HOME to isolate key/data directories per test.  The engine
class is replaced with a mock so no gateway is contacted.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from inboxsync.cli.main import cli
from inboxsync.protocol import (
    ConversationSummary,
    LastMessage,
    MessageRecord,
    NotRegisteredError,
)

ADDRESS = "0x" + "a" * 40
PEER = "0x" + "b" * 40


@pytest.fixture
def runner():
    """Click CliRunner for CLI testing."""
    return CliRunner()


@pytest.fixture
def env(tmp_path: Path, monkeypatch) -> dict[str, str]:
    """Isolated INBOXSYNC_HOME plus a wallet address."""
    for var in ("INBOXSYNC_NODE_URL", "INBOXSYNC_ENV"):
        monkeypatch.delenv(var, raising=False)
    home = tmp_path / "inboxsync_home"
    home.mkdir()
    return {"INBOXSYNC_HOME": str(home), "INBOXSYNC_ADDRESS": ADDRESS}


@pytest.fixture
def mock_engine():
    """Patch the engine class; yields the instance every command receives."""
    engine = MagicMock()
    engine.is_ready = True
    engine.error_message = None
    engine.initialize = AsyncMock()
    engine.cleanup = AsyncMock()
    with patch("inboxsync.cli.main.SynchronizationEngine", return_value=engine):
        yield engine


# ---------------------------------------------------------------------------
# Group
# ---------------------------------------------------------------------------


def test_cli_help(runner: CliRunner):
    """--help lists every command."""
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    for cmd in ("conversations", "messages", "send", "start", "can-message", "watch"):
        assert cmd in result.output


def test_no_address(runner: CliRunner, tmp_path: Path, monkeypatch):
    """Commands need a wallet address."""
    monkeypatch.delenv("INBOXSYNC_ADDRESS", raising=False)
    result = runner.invoke(cli, ["conversations"], env={"INBOXSYNC_HOME": str(tmp_path)})
    assert result.exit_code == 1
    assert "No wallet address" in result.output


def test_invalid_env_reported(runner: CliRunner, env):
    result = runner.invoke(cli, ["conversations"], env={**env, "INBOXSYNC_ENV": "staging"})
    assert result.exit_code == 1
    assert "Invalid env" in result.output


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def test_conversations(runner: CliRunner, env, mock_engine):
    mock_engine.list_conversations = AsyncMock(
        return_value=[
            ConversationSummary("c2", PEER, 0, LastMessage("latest", 2_000, PEER)),
            ConversationSummary("c1", "Group Chat", 1_000),
        ]
    )
    result = runner.invoke(cli, ["conversations"], env=env)
    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[1].startswith("c2")
    assert "latest" in lines[1]
    assert lines[2].startswith("c1")
    mock_engine.cleanup.assert_awaited_once()


def test_conversations_empty(runner: CliRunner, env, mock_engine):
    mock_engine.list_conversations = AsyncMock(return_value=[])
    result = runner.invoke(cli, ["conversations"], env=env)
    assert result.exit_code == 0
    assert "No conversations yet." in result.output


def test_messages(runner: CliRunner, env, mock_engine):
    mock_engine.get_messages = AsyncMock(
        return_value=[MessageRecord("m1", "hi there", PEER, 0, "c1")]
    )
    result = runner.invoke(cli, ["messages", "c1", "--limit", "5"], env=env)
    assert result.exit_code == 0
    assert f"[1970-01-01 00:00:00] {PEER}: hi there" in result.output
    mock_engine.get_messages.assert_awaited_once_with("c1", 5)


def test_send(runner: CliRunner, env, mock_engine):
    mock_engine.send_message = AsyncMock()
    result = runner.invoke(cli, ["send", "c1", "hello"], env=env)
    assert result.exit_code == 0
    assert "Message sent to c1" in result.output
    mock_engine.send_message.assert_awaited_once_with("c1", "hello")


def test_start(runner: CliRunner, env, mock_engine):
    mock_engine.start_conversation = AsyncMock(return_value="dm-1")
    result = runner.invoke(cli, ["start", PEER], env=env)
    assert result.exit_code == 0
    assert "Conversation: dm-1" in result.output


def test_start_not_registered(runner: CliRunner, env, mock_engine):
    mock_engine.start_conversation = AsyncMock(
        side_effect=NotRegisteredError("This address is not registered with the messaging network.")
    )
    result = runner.invoke(cli, ["start", PEER], env=env)
    assert result.exit_code == 1
    assert "Error: This address is not registered" in result.output
    mock_engine.cleanup.assert_awaited_once()


def test_client_not_ready(runner: CliRunner, env, mock_engine):
    mock_engine.is_ready = False
    mock_engine.error_message = "Initialization timeout. Please try again."
    result = runner.invoke(cli, ["conversations"], env=env)
    assert result.exit_code == 1
    assert "Initialization timeout" in result.output


def test_can_message(runner: CliRunner, env, mock_engine):
    mock_engine.can_message = AsyncMock(return_value={PEER: True, ADDRESS: False})
    result = runner.invoke(cli, ["can-message", PEER, ADDRESS], env=env)
    assert result.exit_code == 0
    assert f"{PEER}: yes" in result.output
    assert f"{ADDRESS}: no" in result.output
    mock_engine.initialize.assert_not_awaited()


def test_watch(runner: CliRunner, env, mock_engine):
    mock_engine.load_conversations = AsyncMock(return_value=True)
    mock_engine.conversations = (ConversationSummary("c1", PEER, 0),)
    stop_messages, stop_convos = MagicMock(), MagicMock()
    mock_engine.stream_messages.return_value = stop_messages
    mock_engine.stream_conversations.return_value = stop_convos

    result = runner.invoke(cli, ["watch", "--seconds", "0.01"], env=env)
    assert result.exit_code == 0, result.output
    assert "c1" in result.output
    stop_messages.assert_called_once()
    stop_convos.assert_called_once()
    mock_engine.stop_polling.assert_called_once()
