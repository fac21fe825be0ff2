"""inboxsync CLI -- thin wrapper around the synchronization engine using click.

Every command opens an engine for the configured wallet, runs one
operation and cleans up.  ``watch`` keeps both polling loops running and
prints events as they arrive.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import click

from inboxsync.protocol import ConversationSummary, MessageRecord, SyncError, ms_to_datetime
from inboxsync.sdk.config import SyncConfig
from inboxsync.sdk.engine import SynchronizationEngine
from inboxsync.sdk.signer import KeyWallet

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error(msg: str) -> None:
    """Print an error message to stderr and exit 1."""
    click.echo(msg, err=True)
    raise SystemExit(1)


def _make_engine(ctx: click.Context) -> SynchronizationEngine:
    address = ctx.obj.get("address")
    if not address:
        _error("No wallet address. Pass --address or set INBOXSYNC_ADDRESS.")
    try:
        config = SyncConfig(node_url=ctx.obj.get("node"))
    except ValueError as exc:
        _error(f"Error: {exc}")
    return SynchronizationEngine(KeyWallet(address, config.key_dir), config=config)


async def _session(
    engine: SynchronizationEngine,
    job: Callable[[SynchronizationEngine], Awaitable[T]],
) -> T:
    await engine.initialize()
    try:
        if not engine.is_ready:
            raise SyncError(engine.error_message or "Client not ready")
        return await job(engine)
    finally:
        await engine.cleanup()


def _run(ctx: click.Context, job: Callable[[SynchronizationEngine], Awaitable[T]]) -> T:
    engine = _make_engine(ctx)
    try:
        return asyncio.run(_session(engine, job))
    except SyncError as exc:
        _error(f"Error: {exc}")


def _format_time(ms: int) -> str:
    return ms_to_datetime(ms).strftime("%Y-%m-%d %H:%M:%S")


def _echo_message(msg: MessageRecord) -> None:
    click.echo(f"[{_format_time(msg.sent_at_ms)}] {msg.sender_display_identity}: {msg.content}")


def _echo_conversations(convos: tuple[ConversationSummary, ...] | list[ConversationSummary]) -> None:
    click.echo(f"{'CONVERSATION':<34} {'PEER':<44} {'LAST MESSAGE'}")
    for convo in convos:
        last = convo.last_message.content if convo.last_message else ""
        click.echo(f"{convo.id:<34} {convo.peer_display_identity:<44} {last}")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="inboxsync")
@click.option("--node", default=None, help="Gateway URL (default: INBOXSYNC_NODE_URL).")
@click.option(
    "--address",
    "-a",
    envvar="INBOXSYNC_ADDRESS",
    default=None,
    help="Wallet address to act as.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, node: str | None, address: str | None, verbose: bool) -> None:
    """inboxsync -- live chat sessions over a polling messaging backend."""
    ctx.ensure_object(dict)
    ctx.obj["node"] = node
    ctx.obj["address"] = address
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.pass_context
def conversations(ctx: click.Context) -> None:
    """List conversations, most recently active first."""
    convos = _run(ctx, lambda engine: engine.list_conversations())
    if not convos:
        click.echo("No conversations yet.")
        return
    _echo_conversations(convos)


@cli.command()
@click.argument("conversation_id")
@click.option("--limit", "-l", default=50, help="Max messages to retrieve.")
@click.pass_context
def messages(ctx: click.Context, conversation_id: str, limit: int) -> None:
    """Show recent messages of a conversation, oldest first."""
    records = _run(ctx, lambda engine: engine.get_messages(conversation_id, limit))
    if not records:
        click.echo("No messages.")
        return
    for record in records:
        _echo_message(record)


@cli.command()
@click.argument("conversation_id")
@click.argument("message")
@click.pass_context
def send(ctx: click.Context, conversation_id: str, message: str) -> None:
    """Send a message to a conversation."""
    _run(ctx, lambda engine: engine.send_message(conversation_id, message))
    click.echo(f"Message sent to {conversation_id}")


@cli.command()
@click.argument("address")
@click.pass_context
def start(ctx: click.Context, address: str) -> None:
    """Start (or reuse) a direct conversation with ADDRESS."""
    conversation_id = _run(ctx, lambda engine: engine.start_conversation(address))
    click.echo(f"Conversation: {conversation_id}")


@cli.command("can-message")
@click.argument("addresses", nargs=-1, required=True)
@click.pass_context
def can_message(ctx: click.Context, addresses: tuple[str, ...]) -> None:
    """Check whether each ADDRESS can receive messages."""
    engine = _make_engine(ctx)
    results = asyncio.run(engine.can_message(list(addresses)))
    for address, reachable in results.items():
        click.echo(f"{address}: {'yes' if reachable else 'no'}")


@cli.command()
@click.option(
    "--seconds",
    "-s",
    default=0.0,
    help="Stop after this many seconds (0 = until interrupted).",
)
@click.pass_context
def watch(ctx: click.Context, seconds: float) -> None:
    """Stream new messages and conversation changes."""

    async def _watch(engine: SynchronizationEngine) -> None:
        await engine.load_conversations()
        _echo_conversations(engine.conversations)
        stop_messages = engine.stream_messages(_echo_message)
        stop_convos = engine.stream_conversations(_echo_conversations)
        try:
            if seconds > 0:
                await asyncio.sleep(seconds)
            else:
                await asyncio.Event().wait()
        finally:
            stop_messages()
            stop_convos()
            engine.stop_polling()

    try:
        _run(ctx, _watch)
    except KeyboardInterrupt:
        click.echo("Stopped.")
