"""Engine configuration via dataclass (no pydantic -- instant construction)."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path

from inboxsync.protocol import ClientOptions, normalize_address

logger = logging.getLogger(__name__)

_DEFAULT_NODE_URL = "https://node.inboxsync.dev"

_VALID_ENVS = {"local", "dev", "production"}

# Keys accepted from the [sync] section of config.toml, with their types
_FILE_KEYS: dict[str, type] = {
    "node_url": str,
    "env": str,
    "message_poll_interval": float,
    "conversation_poll_interval": float,
    "init_timeout": float,
    "max_init_attempts": int,
    "message_page_size": int,
    "summary_page_size": int,
    "post_send_sync_delay": float,
    "post_create_reconcile_delay": float,
    "dedup_horizon_ms": int,
    "channel_capacity": int,
}


def _coerce(key: str, value: object, path: Path) -> object:
    """Convert a config.toml value to the type of field *key*.

    Raises:
        ValueError: If the value cannot represent that type.
    """
    kind = _FILE_KEYS[key]
    invalid = ValueError(f"Invalid value for '{key}' in {path}: {value!r}")
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise invalid
    if kind is int and isinstance(value, float) and not value.is_integer():
        raise invalid
    try:
        return kind(value)
    except ValueError:
        raise invalid from None


@dataclass
class SyncConfig:
    """Configuration for a :class:`~inboxsync.sdk.engine.SynchronizationEngine`.

    All fields have sensible defaults.  ``node_url``, ``env`` and
    ``data_dir`` can be overridden via environment variables
    (``INBOXSYNC_NODE_URL``, ``INBOXSYNC_ENV``, ``INBOXSYNC_HOME``) or
    constructor arguments.

    Priority (highest wins): constructor arg > env var > config.toml > default.
    """

    node_url: str | None = None
    env: str | None = None
    data_dir: Path | str | None = None
    message_poll_interval: float = 3.0
    conversation_poll_interval: float = 10.0
    init_timeout: float = 60.0
    max_init_attempts: int = 3
    message_page_size: int = 20
    summary_page_size: int = 5
    post_send_sync_delay: float = 0.5
    post_create_reconcile_delay: float = 1.0
    dedup_horizon_ms: int | None = 30_000
    channel_capacity: int = 256

    def __post_init__(self) -> None:
        explicit = {
            f.name
            for f in fields(self)
            if getattr(self, f.name) != f.default
        }

        if self.data_dir is None:
            home = os.getenv("INBOXSYNC_HOME")
            self.data_dir = Path(home) if home else Path.home() / ".inboxsync"
        else:
            self.data_dir = Path(self.data_dir)

        # config.toml only fills fields the caller left at their defaults
        config_path = Path(self.data_dir) / "config.toml"
        if config_path.exists():
            self._load_config_file(config_path, explicit)

        if self.node_url is None:
            self.node_url = os.getenv("INBOXSYNC_NODE_URL", _DEFAULT_NODE_URL)
        if self.env is None:
            self.env = os.getenv("INBOXSYNC_ENV", "production")

        self._validate()

    def _load_config_file(self, path: Path, explicit: set[str]) -> None:
        """Apply the ``[sync]`` section of *path* to non-explicit fields."""
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError):
            logger.warning("Failed to load config file %s", path, exc_info=True)
            return

        section = data.get("sync", {})
        for key, value in section.items():
            if key not in _FILE_KEYS:
                logger.warning("Ignoring unknown config key %r in %s", key, path)
                continue
            if key in explicit:
                continue
            # Env vars outrank the file for these two
            if key == "node_url" and os.getenv("INBOXSYNC_NODE_URL"):
                continue
            if key == "env" and os.getenv("INBOXSYNC_ENV"):
                continue
            setattr(self, key, _coerce(key, value, path))

    def _validate(self) -> None:
        if self.env not in _VALID_ENVS:
            raise ValueError(
                f"Invalid env '{self.env}'. Must be one of: {sorted(_VALID_ENVS)}"
            )
        for name in (
            "message_poll_interval",
            "conversation_poll_interval",
            "init_timeout",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        for name in (
            "max_init_attempts",
            "message_page_size",
            "summary_page_size",
            "channel_capacity",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if self.post_send_sync_delay < 0 or self.post_create_reconcile_delay < 0:
            raise ValueError("follow-up delays cannot be negative")
        if self.dedup_horizon_ms is not None and self.dedup_horizon_ms < 0:
            raise ValueError("dedup_horizon_ms cannot be negative")

    @property
    def key_dir(self) -> Path:
        """Directory holding local development wallet keys."""
        return Path(self.data_dir) / "keys"

    def client_options(self, address: str) -> ClientOptions:
        """Client creation options with a per-address local database path."""
        return ClientOptions(
            env=self.env,
            db_path=f"inboxsync-db-{normalize_address(address)}",
        )
