"""Signing adapter bound to a connected wallet, plus a local dev wallet."""

from __future__ import annotations

import abc
import logging
import os
import platform
import stat
import warnings
from pathlib import Path

from nacl.encoding import HexEncoder
from nacl.signing import SigningKey

from inboxsync.protocol import (
    Identifier,
    IdentifierKind,
    SigningError,
    classify,
    normalize_address,
)
from inboxsync.sdk.safe_call import safe_call_sync

logger = logging.getLogger(__name__)


class Wallet(abc.ABC):
    """A connected account able to sign messages.

    Wallet transports (browser extensions, hardware devices, remote signers)
    implement this interface; the engine only needs the address and a
    signing call.
    """

    @property
    @abc.abstractmethod
    def address(self) -> str:
        """The account's chain address."""

    @abc.abstractmethod
    async def sign_message(self, message: str) -> str:
        """Sign *message* and return the signature as a ``0x`` hex string."""


def _hex_to_bytes(signature: str) -> bytes:
    value = signature[2:] if signature.startswith("0x") else signature
    return bytes.fromhex(value)


class Signer:
    """Externally-owned-account signer handed to the backend on client creation."""

    type = "EOA"

    def __init__(self, wallet: Wallet) -> None:
        self._wallet = wallet
        self._identifier = Identifier(
            normalize_address(wallet.address), IdentifierKind.ETHEREUM
        )

    def get_identifier(self) -> Identifier:
        return self._identifier

    async def sign_message(self, message: str) -> bytes:
        logger.debug("Signing message for %s", self._identifier.identifier)
        try:
            signature = await self._wallet.sign_message(message)
        except Exception as exc:
            fault = classify(exc)
            logger.error("Failed to sign message: %s", fault.message)
            raise SigningError(fault.user_message) from exc
        return safe_call_sync(lambda: _hex_to_bytes(signature), b"")


class KeyWallet(Wallet):
    """Local development wallet backed by an Ed25519 key on disk.

    First use generates ``{address}.key`` under *key_dir* with 600
    permissions; later uses load it and warn if permissions are too
    permissive.  Intended for gateways that accept Ed25519 signatures,
    not for production chain accounts.
    """

    def __init__(self, address: str, key_dir: Path | str) -> None:
        self._address = normalize_address(address)
        self._key_dir = Path(key_dir)
        self._signing_key: SigningKey | None = None

    @property
    def address(self) -> str:
        return self._address

    @property
    def public_key(self) -> str:
        """Hex-encoded verify key."""
        return self._load().verify_key.encode(HexEncoder).decode("ascii")

    async def sign_message(self, message: str) -> str:
        signed = self._load().sign(message.encode("utf-8"))
        return "0x" + signed.signature.hex()

    def _load(self) -> SigningKey:
        if self._signing_key is not None:
            return self._signing_key

        self._key_dir.mkdir(parents=True, exist_ok=True)
        key_path = self._key_dir / f"{self._address}.key"
        if key_path.exists():
            self._check_permissions(key_path)
            self._signing_key = SigningKey(
                key_path.read_text().strip().encode("ascii"), encoder=HexEncoder
            )
        else:
            self._signing_key = SigningKey.generate()
            key_path.write_text(self._signing_key.encode(HexEncoder).decode("ascii"))
            if platform.system() != "Windows":
                os.chmod(key_path, stat.S_IRUSR | stat.S_IWUSR)
            logger.info("Generated development wallet key at %s", key_path)
        return self._signing_key

    def _check_permissions(self, path: Path) -> None:
        if platform.system() == "Windows":
            return
        mode = path.stat().st_mode & 0o777
        if mode != 0o600:
            warnings.warn(
                f"Key file {path} has permissions {oct(mode)} (expected 0o600). "
                f"Run: chmod 600 {path}",
                stacklevel=2,
            )
