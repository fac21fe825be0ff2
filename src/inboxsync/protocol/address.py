"""Chain address normalisation and validation.

Chain addresses have the form ``0x`` followed by 40 hex characters.
Comparison is always done on the normalised (stripped, lowercase) form.
"""

from __future__ import annotations

import re

from inboxsync.protocol.errors import ValidationError

_CHAIN_ADDRESS_RE = re.compile(r"^0x[a-f0-9]{40}$")


def normalize_address(raw: str) -> str:
    """Lowercase and strip *raw*.  Performs no validation."""
    return raw.strip().lower()


def is_chain_address(raw: str) -> bool:
    """Return True if *raw* is a well-formed chain address."""
    return bool(_CHAIN_ADDRESS_RE.match(normalize_address(raw)))


def parse_chain_address(raw: str) -> str:
    """Normalise and validate a chain address.

    Raises:
        ValidationError: If *raw* is not ``0x`` followed by 40 hex characters.
    """
    normalized = normalize_address(raw)
    if not _CHAIN_ADDRESS_RE.match(normalized):
        raise ValidationError(
            "Invalid address format (must be 0x followed by 40 hex characters): "
            f"{raw!r}"
        )
    return normalized
