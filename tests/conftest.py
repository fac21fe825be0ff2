"""Shared test fixtures for inboxsync protocol tests."""

from __future__ import annotations

import pytest


@pytest.fixture()
def chain_address() -> str:
    return "0x" + "ab" * 20


@pytest.fixture()
def buffer_error() -> TypeError:
    """A TypeError carrying a detached-buffer fingerprint."""
    return TypeError("Cannot perform %TypedArray%.prototype.set on a detached ArrayBuffer")
