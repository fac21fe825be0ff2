"""Tests for chain address handling."""

from __future__ import annotations

import pytest

from inboxsync.protocol import (
    ValidationError,
    is_chain_address,
    normalize_address,
    parse_chain_address,
)


class TestNormalize:
    def test_lowercases_and_strips(self):
        assert normalize_address("  0xABCdef  ") == "0xabcdef"


class TestParse:
    def test_valid(self, chain_address):
        assert parse_chain_address(chain_address.upper().replace("0X", "0x")) == chain_address

    def test_surrounding_whitespace(self, chain_address):
        assert parse_chain_address(f" {chain_address} ") == chain_address

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "0x123",
            "ab" * 21,
            "0x" + "g" * 40,
            "0x" + "a" * 41,
            "alice::youam.network",
        ],
    )
    def test_invalid(self, raw):
        with pytest.raises(ValidationError):
            parse_chain_address(raw)
        assert not is_chain_address(raw)

    def test_is_chain_address(self, chain_address):
        assert is_chain_address(chain_address)
