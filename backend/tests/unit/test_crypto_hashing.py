"""Tests for digest functions and hex helpers."""

from __future__ import annotations

import pytest

from stockcoin.core.crypto.hashing import from_hex, keccak256, sha256, to_hex


class TestDigests:
    def test_keccak256_empty_input(self) -> None:
        assert keccak256(b"").hex() == (
            "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
        )

    def test_sha256_empty_input(self) -> None:
        assert sha256(b"").hex() == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_keccak_is_not_nist_sha3(self) -> None:
        import hashlib

        assert keccak256(b"abc") != hashlib.sha3_256(b"abc").digest()

    def test_digest_width(self) -> None:
        assert len(keccak256(b"x" * 1000)) == 32
        assert len(sha256(b"x" * 1000)) == 32


class TestHex:
    def test_to_hex_is_lowercase_and_prefixed(self) -> None:
        assert to_hex(b"\xab\xcd") == "0xabcd"

    @pytest.mark.parametrize("value", ["0xabcd", "0XABCD", "abcd", "ABCD"])
    def test_from_hex_accepts_prefix_and_case(self, value: str) -> None:
        assert from_hex(value) == b"\xab\xcd"

    def test_from_hex_empty(self) -> None:
        assert from_hex("0x") == b""

    def test_from_hex_odd_length(self) -> None:
        with pytest.raises(ValueError, match="odd length"):
            from_hex("0xabc")

    def test_from_hex_non_hex(self) -> None:
        with pytest.raises(ValueError, match="Invalid hex"):
            from_hex("0xzz")
