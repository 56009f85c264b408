"""
Digest functions used by the Merkle pipeline.

A hash function is any callable mapping bytes to a fixed-width digest.
Keccak-256 is the production choice because the on-chain verifier
recomputes leaves and parents with it; SHA-256 is kept as an alternate
so tree logic can be exercised with a different digest.
"""

from __future__ import annotations

import hashlib
from typing import Protocol

from eth_utils import keccak


class HashFunction(Protocol):
    """Capability for hashing a byte string into a digest."""

    def __call__(self, data: bytes, /) -> bytes: ...


def keccak256(data: bytes) -> bytes:
    """Keccak-256 digest (the EVM ``keccak256`` opcode, not NIST SHA3-256)."""
    return keccak(primitive=data)


def sha256(data: bytes) -> bytes:
    """SHA-256 digest."""
    return hashlib.sha256(data).digest()


def to_hex(data: bytes) -> str:
    """Render bytes as a lowercase ``0x``-prefixed hex string."""
    return "0x" + data.hex()


def from_hex(value: str) -> bytes:
    """Decode a hex string, with or without ``0x`` prefix.

    Raises
    ------
    ValueError
        If the string has odd length or contains non-hex characters.
    """
    content = value[2:] if value[:2] in ("0x", "0X") else value
    if len(content) % 2 != 0:
        raise ValueError(f"Hex string has odd length: {value!r}")
    try:
        return bytes.fromhex(content)
    except ValueError as exc:
        raise ValueError(f"Invalid hex string: {value!r}") from exc
