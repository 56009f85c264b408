"""
Airdrop leaf encoding.

A leaf is the packed triple ``(address, rewardAmount, taskId)`` laid out
exactly as Solidity's ``abi.encodePacked(address, uint256, uint256)``:

    20 bytes address || 32 bytes big-endian reward || 32 bytes big-endian task id

The airdrop contract recomputes ``keccak256(abi.encodePacked(msg.sender,
amount, taskId))`` during ``claim``; any deviation in order or padding
invalidates every proof for the task.
"""

from __future__ import annotations

from eth_abi.exceptions import EncodingError as AbiEncodingError
from eth_abi.packed import encode_packed
from eth_utils import is_checksum_address, is_hex_address, to_canonical_address

from stockcoin.core.crypto.hashing import HashFunction, keccak256

LEAF_TYPES = ("address", "uint256", "uint256")
LEAF_SIZE = 20 + 32 + 32
UINT256_MAX = 2**256 - 1


class EncodingError(ValueError):
    """Raised when a leaf component is malformed or out of range."""


def is_valid_address(value: object) -> bool:
    """True for a 20-byte hex address whose checksum holds when mixed-case."""
    if not isinstance(value, str) or not is_hex_address(value):
        return False
    body = value[2:] if value[:2] in ("0x", "0X") else value
    if body.islower() or body.isupper() or body.isdigit():
        return True
    return is_checksum_address(value)


def normalize_address(address: str | bytes) -> bytes:
    """Return the 20 canonical bytes of an account address.

    Hex strings are accepted in lowercase, uppercase or checksummed form;
    a mixed-case string with a bad checksum is rejected.
    """
    if isinstance(address, (bytes, bytearray)):
        if len(address) != 20:
            raise EncodingError(f"Address must be 20 bytes, got {len(address)}")
        return bytes(address)
    if not is_valid_address(address):
        raise EncodingError(f"Invalid account address: {address!r}")
    return to_canonical_address(address)


def _check_uint256(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise EncodingError(f"{name} out of uint256 range: {value}")
    return value


def encode_leaf(address: str | bytes, reward_amount: int, task_id: int) -> bytes:
    """Encode one airdrop entitlement as an 84-byte leaf.

    Parameters
    ----------
    address:
        Recipient account, hex string or 20 raw bytes.
    reward_amount:
        Reward in token base units (wei for 18-decimal tokens).
    task_id:
        On-chain task identifier.

    Raises
    ------
    EncodingError
        If the address is malformed or a number is outside ``uint256``.
    """
    canonical = normalize_address(address)
    values = (
        canonical,
        _check_uint256("reward_amount", reward_amount),
        _check_uint256("task_id", task_id),
    )
    try:
        return encode_packed(list(LEAF_TYPES), list(values))
    except AbiEncodingError as exc:
        raise EncodingError(str(exc)) from exc


class LeafEncoder:
    """Encodes leaves and hashes them into tree leaf nodes."""

    def __init__(self, hash_fn: HashFunction = keccak256) -> None:
        self.hash_fn = hash_fn

    def encode(self, address: str | bytes, reward_amount: int, task_id: int) -> bytes:
        return encode_leaf(address, reward_amount, task_id)

    def leaf_hash(self, address: str | bytes, reward_amount: int, task_id: int) -> bytes:
        """Hash of the encoded leaf, i.e. the value the contract recomputes."""
        return self.hash_fn(self.encode(address, reward_amount, task_id))
