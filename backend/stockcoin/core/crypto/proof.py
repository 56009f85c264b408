"""
Inclusion proofs for sorted-pair Merkle trees.

A proof is the list of sibling hashes from the leaf level up to the root.
Because parents hash their children in sorted order, a verifier folds the
proof without needing left/right markers; the order of the list is still
fixed (leaf to root) and reproducible for a given tree and leaf.

Stored form is a compact JSON array of ``0x`` hex strings, the shape the
contract's ``bytes32[] proof`` argument is built from.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

from stockcoin.core.crypto.hashing import HashFunction, from_hex, keccak256, to_hex
from stockcoin.core.crypto.merkle import MerkleTree, hash_pair

HASH_SIZE = 32


class LeafNotFoundError(LookupError):
    """Raised when a proof is requested for bytes that are not a tree leaf."""


class ProofFormatError(ValueError):
    """Raised when a stored proof string cannot be parsed."""


def prove_leaf(tree: MerkleTree, leaf: bytes) -> list[bytes]:
    """Return the sibling path for ``leaf``.

    Parameters
    ----------
    tree:
        A tree returned by ``MerkleTree.build``.
    leaf:
        The pre-hash leaf bytes, as passed to ``build``.

    Raises
    ------
    LeafNotFoundError
        If ``leaf`` was not part of the tree's input.
    """
    index = tree.position_of(leaf)
    if index is None:
        raise LeafNotFoundError(f"Leaf {to_hex(bytes(leaf))} is not part of the tree")

    proof: list[bytes] = []
    for level in tree.levels[:-1]:
        sibling = index ^ 1
        # the last node of an odd level is carried up without a sibling
        if sibling < len(level):
            proof.append(level[sibling])
        index //= 2
    return proof


def fold_proof(
    leaf_hash: bytes,
    proof: Sequence[bytes],
    hash_fn: HashFunction = keccak256,
) -> bytes:
    """Recompute a root from a leaf node and its sibling path."""
    current = leaf_hash
    for sibling in proof:
        current = hash_pair(current, sibling, hash_fn)
    return current


def verify_proof(
    leaf: bytes,
    proof: Sequence[bytes],
    root: bytes,
    hash_fn: HashFunction = keccak256,
) -> bool:
    """Check ``leaf`` (pre-hash bytes) against ``root`` the way the contract does."""
    return fold_proof(hash_fn(leaf), proof, hash_fn) == root


def serialize_proof(proof: Sequence[bytes]) -> str:
    """Render a proof as a compact JSON array of ``0x`` hex strings."""
    return json.dumps([to_hex(bytes(node)) for node in proof], separators=(",", ":"))


def parse_proof(value: str) -> list[bytes]:
    """Parse a stored proof back into 32-byte sibling hashes.

    Entries may omit the ``0x`` prefix.

    Raises
    ------
    ProofFormatError
        If the value is not a JSON array of 32-byte hex strings.
    """
    try:
        items = json.loads(value)
    except json.JSONDecodeError as exc:
        raise ProofFormatError(f"Proof is not valid JSON: {exc}") from exc
    if not isinstance(items, list):
        raise ProofFormatError("Proof must be a JSON array")

    nodes: list[bytes] = []
    for position, item in enumerate(items):
        if not isinstance(item, str):
            raise ProofFormatError(f"Proof entry {position} is not a string")
        try:
            node = from_hex(item)
        except ValueError as exc:
            raise ProofFormatError(f"Proof entry {position}: {exc}") from exc
        if len(node) != HASH_SIZE:
            raise ProofFormatError(
                f"Proof entry {position} must be {HASH_SIZE} bytes, got {len(node)}"
            )
        nodes.append(node)
    return nodes
