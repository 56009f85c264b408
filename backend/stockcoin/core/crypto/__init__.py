"""
Cryptographic primitives for airdrop reward distribution.

Pure library modules, no I/O:
- **hashing**: Keccak-256 / SHA-256 digests and hex helpers
- **leaf**: ``abi.encodePacked(address, uint256, uint256)`` leaf encoding
- **merkle**: sorted-pair Merkle tree construction
- **proof**: inclusion proofs, serialization and verification
"""

from stockcoin.core.crypto.hashing import HashFunction, from_hex, keccak256, sha256, to_hex
from stockcoin.core.crypto.leaf import (
    LEAF_SIZE,
    EncodingError,
    LeafEncoder,
    encode_leaf,
    is_valid_address,
    normalize_address,
)
from stockcoin.core.crypto.merkle import EmptyInputError, MerkleTree, hash_pair
from stockcoin.core.crypto.proof import (
    LeafNotFoundError,
    ProofFormatError,
    fold_proof,
    parse_proof,
    prove_leaf,
    serialize_proof,
    verify_proof,
)

__all__ = [
    "HashFunction",
    "keccak256",
    "sha256",
    "to_hex",
    "from_hex",
    "LEAF_SIZE",
    "EncodingError",
    "LeafEncoder",
    "encode_leaf",
    "is_valid_address",
    "normalize_address",
    "EmptyInputError",
    "MerkleTree",
    "hash_pair",
    "LeafNotFoundError",
    "ProofFormatError",
    "prove_leaf",
    "fold_proof",
    "verify_proof",
    "serialize_proof",
    "parse_proof",
]
