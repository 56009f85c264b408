"""
Sorted-pair Merkle tree construction.

Compatible with OpenZeppelin ``MerkleProof.verify`` and ``merkletreejs``
built with ``{sort: true}``:

- every input leaf is hashed once to form a leaf node
- leaf nodes are sorted ascending before pairing, so the root does not
  depend on the order leaves were supplied in
- a parent is ``hash(min(a, b) || max(a, b))``
- an unpaired last node is promoted to the next level unchanged
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from stockcoin.core.crypto.hashing import HashFunction, keccak256


class EmptyInputError(ValueError):
    """Raised when a tree is requested for an empty leaf set."""


def hash_pair(a: bytes, b: bytes, hash_fn: HashFunction = keccak256) -> bytes:
    """Hash two sibling nodes in sorted order."""
    if a <= b:
        return hash_fn(a + b)
    return hash_fn(b + a)


def _next_level(level: Sequence[bytes], hash_fn: HashFunction) -> tuple[bytes, ...]:
    parents = [hash_pair(level[i], level[i + 1], hash_fn) for i in range(0, len(level) - 1, 2)]
    if len(level) % 2 == 1:
        parents.append(level[-1])
    return tuple(parents)


@dataclass(frozen=True)
class MerkleTree:
    """A fully built Merkle tree.

    Attributes
    ----------
    leaves:
        The raw leaf byte strings, in the order they were supplied.
    levels:
        Node hashes per level. ``levels[0]`` holds the sorted leaf nodes,
        ``levels[-1]`` holds the root alone.
    hash_fn:
        Digest used for leaves and parents.
    """

    leaves: tuple[bytes, ...]
    levels: tuple[tuple[bytes, ...], ...]
    hash_fn: HashFunction = keccak256
    _positions: dict[bytes, int] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def build(cls, leaves: Iterable[bytes], hash_fn: HashFunction = keccak256) -> MerkleTree:
        """Build a tree over ``leaves``.

        Raises
        ------
        EmptyInputError
            If ``leaves`` is empty.
        """
        raw = tuple(bytes(leaf) for leaf in leaves)
        if not raw:
            raise EmptyInputError("Cannot build a Merkle tree from an empty leaf set")

        hashed = [hash_fn(leaf) for leaf in raw]
        level: tuple[bytes, ...] = tuple(sorted(hashed))

        first_index: dict[bytes, int] = {}
        for index, node in enumerate(level):
            first_index.setdefault(node, index)
        positions: dict[bytes, int] = {}
        for leaf, node in zip(raw, hashed, strict=True):
            positions.setdefault(leaf, first_index[node])

        levels = [level]
        while len(level) > 1:
            level = _next_level(level, hash_fn)
            levels.append(level)

        return cls(leaves=raw, levels=tuple(levels), hash_fn=hash_fn, _positions=positions)

    @property
    def root(self) -> bytes:
        return self.levels[-1][0]

    @property
    def size(self) -> int:
        """Number of leaves in the tree."""
        return len(self.leaves)

    @property
    def depth(self) -> int:
        """Number of hashing levels between a leaf node and the root."""
        return len(self.levels) - 1

    def position_of(self, leaf: bytes) -> int | None:
        """Index of ``leaf``'s node in the sorted leaf level, or ``None``."""
        return self._positions.get(bytes(leaf))
