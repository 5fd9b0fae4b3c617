# src/ytrewards/merkle.py
from __future__ import annotations

"""Merkle commitment over (address, amount) leaves.

Encoding (verifiers must reproduce it byte for byte):

  leaf = keccak256(abi.encodePacked(address, uint256 amount))
       = keccak256(20 address bytes || 32-byte big-endian amount)
  node = keccak256(min(a, b) || max(a, b))

Leaves are sorted by hash before layering, so the root does not depend on
input order. An unpaired node at the end of a layer moves up unchanged.
Proofs list sibling hashes bottom-up; no left/right bits are needed because
pairs are sorted.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from eth_abi.packed import encode_packed
from eth_utils import decode_hex, encode_hex, keccak

from ytrewards.ledger.allocator import DistributionLeaf
from ytrewards.ledger.types import Address, normalize_address

EMPTY_ROOT = b"\x00" * 32


def leaf_hash(address: Address, amount: int) -> bytes:
    a = int(amount)
    if a < 0:
        raise ValueError(f"amount must be non-negative; got: {a}")
    return keccak(encode_packed(["address", "uint256"], [normalize_address(address), a]))


def hash_pair(a: bytes, b: bytes) -> bytes:
    if b < a:
        a, b = b, a
    return keccak(a + b)


def _next_layer(layer: List[bytes]) -> List[bytes]:
    out: List[bytes] = []
    for i in range(0, len(layer), 2):
        if i + 1 < len(layer):
            out.append(hash_pair(layer[i], layer[i + 1]))
        else:
            out.append(layer[i])
    return out


class MerkleTree:
    def __init__(self, leaves: Iterable[bytes]) -> None:
        self.leaves: List[bytes] = sorted(set(bytes(x) for x in leaves))
        self.layers: List[List[bytes]] = [self.leaves]
        while len(self.layers[-1]) > 1:
            self.layers.append(_next_layer(self.layers[-1]))
        self._index = {h: i for i, h in enumerate(self.leaves)}

    @property
    def root(self) -> bytes:
        if not self.leaves:
            return EMPTY_ROOT
        return self.layers[-1][0]

    def proof(self, leaf: bytes) -> List[bytes]:
        idx = self._index.get(bytes(leaf))
        if idx is None:
            raise KeyError(encode_hex(leaf))
        out: List[bytes] = []
        for layer in self.layers[:-1]:
            sib = idx ^ 1
            if sib < len(layer):
                out.append(layer[sib])
            idx //= 2
        return out


def process_proof(leaf: bytes, proof: Sequence[bytes]) -> bytes:
    h = bytes(leaf)
    for sib in proof:
        h = hash_pair(h, bytes(sib))
    return h


def verify_proof(root: str, address: Address, amount: int, proof: Sequence[str]) -> bool:
    """Check a hex-encoded proof against a hex-encoded root."""
    try:
        expected = decode_hex(root)
        sibs = [decode_hex(p) for p in proof]
    except (ValueError, TypeError):
        return False
    return process_proof(leaf_hash(address, amount), sibs) == expected


@dataclass(frozen=True)
class ClaimProof:
    amount: int
    proof: List[str] = field(default_factory=list)


@dataclass
class Commitment:
    root: str
    proofs: Dict[Address, ClaimProof] = field(default_factory=dict)
    tree: Optional[MerkleTree] = None

    @property
    def is_empty(self) -> bool:
        return not self.proofs


def commit_distribution(leaves: Iterable[DistributionLeaf]) -> Commitment:
    """Build the tree and per-address proofs for a set of distribution leaves."""
    items = list(leaves)
    seen: Dict[Address, int] = {}
    for leaf in items:
        addr = normalize_address(leaf.address)
        if addr in seen:
            raise ValueError(f"duplicate leaf address: {addr}")
        seen[addr] = int(leaf.amount)

    hashes = {addr: leaf_hash(addr, amt) for addr, amt in seen.items()}
    tree = MerkleTree(hashes.values())

    proofs: Dict[Address, ClaimProof] = {}
    for addr in sorted(seen.keys()):
        proofs[addr] = ClaimProof(
            amount=seen[addr],
            proof=[encode_hex(h) for h in tree.proof(hashes[addr])],
        )
    return Commitment(root=encode_hex(tree.root), proofs=proofs, tree=tree)


__all__ = [
    "ClaimProof",
    "Commitment",
    "EMPTY_ROOT",
    "MerkleTree",
    "commit_distribution",
    "hash_pair",
    "leaf_hash",
    "process_proof",
    "verify_proof",
]
