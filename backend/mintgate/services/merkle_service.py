"""
Allowlist membership tree.

Canonical commitment rules (compatible with OpenZeppelin MerkleProof):
1. Leaf hashing: keccak256(address as 20 raw bytes)
2. Leaves are de-duplicated and sorted, so the root is order-independent
3. Parent hashing: keccak256(min(a, b) + max(a, b))
4. Odd node at any level is promoted unchanged
5. Empty set: zero root; single leaf: root = leaf

Trees are built lazily per item and cached against the allowlist version
(the newest upload id); an upload bumps the version, so the next request
rebuilds.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Iterable

from ..extensions import db
from ..models import AllowlistEntry, AllowlistUpload
from .abi_codec import ZERO_ROOT, AbiError, keccak256, normalize_address


def leaf_hash(address: str) -> bytes:
    return keccak256(bytes.fromhex(normalize_address(address)[2:]))


def hash_pair(a: bytes, b: bytes) -> bytes:
    return keccak256(a + b) if a <= b else keccak256(b + a)


@dataclass(frozen=True)
class MerkleTree:
    layers: tuple[tuple[bytes, ...], ...]
    index: dict

    @property
    def root(self) -> bytes | None:
        if not self.layers or not self.layers[-1]:
            return None
        return self.layers[-1][0]

    @property
    def root_hex(self) -> str:
        root = self.root
        return "0x" + root.hex() if root else ZERO_ROOT

    @property
    def size(self) -> int:
        return len(self.layers[0]) if self.layers else 0

    def proof(self, address: str) -> list[str] | None:
        """Sibling path for the address, or None when it is not a member."""
        try:
            leaf = leaf_hash(address)
        except AbiError:
            return None
        position = self.index.get(leaf)
        if position is None:
            return None
        path = []
        for layer in self.layers[:-1]:
            sibling = position ^ 1
            if sibling < len(layer):
                path.append("0x" + layer[sibling].hex())
            position //= 2
        return path


def build_tree(addresses: Iterable[str]) -> MerkleTree:
    leaves = sorted({leaf_hash(a) for a in addresses})
    if not leaves:
        return MerkleTree(layers=(), index={})
    layers = [tuple(leaves)]
    while len(layers[-1]) > 1:
        current = layers[-1]
        parents = []
        for i in range(0, len(current), 2):
            if i + 1 < len(current):
                parents.append(hash_pair(current[i], current[i + 1]))
            else:
                parents.append(current[i])
        layers.append(tuple(parents))
    return MerkleTree(layers=tuple(layers), index={leaf: i for i, leaf in enumerate(leaves)})


def verify_proof(root_hex: str, address: str, proof: list[str]) -> bool:
    try:
        computed = leaf_hash(address)
    except AbiError:
        return False
    for sibling in proof:
        computed = hash_pair(computed, bytes.fromhex(sibling[2:] if sibling.startswith("0x") else sibling))
    return "0x" + computed.hex() == root_hex.lower()


# item_id -> (allowlist version, tree)
_cache: dict[int, tuple[int, MerkleTree]] = {}
_cache_lock = threading.Lock()


def _current_version(item_id: int) -> int:
    latest = (
        db.session.query(db.func.max(AllowlistUpload.id))
        .filter(AllowlistUpload.item_id == item_id)
        .scalar()
    )
    return int(latest or 0)


def get_tree(item_id: int) -> MerkleTree:
    version = _current_version(item_id)
    with _cache_lock:
        cached = _cache.get(item_id)
        if cached and cached[0] == version:
            return cached[1]

    addresses = [
        row.address
        for row in db.session.query(AllowlistEntry.address).filter_by(item_id=item_id).all()
    ]
    tree = build_tree(addresses)
    with _cache_lock:
        _cache[item_id] = (version, tree)
    return tree


def get_proof(item_id: int, address: str) -> dict | None:
    tree = get_tree(item_id)
    proof = tree.proof(address)
    if proof is None:
        return None
    return {
        "item_id": item_id,
        "address": normalize_address(address),
        "leaf": "0x" + leaf_hash(address).hex(),
        "root": tree.root_hex,
        "proof": proof,
    }


def invalidate(item_id: int | None = None) -> None:
    with _cache_lock:
        if item_id is None:
            _cache.clear()
        else:
            _cache.pop(item_id, None)
