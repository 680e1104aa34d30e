"""
Merkle inclusion proofs over sha256 with sorted pair hashing.

Pairs are ordered before hashing, so a proof is just the list of sibling hashes from leaf
to root and carries no left/right flags. An odd node at the end of a level is promoted
unchanged to the next level.
"""
import hashlib
from typing import List, Sequence


def hash_pair(a: bytes, b: bytes) -> bytes:
    if a > b:
        a, b = b, a
    return hashlib.sha256(a + b).digest()


def process_proof(proof: Sequence[bytes], leaf: bytes) -> bytes:
    """Folds the proof into the leaf and returns the resulting root."""
    computed = leaf
    for sibling in proof:
        computed = hash_pair(computed, sibling)
    return computed


def verify(proof: Sequence[bytes], root: bytes, leaf: bytes) -> bool:
    return process_proof(proof, leaf) == root


def build_tree(leaves: Sequence[bytes]) -> List[List[bytes]]:
    """Returns every level of the tree, leaves first and the root level last."""
    if not leaves:
        raise ValueError("Cannot build a Merkle tree without leaves")

    levels = [list(leaves)]
    while len(levels[-1]) > 1:
        level = levels[-1]
        parents = []
        for i in range(0, len(level), 2):
            if i + 1 < len(level):
                parents.append(hash_pair(level[i], level[i + 1]))
            else:
                parents.append(level[i])
        levels.append(parents)
    return levels


def compute_root(leaves: Sequence[bytes]) -> bytes:
    return build_tree(leaves)[-1][0]


def get_proof(leaves: Sequence[bytes], leaf: bytes) -> List[bytes]:
    """Returns the sibling path proving that ``leaf`` is part of the tree over ``leaves``."""
    levels = build_tree(leaves)
    try:
        index = levels[0].index(leaf)
    except ValueError:
        raise ValueError("Leaf is not part of the tree")

    proof = []
    for level in levels[:-1]:
        sibling = index ^ 1
        if sibling < len(level):
            proof.append(level[sibling])
        index //= 2
    return proof
