"""
Merkle tree utilities for bundle commitments.

The tree layout matches merkletreejs with its defaults: leaves are used as
given (message ids are already hashes), pairs are hashed in position order
without sorting, and an odd trailing node is promoted to the next level
unchanged. Because promoted nodes contribute no sibling, a proof can only be
folded back into a root when the total number of leaves is known.
"""

import logging
from collections.abc import Callable, Sequence

from web3 import Web3

logger = logging.getLogger(__name__)

HashPair = Callable[[bytes, bytes], bytes]

SIBLING_COUNT_MISMATCH = "Total siblings does not correctly correspond to total leaves."


class MerkleTreeError(ValueError):
    """Raised for malformed trees and proofs."""


def keccak_pair(left: bytes, right: bytes) -> bytes:
    """Hash two nodes as keccak256(left ‖ right)."""
    return bytes(Web3.keccak(left + right))


class MerkleTree:
    """
    Binary Merkle tree over an ordered list of 32-byte leaves.

    Attributes:
        leaves: Leaves in tree-index order
        layers: All levels of the tree, leaves first and root last
    """

    def __init__(self, leaves: Sequence[bytes], hash_pair: HashPair = keccak_pair) -> None:
        """
        Build the tree.

        Args:
            leaves: Ordered leaves; must not be empty
            hash_pair: Function combining a left and right node

        Raises:
            MerkleTreeError: If no leaves are given
        """
        if not leaves:
            raise MerkleTreeError("Total leaves must be greater than zero.")

        self.hash_pair = hash_pair
        self.leaves: list[bytes] = [bytes(leaf) for leaf in leaves]
        self.layers: list[list[bytes]] = self._build_layers(self.leaves)

    def _build_layers(self, leaves: list[bytes]) -> list[list[bytes]]:
        layers = [leaves]
        while len(layers[-1]) > 1:
            nodes = layers[-1]
            parents = []
            for i in range(0, len(nodes), 2):
                if i + 1 < len(nodes):
                    parents.append(self.hash_pair(nodes[i], nodes[i + 1]))
                else:
                    # Odd node carried up unchanged
                    parents.append(nodes[i])
            layers.append(parents)
        return layers

    @property
    def root(self) -> bytes:
        return self.layers[-1][0]

    def __len__(self) -> int:
        return len(self.leaves)

    def get_proof(self, index: int) -> list[bytes]:
        """
        Collect the sibling path for the leaf at `index`.

        Levels where the node is promoted contribute nothing, so the proof
        for a tree of 2^k leaves always has k siblings while other shapes
        may be shorter.

        Args:
            index: Tree index of the leaf

        Returns:
            Siblings ordered from the leaf level upwards

        Raises:
            MerkleTreeError: If the index is outside the tree
        """
        if not 0 <= index < len(self.leaves):
            raise MerkleTreeError(f"Leaf index {index} out of range for {len(self.leaves)} leaves")

        proof = []
        for layer in self.layers[:-1]:
            sibling = index ^ 1
            if sibling < len(layer):
                proof.append(layer[sibling])
            index //= 2
        return proof

    def index_of(self, leaf: bytes) -> int:
        try:
            return self.leaves.index(bytes(leaf))
        except ValueError:
            raise MerkleTreeError("Leaf not found in tree") from None


def compute_root(
    leaf: bytes,
    index: int,
    siblings: Sequence[bytes],
    total_leaves: int,
    hash_pair: HashPair = keccak_pair,
) -> bytes:
    """
    Fold a proof back into the root it commits to.

    Args:
        leaf: The leaf being proven
        index: Tree index of the leaf
        siblings: Sibling path from `MerkleTree.get_proof`
        total_leaves: Number of leaves in the tree
        hash_pair: Function combining a left and right node

    Returns:
        The computed root

    Raises:
        MerkleTreeError: If the tree size is zero, the index is out of range,
            or the sibling count does not fit the tree shape
    """
    if total_leaves <= 0:
        raise MerkleTreeError("Total leaves must be greater than zero.")
    if not 0 <= index < total_leaves:
        raise MerkleTreeError("Index must be less than total leaves.")

    node = bytes(leaf)
    used = 0
    width = total_leaves
    while width > 1:
        is_right = index % 2 == 1
        if is_right or index + 1 < width:
            if used >= len(siblings):
                raise MerkleTreeError(SIBLING_COUNT_MISMATCH)
            sibling = bytes(siblings[used])
            used += 1
            node = hash_pair(sibling, node) if is_right else hash_pair(node, sibling)
        index //= 2
        width = (width + 1) // 2

    if used != len(siblings):
        raise MerkleTreeError(SIBLING_COUNT_MISMATCH)
    return node


def verify_proof(
    leaf: bytes,
    index: int,
    siblings: Sequence[bytes],
    total_leaves: int,
    root: bytes,
    hash_pair: HashPair = keccak_pair,
) -> bool:
    """Check a proof against a known root. Malformed proofs verify as False."""
    try:
        return compute_root(leaf, index, siblings, total_leaves, hash_pair) == bytes(root)
    except MerkleTreeError as e:
        logger.debug(f"Merkle proof rejected: {e}")
        return False
