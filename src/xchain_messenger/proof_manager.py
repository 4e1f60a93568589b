"""
Proof generation manager for the relayer.

This module builds Merkle inclusion proofs for bundled messages and submits
them to the destination chain's Executor.
"""

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from web3 import Web3

from .errors import ProofError
from .models import BundledMessage, BundleProof
from .utils.merkle import MerkleTree

if TYPE_CHECKING:
    from .network import HubSpokeNetwork

logger = logging.getLogger(__name__)


class ProofManager:
    """Handles proof generation and submission for bundled messages."""

    def __init__(self, network: "HubSpokeNetwork", relayer_address: str):
        """
        Initialize the ProofManager.

        Args:
            network: Network whose Executors receive the proofs
            relayer_address: Account submitting the proofs
        """
        self.network = network
        self.relayer_address = Web3.to_checksum_address(relayer_address)
        self.submitted = 0
        self.skipped = 0

    def generate_proof(self, bundled: BundledMessage, bundle_message_ids: Sequence[bytes]) -> BundleProof:
        """
        Build the inclusion proof of a message in its bundle.

        Args:
            bundled: The message and its position
            bundle_message_ids: Every leaf of the bundle in tree order

        Returns:
            Proof ready for Executor.execute

        Raises:
            ValueError: If the leaves do not hold the message at its index
        """
        if not 0 <= bundled.tree_index < len(bundle_message_ids):
            raise ValueError(
                f"Tree index {bundled.tree_index} outside bundle of {len(bundle_message_ids)} messages"
            )
        if bytes(bundle_message_ids[bundled.tree_index]) != bytes(bundled.message_id):
            raise ValueError(
                f"Bundle leaf {bundled.tree_index} is not message {Web3.to_hex(bundled.message_id)}"
            )

        tree = MerkleTree(bundle_message_ids)
        siblings = tree.get_proof(bundled.tree_index)
        logger.debug(
            f"Generated proof for message {Web3.to_hex(bundled.message_id)[:10]}... "
            f"with {len(siblings)} siblings"
        )
        return BundleProof(
            bundle_id=bundled.bundle_id,
            tree_index=bundled.tree_index,
            siblings=tuple(siblings),
            total_leaves=len(bundle_message_ids),
        )

    async def submit_proof(self, bundled: BundledMessage, proof: BundleProof) -> bool:
        """
        Submit a proof to the destination Executor.

        A message another relayer executed first is not an error here.

        Returns:
            True if this call executed the message (even if its target
            reverted), False if it had already been executed
        """
        message = bundled.message
        executor = self.network[message.to_chain_id].executor

        if executor.is_message_spent(bundled.message_id):
            logger.info(f"Message {Web3.to_hex(bundled.message_id)[:10]}... already executed, skipping")
            self.skipped += 1
            return False

        try:
            success = executor.execute(
                self.relayer_address,
                message.from_chain_id,
                message.sender,
                message.to,
                message.data,
                proof,
            )
        except ProofError as e:
            logger.warning(f"Proof for message {Web3.to_hex(bundled.message_id)[:10]}... rejected: {e}")
            self.skipped += 1
            return False

        self.submitted += 1
        if success:
            logger.info(f"Message {Web3.to_hex(bundled.message_id)[:10]}... executed on chain {message.to_chain_id}")
        else:
            logger.warning(f"Message {Web3.to_hex(bundled.message_id)[:10]}... reverted on chain {message.to_chain_id}")
        return True

    async def process_message(self, bundled: BundledMessage, bundle_message_ids: Sequence[bytes]) -> bool:
        """
        Generate and submit the proof for one message.

        Args:
            bundled: The message and its position
            bundle_message_ids: Every leaf of the bundle in tree order

        Returns:
            Whether this relayer executed the message
        """
        proof = self.generate_proof(bundled, bundle_message_ids)
        return await self.submit_proof(bundled, proof)
