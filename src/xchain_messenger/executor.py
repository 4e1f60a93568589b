"""
Executor: verifies messages against proven bundles and runs them once.

The Executor listens for bundles the local Transporter proves. A message is
executed by presenting its contents and an inclusion proof; the message id is
recomputed locally, so a proof only verifies for the exact message that was
dispatched. Every message is marked spent before its call starts.
"""

import logging
from typing import TYPE_CHECKING

from hexbytes import HexBytes
from web3 import Web3

from .errors import BundleNotFound, CannotMessageAddress, InvalidProof, MessengerError, NotCrossChainCall
from .events import MessageExecuted, MessageReverted
from .models import BundleProof, CommitmentRecord, Message
from .utils.encoding import MessageEncoder
from .utils.merkle import verify_proof

if TYPE_CHECKING:
    from .chain import Chain
    from .transporter import Transporter

logger = logging.getLogger(__name__)


class Executor:
    """Executes proven cross-chain messages on the destination chain."""

    address: str
    chain: "Chain"

    def __init__(self, transporter: "Transporter") -> None:
        """
        Args:
            transporter: Local Transporter whose proven commitments are trusted
        """
        self.transporter = transporter
        self._proven: dict[tuple[int, bytes], CommitmentRecord] = {}
        self._spent: set[bytes] = set()
        # (sender, from_chain_id) of every execution in progress, innermost last
        self._context: list[tuple[str, int]] = []
        transporter.add_proof_listener(self._on_commitment_proven)

    def get_chain_id(self) -> int:
        return self.chain.chain_id

    def is_bundle_proven(self, from_chain_id: int, bundle_id: bytes) -> bool:
        return (from_chain_id, bytes(bundle_id)) in self._proven

    def is_message_spent(self, message_id: bytes) -> bool:
        return bytes(message_id) in self._spent

    def get_cross_chain_sender(self) -> str:
        """Sender of the message being executed. Only valid during execution."""
        if not self._context:
            raise NotCrossChainCall()
        return self._context[-1][0]

    def get_cross_chain_chain_id(self) -> int:
        """Origin chain of the message being executed. Only valid during execution."""
        if not self._context:
            raise NotCrossChainCall()
        return self._context[-1][1]

    def _on_commitment_proven(self, record: CommitmentRecord, message: Message | None) -> None:
        self._proven[(record.from_chain_id, bytes(record.bundle_id))] = record

        # Single-message bundles carry their message and run right away
        if message is None or record.total_leaves != 1:
            return
        proof = BundleProof(bundle_id=record.bundle_id, tree_index=0, siblings=(), total_leaves=1)
        try:
            self.execute(record.relayer, message.from_chain_id, message.sender, message.to, message.data, proof)
        except MessengerError as e:
            logger.warning(
                f"Attached message of bundle {Web3.to_hex(record.bundle_id)[:10]}... "
                f"was not executed: {e}"
            )

    def execute(
        self,
        caller: str,
        from_chain_id: int,
        sender: str,
        to: str,
        data: bytes,
        proof: BundleProof,
    ) -> bool:
        """
        Verify a message against its proven bundle and call its target.

        A failing target call does not undo the execution: the message stays
        spent and a MessageReverted event is emitted instead.

        Args:
            caller: Account submitting the proof
            from_chain_id: Origin chain of the message
            sender: Account that dispatched the message on the origin
            to: Address to call on this chain
            data: Calldata for `to`
            proof: Inclusion proof of the message id in its bundle

        Returns:
            True if the target call succeeded, False if it reverted

        Raises:
            BundleNotFound: If the bundle is not proven for `from_chain_id`
            InvalidProof: If the proof does not verify, the message is spent or
                an address is malformed
            CannotMessageAddress: If `to` is a local Connector
        """
        bundle_id = bytes(proof.bundle_id)
        record = self._proven.get((from_chain_id, bundle_id))
        if record is None:
            raise BundleNotFound(bundle_id)

        try:
            sender = MessageEncoder.normalize_address(sender)
            to = MessageEncoder.normalize_address(to)
        except ValueError as e:
            # No dispatched message can carry a malformed address
            raise InvalidProof(bundle_id) from e

        message_id = MessageEncoder.get_message_id(
            bundle_id,
            proof.tree_index,
            from_chain_id,
            sender,
            self.chain.chain_id,
            to,
            data,
        )
        if bytes(message_id) in self._spent:
            raise InvalidProof(bundle_id)
        if not self._verify(message_id, proof, record):
            raise InvalidProof(bundle_id)

        if self.transporter.is_connector(to):
            raise CannotMessageAddress(to)

        with self.chain.transaction():
            self._spent.add(bytes(message_id))
            return self._call(message_id, from_chain_id, sender, to, data, caller)

    def _verify(self, message_id: HexBytes, proof: BundleProof, record: CommitmentRecord) -> bool:
        # total_leaves must equal the committed leaf count
        if proof.total_leaves != record.total_leaves:
            return False
        return verify_proof(
            message_id,
            proof.tree_index,
            proof.siblings,
            proof.total_leaves,
            record.bundle_root,
        )

    def _call(
        self,
        message_id: HexBytes,
        from_chain_id: int,
        sender: str,
        to: str,
        data: bytes,
        caller: str,
    ) -> bool:
        self._context.append((sender, from_chain_id))
        try:
            self.chain.call(self.address, to, bytes(data))
        except Exception as e:
            self.chain.emit(
                self.address,
                MessageReverted(message_id=message_id, from_chain_id=from_chain_id, sender=sender, to=to),
            )
            logger.warning(f"Message {Web3.to_hex(message_id)[:10]}... reverted in {to}: {e}")
            return False
        finally:
            self._context.pop()

        self.chain.emit(self.address, MessageExecuted(from_chain_id=from_chain_id, message_id=message_id))
        logger.info(
            f"Message {Web3.to_hex(message_id)[:10]}... from chain {from_chain_id} "
            f"executed on chain {self.chain.chain_id} (submitted by {caller})"
        )
        return True
