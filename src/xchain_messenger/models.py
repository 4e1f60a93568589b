"""
Shared data models for the cross-chain messenger.

This module contains the immutable records passed between the on-chain
components and the off-chain relayer.
"""

from dataclasses import dataclass, field
from typing import Any

from web3 import Web3


@dataclass(frozen=True, slots=True)
class Message:
    """A contract call queued on one chain for execution on another.

    Attributes:
        from_chain_id: Chain the message was dispatched on
        sender: Address that called dispatch on the origin chain
        to_chain_id: Destination chain
        to: Address called on the destination chain
        data: Opaque calldata passed to `to`
    """

    from_chain_id: int
    sender: str
    to_chain_id: int
    to: str
    data: bytes

    def __str__(self) -> str:
        return (
            f"Message({self.from_chain_id}->{self.to_chain_id}, "
            f"sender={self.sender[:8]}..., to={self.to[:8]}..., "
            f"data={len(self.data)} bytes)"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "from_chain_id": self.from_chain_id,
            "sender": self.sender,
            "to_chain_id": self.to_chain_id,
            "to": self.to,
            "data": Web3.to_hex(self.data),
        }


@dataclass(frozen=True, slots=True)
class BundledMessage:
    """A dispatched message together with its position in a bundle.

    Attributes:
        message: The dispatched message
        bundle_id: Bundle the message was appended to
        tree_index: Position of the message id among the bundle leaves
        message_id: Leaf value committed in the bundle root
    """

    message: Message
    bundle_id: bytes
    tree_index: int
    message_id: bytes

    @property
    def unique_key(self) -> tuple[int, bytes, int]:
        return (self.message.from_chain_id, bytes(self.bundle_id), self.tree_index)


@dataclass(frozen=True, slots=True)
class Route:
    """Per-destination dispatch settings on a source chain.

    Attributes:
        chain_id: Destination chain id
        message_fee: Exact native value required per message
        max_bundle_messages: Bundle size that triggers an automatic commit
    """

    chain_id: int
    message_fee: int
    max_bundle_messages: int

    def __post_init__(self) -> None:
        """Validate route settings."""
        if self.chain_id <= 0:
            raise ValueError(f"Route chain id must be positive, got {self.chain_id}")
        if self.message_fee < 0:
            raise ValueError(f"Message fee must be non-negative, got {self.message_fee}")
        if self.max_bundle_messages < 1:
            raise ValueError(
                f"Max bundle messages must be at least 1, got {self.max_bundle_messages}"
            )


@dataclass(frozen=True, slots=True)
class Bundle:
    """A committed batch of message ids.

    Attributes:
        bundle_id: Identifier fixed when the bundle was opened
        bundle_nonce: Per-route counter the id was derived from
        from_chain_id: Chain the bundle was committed on
        to_chain_id: Destination chain of every message in the bundle
        message_ids: Leaves in tree-index order
        bundle_root: Merkle root over `message_ids`
        bundle_fees: Sum of the message fees collected for the bundle
        commit_time: Timestamp of the commit on the origin chain
    """

    bundle_id: bytes
    bundle_nonce: int
    from_chain_id: int
    to_chain_id: int
    message_ids: tuple[bytes, ...]
    bundle_root: bytes
    bundle_fees: int
    commit_time: int

    @property
    def total_leaves(self) -> int:
        return len(self.message_ids)


@dataclass(frozen=True, slots=True)
class BundleProof:
    """Inclusion proof for a message inside a proven bundle.

    Attributes:
        bundle_id: Bundle holding the message
        tree_index: Position of the message id in the bundle
        siblings: Sibling path from the leaf level upwards
        total_leaves: Number of messages in the bundle
    """

    bundle_id: bytes
    tree_index: int
    siblings: tuple[bytes, ...]
    total_leaves: int


@dataclass(frozen=True, slots=True)
class CommitmentPayload:
    """What a Transporter sends through a Connector for one bundle.

    `message` is set only for single-message bundles, letting the
    destination execute the call as soon as the commitment is proven.
    """

    from_chain_id: int
    to_chain_id: int
    bundle_id: bytes
    bundle_root: bytes
    bundle_fees: int
    total_leaves: int
    commit_time: int
    message: Message | None = None


@dataclass(slots=True)
class CommitmentRecord:
    """A commitment as recorded by the receiving Transporter.

    Attributes:
        from_chain_id: Origin chain of the bundle
        to_chain_id: Final destination of the bundle
        bundle_id: Bundle identifier
        bundle_root: Merkle root of the bundle
        commitment: keccak256(abi.encode(bundle_id, bundle_root))
        bundle_fees: Fees collected for the bundle on the origin
        total_leaves: Number of messages in the bundle
        commit_time: Origin commit timestamp
        relay_window_start: commit_time plus the exit time of the hop
        relayer: Account that triggered the first delivery
        fee_claimed: Whether the relay fee has been paid out
    """

    from_chain_id: int
    to_chain_id: int
    bundle_id: bytes
    bundle_root: bytes
    commitment: bytes
    bundle_fees: int
    total_leaves: int
    commit_time: int
    relay_window_start: int
    relayer: str
    fee_claimed: bool = field(default=False)

    @property
    def unique_key(self) -> tuple[int, bytes]:
        return (self.from_chain_id, bytes(self.bundle_id))
