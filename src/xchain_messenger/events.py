"""
Event records emitted by the messenger components.

Every on-chain component appends these to its chain's event log; the
off-chain relayer polls them back out the same way an RPC client would read
contract logs.
"""

from dataclasses import asdict, dataclass
from typing import Any, ClassVar

from web3 import Web3


@dataclass(frozen=True, slots=True)
class ChainEvent:
    """Base class for events; `name` is the log's event name."""

    name: ClassVar[str] = "ChainEvent"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, hex-encoding byte fields."""
        return {
            key: Web3.to_hex(value) if isinstance(value, bytes) else value
            for key, value in asdict(self).items()
        }


@dataclass(frozen=True, slots=True)
class MessageSent(ChainEvent):
    name: ClassVar[str] = "MessageSent"

    message_id: bytes
    sender: str
    to_chain_id: int
    to: str
    data: bytes


@dataclass(frozen=True, slots=True)
class MessageBundled(ChainEvent):
    name: ClassVar[str] = "MessageBundled"

    bundle_id: bytes
    tree_index: int
    message_id: bytes


@dataclass(frozen=True, slots=True)
class BundleCommitted(ChainEvent):
    name: ClassVar[str] = "BundleCommitted"

    bundle_id: bytes
    bundle_root: bytes
    bundle_fees: int
    to_chain_id: int
    commit_time: int


@dataclass(frozen=True, slots=True)
class CommitmentTransported(ChainEvent):
    name: ClassVar[str] = "CommitmentTransported"

    to_chain_id: int
    bundle_id: bytes
    commitment: bytes
    timestamp: int


@dataclass(frozen=True, slots=True)
class CommitmentRelayed(ChainEvent):
    name: ClassVar[str] = "CommitmentRelayed"

    from_chain_id: int
    to_chain_id: int
    bundle_id: bytes
    commitment: bytes
    bundle_fees: int
    relay_window_start: int
    relayer: str


@dataclass(frozen=True, slots=True)
class RelayReceiptSent(ChainEvent):
    name: ClassVar[str] = "RelayReceiptSent"

    bundle_id: bytes
    relayer: str


@dataclass(frozen=True, slots=True)
class CommitmentForwarded(ChainEvent):
    name: ClassVar[str] = "CommitmentForwarded"

    from_chain_id: int
    to_chain_id: int
    bundle_id: bytes
    commitment: bytes


@dataclass(frozen=True, slots=True)
class CommitmentProven(ChainEvent):
    name: ClassVar[str] = "CommitmentProven"

    from_chain_id: int
    bundle_id: bytes
    bundle_root: bytes
    commitment: bytes


@dataclass(frozen=True, slots=True)
class MessageExecuted(ChainEvent):
    name: ClassVar[str] = "MessageExecuted"

    from_chain_id: int
    message_id: bytes


@dataclass(frozen=True, slots=True)
class MessageReverted(ChainEvent):
    name: ClassVar[str] = "MessageReverted"

    message_id: bytes
    from_chain_id: int
    sender: str
    to: str


@dataclass(frozen=True, slots=True)
class FeesDeposited(ChainEvent):
    name: ClassVar[str] = "FeesDeposited"

    depositor: str
    amount: int


@dataclass(frozen=True, slots=True)
class RelayFeePaid(ChainEvent):
    name: ClassVar[str] = "RelayFeePaid"

    relayer: str
    amount: int


@dataclass(frozen=True, slots=True)
class RelayFeeDeferred(ChainEvent):
    name: ClassVar[str] = "RelayFeeDeferred"

    relayer: str
    amount: int


@dataclass(frozen=True, slots=True)
class ExcessSkimmed(ChainEvent):
    name: ClassVar[str] = "ExcessSkimmed"

    treasury_amount: int
    public_goods_amount: int


@dataclass(frozen=True, slots=True)
class RelayFeeClaimed(ChainEvent):
    name: ClassVar[str] = "RelayFeeClaimed"

    from_chain_id: int
    bundle_id: bytes
    relayer: str
    amount: int


@dataclass(frozen=True, slots=True)
class LogEntry:
    """An event as stored in a chain's log.

    Attributes:
        chain_id: Chain the event was emitted on
        block_number: Block the emitting transaction landed in
        log_index: Position of the entry in the chain's log
        emitter: Address of the emitting component
        event: The event record
    """

    chain_id: int
    block_number: int
    log_index: int
    emitter: str
    event: ChainEvent

    @property
    def event_name(self) -> str:
        return self.event.name

    @property
    def unique_key(self) -> tuple[int, int, int]:
        """Key for deduplicating log entries across polls."""
        return (self.chain_id, self.block_number, self.log_index)
