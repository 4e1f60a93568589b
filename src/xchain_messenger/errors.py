"""Exception hierarchy for the cross-chain messenger.

Protocol errors are raised before any state is touched, so a caller that
catches one can assume the chain is unchanged. Failures of the destination
call during execution are not errors; they surface as MessageReverted events.
"""

from hexbytes import HexBytes
from web3 import Web3


class MessengerError(Exception):
    """Base class for all messenger protocol errors."""


class InvalidRoute(MessengerError):
    """No route is configured towards the requested chain."""

    def __init__(self, chain_id: int) -> None:
        self.chain_id = chain_id
        super().__init__(f"InvalidRoute({chain_id})")


class IncorrectFee(MessengerError):
    """The value attached to a dispatch does not match the route fee."""

    def __init__(self, expected: int, received: int) -> None:
        self.expected = expected
        self.received = received
        super().__init__(f"IncorrectFee(expected={expected}, received={received})")


class CannotMessageAddress(MessengerError):
    """Messages may not target a Connector."""

    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"CannotMessageAddress({address})")


class ProofError(MessengerError):
    """Base class for rejected execution proofs."""


class InvalidProof(ProofError):
    """The proof does not verify, or the message was already executed."""

    def __init__(self, bundle_id: bytes) -> None:
        self.bundle_id = HexBytes(bundle_id)
        super().__init__(f"InvalidProof({Web3.to_hex(self.bundle_id)})")


class BundleNotFound(ProofError):
    """The bundle is unknown or not yet proven for the origin chain."""

    def __init__(self, bundle_id: bytes) -> None:
        self.bundle_id = HexBytes(bundle_id)
        super().__init__(f"BundleNotFound({Web3.to_hex(self.bundle_id)})")


class NotAuthorized(MessengerError):
    """The caller is not allowed to perform this operation."""

    def __init__(self, caller: str, action: str) -> None:
        self.caller = caller
        self.action = action
        super().__init__(f"{caller} is not authorized to {action}")


class NotCrossChainCall(MessengerError):
    """Cross-chain context was read outside of a message execution."""

    def __init__(self) -> None:
        super().__init__("NotCrossChainCall")


class InsufficientBalance(MessengerError):
    def __init__(self, address: str, balance: int, amount: int) -> None:
        self.address = address
        self.balance = balance
        self.amount = amount
        super().__init__(f"{address} has {balance}, needs {amount}")


class TransferFailed(MessengerError):
    """The recipient rejected a value transfer."""

    def __init__(self, to: str, amount: int, reason: str = "") -> None:
        self.to = to
        self.amount = amount
        super().__init__(f"Transfer of {amount} to {to} failed{': ' + reason if reason else ''}")


class CommitmentNotFound(MessengerError):
    def __init__(self, from_chain_id: int, bundle_id: bytes) -> None:
        self.from_chain_id = from_chain_id
        self.bundle_id = HexBytes(bundle_id)
        super().__init__(
            f"No commitment for bundle {Web3.to_hex(self.bundle_id)} from chain {from_chain_id}"
        )


class RelayWindowNotElapsed(MessengerError):
    def __init__(self, relay_window_start: int, now: int) -> None:
        self.relay_window_start = relay_window_start
        self.now = now
        super().__init__(f"Relay window opens at {relay_window_start}, now {now}")


class RelayFeeAlreadyClaimed(MessengerError):
    def __init__(self, bundle_id: bytes) -> None:
        self.bundle_id = HexBytes(bundle_id)
        super().__init__(f"Relay fee for bundle {Web3.to_hex(self.bundle_id)} already claimed")
