"""
Mock connector for tests and local networks.

Payloads sent through a MockConnector wait in a queue until someone calls
`relay`, which is how a test plays the part of the off-chain transport. With
`auto_relay` the payload is delivered inside the send itself.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import NotAuthorized

if TYPE_CHECKING:
    from ..chain import Chain

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PendingDelivery:
    payload: bytes
    value: int


class MockConnector:
    """Connector whose transport is a manually drained queue."""

    address: str
    chain: "Chain"

    def __init__(self, target: str, counterpart_chain_id: int, auto_relay: bool = False) -> None:
        """
        Args:
            target: Local component allowed to send and receiving deliveries
            counterpart_chain_id: Chain the paired connector lives on
            auto_relay: Deliver synchronously inside `send`
        """
        self.target = target
        self.counterpart_chain_id = counterpart_chain_id
        self.auto_relay = auto_relay
        self.counterpart: MockConnector | None = None
        self.pending: deque[PendingDelivery] = deque()

    def set_counterpart(self, counterpart: "MockConnector") -> None:
        self.counterpart = counterpart

    def send(self, caller: str, payload: bytes, value: int = 0, origin: str | None = None) -> None:
        if caller != self.target:
            raise NotAuthorized(caller, "send through this connector")
        if self.counterpart is None:
            raise RuntimeError(f"Connector for chain {self.counterpart_chain_id} has no counterpart")

        # Value is locked here and minted on the counterpart at delivery
        self.chain.transfer(caller, self.address, value)
        self.pending.append(PendingDelivery(payload=bytes(payload), value=value))
        logger.debug(
            f"Queued {len(payload)} byte payload on chain {self.chain.chain_id} "
            f"for chain {self.counterpart_chain_id}"
        )

        if self.auto_relay:
            self.relay(origin or caller)

    def relay(self, relayer: str) -> int:
        """
        Deliver every queued payload to the counterpart, oldest first.

        Args:
            relayer: Account credited with the delivery

        Returns:
            Number of payloads delivered
        """
        if self.counterpart is None:
            raise RuntimeError(f"Connector for chain {self.counterpart_chain_id} has no counterpart")

        delivered = 0
        while self.pending:
            item = self.pending[0]
            self.counterpart.deliver(self.address, item.payload, item.value, relayer)
            self.pending.popleft()
            delivered += 1
        return delivered

    def deliver(self, caller: str, payload: bytes, value: int, relayer: str) -> None:
        """Receive a payload from the paired connector and hand it to the target."""
        if self.counterpart is None or caller != self.counterpart.address:
            raise NotAuthorized(caller, "deliver into this connector")

        target = self.chain.get_contract(self.target)
        with self.chain.transaction():
            self.chain.mint(self.address, value)
            self.chain.transfer(self.address, self.target, value)
            try:
                target.receive_message(self.address, payload, value, relayer)
            except Exception:
                self.chain.burn(self.target, value)
                raise
