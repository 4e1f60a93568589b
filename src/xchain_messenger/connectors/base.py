"""
Capability interfaces shared by every transport.

A Connector is deployed on one chain and paired with a counterpart on another.
The local Transporter sends commitment payloads through it; on the far side the
counterpart delivers them into its own Transporter. Implementations satisfy the
protocols structurally; nothing inherits from them.
"""

from typing import Protocol

DEFAULT_GAS_LIMIT = 1_000_000


class CommitmentReceiver(Protocol):
    """The component a Connector delivers into (the destination Transporter)."""

    address: str

    def receive_message(self, caller: str, payload: bytes, value: int, relayer: str) -> None:
        """
        Accept an authenticated payload.

        Args:
            caller: The delivering Connector
            payload: Encoded commitment
            value: Native value carried with the payload
            relayer: Account whose action completed the delivery
        """
        ...


class Connector(Protocol):
    """A one-hop transport between a chain and its counterpart."""

    address: str
    target: str
    counterpart_chain_id: int

    def send(self, caller: str, payload: bytes, value: int = 0, origin: str | None = None) -> None:
        """
        Hand a payload to the transport.

        Args:
            caller: Must be the Connector's local target
            payload: Encoded commitment
            value: Native value moved along with the payload
            origin: Account that initiated the send, credited as relayer for
                transports that deliver immediately
        """
        ...


class CrossDomainMessenger(Protocol):
    """The native messenger API a NativeMessengerConnector drives."""

    address: str

    def send_message(
        self,
        caller: str,
        target: str,
        message: bytes,
        gas_limit: int,
        value: int = 0,
    ) -> None:
        ...

    def x_domain_message_sender(self) -> str:
        """Sender on the other domain of the message being delivered."""
        ...
