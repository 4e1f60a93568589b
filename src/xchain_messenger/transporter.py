"""
Transporter: moves bundle commitments between chains through Connectors.

On the origin chain the Transporter receives committed bundles from the
Dispatcher and sends them through the Connector of the first hop. On the hub
it records incoming commitments, banks their fees in the origin spoke's fee
pool and forwards spoke-to-spoke commitments. On the destination it marks the
commitment proven and notifies the Executor. A spoke acknowledges every hub
commitment with a relay receipt so the hub can pay whoever delivered it.
"""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from web3 import Web3

from .errors import (
    CommitmentNotFound,
    InvalidRoute,
    NotAuthorized,
    RelayFeeAlreadyClaimed,
    RelayWindowNotElapsed,
)
from .events import (
    CommitmentForwarded,
    CommitmentProven,
    CommitmentRelayed,
    CommitmentTransported,
    RelayFeeClaimed,
    RelayReceiptSent,
)
from .models import CommitmentPayload, CommitmentRecord, Message
from .routing import next_hop
from .utils.encoding import MessageEncoder

if TYPE_CHECKING:
    from .chain import Chain
    from .fee_distributor import FeeDistributor

logger = logging.getLogger(__name__)

ProofListener = Callable[[CommitmentRecord, Message | None], None]


class Transporter:
    """Sends, records, forwards and proves bundle commitments."""

    address: str
    chain: "Chain"

    def __init__(self, hub_chain_id: int) -> None:
        """
        Args:
            hub_chain_id: Chain id of the hub of this network
        """
        self.hub_chain_id = hub_chain_id
        self.dispatcher: str | None = None
        self.commitments: dict[tuple[int, bytes], CommitmentRecord] = {}

        self._connectors: dict[int, str] = {}
        self._exit_times: dict[int, int] = {}
        self._fee_distributors: dict[int, "FeeDistributor"] = {}
        self._latest: dict[int, CommitmentPayload] = {}
        # Hub-originated commitments awaiting a relay receipt, by bundle id
        self._outbound: dict[bytes, CommitmentPayload] = {}
        self._listeners: list[ProofListener] = []

    @property
    def is_hub(self) -> bool:
        return self.chain.chain_id == self.hub_chain_id

    # Wiring

    def set_dispatcher(self, dispatcher: str) -> None:
        self.dispatcher = Web3.to_checksum_address(dispatcher)

    def set_connector(self, chain_id: int, connector: str, exit_time: int = 0) -> None:
        """
        Register the Connector paired with `chain_id`.

        Args:
            chain_id: Chain at the other end of the connector
            connector: Local connector address
            exit_time: Delay before relays from `chain_id` earn the relay fee

        Raises:
            ValueError: If a spoke tries to connect to anything but the hub
        """
        if not self.is_hub and chain_id != self.hub_chain_id:
            raise ValueError(f"Spoke {self.chain.chain_id} can only connect to hub {self.hub_chain_id}")
        if chain_id == self.chain.chain_id:
            raise ValueError(f"Cannot connect chain {chain_id} to itself")
        if exit_time < 0:
            raise ValueError(f"Exit time must be non-negative, got {exit_time}")

        self._connectors[chain_id] = Web3.to_checksum_address(connector)
        self._exit_times[chain_id] = exit_time

    def set_fee_distributor(self, chain_id: int, fee_distributor: "FeeDistributor") -> None:
        """Register the pool that banks fees of bundles from `chain_id` (hub only)."""
        if not self.is_hub:
            raise ValueError("Fee distributors live on the hub")
        self._fee_distributors[chain_id] = fee_distributor

    def get_fee_distributor(self, chain_id: int) -> "FeeDistributor | None":
        return self._fee_distributors.get(chain_id)

    def add_proof_listener(self, listener: ProofListener) -> None:
        self._listeners.append(listener)

    def is_connector(self, address: str) -> bool:
        return address in self._connectors.values()

    def get_connector(self, chain_id: int) -> str:
        connector = self._connectors.get(chain_id)
        if connector is None:
            raise InvalidRoute(chain_id)
        return connector

    def get_exit_time(self, chain_id: int) -> int:
        return self._exit_times.get(chain_id, 0)

    def get_commitment(self, from_chain_id: int, bundle_id: bytes) -> CommitmentRecord | None:
        return self.commitments.get((from_chain_id, bytes(bundle_id)))

    # Outbound

    def transport_commitment(
        self,
        caller: str,
        payload: CommitmentPayload,
        value: int,
        origin: str | None = None,
    ) -> None:
        """
        Take a freshly committed bundle from the Dispatcher and send it.

        Bundles committed on the hub leave their fees in the hub's own pool;
        spoke bundles carry their fees to the hub.

        Raises:
            NotAuthorized: If `caller` is not the local Dispatcher
            InvalidRoute: If no Connector serves the first hop
        """
        if caller != self.dispatcher:
            raise NotAuthorized(caller, "transport commitments")
        connector = self._first_hop_connector(payload)

        self.chain.transfer(caller, self.address, value)
        commitment = MessageEncoder.get_bundle_hash(payload.bundle_id, payload.bundle_root)
        self._latest[payload.to_chain_id] = payload
        self.chain.emit(
            self.address,
            CommitmentTransported(
                to_chain_id=payload.to_chain_id,
                bundle_id=payload.bundle_id,
                commitment=commitment,
                timestamp=self.chain.timestamp,
            ),
        )

        carried = value
        if self.is_hub:
            carried = 0
            self._outbound[bytes(payload.bundle_id)] = payload
            if (pool := self._fee_distributors.get(self.chain.chain_id)) is not None:
                pool.deposit(self.address, value)

        connector.send(self.address, MessageEncoder.encode_commitment(payload), carried, origin=origin)
        logger.info(
            f"Commitment {Web3.to_hex(commitment)[:10]}... sent from chain "
            f"{self.chain.chain_id} towards chain {payload.to_chain_id}"
        )

    def relay_commitment(self, caller: str, to_chain_id: int) -> bool:
        """
        Send the latest commitment of a route through its Connector again.

        Anyone may call this, for example when a transport dropped the first
        send. The destination ignores commitments it has already recorded.

        Returns:
            False if the route never committed a bundle
        """
        payload = self._latest.get(to_chain_id)
        if payload is None:
            logger.debug(f"No commitment to relay for chain {to_chain_id}")
            return False

        connector = self._first_hop_connector(payload)
        with self.chain.transaction():
            connector.send(self.address, MessageEncoder.encode_commitment(payload), 0, origin=caller)
        logger.info(f"Re-sent latest commitment for chain {to_chain_id} on behalf of {caller}")
        return True

    def check_route(self, to_chain_id: int) -> None:
        """Raise InvalidRoute unless a Connector serves the first hop towards `to_chain_id`."""
        hop = next_hop(self.chain.chain_id, self.chain.chain_id, to_chain_id, self.hub_chain_id)
        if hop is None or hop.to_chain_id not in self._connectors:
            raise InvalidRoute(to_chain_id)

    def _first_hop_connector(self, payload: CommitmentPayload):
        hop = next_hop(self.chain.chain_id, payload.from_chain_id, payload.to_chain_id, self.hub_chain_id)
        if hop is None or hop.to_chain_id not in self._connectors:
            raise InvalidRoute(payload.to_chain_id)
        return self.chain.get_contract(self._connectors[hop.to_chain_id])

    # Inbound

    def receive_message(self, caller: str, payload: bytes, value: int, relayer: str) -> None:
        """
        Accept a commitment or relay receipt delivered by a Connector.

        The first delivery of a commitment is recorded with its relayer;
        later deliveries of the same commitment change nothing. A spoke that
        proves a hub commitment answers with a relay receipt.

        Args:
            caller: Delivering Connector; must be the one paired with the
                chain the commitment arrived from
            payload: Encoded commitment or relay receipt
            value: Fees carried with the commitment
            relayer: Account credited with the relay

        Raises:
            NotAuthorized: If `caller` is not the expected Connector
            InvalidRoute: If this chain is not on the commitment's route
            CommitmentNotFound: If a relay receipt names no hub commitment
        """
        if MessageEncoder.is_relay_receipt(payload):
            self._receive_relay_receipt(caller, payload)
            return

        data = MessageEncoder.decode_commitment(payload)
        arrived_from = data.from_chain_id if self.is_hub else self.hub_chain_id
        expected = self._connectors.get(arrived_from)
        if expected is None or caller != expected:
            raise NotAuthorized(caller, f"deliver commitments from chain {arrived_from}")

        destination = data.to_chain_id
        if destination != self.chain.chain_id and not (self.is_hub and destination in self._connectors):
            raise InvalidRoute(destination)

        key = (data.from_chain_id, bytes(data.bundle_id))
        if key in self.commitments:
            logger.debug(f"Commitment for bundle {Web3.to_hex(data.bundle_id)[:10]}... already recorded")
            return

        commitment = MessageEncoder.get_bundle_hash(data.bundle_id, data.bundle_root)
        record = CommitmentRecord(
            from_chain_id=data.from_chain_id,
            to_chain_id=destination,
            bundle_id=bytes(data.bundle_id),
            bundle_root=bytes(data.bundle_root),
            commitment=bytes(commitment),
            bundle_fees=data.bundle_fees,
            total_leaves=data.total_leaves,
            commit_time=data.commit_time,
            relay_window_start=data.commit_time + self.get_exit_time(arrived_from),
            relayer=relayer,
        )
        self.commitments[key] = record
        self.chain.emit(
            self.address,
            CommitmentRelayed(
                from_chain_id=record.from_chain_id,
                to_chain_id=destination,
                bundle_id=record.bundle_id,
                commitment=record.commitment,
                bundle_fees=record.bundle_fees,
                relay_window_start=record.relay_window_start,
                relayer=relayer,
            ),
        )
        logger.info(
            f"Commitment {Web3.to_hex(commitment)[:10]}... from chain {data.from_chain_id} "
            f"recorded on chain {self.chain.chain_id}, relayed by {relayer}"
        )

        if self.is_hub and value > 0:
            if (pool := self._fee_distributors.get(data.from_chain_id)) is not None:
                pool.deposit(self.address, value)

        if destination == self.chain.chain_id:
            self._prove(record, data.message)
            if data.from_chain_id == self.hub_chain_id:
                self._send_relay_receipt(record)
        else:
            self._forward(data, record, payload, relayer)

    def _send_relay_receipt(self, record: CommitmentRecord) -> None:
        connector = self.chain.get_contract(self._connectors[self.hub_chain_id])
        self.chain.emit(self.address, RelayReceiptSent(bundle_id=record.bundle_id, relayer=record.relayer))
        connector.send(
            self.address,
            MessageEncoder.encode_relay_receipt(record.bundle_id, record.relayer),
            0,
            origin=record.relayer,
        )
        logger.info(f"Relay receipt for bundle {Web3.to_hex(record.bundle_id)[:10]}... sent to the hub")

    def _receive_relay_receipt(self, caller: str, payload: bytes) -> None:
        """Record the relayer of a hub commitment so its fee becomes claimable on the hub."""
        if not self.is_hub:
            raise InvalidRoute(self.hub_chain_id)
        spoke_id = next((chain_id for chain_id, c in self._connectors.items() if c == caller), None)
        if spoke_id is None:
            raise NotAuthorized(caller, "deliver relay receipts")

        bundle_id, relayer = MessageEncoder.decode_relay_receipt(payload)
        sent = self._outbound.get(bytes(bundle_id))
        if sent is None or sent.to_chain_id != spoke_id:
            raise CommitmentNotFound(self.hub_chain_id, bundle_id)

        key = (self.hub_chain_id, bytes(bundle_id))
        if key in self.commitments:
            logger.debug(f"Relay receipt for bundle {Web3.to_hex(bundle_id)[:10]}... already recorded")
            return

        commitment = MessageEncoder.get_bundle_hash(sent.bundle_id, sent.bundle_root)
        record = CommitmentRecord(
            from_chain_id=self.hub_chain_id,
            to_chain_id=spoke_id,
            bundle_id=bytes(bundle_id),
            bundle_root=bytes(sent.bundle_root),
            commitment=bytes(commitment),
            bundle_fees=sent.bundle_fees,
            total_leaves=sent.total_leaves,
            commit_time=sent.commit_time,
            relay_window_start=sent.commit_time + self.get_exit_time(spoke_id),
            relayer=relayer,
        )
        self.commitments[key] = record
        self.chain.emit(
            self.address,
            CommitmentRelayed(
                from_chain_id=record.from_chain_id,
                to_chain_id=spoke_id,
                bundle_id=record.bundle_id,
                commitment=record.commitment,
                bundle_fees=record.bundle_fees,
                relay_window_start=record.relay_window_start,
                relayer=relayer,
            ),
        )
        logger.info(f"Hub commitment to chain {spoke_id} acknowledged, relayed by {relayer}")

    def _forward(
        self,
        data: CommitmentPayload,
        record: CommitmentRecord,
        payload: bytes,
        relayer: str,
    ) -> None:
        connector = self.chain.get_contract(self._connectors[data.to_chain_id])
        self.chain.emit(
            self.address,
            CommitmentForwarded(
                from_chain_id=data.from_chain_id,
                to_chain_id=data.to_chain_id,
                bundle_id=record.bundle_id,
                commitment=record.commitment,
            ),
        )
        connector.send(self.address, payload, 0, origin=relayer)
        logger.info(f"Forwarded commitment from chain {data.from_chain_id} to chain {data.to_chain_id}")

    def _prove(self, record: CommitmentRecord, message: Message | None) -> None:
        self.chain.emit(
            self.address,
            CommitmentProven(
                from_chain_id=record.from_chain_id,
                bundle_id=record.bundle_id,
                bundle_root=record.bundle_root,
                commitment=record.commitment,
            ),
        )
        logger.info(
            f"Bundle {Web3.to_hex(record.bundle_id)[:10]}... from chain {record.from_chain_id} "
            f"proven on chain {self.chain.chain_id}"
        )
        for listener in self._listeners:
            listener(record, message)

    # Relay incentives

    def claim_relay_fee(self, caller: str, from_chain_id: int, bundle_id: bytes) -> int:
        """
        Pay the relay fee of a recorded commitment to its first relayer.

        Anyone may trigger the claim once the relay window has started; the
        payout always goes to the recorded relayer and happens once.

        Returns:
            The payout amount

        Raises:
            CommitmentNotFound: If no commitment is recorded for the bundle
            RelayFeeAlreadyClaimed: If the fee was already paid
            RelayWindowNotElapsed: If the relay window has not started
            InvalidRoute: If no fee pool is registered for `from_chain_id`
        """
        record = self.get_commitment(from_chain_id, bundle_id)
        if record is None:
            raise CommitmentNotFound(from_chain_id, bundle_id)
        if record.fee_claimed:
            raise RelayFeeAlreadyClaimed(bundle_id)
        if self.chain.timestamp < record.relay_window_start:
            raise RelayWindowNotElapsed(record.relay_window_start, self.chain.timestamp)
        pool = self._fee_distributors.get(from_chain_id)
        if pool is None:
            raise InvalidRoute(from_chain_id)

        with self.chain.transaction():
            record.fee_claimed = True
            amount = pool.distribute(self.address, record.bundle_fees, record.relayer)
            self.chain.emit(
                self.address,
                RelayFeeClaimed(
                    from_chain_id=from_chain_id,
                    bundle_id=record.bundle_id,
                    relayer=record.relayer,
                    amount=amount,
                ),
            )
        logger.info(f"Relay fee of {amount} wei claimed for {record.relayer} by {caller}")
        return amount
