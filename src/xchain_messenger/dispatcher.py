"""
Dispatcher: queues outbound messages into per-route bundles.

Each route has one open bundle whose id is fixed from the route's bundle
nonce before the first message arrives, so message ids are final at dispatch
time. A bundle is committed when it reaches the route's size limit or when
someone flushes it.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hexbytes import HexBytes
from web3 import Web3

from .errors import CannotMessageAddress, IncorrectFee, InvalidRoute
from .events import BundleCommitted, MessageBundled, MessageSent
from .models import Bundle, CommitmentPayload, Message, Route
from .utils.encoding import MessageEncoder
from .utils.merkle import MerkleTree

if TYPE_CHECKING:
    from .chain import Chain
    from .transporter import Transporter

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PendingBundle:
    """The open bundle of a route.

    Attributes:
        bundle_id: Id the bundle will be committed under
        bundle_nonce: Route counter the id was derived from
        to_chain_id: Destination of the route
        messages: Messages in tree-index order
        message_ids: Leaves in tree-index order
        fees: Fees collected so far
    """

    bundle_id: bytes
    bundle_nonce: int
    to_chain_id: int
    messages: list[Message] = field(default_factory=list)
    message_ids: list[bytes] = field(default_factory=list)
    fees: int = 0


class Dispatcher:
    """Accepts messages on the source chain and commits them in bundles."""

    address: str
    chain: "Chain"

    def __init__(self, transporter: "Transporter", routes: Iterable[Route] = ()) -> None:
        """
        Args:
            transporter: Local Transporter receiving committed bundles
            routes: Routes this dispatcher accepts messages for
        """
        self.transporter = transporter
        self.routes: dict[int, Route] = {}
        self.bundles: dict[bytes, Bundle] = {}
        self._pending: dict[int, PendingBundle] = {}
        self._nonces: dict[int, int] = {}
        self._initial_routes = list(routes)

    def on_deploy(self) -> None:
        """Open bundles for the routes given at construction (needs the chain id)."""
        for route in self._initial_routes:
            self.set_route(route)
        self._initial_routes = []

    def set_route(self, route: Route) -> None:
        """Add or update a route. The open bundle of an existing route is kept."""
        if route.chain_id == self.chain.chain_id:
            raise ValueError(f"Cannot route chain {route.chain_id} to itself")
        self.routes[route.chain_id] = route
        if route.chain_id not in self._pending:
            self._nonces[route.chain_id] = 0
            self._open_bundle(route.chain_id)

    def get_route(self, to_chain_id: int) -> Route:
        route = self.routes.get(to_chain_id)
        if route is None:
            raise InvalidRoute(to_chain_id)
        return route

    def get_pending_bundle(self, to_chain_id: int) -> PendingBundle:
        self.get_route(to_chain_id)
        return self._pending[to_chain_id]

    def get_bundle(self, bundle_id: bytes) -> Bundle | None:
        return self.bundles.get(bytes(bundle_id))

    def dispatch(self, caller: str, to_chain_id: int, to: str, data: bytes, value: int) -> HexBytes:
        """
        Queue a message for delivery on another chain.

        Args:
            caller: Account sending the message and paying the fee
            to_chain_id: Destination chain
            to: Address to call on the destination chain
            data: Calldata for `to`
            value: Fee attached to the call; must equal the route's fee

        Returns:
            The message id

        Raises:
            InvalidRoute: If no route to `to_chain_id` is configured or no
                Connector serves its first hop
            IncorrectFee: If `value` differs from the route's message fee
            CannotMessageAddress: If `to` is one of the local Connectors
        """
        route = self.get_route(to_chain_id)
        if value != route.message_fee:
            raise IncorrectFee(route.message_fee, value)
        to = MessageEncoder.normalize_address(to)
        if self.transporter.is_connector(to):
            raise CannotMessageAddress(to)
        # A bundle that cannot be transported must never be committed
        self.transporter.check_route(to_chain_id)

        with self.chain.transaction():
            self.chain.transfer(caller, self.address, value)

            bundle = self._pending[to_chain_id]
            tree_index = len(bundle.message_ids)
            message = Message(
                from_chain_id=self.chain.chain_id,
                sender=Web3.to_checksum_address(caller),
                to_chain_id=to_chain_id,
                to=to,
                data=bytes(data),
            )
            message_id = MessageEncoder.get_message_id(
                bundle.bundle_id,
                tree_index,
                message.from_chain_id,
                message.sender,
                message.to_chain_id,
                message.to,
                message.data,
            )

            bundle.messages.append(message)
            bundle.message_ids.append(bytes(message_id))
            bundle.fees += value

            self.chain.emit(
                self.address,
                MessageSent(
                    message_id=message_id,
                    sender=message.sender,
                    to_chain_id=to_chain_id,
                    to=to,
                    data=message.data,
                ),
            )
            self.chain.emit(
                self.address,
                MessageBundled(bundle_id=bundle.bundle_id, tree_index=tree_index, message_id=message_id),
            )
            logger.debug(
                f"Message {Web3.to_hex(message_id)[:10]}... bundled at index {tree_index} "
                f"for chain {to_chain_id}"
            )

            if len(bundle.message_ids) >= route.max_bundle_messages:
                self._commit(to_chain_id, origin=caller)

        return message_id

    def commit_pending_bundle(self, caller: str, to_chain_id: int) -> Bundle | None:
        """
        Commit the open bundle of a route before it is full.

        Returns:
            The committed bundle, or None if the open bundle is empty

        Raises:
            InvalidRoute: If the route is unknown or no Connector serves it
        """
        self.get_route(to_chain_id)
        self.transporter.check_route(to_chain_id)
        if not self._pending[to_chain_id].message_ids:
            logger.debug(f"No pending messages for chain {to_chain_id}, nothing to commit")
            return None

        with self.chain.transaction():
            return self._commit(to_chain_id, origin=caller)

    def _open_bundle(self, to_chain_id: int) -> None:
        nonce = self._nonces[to_chain_id]
        bundle_id = MessageEncoder.get_bundle_id(self.chain.chain_id, to_chain_id, nonce)
        self._pending[to_chain_id] = PendingBundle(
            bundle_id=bytes(bundle_id),
            bundle_nonce=nonce,
            to_chain_id=to_chain_id,
        )

    def _commit(self, to_chain_id: int, origin: str) -> Bundle:
        pending = self._pending[to_chain_id]
        tree = MerkleTree(pending.message_ids)

        bundle = Bundle(
            bundle_id=pending.bundle_id,
            bundle_nonce=pending.bundle_nonce,
            from_chain_id=self.chain.chain_id,
            to_chain_id=to_chain_id,
            message_ids=tuple(pending.message_ids),
            bundle_root=tree.root,
            bundle_fees=pending.fees,
            commit_time=self.chain.timestamp,
        )
        self.bundles[bundle.bundle_id] = bundle

        self._nonces[to_chain_id] += 1
        self._open_bundle(to_chain_id)

        self.chain.emit(
            self.address,
            BundleCommitted(
                bundle_id=bundle.bundle_id,
                bundle_root=bundle.bundle_root,
                bundle_fees=bundle.bundle_fees,
                to_chain_id=to_chain_id,
                commit_time=bundle.commit_time,
            ),
        )
        logger.info(
            f"Bundle {Web3.to_hex(bundle.bundle_id)[:10]}... committed on chain "
            f"{self.chain.chain_id} for chain {to_chain_id}: "
            f"{bundle.total_leaves} messages, {bundle.bundle_fees} wei"
        )

        payload = CommitmentPayload(
            from_chain_id=bundle.from_chain_id,
            to_chain_id=to_chain_id,
            bundle_id=bundle.bundle_id,
            bundle_root=bundle.bundle_root,
            bundle_fees=bundle.bundle_fees,
            total_leaves=bundle.total_leaves,
            commit_time=bundle.commit_time,
            message=pending.messages[0] if bundle.total_leaves == 1 else None,
        )
        self.transporter.transport_commitment(self.address, payload, bundle.bundle_fees, origin=origin)
        return bundle
