"""
Connector backed by a native cross-domain messenger.

Rollups ship a messenger contract on each side of their bridge with
`sendMessage(target, message, gasLimit)` and, while delivering, report the
remote sender through `xDomainMessageSender()`. The connector trusts a
delivery only when it arrives from the local messenger and that messenger
names the counterpart connector as the remote sender.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from hexbytes import HexBytes
from web3 import Web3
from web3.types import TxReceipt

from ..errors import NotAuthorized, NotCrossChainCall
from .base import DEFAULT_GAS_LIMIT, CrossDomainMessenger

if TYPE_CHECKING:
    from ..chain import Chain
    from ..utils.contract_utility import ContractUtility

logger = logging.getLogger(__name__)


class NativeMessengerConnector:
    """Connector that sends through a CrossDomainMessenger."""

    address: str
    chain: "Chain"

    def __init__(
        self,
        target: str,
        counterpart_chain_id: int,
        messenger: CrossDomainMessenger,
        gas_limit: int = DEFAULT_GAS_LIMIT,
    ) -> None:
        """
        Args:
            target: Local component allowed to send and receiving deliveries
            counterpart_chain_id: Chain the paired connector lives on
            messenger: Native messenger on this connector's chain
            gas_limit: Gas forwarded for execution on the other side
        """
        self.target = target
        self.counterpart_chain_id = counterpart_chain_id
        self.messenger = messenger
        self.gas_limit = gas_limit
        self.counterpart: str | None = None

    def set_counterpart(self, counterpart: str) -> None:
        self.counterpart = Web3.to_checksum_address(counterpart)

    def send(self, caller: str, payload: bytes, value: int = 0, origin: str | None = None) -> None:
        if caller != self.target:
            raise NotAuthorized(caller, "send through this connector")
        if self.counterpart is None:
            raise RuntimeError(f"Connector for chain {self.counterpart_chain_id} has no counterpart")

        self.chain.transfer(caller, self.address, value)
        self.messenger.send_message(self.address, self.counterpart, bytes(payload), self.gas_limit, value)
        logger.info(
            f"Sent {len(payload)} byte payload to {self.counterpart} "
            f"on chain {self.counterpart_chain_id} via native messenger"
        )

    def on_native_message(self, caller: str, payload: bytes, value: int, relayer: str) -> None:
        """Entry point the local messenger calls when finalizing a message."""
        if caller != self.messenger.address:
            raise NotAuthorized(caller, "deliver into this connector")
        remote_sender = self.messenger.x_domain_message_sender()
        if self.counterpart is None or remote_sender != self.counterpart:
            raise NotAuthorized(remote_sender, "send to this connector from the remote domain")

        target = self.chain.get_contract(self.target)
        self.chain.transfer(self.address, self.target, value)
        try:
            target.receive_message(self.address, payload, value, relayer)
        except Exception:
            self.chain.transfer(self.target, self.address, value)
            raise


@dataclass(frozen=True, slots=True)
class SentMessage:
    sender: str
    target: str
    message: bytes
    gas_limit: int
    value: int


class InMemoryCrossDomainMessenger:
    """
    Paired messengers that model a native bridge inside one process.

    Messages sent on one side wait until `relay_pending` is called on the
    sending side. A delivery that fails is kept in `failed_messages` so it can
    be replayed, as native messengers do.
    """

    address: str
    chain: "Chain"

    def __init__(self) -> None:
        self.counterpart: InMemoryCrossDomainMessenger | None = None
        self.pending: deque[SentMessage] = deque()
        self.failed_messages: list[SentMessage] = []
        self._x_domain_sender: str | None = None

    def set_counterpart(self, counterpart: "InMemoryCrossDomainMessenger") -> None:
        self.counterpart = counterpart

    def send_message(
        self,
        caller: str,
        target: str,
        message: bytes,
        gas_limit: int,
        value: int = 0,
    ) -> None:
        self.chain.transfer(caller, self.address, value)
        self.pending.append(SentMessage(caller, target, bytes(message), gas_limit, value))

    def x_domain_message_sender(self) -> str:
        if self._x_domain_sender is None:
            raise NotCrossChainCall()
        return self._x_domain_sender

    def relay_pending(self, relayer: str) -> int:
        """
        Finalize every pending message on the counterpart chain.

        Returns:
            Number of messages delivered successfully
        """
        if self.counterpart is None:
            raise RuntimeError("Messenger has no counterpart")

        delivered = 0
        while self.pending:
            if self.counterpart.finalize(self.pending.popleft(), relayer):
                delivered += 1
        return delivered

    def replay_failed(self, relayer: str) -> int:
        """Retry deliveries that failed earlier on this side."""
        failed, self.failed_messages = self.failed_messages, []
        return sum(1 for sent in failed if self.finalize(sent, relayer))

    def finalize(self, sent: SentMessage, relayer: str) -> bool:
        target = self.chain.get_contract(sent.target)
        with self.chain.transaction():
            self.chain.mint(self.address, sent.value)
            self.chain.transfer(self.address, sent.target, sent.value)
            self._x_domain_sender = sent.sender
            try:
                target.on_native_message(self.address, sent.message, sent.value, relayer)
            except Exception as e:
                logger.warning(f"Native message to {sent.target} failed, kept for replay: {e}")
                self.chain.burn(sent.target, sent.value)
                self.failed_messages.append(sent)
                return False
            finally:
                self._x_domain_sender = None
        return True


class Web3CrossDomainMessenger:
    """CrossDomainMessenger adapter for a deployed messenger contract."""

    def __init__(self, contract_util: "ContractUtility", address: str) -> None:
        """
        Args:
            contract_util: Utility with a signing web3 instance
            address: Messenger contract address
        """
        self.contract_util = contract_util
        self.address = Web3.to_checksum_address(address)
        self.contract = contract_util.get_contract("CrossDomainMessenger", self.address)

    def send_message(
        self,
        caller: str,
        target: str,
        message: bytes,
        gas_limit: int,
        value: int = 0,
    ) -> HexBytes:
        tx_hash: HexBytes = self.contract.functions.sendMessage(
            Web3.to_checksum_address(target),
            bytes(message),
            gas_limit,
        ).transact({'value': value})

        logger.info(f"sendMessage submitted: {Web3.to_hex(tx_hash)}")
        receipt: TxReceipt = self.contract_util.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=30)
        if (status := receipt.get('status', 0)) != 1:
            raise RuntimeError(f"sendMessage failed with status={status}")
        return tx_hash

    def x_domain_message_sender(self) -> str:
        sender: Any = self.contract.functions.xDomainMessageSender().call()
        return Web3.to_checksum_address(sender)
