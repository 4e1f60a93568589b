"""
In-process chain model.

A Chain holds everything the messenger components need from a blockchain:
a clock, a native-value ledger, a registry of deployed contracts and an
append-only event log. Components are plain Python objects deployed onto a
chain; they receive the calling account explicitly on every state-changing
method, mirroring msg.sender.
"""

import copy
import logging
import time
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from .errors import InsufficientBalance, TransferFailed
from .events import ChainEvent, LogEntry
from .utils.encoding import MessageEncoder

logger = logging.getLogger(__name__)

DEFAULT_DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


class Chain:
    """
    A single chain with its own clock, ledger, contracts and log.

    Attributes:
        chain_id: Chain id of this chain
        timestamp: Current block timestamp in seconds
        block_number: Current block number
        logs: Every event emitted on this chain, in order
    """

    def __init__(self, chain_id: int, timestamp: int | None = None) -> None:
        if chain_id <= 0:
            raise ValueError(f"Chain id must be positive, got {chain_id}")

        self.chain_id = chain_id
        self.timestamp = int(time.time()) if timestamp is None else timestamp
        self.block_number = 0
        self.logs: list[LogEntry] = []

        self._balances: defaultdict[str, int] = defaultdict(int)
        self._contracts: dict[str, Any] = {}
        self._nonces: defaultdict[str, int] = defaultdict(int)

    def __repr__(self) -> str:
        return f"Chain(chain_id={self.chain_id}, block={self.block_number})"

    # Clock

    def mine(self) -> int:
        """Close the current block and return the new block number."""
        self.block_number += 1
        return self.block_number

    def advance_time(self, seconds: int) -> None:
        """Move the clock forward and mine a block."""
        if seconds < 0:
            raise ValueError(f"Cannot move time backwards by {seconds}s")
        self.timestamp += seconds
        self.mine()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group the effects of one top-level call into a fresh block."""
        self.mine()
        yield

    # Contracts

    def deploy(self, contract: Any, deployer: str = DEFAULT_DEPLOYER) -> str:
        """
        Register a contract at a CREATE-style address.

        The contract object gets `address` and `chain` attributes set, then
        its `on_deploy` hook runs if it has one.

        Args:
            contract: Component instance to deploy
            deployer: Deploying account; its nonce picks the address

        Returns:
            The contract's address
        """
        nonce = self._nonces[deployer]
        self._nonces[deployer] += 1
        address = MessageEncoder.contract_address(deployer, nonce)

        contract.address = address
        contract.chain = self
        self._contracts[address] = contract
        if (on_deploy := getattr(contract, "on_deploy", None)) is not None:
            on_deploy()
        logger.debug(f"Deployed {type(contract).__name__} at {address} on chain {self.chain_id}")
        return address

    def get_contract(self, address: str) -> Any | None:
        return self._contracts.get(address)

    def is_contract(self, address: str) -> bool:
        return address in self._contracts

    def call(self, caller: str, to: str, data: bytes) -> Any:
        """
        Invoke a deployed contract with raw calldata.

        Calls to addresses without a contract succeed and do nothing, the way
        a call to an externally owned account does. A call that raises is
        reverted: the callee's attributes, the ledger and the log are put back
        as they were before the call, then the exception propagates.

        Returns:
            Whatever the contract's `handle_call` returns, or None
        """
        contract = self._contracts.get(to)
        if contract is None:
            return None

        state = self._snapshot(contract)
        balances = dict(self._balances)
        log_count = len(self.logs)
        try:
            return contract.handle_call(caller, data)
        except Exception:
            contract.__dict__.clear()
            contract.__dict__.update(state)
            self._balances = defaultdict(int, balances)
            del self.logs[log_count:]
            logger.debug(f"Call to {to} on chain {self.chain_id} reverted")
            raise

    def _snapshot(self, contract: Any) -> dict[str, Any]:
        """Deep copy a contract's attributes, sharing the chain and every deployed contract."""
        memo: dict[int, Any] = {id(self): self}
        memo.update((id(deployed), deployed) for deployed in self._contracts.values())
        state = {}
        for name, value in vars(contract).items():
            try:
                state[name] = copy.deepcopy(value, memo)
            except TypeError:
                # Uncopyable handles such as web3 connections are kept as is
                state[name] = value
        return state

    # Ledger

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    def mint(self, address: str, amount: int) -> None:
        """Create native value out of thin air (faucet / bridge mint)."""
        if amount < 0:
            raise ValueError(f"Cannot mint a negative amount: {amount}")
        self._balances[address] += amount

    def burn(self, address: str, amount: int) -> None:
        balance = self._balances.get(address, 0)
        if balance < amount:
            raise InsufficientBalance(address, balance, amount)
        self._balances[address] -= amount

    def transfer(self, sender: str, to: str, amount: int) -> None:
        """
        Move native value between accounts.

        A contract recipient with a `receive_value` hook is notified after
        the balances move; if the hook raises, the move is undone.

        Raises:
            InsufficientBalance: If `sender` cannot cover `amount`
            TransferFailed: If the recipient rejects the value
        """
        if amount < 0:
            raise ValueError(f"Cannot transfer a negative amount: {amount}")
        if amount == 0:
            return

        balance = self._balances.get(sender, 0)
        if balance < amount:
            raise InsufficientBalance(sender, balance, amount)

        self._balances[sender] -= amount
        self._balances[to] += amount

        recipient = self._contracts.get(to)
        hook = getattr(recipient, "receive_value", None)
        if hook is None:
            return
        try:
            hook(sender, amount)
        except Exception as e:
            self._balances[to] -= amount
            self._balances[sender] += amount
            raise TransferFailed(to, amount, str(e)) from e

    # Events

    def emit(self, emitter: str, event: ChainEvent) -> LogEntry:
        """Append an event to the log at the current block."""
        entry = LogEntry(
            chain_id=self.chain_id,
            block_number=self.block_number,
            log_index=len(self.logs),
            emitter=emitter,
            event=event,
        )
        self.logs.append(entry)
        return entry

    def get_logs(
        self,
        event_name: str | None = None,
        emitter: str | None = None,
        from_block: int = 0,
        to_block: int | None = None,
    ) -> list[LogEntry]:
        """
        Filter the event log.

        Args:
            event_name: Only entries for this event
            emitter: Only entries emitted by this address
            from_block: First block to include
            to_block: Last block to include (defaults to the current block)

        Returns:
            Matching entries in emission order
        """
        last = self.block_number if to_block is None else to_block
        return [
            entry for entry in self.logs
            if from_block <= entry.block_number <= last
            and (event_name is None or entry.event_name == event_name)
            and (emitter is None or entry.emitter == emitter)
        ]
