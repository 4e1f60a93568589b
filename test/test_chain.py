#!/usr/bin/env python3
"""Tests for the in-process chain model."""

import pytest

from xchain_messenger.chain import DEFAULT_DEPLOYER, Chain
from xchain_messenger.errors import InsufficientBalance, TransferFailed
from xchain_messenger.events import FeesDeposited, RelayFeePaid

ALICE = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
BOB = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"


class Vault:
    """Contract that records calls and can refuse value."""

    def __init__(self):
        self.deployed = False
        self.accepts = True
        self.received = []
        self.calls = []

    def on_deploy(self):
        self.deployed = True

    def receive_value(self, sender, amount):
        if not self.accepts:
            raise RuntimeError("vault closed")
        self.received.append((sender, amount))

    def handle_call(self, caller, data):
        self.calls.append((caller, data))
        return len(data)


class FaultyVault(Vault):
    """Vault whose calls change state and then fail."""

    def handle_call(self, caller, data):
        self.calls.append((caller, data))
        self.deployed = False
        self.chain.mint(self.address, 5)
        self.chain.emit(self.address, FeesDeposited(depositor=caller, amount=5))
        raise RuntimeError("call failed")


@pytest.fixture
def chain():
    return Chain(1000, timestamp=1_700_000_000)


class TestChainContracts:
    """Tests for deployment and calls."""

    def test_deploy_sets_address_and_runs_hook(self, chain):
        """Test that deployment wires the contract to the chain."""
        vault = Vault()

        address = chain.deploy(vault)

        assert address == "0x5FbDB2315678afecb367f032d93F642f64180aa3"
        assert vault.address == address
        assert vault.chain is chain
        assert vault.deployed
        assert chain.is_contract(address)
        assert chain.get_contract(address) is vault

    def test_deploy_addresses_follow_nonce(self, chain):
        """Test that consecutive deployments get distinct addresses."""
        first = chain.deploy(Vault(), DEFAULT_DEPLOYER)
        second = chain.deploy(Vault(), DEFAULT_DEPLOYER)

        assert first != second

    def test_call_contract(self, chain):
        """Test that calls reach handle_call with the caller."""
        vault = Vault()
        chain.deploy(vault)

        assert chain.call(ALICE, vault.address, b"\x01\x02") == 2
        assert vault.calls == [(ALICE, b"\x01\x02")]

    def test_failed_call_is_reverted(self, chain):
        """Test that a raising call leaves no state, value or events behind."""
        vault = FaultyVault()
        chain.deploy(vault)
        chain.mint(ALICE, 10)

        with pytest.raises(RuntimeError, match="call failed"):
            chain.call(ALICE, vault.address, b"\x01")

        assert vault.calls == []
        assert vault.deployed is True
        assert vault.chain is chain
        assert chain.balance_of(vault.address) == 0
        assert chain.balance_of(ALICE) == 10
        assert chain.get_logs() == []

    def test_call_without_contract_is_noop(self, chain):
        """Test that calling an account without code succeeds silently."""
        assert chain.call(ALICE, BOB, b"\x01") is None

    def test_chain_id_must_be_positive(self):
        """Test chain id validation."""
        with pytest.raises(ValueError, match="Chain id must be positive"):
            Chain(0)


class TestChainLedger:
    """Tests for native value accounting."""

    def test_transfer(self, chain):
        """Test a plain transfer between accounts."""
        chain.mint(ALICE, 100)

        chain.transfer(ALICE, BOB, 40)

        assert chain.balance_of(ALICE) == 60
        assert chain.balance_of(BOB) == 40

    def test_insufficient_balance(self, chain):
        """Test that overdrafts are rejected without changes."""
        chain.mint(ALICE, 10)

        with pytest.raises(InsufficientBalance):
            chain.transfer(ALICE, BOB, 11)
        assert chain.balance_of(ALICE) == 10
        assert chain.balance_of(BOB) == 0

    def test_zero_transfer_skips_hook(self, chain):
        """Test that zero-value transfers do nothing."""
        vault = Vault()
        vault.accepts = False
        chain.deploy(vault)

        chain.transfer(ALICE, vault.address, 0)

    def test_contract_hook_notified(self, chain):
        """Test that a receiving contract sees the transfer."""
        vault = Vault()
        chain.deploy(vault)
        chain.mint(ALICE, 5)

        chain.transfer(ALICE, vault.address, 5)

        assert vault.received == [(ALICE, 5)]
        assert chain.balance_of(vault.address) == 5

    def test_rejected_transfer_is_undone(self, chain):
        """Test that a refusing contract leaves balances untouched."""
        vault = Vault()
        vault.accepts = False
        chain.deploy(vault)
        chain.mint(ALICE, 5)

        with pytest.raises(TransferFailed, match="vault closed"):
            chain.transfer(ALICE, vault.address, 5)

        assert chain.balance_of(ALICE) == 5
        assert chain.balance_of(vault.address) == 0

    def test_burn(self, chain):
        """Test burning value."""
        chain.mint(ALICE, 5)
        chain.burn(ALICE, 3)

        assert chain.balance_of(ALICE) == 2
        with pytest.raises(InsufficientBalance):
            chain.burn(ALICE, 3)


class TestChainClockAndLogs:
    """Tests for blocks, time and the event log."""

    def test_advance_time_mines(self, chain):
        """Test that moving time forward produces a block."""
        chain.advance_time(60)

        assert chain.timestamp == 1_700_000_060
        assert chain.block_number == 1

    def test_time_cannot_go_backwards(self, chain):
        """Test that negative time steps are rejected."""
        with pytest.raises(ValueError, match="Cannot move time backwards"):
            chain.advance_time(-1)

    def test_transaction_opens_block(self, chain):
        """Test that each transaction lands in a new block."""
        with chain.transaction():
            first = chain.emit(ALICE, FeesDeposited(depositor=ALICE, amount=1))
        with chain.transaction():
            second = chain.emit(ALICE, FeesDeposited(depositor=ALICE, amount=2))

        assert second.block_number == first.block_number + 1
        assert (first.log_index, second.log_index) == (0, 1)

    def test_get_logs_filters(self, chain):
        """Test filtering the log by name, emitter and block range."""
        with chain.transaction():
            chain.emit(ALICE, FeesDeposited(depositor=ALICE, amount=1))
        with chain.transaction():
            chain.emit(BOB, RelayFeePaid(relayer=BOB, amount=1))
            chain.emit(ALICE, RelayFeePaid(relayer=ALICE, amount=2))

        assert len(chain.get_logs()) == 3
        assert [e.emitter for e in chain.get_logs(event_name="RelayFeePaid")] == [BOB, ALICE]
        assert len(chain.get_logs(emitter=ALICE)) == 2
        assert len(chain.get_logs(from_block=2)) == 2
        assert len(chain.get_logs(to_block=1)) == 1

    def test_log_entry_keys(self, chain):
        """Test that log entries expose name and a unique key."""
        entry = chain.emit(ALICE, FeesDeposited(depositor=ALICE, amount=1))

        assert entry.event_name == "FeesDeposited"
        assert entry.unique_key == (1000, 0, 0)
        assert entry.event.to_dict() == {"depositor": ALICE, "amount": 1}
