#!/usr/bin/env python3
"""Tests for the mock and native-messenger connectors."""

from unittest.mock import MagicMock

import pytest
from hexbytes import HexBytes
from web3 import Web3

from conftest import FEE, HUB, OTHER, RELAYER, SENDER, SPOKE_A, START_TIME
from xchain_messenger.connectors import InMemoryCrossDomainMessenger, MockConnector, Web3CrossDomainMessenger
from xchain_messenger.errors import NotAuthorized, NotCrossChainCall
from xchain_messenger.network import HubSpokeNetwork

TARGET = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"


def flush_spoke_bundle(network, count=2):
    dispatcher = network[SPOKE_A].dispatcher
    for i in range(count):
        dispatcher.dispatch(SENDER, HUB, TARGET, bytes([i]), FEE)
    return dispatcher.commit_pending_bundle(SENDER, HUB)


class TestMockConnector:
    """Tests for MockConnector."""

    def test_only_target_may_send(self, network):
        """Test that the connector only carries its transporter's payloads."""
        connector = network[SPOKE_A].connectors[HUB]

        with pytest.raises(NotAuthorized):
            connector.send(SENDER, b"payload")

    def test_only_counterpart_may_deliver(self, network):
        """Test that deliveries must come from the paired connector."""
        connector = network.hub.connectors[SPOKE_A]

        with pytest.raises(NotAuthorized):
            connector.deliver(SENDER, b"payload", 0, RELAYER)

    def test_queue_until_relayed(self, network):
        """Test that payloads wait for a relay and move their value."""
        flush_spoke_bundle(network)
        connector = network[SPOKE_A].connectors[HUB]

        assert len(connector.pending) == 1
        assert network[SPOKE_A].chain.balance_of(connector.address) == 2 * FEE

        assert connector.relay(RELAYER) == 1
        assert not connector.pending
        assert network.hub.chain.balance_of(network.hub.connectors[SPOKE_A].address) == 0
        assert network.fee_distributors[SPOKE_A].balance == 2 * FEE

    def test_relay_empty_queue(self, network):
        """Test that relaying nothing delivers nothing."""
        assert network[SPOKE_A].connectors[HUB].relay(RELAYER) == 0

    def test_failed_delivery_stays_queued(self, network):
        """Test that a rejected payload is kept and its value is not minted."""
        spoke_side = network[SPOKE_A].connectors[HUB]
        spoke_side.send(network[SPOKE_A].transporter.address, b"not a commitment")

        with pytest.raises(ValueError):
            spoke_side.relay(RELAYER)

        assert len(spoke_side.pending) == 1
        assert network.hub.chain.balance_of(network.hub.transporter.address) == 0

    def test_auto_relay(self, network_config):
        """Test that auto-relay delivers inside the send, crediting the origin."""
        network = HubSpokeNetwork.deploy(network_config, auto_relay=True, timestamp=START_TIME)
        network.fund(HUB, SENDER, 10**18)

        network.hub.dispatcher.dispatch(SENDER, SPOKE_A, TARGET, b"", FEE)

        (relayed,) = network[SPOKE_A].chain.get_logs(event_name="CommitmentRelayed")
        assert relayed.event.relayer == SENDER
        assert len(network[SPOKE_A].chain.get_logs(event_name="MessageExecuted")) == 1

    def test_counterpart_required(self):
        """Test that an unpaired connector refuses to relay."""
        connector = MockConnector(SENDER, HUB)

        with pytest.raises(RuntimeError, match="no counterpart"):
            connector.relay(RELAYER)

    def test_counterpart_required_for_send(self):
        """Test that an unpaired connector refuses to queue payloads."""
        connector = MockConnector(SENDER, HUB)

        with pytest.raises(RuntimeError, match="no counterpart"):
            connector.send(SENDER, b"\x01")
        assert not connector.pending


class TestNativeConnector:
    """Tests for NativeMessengerConnector over in-memory messengers."""

    def test_spoke_to_hub(self, native_network):
        """Test a full delivery through the native messengers."""
        bundle = flush_spoke_bundle(native_network)

        assert native_network.relay(SPOKE_A, HUB, RELAYER) == 1

        record = native_network.hub.transporter.get_commitment(SPOKE_A, bundle.bundle_id)
        assert record.relayer == RELAYER
        assert native_network.fee_distributors[SPOKE_A].balance == 2 * FEE
        assert native_network.hub.executor.is_bundle_proven(SPOKE_A, bundle.bundle_id)

    def test_hub_to_spoke_executes(self, native_network):
        """Test that hub messages arrive and run through the native path."""
        native_network.hub.dispatcher.dispatch(SENDER, SPOKE_A, TARGET, b"", FEE)

        native_network.relay(HUB, SPOKE_A, RELAYER)

        assert len(native_network[SPOKE_A].chain.get_logs(event_name="MessageExecuted")) == 1

    def test_direct_call_rejected(self, native_network):
        """Test that only the local messenger may deliver into the connector."""
        connector = native_network.hub.connectors[SPOKE_A]

        with pytest.raises(NotAuthorized):
            connector.on_native_message(SENDER, b"payload", 0, RELAYER)

    def test_wrong_remote_sender_kept_for_replay(self, native_network):
        """Test that an unexpected remote sender fails and can be replayed."""
        bundle = flush_spoke_bundle(native_network)
        hub_side = native_network.hub.connectors[SPOKE_A]
        spoke_side = native_network[SPOKE_A].connectors[HUB]
        hub_messenger = hub_side.messenger

        hub_side.set_counterpart(OTHER)
        assert native_network.relay(SPOKE_A, HUB, RELAYER) == 0
        assert len(hub_messenger.failed_messages) == 1
        assert native_network.hub.transporter.get_commitment(SPOKE_A, bundle.bundle_id) is None

        hub_side.set_counterpart(spoke_side.address)
        assert hub_messenger.replay_failed(RELAYER) == 1
        assert native_network.hub.transporter.get_commitment(SPOKE_A, bundle.bundle_id) is not None
        assert native_network.fee_distributors[SPOKE_A].balance == 2 * FEE

    def test_x_domain_sender_outside_delivery(self, native_network):
        """Test that the remote sender is only readable during delivery."""
        messenger: InMemoryCrossDomainMessenger = native_network.hub.connectors[SPOKE_A].messenger

        with pytest.raises(NotCrossChainCall):
            messenger.x_domain_message_sender()


class TestWeb3CrossDomainMessenger:
    """Tests for the deployed-messenger adapter."""

    MESSENGER = "0x4200000000000000000000000000000000000007"

    @pytest.fixture
    def mock_contract_util(self):
        """Create a mock ContractUtility instance."""
        mock = MagicMock()
        mock.w3 = MagicMock()
        mock.w3.eth.wait_for_transaction_receipt = MagicMock(return_value={'status': 1})
        return mock

    def test_send_message(self, mock_contract_util):
        """Test that sendMessage is transacted with the carried value."""
        tx_hash = HexBytes("0x" + "ab" * 32)
        contract = mock_contract_util.get_contract.return_value
        contract.functions.sendMessage.return_value.transact.return_value = tx_hash
        messenger = Web3CrossDomainMessenger(mock_contract_util, self.MESSENGER.lower())

        result = messenger.send_message(SENDER, TARGET.lower(), b"\x01", 1_000_000, value=5)

        assert result == tx_hash
        assert messenger.address == Web3.to_checksum_address(self.MESSENGER)
        mock_contract_util.get_contract.assert_called_once_with("CrossDomainMessenger", messenger.address)
        contract.functions.sendMessage.assert_called_once_with(TARGET, b"\x01", 1_000_000)
        contract.functions.sendMessage.return_value.transact.assert_called_once_with({'value': 5})

    def test_send_message_failed_receipt(self, mock_contract_util):
        """Test that a reverted sendMessage raises."""
        contract = mock_contract_util.get_contract.return_value
        contract.functions.sendMessage.return_value.transact.return_value = HexBytes("0x" + "ab" * 32)
        mock_contract_util.w3.eth.wait_for_transaction_receipt.return_value = {'status': 0}
        messenger = Web3CrossDomainMessenger(mock_contract_util, self.MESSENGER)

        with pytest.raises(RuntimeError, match="status=0"):
            messenger.send_message(SENDER, TARGET, b"\x01", 1_000_000)

    def test_x_domain_message_sender(self, mock_contract_util):
        """Test reading the remote sender from the contract."""
        contract = mock_contract_util.get_contract.return_value
        contract.functions.xDomainMessageSender.return_value.call.return_value = TARGET.lower()
        messenger = Web3CrossDomainMessenger(mock_contract_util, self.MESSENGER)

        assert messenger.x_domain_message_sender() == TARGET
