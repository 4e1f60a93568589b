"""Unit tests for the MessageRelayer class."""

import asyncio
from unittest.mock import patch

import pytest
from eth_account import Account

from conftest import EXIT_TIME, FEE, HUB, RELAYER, RELAYER_KEY, SENDER, SPOKE_A, SPOKE_B
from xchain_messenger.config import MonitoringConfig, RelayerConfig
from xchain_messenger.errors import InvalidRoute
from xchain_messenger.relayer import WATCHED_EVENTS, MessageRelayer


def watched_logs(deployment):
    emitters = {deployment.dispatcher.address, deployment.transporter.address}
    return [
        entry for entry in deployment.chain.get_logs()
        if entry.event_name in WATCHED_EVENTS and entry.emitter in emitters
    ]


@pytest.fixture
def relayer(network_config, network):
    """Relayer serving the shared test network."""
    config = RelayerConfig(
        network=network_config,
        monitoring=MonitoringConfig(polling_interval=1),
        private_key=RELAYER_KEY,
    )
    return MessageRelayer(config, network=network)


def dispatch_results(network, from_chain_id, to_chain_id, receiver, set_result, values):
    dispatcher = network[from_chain_id].dispatcher
    for value in values:
        dispatcher.dispatch(SENDER, to_chain_id, receiver.address, set_result(value), FEE)
    return dispatcher.commit_pending_bundle(SENDER, to_chain_id)


class TestMessageRelayer:
    """Test suite for MessageRelayer."""

    def test_init(self, relayer, network):
        """Test that the relayer wires its components to the network."""
        assert relayer.relayer_address == Account.from_key(RELAYER_KEY).address
        assert relayer.network is network
        assert relayer.proof_manager.relayer_address == relayer.relayer_address
        assert relayer.event_processor.proof_manager is relayer.proof_manager
        assert relayer.running is False

    def test_init_deploys_network(self, network_config):
        """Test that a relayer without a network deploys one from its config."""
        relayer = MessageRelayer(RelayerConfig(network=network_config, private_key=RELAYER_KEY))

        assert set(relayer.network.deployments) == {HUB, SPOKE_A, SPOKE_B}

    @pytest.mark.asyncio
    async def test_init_event_monitoring(self, relayer, network):
        """Test that every chain gets its own listener."""
        await relayer.init_event_monitoring()

        assert set(relayer.listeners) == {HUB, SPOKE_A, SPOKE_B}
        listener = relayer.listeners[SPOKE_A]
        assert listener.chain is network[SPOKE_A].chain
        assert listener.emitters == {network[SPOKE_A].dispatcher.address, network[SPOKE_A].transporter.address}

    @pytest.mark.asyncio
    async def test_spoke_to_hub_flow(self, relayer, network, hub_receiver, set_result):
        """Test that handled events relay the bundle and execute its messages."""
        bundle = dispatch_results(network, SPOKE_A, HUB, hub_receiver, set_result, (5, 6))

        for entry in watched_logs(network[SPOKE_A]):
            await relayer.handle_event(entry)

        record = network.hub.transporter.get_commitment(SPOKE_A, bundle.bundle_id)
        assert record.relayer == relayer.relayer_address
        assert relayer.relayed_bundles == 1

        for entry in watched_logs(network.hub):
            await relayer.handle_event(entry)

        assert hub_receiver.result == 6
        assert all(network.hub.executor.is_message_spent(m) for m in bundle.message_ids)
        assert relayer.proof_manager.submitted == 2

    @pytest.mark.asyncio
    async def test_spoke_to_spoke_flow(self, relayer, network, set_result):
        """Test that a spoke-to-spoke bundle is relayed through the hub."""
        receiver = network.deploy_receiver(SPOKE_B)
        bundle = dispatch_results(network, SPOKE_A, SPOKE_B, receiver, set_result, (1, 2, 3))

        for entry in watched_logs(network[SPOKE_A]):
            await relayer.handle_event(entry)
        assert network[SPOKE_B].executor.is_bundle_proven(SPOKE_A, bundle.bundle_id)

        for entry in watched_logs(network[SPOKE_B]):
            await relayer.handle_event(entry)

        assert receiver.result == 3
        assert receiver.x_domain_chain_id == SPOKE_A

    @pytest.mark.asyncio
    async def test_hub_message_executes_on_arrival(self, relayer, network, set_result):
        """Test that single-message hub bundles run when proven."""
        receiver = network.deploy_receiver(SPOKE_A)
        network.hub.dispatcher.dispatch(SENDER, SPOKE_A, receiver.address, set_result(42), FEE)

        for entry in watched_logs(network.hub):
            await relayer.handle_event(entry)
        for entry in watched_logs(network[SPOKE_A]):
            await relayer.handle_event(entry)

        assert receiver.result == 42
        assert receiver.x_domain_chain_id == HUB
        assert relayer.proof_manager.skipped == 1

    @pytest.mark.asyncio
    async def test_claims_hub_message_fee(self, relayer, network, set_result):
        """Test that the relay receipt makes hub message fees claimable by the relayer."""
        receiver = network.deploy_receiver(SPOKE_A)
        network.hub.dispatcher.dispatch(SENDER, SPOKE_A, receiver.address, set_result(8), FEE)

        for entry in watched_logs(network.hub):
            await relayer.handle_event(entry)
        for entry in watched_logs(network[SPOKE_A]):
            await relayer.handle_event(entry)
        network.advance_time(EXIT_TIME)

        assert await relayer.claim_due_fees() == FEE
        assert network.hub.chain.balance_of(relayer.relayer_address) == FEE

    @pytest.mark.asyncio
    async def test_relay_failure_is_logged(self, relayer, network, caplog):
        """Test that a failing relay is reported without raising."""
        with patch.object(network, "relay", side_effect=InvalidRoute(SPOKE_B)):
            assert await relayer.relay_bundle(SPOKE_A, SPOKE_B) == 0

        assert relayer.relayed_bundles == 0
        assert "InvalidRoute" in caplog.text

    @pytest.mark.asyncio
    async def test_claim_due_fees(self, relayer, network, hub_receiver, set_result):
        """Test that fees are claimed once the relay window has started."""
        dispatch_results(network, SPOKE_A, HUB, hub_receiver, set_result, (1, 2))
        for entry in watched_logs(network[SPOKE_A]):
            await relayer.handle_event(entry)

        assert await relayer.claim_due_fees() == 0

        network.advance_time(EXIT_TIME)
        assert await relayer.claim_due_fees() == 2 * FEE
        assert network.hub.chain.balance_of(relayer.relayer_address) == 2 * FEE
        assert await relayer.claim_due_fees() == 0
        assert relayer.claimed_fees == 2 * FEE

    @pytest.mark.asyncio
    async def test_claim_skips_other_relayers(self, relayer, network, hub_receiver, set_result):
        """Test that only commitments delivered by this relayer are claimed."""
        dispatch_results(network, SPOKE_A, HUB, hub_receiver, set_result, (1, 2))
        network.relay(SPOKE_A, HUB, RELAYER)
        network.advance_time(EXIT_TIME)

        assert await relayer.claim_due_fees() == 0

    @pytest.mark.asyncio
    async def test_run_and_stop(self, relayer, network, hub_receiver, set_result):
        """Test that the service loop relays and executes until stopped."""
        bundle = dispatch_results(network, SPOKE_A, HUB, hub_receiver, set_result, (9, 10))
        loop = asyncio.get_running_loop()
        loop.call_later(2.5, relayer.stop)

        await asyncio.wait_for(relayer.run(), timeout=10)

        assert relayer.running is False
        assert all(not listener.is_running for listener in relayer.listeners.values())
        assert network.hub.transporter.get_commitment(SPOKE_A, bundle.bundle_id) is not None
        assert hub_receiver.result == 10

    @pytest.mark.asyncio
    async def test_check_task_health(self, relayer):
        """Test that a finished critical task is reported as a failure."""
        async def boom():
            raise RuntimeError("listener crashed")

        async def idle():
            await asyncio.sleep(10)

        failed = asyncio.create_task(boom())
        status = asyncio.create_task(asyncio.sleep(0))
        healthy = asyncio.create_task(idle())
        await asyncio.sleep(0.01)

        assert await relayer._check_task_health({"status": status, "fees": healthy}) is True
        assert await relayer._check_task_health({"chain-1000": failed}) is False

        await relayer._cleanup_tasks({"fees": healthy})
        assert healthy.cancelled()

    def test_from_env_local_mode(self, monkeypatch):
        """Test that local mode generates a key when none is configured."""
        monkeypatch.delenv("PRIVATE_KEY", raising=False)

        relayer = MessageRelayer.from_env(local_mode=True)

        assert relayer.local_mode is True
        assert relayer.relayer_address.startswith("0x")

    def test_from_env_requires_key(self, monkeypatch):
        """Test that production mode needs a configured key."""
        monkeypatch.delenv("PRIVATE_KEY", raising=False)

        with pytest.raises(ValueError, match="PRIVATE_KEY"):
            MessageRelayer.from_env(local_mode=False)
