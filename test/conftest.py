"""Shared fixtures for the messenger test suite."""

import pytest

from xchain_messenger.config import NetworkConfig
from xchain_messenger.models import Bundle, BundleProof
from xchain_messenger.network import HubSpokeNetwork
from xchain_messenger.utils.contract_utility import ContractUtility
from xchain_messenger.utils.merkle import MerkleTree

HUB = 1000
SPOKE_A = 2000
SPOKE_B = 2001

START_TIME = 1_700_000_000
FEE = 7 * 10**12
EXIT_TIME = 60

# Hardhat default accounts #1 and #2
SENDER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
RELAYER = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
OTHER = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"

RELAYER_KEY = "0x" + "11" * 32


def make_proof(bundle: Bundle, tree_index: int) -> BundleProof:
    """Build the inclusion proof of leaf `tree_index` of a committed bundle."""
    tree = MerkleTree(bundle.message_ids)
    return BundleProof(
        bundle_id=bundle.bundle_id,
        tree_index=tree_index,
        siblings=tuple(tree.get_proof(tree_index)),
        total_leaves=bundle.total_leaves,
    )


@pytest.fixture
def network_config():
    """Hub 1000 with spokes 2000 and 2001, default fees and bundle sizes."""
    return NetworkConfig.full_mesh(HUB, (SPOKE_A, SPOKE_B), exit_time=EXIT_TIME)


@pytest.fixture
def network(network_config):
    """Deployed network with mock connectors and a funded sender on every chain."""
    net = HubSpokeNetwork.deploy(network_config, timestamp=START_TIME)
    for chain_id in network_config.chain_ids:
        net.fund(chain_id, SENDER, 10**18)
    return net


@pytest.fixture
def native_network(network_config):
    """Deployed network using in-memory native messengers."""
    net = HubSpokeNetwork.deploy(network_config, connector_kind="native", timestamp=START_TIME)
    for chain_id in network_config.chain_ids:
        net.fund(chain_id, SENDER, 10**18)
    return net


@pytest.fixture
def contract_util():
    """ABI-only ContractUtility."""
    return ContractUtility()


@pytest.fixture
def set_result(contract_util):
    """Encode a MessageReceiver.setResult call."""
    def _encode(value: int) -> bytes:
        return bytes(contract_util.encode_call("MessageReceiver", "setResult", [value]))
    return _encode


@pytest.fixture
def hub_receiver(network):
    return network.deploy_receiver(HUB)
