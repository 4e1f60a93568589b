"""
Deployment and wiring of a hub-and-spoke network.

Builds one Chain per configured chain id, deploys a Transporter, Dispatcher
and Executor on each, pairs a Connector between the hub and every spoke and
gives every spoke a fee pool on the hub.
"""

import logging
from dataclasses import dataclass, field

from .chain import DEFAULT_DEPLOYER, Chain
from .config import NetworkConfig
from .connectors import InMemoryCrossDomainMessenger, MockConnector, NativeMessengerConnector
from .dispatcher import Dispatcher
from .executor import Executor
from .fee_distributor import FeeDistributor
from .receivers import MockMessageReceiver
from .routing import resolve_hops
from .transporter import Transporter

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChainDeployment:
    """The messenger components deployed on one chain."""

    chain: Chain
    transporter: Transporter
    dispatcher: Dispatcher
    executor: Executor
    connectors: dict[int, MockConnector | NativeMessengerConnector] = field(default_factory=dict)


class HubSpokeNetwork:
    """A deployed network plus helpers to drive manual transports."""

    def __init__(self, config: NetworkConfig, deployments: dict[int, ChainDeployment]) -> None:
        self.config = config
        self.deployments = deployments
        self.fee_distributors: dict[int, FeeDistributor] = {}

    @classmethod
    def deploy(
        cls,
        config: NetworkConfig,
        connector_kind: str = "mock",
        auto_relay: bool = False,
        timestamp: int | None = None,
        deployer: str = DEFAULT_DEPLOYER,
    ) -> "HubSpokeNetwork":
        """
        Deploy every component and connect the hub to each spoke.

        Args:
            config: Topology, routes and fee settings
            connector_kind: 'mock' or 'native'
            auto_relay: Mock connectors deliver inside the send
            timestamp: Starting clock of every chain
            deployer: Account deploying the contracts

        Returns:
            The wired network
        """
        deployments = {}
        for chain_id in config.chain_ids:
            chain = Chain(chain_id, timestamp)
            transporter = Transporter(config.hub_chain_id)
            chain.deploy(transporter, deployer)
            dispatcher = Dispatcher(transporter, config.routes_from(chain_id))
            chain.deploy(dispatcher, deployer)
            transporter.set_dispatcher(dispatcher.address)
            executor = Executor(transporter)
            chain.deploy(executor, deployer)
            deployments[chain_id] = ChainDeployment(chain, transporter, dispatcher, executor)

        network = cls(config, deployments)
        hub = deployments[config.hub_chain_id]
        for chain_id in (config.hub_chain_id, *config.spoke_chain_ids):
            pool = FeeDistributor(owner=hub.transporter.address, config=config.fee_distributor)
            hub.chain.deploy(pool, deployer)
            hub.transporter.set_fee_distributor(chain_id, pool)
            network.fee_distributors[chain_id] = pool

        for spoke_id in config.spoke_chain_ids:
            match connector_kind:
                case "mock":
                    network._connect_mock(spoke_id, auto_relay, deployer)
                case "native":
                    network._connect_native(spoke_id, deployer)
                case _:
                    raise ValueError(f"Unsupported connector kind: {connector_kind}")

        logger.info(
            f"Deployed network: hub {config.hub_chain_id}, spokes "
            f"{', '.join(map(str, config.spoke_chain_ids))} ({connector_kind} connectors)"
        )
        return network

    def _connect_mock(self, spoke_id: int, auto_relay: bool, deployer: str) -> None:
        hub, spoke = self.hub, self.deployments[spoke_id]

        hub_side = MockConnector(hub.transporter.address, spoke_id, auto_relay=auto_relay)
        hub.chain.deploy(hub_side, deployer)
        spoke_side = MockConnector(spoke.transporter.address, self.config.hub_chain_id, auto_relay=auto_relay)
        spoke.chain.deploy(spoke_side, deployer)
        hub_side.set_counterpart(spoke_side)
        spoke_side.set_counterpart(hub_side)

        self._register(spoke_id, hub_side, spoke_side)

    def _connect_native(self, spoke_id: int, deployer: str) -> None:
        hub, spoke = self.hub, self.deployments[spoke_id]

        hub_messenger = InMemoryCrossDomainMessenger()
        hub.chain.deploy(hub_messenger, deployer)
        spoke_messenger = InMemoryCrossDomainMessenger()
        spoke.chain.deploy(spoke_messenger, deployer)
        hub_messenger.set_counterpart(spoke_messenger)
        spoke_messenger.set_counterpart(hub_messenger)

        hub_side = NativeMessengerConnector(hub.transporter.address, spoke_id, hub_messenger)
        hub.chain.deploy(hub_side, deployer)
        spoke_side = NativeMessengerConnector(spoke.transporter.address, self.config.hub_chain_id, spoke_messenger)
        spoke.chain.deploy(spoke_side, deployer)
        hub_side.set_counterpart(spoke_side.address)
        spoke_side.set_counterpart(hub_side.address)

        self._register(spoke_id, hub_side, spoke_side)

    def _register(self, spoke_id: int, hub_side, spoke_side) -> None:
        hub, spoke = self.hub, self.deployments[spoke_id]
        hub.transporter.set_connector(spoke_id, hub_side.address, exit_time=self.config.exit_time)
        spoke.transporter.set_connector(self.config.hub_chain_id, spoke_side.address, exit_time=self.config.exit_time)
        hub.connectors[spoke_id] = hub_side
        spoke.connectors[self.config.hub_chain_id] = spoke_side

    # Accessors

    @property
    def hub(self) -> ChainDeployment:
        return self.deployments[self.config.hub_chain_id]

    @property
    def chains(self) -> dict[int, Chain]:
        return {chain_id: d.chain for chain_id, d in self.deployments.items()}

    def __getitem__(self, chain_id: int) -> ChainDeployment:
        return self.deployments[chain_id]

    def fund(self, chain_id: int, address: str, amount: int) -> None:
        self.deployments[chain_id].chain.mint(address, amount)

    def advance_time(self, seconds: int) -> None:
        """Move every chain's clock forward."""
        for deployment in self.deployments.values():
            deployment.chain.advance_time(seconds)

    def deploy_receiver(self, chain_id: int) -> MockMessageReceiver:
        deployment = self.deployments[chain_id]
        receiver = MockMessageReceiver(deployment.executor.address)
        deployment.chain.deploy(receiver)
        return receiver

    # Manual transports

    def relay(self, from_chain_id: int, to_chain_id: int, relayer: str) -> int:
        """
        Deliver everything queued along the route from one chain to another.

        Args:
            from_chain_id: Origin chain of the route
            to_chain_id: Destination chain of the route
            relayer: Account credited with each delivery

        Returns:
            Number of payloads delivered across all hops
        """
        delivered = 0
        for hop in resolve_hops(from_chain_id, to_chain_id, self.config.hub_chain_id):
            connector = self.deployments[hop.from_chain_id].connectors[hop.to_chain_id]
            match connector:
                case MockConnector():
                    delivered += connector.relay(relayer)
                case NativeMessengerConnector(messenger=InMemoryCrossDomainMessenger() as messenger):
                    delivered += messenger.relay_pending(relayer)
                case _:
                    logger.debug(f"Connector {connector.address} delivers on its own, nothing to drive")
        return delivered
