#!/usr/bin/env python3
"""Configuration management for the cross-chain messenger.

This module provides type-safe configuration dataclasses with validation for
the hub-and-spoke network and the relayer service. Configuration is loaded
from environment variables with sensible defaults where appropriate.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import ClassVar

from eth_account import Account
from web3 import Web3

from .models import Route

# Get logger for this module
logger = logging.getLogger(__name__)

ONE_ETHER = 10**18
BPS_DENOMINATOR = 10_000

DEFAULT_HUB_CHAIN_ID = 1000
DEFAULT_SPOKE_CHAIN_IDS = (2000, 2001)
DEFAULT_MESSAGE_FEE = 7 * 10**12  # 0.000007 ether
DEFAULT_MAX_BUNDLE_MESSAGES = 32
DEFAULT_EXIT_TIME = 60  # seconds
DEFAULT_TREASURY = "0x1111000000000000000000000000000000001111"
DEFAULT_PUBLIC_GOODS = "0x2222000000000000000000000000000000002222"


def _checksum(value: str, label: str) -> str:
    if not value:
        raise ValueError(f"{label} is required")
    if not Web3.is_address(value):
        raise ValueError(f"Invalid {label}: {value}")
    return Web3.to_checksum_address(value)


@dataclass(frozen=True, slots=True)
class RouteConfig:
    """A configured route between two chains.

    Attributes:
        from_chain_id: Chain whose Dispatcher owns the route
        to_chain_id: Destination chain
        message_fee: Exact fee per message in wei
        max_bundle_messages: Bundle size that triggers a commit
    """

    from_chain_id: int
    to_chain_id: int
    message_fee: int = DEFAULT_MESSAGE_FEE
    max_bundle_messages: int = DEFAULT_MAX_BUNDLE_MESSAGES

    def __post_init__(self) -> None:
        """Validate route configuration."""
        if self.from_chain_id == self.to_chain_id:
            raise ValueError(f"Route cannot loop back to chain {self.from_chain_id}")
        # Route validates the remaining fields
        self.to_route()

    def to_route(self) -> Route:
        return Route(
            chain_id=self.to_chain_id,
            message_fee=self.message_fee,
            max_bundle_messages=self.max_bundle_messages,
        )


@dataclass(frozen=True, slots=True)
class FeeDistributorConfig:
    """Configuration for the hub-side relayer fee pools.

    Attributes:
        treasury: Receives the treasury share of skimmed excess
        public_goods: Receives the public goods share of skimmed excess
        min_public_goods_bps: Minimum public goods share of the excess
        target_pool_size: Balance kept in the pool before skimming
        absolute_max_fee: Hard cap on a single relayer payout
        max_fee_bps: Payout cap relative to the bundle fees (at most 100%)
    """

    treasury: str = DEFAULT_TREASURY
    public_goods: str = DEFAULT_PUBLIC_GOODS
    min_public_goods_bps: int = 1_000  # 10%
    target_pool_size: int = ONE_ETHER // 10
    absolute_max_fee: int = ONE_ETHER // 20
    max_fee_bps: int = 10_000  # 100%

    def __post_init__(self) -> None:
        """Validate fee distributor configuration."""
        object.__setattr__(self, 'treasury', _checksum(self.treasury, "treasury address"))
        object.__setattr__(self, 'public_goods', _checksum(self.public_goods, "public goods address"))

        if not 0 <= self.min_public_goods_bps <= BPS_DENOMINATOR:
            raise ValueError(
                f"Min public goods bps must be between 0 and {BPS_DENOMINATOR}, "
                f"got {self.min_public_goods_bps}"
            )
        if self.target_pool_size < 0:
            raise ValueError(f"Target pool size must be non-negative, got {self.target_pool_size}")
        if self.absolute_max_fee < 0:
            raise ValueError(f"Absolute max fee must be non-negative, got {self.absolute_max_fee}")
        if not 0 <= self.max_fee_bps <= BPS_DENOMINATOR:
            raise ValueError(
                f"Max fee bps must be between 0 and {BPS_DENOMINATOR}, got {self.max_fee_bps}"
            )


@dataclass(frozen=True, slots=True)
class NetworkConfig:
    """Topology and protocol parameters of a hub-and-spoke network.

    Attributes:
        hub_chain_id: The hub chain
        spoke_chain_ids: Chains connected to the hub
        routes: Dispatch routes; each (from, to) pair at most once
        exit_time: Seconds between commit and the start of the relay window
        fee_distributor: Settings for every spoke's fee pool on the hub
    """

    hub_chain_id: int
    spoke_chain_ids: tuple[int, ...]
    routes: tuple[RouteConfig, ...]
    exit_time: int = DEFAULT_EXIT_TIME
    fee_distributor: FeeDistributorConfig = field(default_factory=FeeDistributorConfig)

    def __post_init__(self) -> None:
        """Validate network configuration."""
        if self.hub_chain_id <= 0:
            raise ValueError(f"Hub chain id must be positive, got {self.hub_chain_id}")
        if not self.spoke_chain_ids:
            raise ValueError("At least one spoke chain is required (SPOKE_CHAIN_IDS)")
        if len(set(self.spoke_chain_ids)) != len(self.spoke_chain_ids):
            raise ValueError(f"Duplicate spoke chain ids: {self.spoke_chain_ids}")
        if self.hub_chain_id in self.spoke_chain_ids:
            raise ValueError(f"Hub chain {self.hub_chain_id} cannot also be a spoke")
        if self.exit_time < 0:
            raise ValueError(f"Exit time must be non-negative, got {self.exit_time}")

        chain_ids = self.chain_ids
        seen: set[tuple[int, int]] = set()
        for route in self.routes:
            key = (route.from_chain_id, route.to_chain_id)
            if key in seen:
                raise ValueError(f"Duplicate route {key[0]} -> {key[1]}")
            if key[0] not in chain_ids or key[1] not in chain_ids:
                raise ValueError(f"Route {key[0]} -> {key[1]} references an unknown chain")
            seen.add(key)

    @property
    def chain_ids(self) -> tuple[int, ...]:
        return (self.hub_chain_id, *self.spoke_chain_ids)

    def routes_from(self, chain_id: int) -> list[Route]:
        return [r.to_route() for r in self.routes if r.from_chain_id == chain_id]

    @classmethod
    def full_mesh(
        cls,
        hub_chain_id: int,
        spoke_chain_ids: tuple[int, ...],
        message_fee: int = DEFAULT_MESSAGE_FEE,
        max_bundle_messages: int = DEFAULT_MAX_BUNDLE_MESSAGES,
        hub_max_bundle_messages: int = 1,
        exit_time: int = DEFAULT_EXIT_TIME,
        fee_distributor: FeeDistributorConfig | None = None,
    ) -> "NetworkConfig":
        """Build a network with a route between every ordered pair of chains.

        Routes leaving the hub use `hub_max_bundle_messages`, so by default a
        hub-originated message is delivered as soon as it is dispatched.
        """
        chain_ids = (hub_chain_id, *spoke_chain_ids)
        routes = tuple(
            RouteConfig(
                from_chain_id=src,
                to_chain_id=dst,
                message_fee=message_fee,
                max_bundle_messages=hub_max_bundle_messages if src == hub_chain_id else max_bundle_messages,
            )
            for src in chain_ids
            for dst in chain_ids
            if src != dst
        )
        return cls(
            hub_chain_id=hub_chain_id,
            spoke_chain_ids=tuple(spoke_chain_ids),
            routes=routes,
            exit_time=exit_time,
            fee_distributor=fee_distributor or FeeDistributorConfig(),
        )

    @classmethod
    def from_env(cls) -> "NetworkConfig":
        """Load network configuration from environment variables.

        Raises:
            ValueError: If a variable is malformed or the topology is invalid
        """
        hub_chain_id = int(os.environ.get("HUB_CHAIN_ID", str(DEFAULT_HUB_CHAIN_ID)))

        spoke_env = os.environ.get("SPOKE_CHAIN_IDS", ",".join(map(str, DEFAULT_SPOKE_CHAIN_IDS)))
        try:
            spoke_chain_ids = tuple(int(part) for part in spoke_env.split(",") if part.strip())
        except ValueError:
            raise ValueError(
                f"SPOKE_CHAIN_IDS must be a comma-separated list of integers, got {spoke_env!r}"
            ) from None

        fee_distributor = FeeDistributorConfig(
            treasury=os.environ.get("TREASURY_ADDRESS", DEFAULT_TREASURY),
            public_goods=os.environ.get("PUBLIC_GOODS_ADDRESS", DEFAULT_PUBLIC_GOODS),
            min_public_goods_bps=int(os.environ.get("MIN_PUBLIC_GOODS_BPS", "1000")),
            target_pool_size=int(os.environ.get("TARGET_POOL_SIZE", str(ONE_ETHER // 10))),
            absolute_max_fee=int(os.environ.get("ABSOLUTE_MAX_FEE", str(ONE_ETHER // 20))),
            max_fee_bps=int(os.environ.get("MAX_FEE_BPS", "10000")),
        )

        return cls.full_mesh(
            hub_chain_id=hub_chain_id,
            spoke_chain_ids=spoke_chain_ids,
            message_fee=int(os.environ.get("MESSAGE_FEE", str(DEFAULT_MESSAGE_FEE))),
            max_bundle_messages=int(
                os.environ.get("MAX_BUNDLE_MESSAGES", str(DEFAULT_MAX_BUNDLE_MESSAGES))
            ),
            hub_max_bundle_messages=int(os.environ.get("HUB_MAX_BUNDLE_MESSAGES", "1")),
            exit_time=int(os.environ.get("EXIT_TIME", str(DEFAULT_EXIT_TIME))),
            fee_distributor=fee_distributor,
        )


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Configuration for event monitoring and processing."""
    # Sensible defaults for an in-process network
    polling_interval: int = 2  # seconds between event polls
    lookback_blocks: int = 100  # blocks to look back on startup
    process_batch_size: int = 10  # max commitments relayed per poll
    status_interval: int = 30  # seconds between status log lines

    def __post_init__(self) -> None:
        """Validate monitoring configuration."""
        if self.polling_interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {self.polling_interval}")
        if self.polling_interval > 300:
            raise ValueError(f"Polling interval too long (max 300s), got {self.polling_interval}")

        if self.lookback_blocks <= 0:
            raise ValueError(f"Lookback blocks must be positive, got {self.lookback_blocks}")
        if self.lookback_blocks > 10_000:
            raise ValueError(f"Lookback blocks too high (max 10000), got {self.lookback_blocks}")

        if self.process_batch_size <= 0:
            raise ValueError(f"Batch size must be positive, got {self.process_batch_size}")

        if self.status_interval <= 0:
            raise ValueError(f"Status interval must be positive, got {self.status_interval}")


@dataclass(frozen=True, slots=True)
class RelayerConfig:
    """Main configuration for the relayer service.

    Attributes:
        network: Network the relayer serves
        monitoring: Configuration for monitoring and event processing
        private_key: Key identifying the relayer account
        local_mode: Whether running in local mode (for testing)
    """

    network: NetworkConfig
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    private_key: str | None = None
    connector_kind: str = 'mock'
    local_mode: bool = False

    # Supported transports for the in-process network
    SUPPORTED_CONNECTORS: ClassVar[set[str]] = {'mock', 'native'}

    def __post_init__(self) -> None:
        """Validate relayer configuration."""
        if self.connector_kind not in self.SUPPORTED_CONNECTORS:
            raise ValueError(
                f"Unsupported connector: {self.connector_kind}. "
                f"Supported connectors: {', '.join(sorted(self.SUPPORTED_CONNECTORS))}"
            )

        if not self.private_key:
            raise ValueError("PRIVATE_KEY environment variable is required")

        # Basic private key validation (should be 64 hex chars, optionally with 0x prefix)
        key = self.private_key
        if key.startswith('0x'):
            key = key[2:]

        if len(key) != 64:
            raise ValueError(
                f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
            )

        try:
            int(key, 16)
        except ValueError:
            raise ValueError(
                "Invalid private key format. Must be hexadecimal"
            ) from None

    @property
    def relayer_address(self) -> str:
        return Account.from_key(self.private_key).address

    @classmethod
    def from_env(cls, local_mode: bool = False) -> "RelayerConfig":
        """Load configuration from environment variables.

        In local mode a missing PRIVATE_KEY is replaced by a freshly
        generated key.

        Args:
            local_mode: Whether to run in local mode (for testing)

        Returns:
            RelayerConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        network = NetworkConfig.from_env()

        monitoring = MonitoringConfig(
            polling_interval=int(os.environ.get("POLLING_INTERVAL", "2")),
            lookback_blocks=int(os.environ.get("LOOKBACK_BLOCKS", "100")),
            process_batch_size=int(os.environ.get("PROCESS_BATCH_SIZE", "10")),
            status_interval=int(os.environ.get("STATUS_INTERVAL", "30")),
        )

        private_key = os.environ.get("PRIVATE_KEY")
        if not private_key and local_mode:
            private_key = Account.create().key.hex()
            logger.info("No PRIVATE_KEY set, generated a throwaway relayer key")

        return cls(
            network=network,
            monitoring=monitoring,
            private_key=private_key,
            connector_kind=os.environ.get("CONNECTOR_KIND", "mock"),
            local_mode=local_mode,
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Cross-Chain Messenger Relayer Configuration")
        logger.info("=" * 60)

        logger.info("Network:")
        logger.info(f"  Hub Chain: {self.network.hub_chain_id}")
        logger.info(f"  Spoke Chains: {', '.join(map(str, self.network.spoke_chain_ids))}")
        logger.info(f"  Routes: {len(self.network.routes)}")
        logger.info(f"  Exit Time: {self.network.exit_time} seconds")

        fees = self.network.fee_distributor
        logger.info("Fee Distributor:")
        logger.info(f"  Treasury: {fees.treasury}")
        logger.info(f"  Public Goods: {fees.public_goods} (min {fees.min_public_goods_bps} bps)")
        logger.info(f"  Target Pool Size: {fees.target_pool_size} wei")
        logger.info(f"  Payout Cap: {fees.absolute_max_fee} wei / {fees.max_fee_bps} bps")

        logger.info("Monitoring Settings:")
        logger.info(f"  Polling Interval: {self.monitoring.polling_interval} seconds")
        logger.info(f"  Lookback Blocks: {self.monitoring.lookback_blocks}")
        logger.info(f"  Batch Size: {self.monitoring.process_batch_size}")

        logger.info("Relayer Settings:")
        logger.info(f"  Mode: {'LOCAL' if self.local_mode else 'PRODUCTION'}")
        logger.info(f"  Connectors: {self.connector_kind}")
        logger.info(f"  Relayer: {self.relayer_address}")

        logger.info("=" * 60)
