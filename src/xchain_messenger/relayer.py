"""
Message relayer implementation.

This module contains the relayer service that watches every chain of the
network, relays committed bundles through the connectors, submits execution
proofs once bundles are proven and collects relay fees when they are due.
"""

import asyncio
import logging
from typing import Optional

from .config import RelayerConfig
from .errors import MessengerError
from .event_processor import EventProcessor
from .events import BundleCommitted, LogEntry, RelayReceiptSent
from .network import HubSpokeNetwork
from .proof_manager import ProofManager
from .utils.polling_event_listener import PollingEventListener

logger = logging.getLogger(__name__)

WATCHED_EVENTS = (
    "MessageSent", "MessageBundled", "BundleCommitted", "CommitmentProven", "RelayReceiptSent",
)


class MessageRelayer:
    """
    Relayer service that orchestrates event monitoring and processing.

    This class focuses on coordination and lifecycle management, delegating
    event processing logic to the EventProcessor.
    """

    def __init__(self, config: RelayerConfig, network: Optional[HubSpokeNetwork] = None):
        """
        Initialize the relayer.

        Args:
            config: Relayer configuration
            network: Network to serve; deployed from the config when omitted
        """
        self.config = config
        self.local_mode = config.local_mode
        self.running = False

        self.network = network or HubSpokeNetwork.deploy(
            config.network,
            connector_kind=config.connector_kind,
        )
        self.relayer_address = config.relayer_address

        # Initialize components
        self.proof_manager = ProofManager(self.network, self.relayer_address)
        self.event_processor = EventProcessor(proof_manager=self.proof_manager)
        self.listeners: dict[int, PollingEventListener] = {}

        self.relayed_bundles = 0
        self.claimed_fees = 0

        # Async coordination
        self.shutdown_event = asyncio.Event()

        logger.info(f"Relayer {self.relayer_address} initialized in {'local' if self.local_mode else 'production'} mode")

    @classmethod
    def from_env(cls, local_mode: bool = False) -> "MessageRelayer":
        """
        Create a MessageRelayer instance from environment variables.

        Args:
            local_mode: Run in local mode with a generated key if none is set

        Returns:
            Configured MessageRelayer instance

        Raises:
            ValueError: If required environment variables are missing
        """
        config = RelayerConfig.from_env(local_mode=local_mode)
        config.log_config()
        return cls(config)

    async def init_event_monitoring(self) -> None:
        """Initialize one polling listener per chain."""
        logger.info("Initializing event monitoring...")

        for chain_id, deployment in self.network.deployments.items():
            self.listeners[chain_id] = PollingEventListener(
                chain=deployment.chain,
                event_names=WATCHED_EVENTS,
                emitters=(deployment.dispatcher.address, deployment.transporter.address),
                lookback_blocks=self.config.monitoring.lookback_blocks,
            )
            logger.info(
                f"Chain {chain_id} listener: dispatcher {deployment.dispatcher.address}, "
                f"transporter {deployment.transporter.address}"
            )

    async def handle_event(self, entry: LogEntry) -> None:
        """Process an event, then relay the bundle or receipt it announces."""
        await self.event_processor.process_event(entry)

        match entry.event:
            case BundleCommitted(to_chain_id=to_chain_id):
                await self.relay_bundle(entry.chain_id, to_chain_id)
            case RelayReceiptSent():
                await self.relay_bundle(entry.chain_id, self.network.config.hub_chain_id)

    async def relay_bundle(self, from_chain_id: int, to_chain_id: int) -> int:
        """
        Drive the connectors along a route.

        Returns:
            Number of payloads delivered
        """
        try:
            delivered = self.network.relay(from_chain_id, to_chain_id, self.relayer_address)
        except MessengerError as e:
            logger.error(f"Relay from chain {from_chain_id} to chain {to_chain_id} failed: {e}")
            return 0

        if delivered:
            self.relayed_bundles += 1
            logger.info(f"Relayed {delivered} payloads from chain {from_chain_id} towards chain {to_chain_id}")
        return delivered

    async def claim_due_fees(self) -> int:
        """
        Claim relay fees of commitments this relayer delivered whose relay
        window has started.

        Returns:
            Total amount claimed
        """
        hub = self.network.hub
        now = hub.chain.timestamp
        due = [
            record for record in hub.transporter.commitments.values()
            if record.relayer == self.relayer_address
            and not record.fee_claimed
            and record.relay_window_start <= now
            and hub.transporter.get_fee_distributor(record.from_chain_id) is not None
        ][:self.config.monitoring.process_batch_size]

        total = 0
        for record in due:
            try:
                total += hub.transporter.claim_relay_fee(
                    self.relayer_address, record.from_chain_id, record.bundle_id
                )
            except MessengerError as e:
                logger.warning(f"Relay fee claim failed: {e}")
        self.claimed_fees += total
        return total

    async def _periodic_fee_claimer(self) -> None:
        """Claim due relay fees and retry stuck bundles periodically."""
        while self.running:
            await asyncio.sleep(self.config.monitoring.polling_interval)
            if claimed := await self.claim_due_fees():
                logger.info(f"Claimed {claimed} wei in relay fees")
            await self.event_processor.retry_ready_bundles()

    async def _periodic_status_logger(self) -> None:
        """Log status periodically while running."""
        while self.running:
            await asyncio.sleep(self.config.monitoring.status_interval)
            stats = self.event_processor.get_stats()
            logger.info(
                f"Status: {stats['pending_messages']} messages pending, "
                f"{stats['committed_bundles']} bundles awaiting proof, "
                f"{self.relayed_bundles} bundles relayed, "
                f"{self.proof_manager.submitted} messages executed, "
                f"{self.claimed_fees} wei claimed"
            )

    async def _check_task_health(self, tasks: dict[str, asyncio.Task]) -> bool:
        """Check if any critical task has failed."""
        for name, task in tasks.items():
            if task.done() and name != "status":  # status task can end normally
                try:
                    await task
                except Exception as e:
                    logger.error(f"{name} task failed: {e}", exc_info=True)
                return False
        return True

    async def _cleanup_tasks(self, tasks: dict[str, asyncio.Task]) -> None:
        """Clean up all tasks and listeners."""
        for listener in self.listeners.values():
            await listener.stop()

        # Cancel all running tasks
        for name, task in tasks.items():
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass  # Expected when cancelling

    async def run(self) -> None:
        """Main event loop for the relayer service."""
        self.running = True
        logger.info("Message relayer starting...")
        logger.info(f"Polling interval: {self.config.monitoring.polling_interval}s")
        logger.info(f"Lookback blocks: {self.config.monitoring.lookback_blocks}")

        tasks = {}
        try:
            await self.init_event_monitoring()

            if not self.listeners:
                raise RuntimeError("Event listeners not properly initialized")

            tasks = {
                f"chain-{chain_id}": asyncio.create_task(
                    listener.start_polling(
                        callback=self.handle_event,
                        interval=self.config.monitoring.polling_interval
                    )
                )
                for chain_id, listener in self.listeners.items()
            }
            tasks["fees"] = asyncio.create_task(self._periodic_fee_claimer())
            tasks["status"] = asyncio.create_task(self._periodic_status_logger())

            logger.info("Event monitoring started, waiting for events...")

            # Wait until shutdown or task failure
            while self.running:
                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=1.0)
                    break  # Shutdown requested
                except asyncio.TimeoutError:
                    pass  # Continue running

                if not await self._check_task_health(tasks):
                    logger.error("Critical task failure, shutting down")
                    break

        except Exception as e:
            logger.error(f"Error in main loop: {e}", exc_info=True)
            raise
        finally:
            self.running = False
            await self._cleanup_tasks(tasks)
            logger.info("Message relayer stopped")

    def stop(self) -> None:
        """Stop the relayer service."""
        self.running = False
        self.shutdown_event.set()
