"""
Event processor for handling messenger events.

This module contains the logic for tracking dispatched messages until their
bundle is committed and proven, keeping the processing logic separate from
the relay orchestration.
"""

import logging
from collections import OrderedDict, deque
from web3 import Web3

from .events import BundleCommitted, CommitmentProven, LogEntry, MessageBundled, MessageSent
from .models import BundledMessage, Message
from .proof_manager import ProofManager
from .utils.merkle import MerkleTree

logger = logging.getLogger(__name__)

BundleKey = tuple[int, bytes]


class EventProcessor:
    """Processes messenger events for the relayer."""

    MAX_PROCESSED_EVENTS: int = 10_000
    MAX_PENDING_MESSAGES: int = 10_000
    MAX_TRACKED_BUNDLES: int = 10_000  # Prevent memory leak

    def __init__(self, proof_manager: ProofManager | None = None) -> None:
        """Initialize the event processor.

        Args:
            proof_manager: ProofManager instance for generating and submitting proofs
        """
        # State tracking with bounded collections
        # OrderedDict provides O(1) lookups and maintains insertion order for LRU
        self.processed_events: OrderedDict[tuple[int, int, int], None] = OrderedDict()

        # MessageSent waits here for the MessageBundled emitted right after it
        self.unbundled_messages: OrderedDict[bytes, Message] = OrderedDict()

        # Primary structure: dict for O(1) lookup by (origin chain, bundle id)
        self.pending_messages: dict[BundleKey, dict[int, BundledMessage]] = {}
        # Secondary structure: deque for O(1) FIFO removal of oldest messages
        self.pending_order: deque[BundledMessage] = deque()

        # Frozen leaves of committed bundles, and bundles proven before we saw their commit
        self.committed_bundles: OrderedDict[BundleKey, tuple[bytes, ...]] = OrderedDict()
        self.proven_bundles: OrderedDict[BundleKey, None] = OrderedDict()

        self.proof_manager = proof_manager

    def _track_processed_event(self, key: tuple[int, int, int]) -> bool:
        """
        Track a processed log entry with automatic LRU eviction.

        Uses OrderedDict for O(1) lookups and automatic LRU behavior.
        When we reach capacity, we remove the oldest entry (first inserted).

        Args:
            key: Unique key of the log entry

        Returns:
            False if the entry was already processed
        """
        if key in self.processed_events:
            self.processed_events.move_to_end(key)
            return False

        if len(self.processed_events) >= self.MAX_PROCESSED_EVENTS:
            self.processed_events.popitem(last=False)
        self.processed_events[key] = None
        return True

    @staticmethod
    def _bounded_put(store: OrderedDict, key, value, limit: int) -> None:
        if key not in store and len(store) >= limit:
            store.popitem(last=False)
        store[key] = value

    async def process_event(self, entry: LogEntry) -> None:
        """Route a log entry to its handler, skipping entries already seen."""
        if not self._track_processed_event(entry.unique_key):
            return

        try:
            match entry.event:
                case MessageSent():
                    self.process_message_sent(entry)
                case MessageBundled():
                    self.process_message_bundled(entry)
                case BundleCommitted():
                    await self.process_bundle_committed(entry)
                case CommitmentProven():
                    await self.process_commitment_proven(entry)
                case _:
                    logger.debug(f"Ignoring {entry.event_name} event on chain {entry.chain_id}")
        except Exception as e:
            logger.error(f"Error processing {entry.event_name} event: {e}", exc_info=True)

    def process_message_sent(self, entry: LogEntry) -> Message:
        event: MessageSent = entry.event
        message = Message(
            from_chain_id=entry.chain_id,
            sender=event.sender,
            to_chain_id=event.to_chain_id,
            to=event.to,
            data=event.data,
        )
        self._bounded_put(self.unbundled_messages, bytes(event.message_id), message, self.MAX_PENDING_MESSAGES)
        return message

    def process_message_bundled(self, entry: LogEntry) -> BundledMessage | None:
        """
        Pair a MessageBundled event with its MessageSent and queue the message.

        Returns:
            The queued message, or None if its MessageSent was never seen
        """
        event: MessageBundled = entry.event
        message = self.unbundled_messages.pop(bytes(event.message_id), None)
        if message is None:
            logger.warning(f"MessageBundled for unknown message {Web3.to_hex(event.message_id)[:10]}...")
            return None

        bundled = BundledMessage(
            message=message,
            bundle_id=bytes(event.bundle_id),
            tree_index=event.tree_index,
            message_id=bytes(event.message_id),
        )

        # Check capacity and remove oldest if needed
        if len(self.pending_order) >= self.MAX_PENDING_MESSAGES:
            oldest = self.pending_order.popleft()
            self._remove_pending(oldest)
            logger.debug(f"Removed oldest message {Web3.to_hex(oldest.message_id)[:10]}... due to capacity")

        key = (message.from_chain_id, bundled.bundle_id)
        self.pending_messages.setdefault(key, {})[bundled.tree_index] = bundled
        self.pending_order.append(bundled)

        logger.debug(
            f"Message {Web3.to_hex(bundled.message_id)[:10]}... queued in bundle "
            f"{Web3.to_hex(bundled.bundle_id)[:10]}... at index {bundled.tree_index}"
        )
        return bundled

    async def process_bundle_committed(self, entry: LogEntry) -> tuple[bytes, ...] | None:
        """
        Freeze the leaves of a committed bundle.

        Returns:
            The bundle's message ids in tree order, or None if the queued
            messages do not reproduce the committed root
        """
        event: BundleCommitted = entry.event
        key = (entry.chain_id, bytes(event.bundle_id))
        messages = self.pending_messages.get(key, {})
        message_ids = tuple(messages[i].message_id for i in sorted(messages))

        if not message_ids or MerkleTree(message_ids).root != bytes(event.bundle_root):
            logger.warning(
                f"Queued messages do not match committed root of bundle "
                f"{Web3.to_hex(event.bundle_id)[:10]}... ({len(message_ids)} known)"
            )
            return None

        self._bounded_put(self.committed_bundles, key, message_ids, self.MAX_TRACKED_BUNDLES)
        logger.info(
            f"Bundle {Web3.to_hex(event.bundle_id)[:10]}... committed on chain {entry.chain_id} "
            f"with {len(message_ids)} messages"
        )

        if key in self.proven_bundles:
            await self.process_ready_bundle(key)
        return message_ids

    async def process_commitment_proven(self, entry: LogEntry) -> int:
        """
        Handle a proven commitment on the destination chain.

        Returns:
            Number of messages submitted for execution
        """
        event: CommitmentProven = entry.event
        key = (event.from_chain_id, bytes(event.bundle_id))
        self._bounded_put(self.proven_bundles, key, None, self.MAX_TRACKED_BUNDLES)

        if key not in self.committed_bundles:
            logger.info(
                f"Bundle {Web3.to_hex(event.bundle_id)[:10]}... proven on chain {entry.chain_id} "
                f"before its commit was seen, waiting"
            )
            return 0
        return await self.process_ready_bundle(key)

    async def process_ready_bundle(self, key: BundleKey) -> int:
        """
        Submit every queued message of a committed and proven bundle.

        Args:
            key: (origin chain id, bundle id)

        Returns:
            Number of messages submitted
        """
        if not self.proof_manager:
            logger.warning("ProofManager not initialized, skipping proof generation")
            return 0

        message_ids = self.committed_bundles[key]
        messages = self.pending_messages.get(key, {})
        submitted = 0
        failed = 0
        for tree_index in sorted(messages):
            bundled = messages[tree_index]
            try:
                if await self.proof_manager.process_message(bundled, message_ids):
                    submitted += 1
            except Exception as e:
                logger.error(
                    f"Failed to process proof for message {Web3.to_hex(bundled.message_id)[:10]}...: {e}",
                    exc_info=True
                )
                failed += 1
                continue
            self._remove_pending(bundled)

        # Bundles with failed messages stay tracked for retry_ready_bundles
        if not failed:
            self.committed_bundles.pop(key, None)
            self.proven_bundles.pop(key, None)
        return submitted

    async def retry_ready_bundles(self) -> int:
        """Resubmit messages of bundles that are committed and proven but not done."""
        ready = [key for key in self.committed_bundles if key in self.proven_bundles]
        submitted = 0
        for key in ready:
            submitted += await self.process_ready_bundle(key)
        return submitted

    def _remove_pending(self, bundled: BundledMessage) -> None:
        key = (bundled.message.from_chain_id, bundled.bundle_id)
        bundle_messages = self.pending_messages.get(key)
        if bundle_messages is not None:
            bundle_messages.pop(bundled.tree_index, None)
            if not bundle_messages:
                del self.pending_messages[key]

        try:
            self.pending_order.remove(bundled)
        except ValueError:
            pass

    def get_stats(self) -> dict:
        """
        Get current processor statistics.

        Returns:
            Dictionary with current state metrics
        """
        return {
            'processed_events': len(self.processed_events),
            'pending_messages': len(self.pending_order),
            'committed_bundles': len(self.committed_bundles),
            'waiting_proofs': len(self.proven_bundles),
        }
