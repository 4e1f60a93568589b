"""
Polling-based listener over a chain's event log.

"""

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from ..events import LogEntry

if TYPE_CHECKING:
    from ..chain import Chain

EventCallback = Callable[[LogEntry], Awaitable[Any]]


class PollingEventListener:
    """
    Follows one chain's log by polling block ranges.

    Entries are handed to the callback in log order, so a single listener
    covering several event names preserves their relative ordering.
    """

    def __init__(
        self,
        chain: "Chain",
        event_names: Sequence[str],
        emitters: Sequence[str] | None = None,
        lookback_blocks: int = 100,
    ):
        """
        Args:
            chain: Chain whose log is followed
            event_names: Events to deliver
            emitters: Only entries from these addresses (all when None)
            lookback_blocks: How far back the first sync reaches
        """
        if not event_names:
            raise ValueError("At least one event name is required")

        self.chain = chain
        self.event_names = frozenset(event_names)
        self.emitters = frozenset(emitters) if emitters else None
        self.lookback_blocks = lookback_blocks

        # Highest block whose entries were all delivered
        self.last_processed_block: Optional[int] = None
        self.is_running = False

        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def _label(self) -> str:
        return f"{'/'.join(sorted(self.event_names))} on chain {self.chain.chain_id}"

    def _matches(self, entry: LogEntry) -> bool:
        if entry.event_name not in self.event_names:
            return False
        return self.emitters is None or entry.emitter in self.emitters

    async def _deliver_range(self, from_block: int, to_block: int, callback: EventCallback) -> int:
        """Hand every matching entry in [from_block, to_block] to the callback."""
        entries = [
            entry for entry in self.chain.get_logs(from_block=from_block, to_block=to_block)
            if self._matches(entry)
        ]
        for entry in entries:
            await callback(entry)
        self.last_processed_block = to_block
        return len(entries)

    async def initial_sync(self, callback: EventCallback) -> None:
        """Replay the entries of the last `lookback_blocks` blocks."""
        head = self.chain.block_number
        start = max(0, head - self.lookback_blocks)
        self.logger.info(f"Initial sync for {self._label}: blocks {start}-{head}")

        try:
            count = await self._deliver_range(start, head, callback)
        except Exception as e:
            self.logger.error(f"Initial sync for {self._label} failed: {e}")
            raise

        if count:
            self.logger.info(f"Replayed {count} historical events for {self._label}")
        else:
            self.logger.info(f"No historical events for {self._label}")

    async def poll_for_events(self, callback: EventCallback) -> None:
        """
        Deliver entries mined since the last successful poll.

        A failing poll leaves `last_processed_block` untouched so the same
        range is tried again next time.
        """
        head = self.chain.block_number
        if self.last_processed_block is None:
            start = head
        elif head > self.last_processed_block:
            start = self.last_processed_block + 1
        else:
            return

        try:
            count = await self._deliver_range(start, head, callback)
        except Exception as e:
            self.logger.error(f"Polling {self._label} blocks {start}-{head} failed: {e}")
            return

        if count:
            self.logger.info(f"Delivered {count} new events for {self._label} in blocks {start}-{head}")

    async def start_polling(self, callback: EventCallback, interval: float = 30) -> None:
        """
        Sync, then poll every `interval` seconds until stopped.

        Args:
            callback: Async function receiving each log entry
            interval: Seconds between polls
        """
        if self.is_running:
            self.logger.warning(f"Listener for {self._label} already running")
            return

        self.is_running = True
        self.logger.info(f"Polling {self._label} every {interval}s")
        await self.initial_sync(callback)

        while self.is_running:
            try:
                await asyncio.sleep(interval)
                await self.poll_for_events(callback)
            except asyncio.CancelledError:
                self.logger.info(f"Polling {self._label} cancelled")
                break

    async def stop(self) -> None:
        self.logger.info(f"Stopping listener for {self._label}")
        self.is_running = False

    def get_status(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "last_processed_block": self.last_processed_block,
            "chain_id": self.chain.chain_id,
            "event_names": sorted(self.event_names),
        }
