"""Unit tests for the PollingEventListener class."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import FEE, HUB, SENDER, SPOKE_A
from xchain_messenger.utils.polling_event_listener import PollingEventListener

TARGET = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"


@pytest.fixture
def spoke(network):
    return network[SPOKE_A]


@pytest.fixture
def listener(spoke):
    """Listener for dispatcher events on SPOKE_A."""
    return PollingEventListener(
        chain=spoke.chain,
        event_names=("MessageSent", "BundleCommitted"),
        emitters=(spoke.dispatcher.address,),
        lookback_blocks=100,
    )


class TestPollingEventListener:
    """Test suite for PollingEventListener."""

    def test_requires_event_names(self, spoke):
        """Test that a listener needs something to listen for."""
        with pytest.raises(ValueError, match="At least one event name"):
            PollingEventListener(chain=spoke.chain, event_names=())

    @pytest.mark.asyncio
    async def test_initial_sync_replays_history(self, spoke, listener):
        """Test that initial sync hands over historical entries in order."""
        spoke.dispatcher.dispatch(SENDER, HUB, TARGET, b"\x01", FEE)
        spoke.dispatcher.commit_pending_bundle(SENDER, HUB)
        callback = AsyncMock()

        await listener.initial_sync(callback)

        names = [call.args[0].event_name for call in callback.await_args_list]
        assert names == ["MessageSent", "BundleCommitted"]
        assert listener.last_processed_block == spoke.chain.block_number

    @pytest.mark.asyncio
    async def test_initial_sync_respects_lookback(self, spoke):
        """Test that entries older than the lookback window are skipped."""
        spoke.dispatcher.dispatch(SENDER, HUB, TARGET, b"\x01", FEE)
        for _ in range(5):
            spoke.chain.mine()
        listener = PollingEventListener(chain=spoke.chain, event_names=("MessageSent",), lookback_blocks=2)
        callback = AsyncMock()

        await listener.initial_sync(callback)

        callback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_poll_only_new_blocks(self, spoke, listener):
        """Test that polling picks up entries mined after the last poll."""
        callback = AsyncMock()
        await listener.initial_sync(callback)

        await listener.poll_for_events(callback)
        callback.assert_not_awaited()

        spoke.dispatcher.dispatch(SENDER, HUB, TARGET, b"\x02", FEE)
        await listener.poll_for_events(callback)
        await listener.poll_for_events(callback)

        assert callback.await_count == 1
        assert callback.await_args.args[0].event.data == b"\x02"

    @pytest.mark.asyncio
    async def test_emitter_filter(self, network, spoke, listener):
        """Test that entries from other contracts are ignored."""
        callback = AsyncMock()
        await listener.initial_sync(callback)

        spoke.dispatcher.dispatch(SENDER, HUB, TARGET, b"", FEE)
        spoke.dispatcher.commit_pending_bundle(SENDER, HUB)
        await listener.poll_for_events(callback)

        emitters = {call.args[0].emitter for call in callback.await_args_list}
        assert emitters == {spoke.dispatcher.address}

    @pytest.mark.asyncio
    async def test_failed_poll_is_retried(self, spoke, listener):
        """Test that a failing callback leaves the blocks to be polled again."""
        callback = AsyncMock()
        await listener.initial_sync(callback)
        spoke.dispatcher.dispatch(SENDER, HUB, TARGET, b"", FEE)
        before = listener.last_processed_block

        callback.side_effect = RuntimeError("boom")
        await listener.poll_for_events(callback)
        assert listener.last_processed_block == before

        callback.side_effect = None
        await listener.poll_for_events(callback)
        assert listener.last_processed_block == spoke.chain.block_number

    @pytest.mark.asyncio
    async def test_start_and_stop(self, spoke, listener):
        """Test the polling loop lifecycle."""
        callback = AsyncMock()
        task = asyncio.create_task(listener.start_polling(callback, interval=0.01))
        await asyncio.sleep(0.05)

        assert listener.get_status()["is_running"] is True
        spoke.dispatcher.dispatch(SENDER, HUB, TARGET, b"", FEE)
        await asyncio.sleep(0.05)
        await listener.stop()
        await asyncio.wait_for(task, timeout=1)

        assert callback.await_count == 1
        status = listener.get_status()
        assert status["is_running"] is False
        assert status["chain_id"] == SPOKE_A
        assert status["event_names"] == ["BundleCommitted", "MessageSent"]
