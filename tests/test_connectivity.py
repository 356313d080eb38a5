"""Tests for the connectivity signal."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from services.connectivity import ConnectivityMonitor


def test_listeners_fire_only_on_transition():
    monitor = ConnectivityMonitor(online=True)
    went_online = MagicMock()
    went_offline = MagicMock()
    monitor.on_online(went_online)
    monitor.on_offline(went_offline)

    monitor.set_online(True)
    went_online.assert_not_called()

    monitor.set_online(False)
    monitor.set_online(False)
    went_offline.assert_called_once()

    monitor.set_online(True)
    went_online.assert_called_once()
    assert monitor.is_online is True


def test_failing_listener_does_not_block_others():
    monitor = ConnectivityMonitor(online=False)
    broken = MagicMock(side_effect=RuntimeError("boom"))
    healthy = MagicMock()
    monitor.on_online(broken)
    monitor.on_online(healthy)

    monitor.set_online(True)

    healthy.assert_called_once()


@pytest.mark.asyncio
async def test_async_listener_is_scheduled():
    monitor = ConnectivityMonitor(online=False)
    listener = AsyncMock()
    monitor.on_online(listener)

    monitor.set_online(True)
    await monitor.wait_idle()

    listener.assert_awaited_once()


@pytest.mark.asyncio
async def test_probe_success_goes_online():
    monitor = ConnectivityMonitor(online=False)
    check = AsyncMock()

    assert await monitor.probe(check) is True
    assert monitor.is_online is True


@pytest.mark.asyncio
async def test_probe_failure_goes_offline():
    monitor = ConnectivityMonitor(online=True)
    check = AsyncMock(side_effect=ConnectionRefusedError("refused"))

    assert await monitor.probe(check) is False
    assert monitor.is_online is False


@pytest.mark.asyncio
async def test_probe_timeout_goes_offline():
    monitor = ConnectivityMonitor(online=True)

    async def hang():
        await asyncio.sleep(10)

    assert await monitor.probe(hang, timeout=0.01) is False
    assert monitor.is_online is False


@pytest.mark.asyncio
async def test_reconnect_triggers_single_queue_replay(make_queue, mock_store, connectivity, profile_update):
    """Test that going back online replays queued writes exactly once."""
    connectivity.set_online(False)
    queue = make_queue()
    queue.enqueue("update", "users", profile_update)

    await connectivity.probe(AsyncMock())
    await connectivity.probe(AsyncMock())
    await queue.wait_idle()

    mock_store.set_document.assert_awaited_once()
    assert len(queue) == 0
