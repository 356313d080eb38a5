"""Tests for the offline write queue with a mocked document store."""

import asyncio
import json

import pytest
from pydantic import ValidationError
from unittest.mock import AsyncMock, MagicMock

from services.offline_queue import DEFAULT_STORAGE_KEY


@pytest.mark.asyncio
async def test_enqueue_assigns_id_and_persists(make_queue, storage, connectivity, profile_update):
    """Test that enqueue fills in bookkeeping fields and writes storage."""
    connectivity.set_online(False)
    queue = make_queue()

    operation = queue.enqueue("update", "users", profile_update)

    assert operation.id
    assert operation.retry_count == 0
    assert operation.enqueued_at > 0

    stored = json.loads(storage.read_string(DEFAULT_STORAGE_KEY))
    assert stored == [{
        "id": operation.id,
        "type": "update",
        "collection": "users",
        "data": profile_update,
        "timestamp": operation.enqueued_at,
        "retryCount": 0,
    }]


@pytest.mark.asyncio
async def test_enqueue_rejects_unknown_collection(make_queue):
    queue = make_queue()
    with pytest.raises(ValidationError):
        queue.enqueue("create", "unknown", {"id": "x"})
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_enqueue_rejects_payload_without_id(make_queue):
    queue = make_queue()
    with pytest.raises(ValidationError):
        queue.enqueue("update", "users", {"displayName": "Ada"})


@pytest.mark.asyncio
async def test_persistence_round_trip(make_queue, mock_store, connectivity, profile_update, event_create):
    """Test that a restarted queue sees the same operations and retry counts."""
    connectivity.set_online(False)
    queue = make_queue()
    queue.enqueue("update", "users", profile_update)
    queue.enqueue("create", "events", event_create)
    queue.enqueue("delete", "notifications", {"id": "n-1"})

    # One failed attempt bumps the retry count of every operation
    connectivity.set_online(True)
    mock_store.set_document.side_effect = ConnectionError("down")
    mock_store.delete_document.side_effect = ConnectionError("down")
    await queue.wait_idle()

    reloaded = make_queue()

    assert [op.to_storage() for op in reloaded.pending()] == [op.to_storage() for op in queue.pending()]
    assert [op.retry_count for op in reloaded.pending()] == [1, 1, 1]
    assert [op.kind for op in reloaded.pending()] == ["update", "create", "delete"]


@pytest.mark.asyncio
async def test_corrupt_storage_starts_empty(make_queue, storage):
    storage.write_string(DEFAULT_STORAGE_KEY, "{not json")
    assert len(make_queue()) == 0

    storage.write_string(DEFAULT_STORAGE_KEY, json.dumps({"id": "x"}))
    assert len(make_queue()) == 0


@pytest.mark.asyncio
async def test_invalid_entries_dropped_on_load(make_queue, storage, profile_update):
    storage.write_string(DEFAULT_STORAGE_KEY, json.dumps([
        {"id": "1", "type": "update", "collection": "users", "data": profile_update,
         "timestamp": 1, "retryCount": 2},
        {"id": "2", "type": "launch", "collection": "users", "data": profile_update,
         "timestamp": 2, "retryCount": 0},
        "garbage",
    ]))

    queue = make_queue()

    assert [op.id for op in queue.pending()] == ["1"]
    assert queue.pending()[0].retry_count == 2


@pytest.mark.asyncio
async def test_replay_order_and_kinds(make_queue, mock_store, connectivity, profile_update, event_create):
    """Test that a pass executes operations in enqueue order with the right writes."""
    connectivity.set_online(False)
    queue = make_queue()
    queue.enqueue("create", "events", event_create)
    queue.enqueue("update", "users", profile_update)
    queue.enqueue("delete", "events", {"id": "event-2", "title": "ignored"})

    calls = []
    mock_store.set_document.side_effect = lambda *args, **kwargs: calls.append(("set", args, kwargs))
    mock_store.delete_document.side_effect = lambda *args, **kwargs: calls.append(("delete", args, kwargs))

    connectivity.set_online(True)
    await queue.wait_idle()

    assert calls == [
        ("set", ("events", "event-1", event_create), {"merge": False}),
        ("set", ("users", "user-1", profile_update), {"merge": True}),
        ("delete", ("events", "event-2"), {}),
    ]
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_enqueue_while_online_replays_in_background(make_queue, mock_store, profile_update):
    queue = make_queue()

    queue.enqueue("update", "users", profile_update)
    await queue.wait_idle()

    mock_store.set_document.assert_awaited_once_with("users", "user-1", profile_update, merge=True)
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_offline_process_queue_is_noop(make_queue, mock_store, connectivity, profile_update):
    """Test that nothing is attempted while offline."""
    connectivity.set_online(False)
    queue = make_queue()
    queue.enqueue("update", "users", profile_update)

    await queue.process_queue()

    mock_store.set_document.assert_not_called()
    assert len(queue) == 1
    assert queue.pending()[0].retry_count == 0


@pytest.mark.asyncio
async def test_retry_exhaustion(make_queue, mock_store, connectivity, profile_update):
    """Test that an always-failing operation is dropped after exactly 3 attempts."""
    connectivity.set_online(False)
    queue = make_queue()
    failures = []
    queue.on_permanent_failure(lambda op, error: failures.append((op, error)))
    queue.enqueue("update", "users", profile_update)

    error = ConnectionError("store down")
    mock_store.set_document.side_effect = error
    connectivity.set_online(True)

    await queue.wait_idle()
    assert queue.pending()[0].retry_count == 1
    await queue.process_queue()
    assert queue.pending()[0].retry_count == 2
    assert failures == []

    await queue.process_queue()
    assert len(queue) == 0
    assert len(failures) == 1
    assert failures[0][0].retry_count == 3
    assert failures[0][1] is error

    await queue.process_queue()
    assert mock_store.set_document.await_count == 3


@pytest.mark.asyncio
async def test_failure_does_not_abort_pass(make_queue, mock_store, connectivity, profile_update, event_create):
    """Test that one failing operation does not stop the others."""
    connectivity.set_online(False)
    queue = make_queue()
    queue.enqueue("update", "users", profile_update)
    queue.enqueue("create", "events", event_create)

    async def fail_users(collection, doc_id, data, merge=False):
        if collection == "users":
            raise ConnectionError("users down")
        return {}

    mock_store.set_document.side_effect = fail_users
    connectivity.set_online(True)
    await queue.wait_idle()

    pending = queue.pending()
    assert [op.collection for op in pending] == ["users"]
    assert pending[0].retry_count == 1
    assert mock_store.set_document.await_count == 2


@pytest.mark.asyncio
async def test_async_failure_listener_awaited(make_queue, mock_store, connectivity, profile_update):
    connectivity.set_online(False)
    queue = make_queue(max_retries=1)
    listener = AsyncMock()
    broken_listener = MagicMock(side_effect=RuntimeError("listener bug"))
    queue.on_permanent_failure(broken_listener)
    queue.on_permanent_failure(listener)
    queue.enqueue("update", "users", profile_update)

    mock_store.set_document.side_effect = ConnectionError("down")
    connectivity.set_online(True)
    await queue.wait_idle()

    listener.assert_awaited_once()
    assert listener.await_args.args[0].doc_id == "user-1"
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_concurrent_triggers_do_not_double_execute(make_queue, mock_store, connectivity, profile_update):
    """Test that a trigger during a pass never runs the same operation twice at once."""
    connectivity.set_online(False)
    queue = make_queue()
    queue.enqueue("update", "users", profile_update)

    release = asyncio.Event()
    in_flight = 0
    max_in_flight = 0

    async def slow_write(*args, **kwargs):
        nonlocal in_flight, max_in_flight
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        await release.wait()
        in_flight -= 1
        return {}

    mock_store.set_document.side_effect = slow_write
    connectivity.set_online(True)
    await asyncio.sleep(0)

    # Second trigger while the first pass is suspended mid-write
    second = asyncio.create_task(queue.process_queue())
    await asyncio.sleep(0)
    release.set()
    await second
    await queue.wait_idle()

    assert max_in_flight == 1
    assert mock_store.set_document.await_count == 1
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_enqueue_during_pass_is_replayed(make_queue, mock_store, connectivity, profile_update, event_create):
    """Test that an operation queued mid-pass is picked up by a follow-up pass."""
    connectivity.set_online(False)
    queue = make_queue()
    queue.enqueue("update", "users", profile_update)

    release = asyncio.Event()

    async def write(collection, *args, **kwargs):
        if collection == "users":
            await release.wait()
        return {}

    mock_store.set_document.side_effect = write
    connectivity.set_online(True)
    await asyncio.sleep(0)

    queue.enqueue("create", "events", event_create)
    release.set()
    await queue.wait_idle()

    assert len(queue) == 0
    assert [c.args[0] for c in mock_store.set_document.await_args_list] == ["users", "events"]


@pytest.mark.asyncio
async def test_get_status_reflects_connectivity(make_queue, connectivity, profile_update):
    connectivity.set_online(False)
    queue = make_queue()
    queue.enqueue("update", "users", profile_update)

    assert queue.get_status() == {"queued": 1, "processing": False}
    connectivity.set_online(True)
    assert queue.get_status()["processing"] is True
    await queue.wait_idle()


def test_enqueue_without_event_loop_defers_replay(make_queue, mock_store, profile_update):
    """Test that a synchronous caller can enqueue while online."""
    queue = make_queue()
    queue.enqueue("update", "users", profile_update)

    assert len(queue) == 1
    mock_store.set_document.assert_not_called()


@pytest.mark.asyncio
async def test_pending_returns_copies(make_queue, connectivity, profile_update):
    connectivity.set_online(False)
    queue = make_queue()
    queue.enqueue("update", "users", profile_update)

    queue.pending()[0].retry_count = 99

    assert queue.pending()[0].retry_count == 0


@pytest.mark.asyncio
async def test_replays_full_user_create(make_queue, mock_store, connectivity):
    """Test that a user create carrying uid and createdAt reaches the store."""
    connectivity.set_online(False)
    queue = make_queue()
    queue.enqueue("create", "users", {
        "id": "u1",
        "uid": "u1",
        "email": "ada@example.com",
        "displayName": "Ada",
        "role": "member",
        "status": "pending",
        "createdAt": "2026-01-01T00:00:00Z",
    })

    connectivity.set_online(True)
    await queue.wait_idle()

    assert len(queue) == 0
    collection, doc_id, data = mock_store.set_document.await_args.args
    assert (collection, doc_id) == ("users", "u1")
    assert data["uid"] == "u1"
    assert "createdAt" in data
    assert mock_store.set_document.await_args.kwargs == {"merge": False}
