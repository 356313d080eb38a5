"""Persistent queue of writes made while the document store was unreachable."""

import asyncio
import inspect
import json
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError

from services.connectivity import ConnectivityMonitor
from services.document_store import DocumentStore
from services.operations import OperationKind, Payload, QueuedOperation
from utils.logger import logger
from utils.storage import FileStorage


FailureListener = Callable[[QueuedOperation, BaseException], Any]

DEFAULT_STORAGE_KEY = "lcc_assemble_offline_queue"
DEFAULT_MAX_RETRIES = 3


class OfflineQueue:
    """
    Ordered queue of pending create/update/delete operations.

    The whole queue is written to local storage after every change and read
    back on construction. Replays run when an operation is enqueued while
    online and whenever the connectivity monitor reports the store is back.
    Only one replay pass runs at a time; a trigger that arrives during a pass
    schedules one follow-up pass instead of a concurrent one.
    """

    def __init__(
        self,
        store: DocumentStore,
        storage: FileStorage,
        connectivity: ConnectivityMonitor,
        storage_key: str = DEFAULT_STORAGE_KEY,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")

        self._store = store
        self._storage = storage
        self._connectivity = connectivity
        self._storage_key = storage_key
        self._max_retries = max_retries

        self._queue: list[QueuedOperation] = self._load()
        self._failure_listeners: list[FailureListener] = []
        self._tasks: set[asyncio.Task] = set()
        self._replaying = False
        self._rerun_requested = False

        connectivity.on_online(self._handle_online)
        connectivity.on_offline(self._handle_offline)

        if self._queue:
            logger.info(f"Loaded {len(self._queue)} queued operation(s) from local storage")

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def max_retries(self) -> int:
        return self._max_retries

    # ============== PUBLIC API ==============

    def enqueue(
        self,
        kind: OperationKind,
        collection: str,
        payload: Payload | Mapping[str, Any],
    ) -> QueuedOperation:
        """
        Add an operation and persist the queue.

        When online, a replay is started in the background; this method does
        not wait for it. Raises ValidationError/ValueError for payloads that
        do not fit the collection.
        """
        if isinstance(payload, Mapping):
            payload = dict(payload)

        operation = QueuedOperation(kind=kind, collection=collection, payload=payload)
        self._queue.append(operation)
        self._save()

        logger.info(
            f"Queued {kind} {collection}/{operation.doc_id} as {operation.id} "
            f"({len(self._queue)} pending)"
        )

        if self._connectivity.is_online:
            self._schedule_replay()

        return operation.model_copy(deep=True)

    def on_permanent_failure(self, listener: FailureListener) -> None:
        """Subscribe to operations dropped after exhausting their retries."""
        self._failure_listeners.append(listener)

    def pending(self) -> list[QueuedOperation]:
        """Copies of the queued operations, oldest first."""
        return [operation.model_copy(deep=True) for operation in self._queue]

    def get_status(self) -> dict[str, Any]:
        return {
            "queued": len(self._queue),
            "processing": self._connectivity.is_online,
        }

    async def process_queue(self) -> None:
        """Replay queued operations in enqueue order. No-op while offline."""
        if not self._connectivity.is_online:
            return

        if self._replaying:
            self._rerun_requested = True
            return

        self._replaying = True
        try:
            while True:
                self._rerun_requested = False
                await self._replay_pass()
                if not self._rerun_requested or not self._connectivity.is_online:
                    break
        finally:
            self._replaying = False

    async def wait_idle(self) -> None:
        """Wait for background replays started by enqueue or reconnect."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ============== REPLAY ==============

    async def _replay_pass(self) -> None:
        snapshot = list(self._queue)
        if not snapshot:
            return

        logger.info(f"Processing offline queue: {len(snapshot)} operation(s)")

        for operation in snapshot:
            if not self._connectivity.is_online:
                logger.info("Connection lost during replay, stopping pass")
                break

            try:
                await self._execute(operation)
            except Exception as e:
                self._handle_failure(operation, e)
                if operation.retry_count >= self._max_retries:
                    await self._report_permanent_failure(operation, e)
                continue

            self._remove(operation.id)
            logger.info(f"Replayed {operation.kind} {operation.collection}/{operation.doc_id}")

    async def _execute(self, operation: QueuedOperation) -> None:
        doc_id = operation.doc_id

        if operation.kind == "create":
            await self._store.set_document(
                operation.collection, doc_id, operation.payload.to_document(), merge=False
            )
        elif operation.kind == "update":
            await self._store.set_document(
                operation.collection, doc_id, operation.payload.to_document(), merge=True
            )
        elif operation.kind == "delete":
            await self._store.delete_document(operation.collection, doc_id)
        else:
            raise ValueError(f"Unknown operation type: {operation.kind}")

    def _handle_failure(self, operation: QueuedOperation, error: BaseException) -> None:
        operation.retry_count += 1
        logger.error(
            f"Failed to process queued operation {operation.id} "
            f"(attempt {operation.retry_count}/{self._max_retries}): {error}"
        )

        if operation.retry_count >= self._max_retries:
            self._remove(operation.id)
            logger.warning(
                f"Operation failed permanently: {operation.kind} "
                f"{operation.collection}/{operation.doc_id} ({operation.id})"
            )
        else:
            self._save()

    async def _report_permanent_failure(self, operation: QueuedOperation, error: BaseException) -> None:
        for listener in list(self._failure_listeners):
            try:
                result = listener(operation.model_copy(deep=True), error)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Permanent failure listener {listener!r} failed: {e}", exc_info=True)

    # ============== TRIGGERS ==============

    def _schedule_replay(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, replay deferred to next trigger")
            return

        task = loop.create_task(self.process_queue())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _handle_online(self) -> None:
        logger.info("Connection restored, processing offline queue...")
        self._schedule_replay()

    def _handle_offline(self) -> None:
        logger.info(f"Connection lost, operations will be queued ({len(self._queue)} pending)")

    # ============== PERSISTENCE ==============

    def _remove(self, operation_id: str) -> None:
        self._queue = [op for op in self._queue if op.id != operation_id]
        self._save()

    def _save(self) -> None:
        data = json.dumps([operation.to_storage() for operation in self._queue])
        if not self._storage.write_string(self._storage_key, data):
            logger.warning("Failed to save offline queue to storage")

    def _load(self) -> list[QueuedOperation]:
        stored = self._storage.read_string(self._storage_key)
        if not stored:
            return []

        try:
            items = json.loads(stored)
        except ValueError as e:
            logger.warning(f"Failed to load offline queue from storage: {e}")
            return []

        if not isinstance(items, list):
            logger.warning("Stored offline queue is not a list, starting empty")
            return []

        queue = []
        for item in items:
            try:
                queue.append(QueuedOperation.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Dropping unreadable queued operation: {e}")
        return queue
