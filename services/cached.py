"""Cache-aware reads, queue-backed writes and invalidation helpers."""

from collections.abc import Iterable, Mapping
from typing import Any

from database.crud import Filter
from services.connectivity import ConnectivityMonitor
from services.document_store import DocumentStore, is_connectivity_error
from services.offline_queue import OfflineQueue
from services.operations import (
    EVENTS_COLLECTION,
    NOTIFICATIONS_COLLECTION,
    USERS_COLLECTION,
    OperationKind,
    Payload,
    QueuedOperation,
)
from utils.cache import TTLCache
from utils.logger import logger


# ============== READS ==============

async def cached_get_doc(
    cache: TTLCache,
    store: DocumentStore,
    collection: str,
    doc_id: str,
) -> dict[str, Any] | None:
    """Read a document, cache first. Missing documents are not cached."""
    cached = cache.get(collection, doc_id)
    if cached is not None:
        return cached

    data = await store.get_document(collection, doc_id)
    if data is not None:
        cache.set(collection, data, doc_id)
    return data


def _filters_param(filters: Iterable[Filter]) -> str:
    return ";".join(f"{field}{op}{value!r}" for field, op, value in filters)


async def cached_get_collection(
    cache: TTLCache,
    store: DocumentStore,
    collection: str,
    filters: Iterable[Filter] = (),
    cache_key: str | None = None,
    **query_options: Any,
) -> list[dict[str, Any]]:
    """Query a collection, cache first. ``query_options`` go to the store query."""
    filters = list(filters)
    params: dict[str, Any] = {"filters": _filters_param(filters)}
    if cache_key:
        params["cacheKey"] = cache_key
    for name, value in query_options.items():
        params[name] = value

    cached = cache.get(collection, None, params)
    if cached is not None:
        return cached

    data = await store.query_collection(collection, filters, **query_options)
    cache.set(collection, data, None, params)
    return data


# ============== INVALIDATION ==============

def invalidate_user_cache(cache: TTLCache, user_id: str | None = None) -> None:
    cache.clear("userProfile", user_id)
    cache.clear(USERS_COLLECTION, user_id)
    cache.clear("memberDirectory")


def invalidate_event_cache(cache: TTLCache, event_id: str | None = None) -> None:
    cache.clear("events")
    if event_id is not None:
        cache.clear("eventDetails", event_id)


def invalidate_notification_cache(cache: TTLCache) -> None:
    cache.clear("notifications")


def invalidate_for(cache: TTLCache, collection: str, doc_id: str | None = None) -> None:
    """Drop cache entries that a write to ``collection`` makes stale."""
    if collection == USERS_COLLECTION:
        invalidate_user_cache(cache, doc_id)
    elif collection == EVENTS_COLLECTION:
        invalidate_event_cache(cache, doc_id)
    elif collection == NOTIFICATIONS_COLLECTION:
        invalidate_notification_cache(cache)
    else:
        cache.clear(collection)


# ============== WRITES ==============

async def write_or_enqueue(
    cache: TTLCache,
    store: DocumentStore,
    queue: OfflineQueue,
    connectivity: ConnectivityMonitor,
    kind: OperationKind,
    collection: str,
    payload: Payload | Mapping[str, Any],
) -> QueuedOperation | None:
    """
    Write directly, or queue the write when the store is unreachable.

    Related cache entries are invalidated either way. Returns the queued
    operation when the write was deferred, None when it went through.
    Errors other than connectivity failures propagate.
    """
    # Validate the payload up front, same shape as a queued operation
    operation = QueuedOperation(kind=kind, collection=collection, payload=payload)
    invalidate_for(cache, collection, operation.doc_id)

    if not connectivity.is_online:
        return queue.enqueue(kind, collection, operation.payload)

    try:
        if kind == "delete":
            await store.delete_document(collection, operation.doc_id)
        else:
            await store.set_document(
                collection,
                operation.doc_id,
                operation.payload.to_document(),
                merge=(kind == "update"),
            )
    except Exception as e:
        if not is_connectivity_error(e):
            raise
        logger.warning(f"Store unreachable, queueing {kind} {collection}/{operation.doc_id}: {e}")
        connectivity.set_online(False)
        return queue.enqueue(kind, collection, operation.payload)

    return None


# ============== STATUS ==============

def get_connection_status(
    cache: TTLCache,
    queue: OfflineQueue,
    connectivity: ConnectivityMonitor,
) -> dict[str, Any]:
    return {
        "online": connectivity.is_online,
        "cacheStats": cache.get_stats(),
        "offlineQueue": queue.get_status(),
    }
