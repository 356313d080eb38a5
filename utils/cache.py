"""In-memory TTL cache for documents and lists read from the document store."""

import copy
import json
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any


Params = Mapping[str, str | int | float | bool | None]


@dataclass
class CacheEntry:
    data: Any
    written_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.written_at < self.ttl


def _format_param(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def make_cache_key(resource_type: str, resource_id: str | None = None, params: Params | None = None) -> str:
    """
    Build a deterministic cache key.

    Format is ``type``, ``type:id``, ``type?a=1&b=2`` or ``type:id?a=1&b=2``.
    Params are sorted by name so insertion order never matters.
    """
    base_key = f"{resource_type}:{resource_id}" if resource_id is not None else resource_type
    if params:
        param_string = "&".join(
            f"{name}={_format_param(value)}" for name, value in sorted(params.items())
        )
        return f"{base_key}?{param_string}"
    return base_key


def key_type(key: str) -> str:
    """Resource type prefix of a cache key."""
    for separator in (":", "?"):
        key = key.split(separator, 1)[0]
    return key or "unknown"


class TTLCache:
    """TTL cache keyed by resource type, optional id and optional params."""

    def __init__(
        self,
        ttls: Mapping[str, float],
        default_ttl: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize cache.

        Args:
            ttls: Time-to-live in seconds per resource type
            default_ttl: TTL for types missing from ``ttls`` (default: 5 min)
            clock: Time source, monotonic by default
        """
        for resource_type, ttl in ttls.items():
            if ttl <= 0:
                raise ValueError(f"TTL for {resource_type!r} must be positive, got {ttl}")
        if default_ttl <= 0:
            raise ValueError(f"Default TTL must be positive, got {default_ttl}")

        self._store: dict[str, CacheEntry] = {}
        self._ttls = dict(ttls)
        self._default_ttl = default_ttl
        self._clock = clock

    def ttl_for(self, resource_type: str) -> float:
        return self._ttls.get(resource_type, self._default_ttl)

    def get(self, resource_type: str, resource_id: str | None = None, params: Params | None = None) -> Any | None:
        """
        Get value if present and not expired.

        Expired entries are removed on access.

        Returns:
            Cached value or None if missing/expired
        """
        key = make_cache_key(resource_type, resource_id, params)
        entry = self._store.get(key)
        if entry is None:
            return None

        if not entry.is_valid(self._clock()):
            del self._store[key]
            return None

        return copy.deepcopy(entry.data)

    def set(
        self,
        resource_type: str,
        value: Any,
        resource_id: str | None = None,
        params: Params | None = None,
    ) -> None:
        """Store value with the TTL configured for its type, overwriting any prior entry."""
        key = make_cache_key(resource_type, resource_id, params)
        self._store[key] = CacheEntry(
            data=copy.deepcopy(value),
            written_at=self._clock(),
            ttl=self.ttl_for(resource_type),
        )

    def clear(self, resource_type: str, resource_id: str | None = None) -> None:
        """
        Remove entries of a resource type.

        With ``resource_id`` only the ``type:id`` entry goes. Without it every
        key of that type goes, including id-less and parameterised list keys.
        """
        if resource_id is not None:
            self._store.pop(make_cache_key(resource_type, resource_id), None)
            return

        for key in list(self._store):
            if key_type(key) == resource_type:
                del self._store[key]

    def clear_all(self) -> None:
        """Clear entire cache."""
        self._store.clear()

    def get_stats(self) -> dict[str, Any]:
        """Entry counts, total and per type. Does not expire anything."""
        types: dict[str, int] = {}
        for key in self._store:
            name = key_type(key)
            types[name] = types.get(name, 0) + 1

        return {"size": len(self._store), "types": types}
