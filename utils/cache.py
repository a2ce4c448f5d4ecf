"""Lightweight in-memory LRU cache for the trade journal.

Provides ``LRUCache``, used to memoize aggregation results keyed by query
fingerprint.
"""

import threading
from collections import OrderedDict
from typing import Any, Callable


class LRUCache:
    """Thread-safe in-memory cache with least-recently-used eviction.

    A maximum of ``maxsize`` entries are retained; when the cache is full the
    entry that was read or written longest ago is evicted.

    Usage::

        cache = LRUCache(maxsize=64)
        cache.set("fingerprint", stats)
        value = cache.get("fingerprint")  # returns stats or None if missing
    """

    def __init__(self, maxsize: int = 64) -> None:
        """Initialise the cache.

        Args:
            maxsize: Maximum number of entries to store (default 64).
        """
        if maxsize < 1:
            raise ValueError(f"maxsize must be >= 1, got {maxsize}")
        self._maxsize = maxsize
        # Insertion order is recency order
        self._store: "OrderedDict[Any, Any]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: Any) -> Any | None:
        """Return cached value for *key*, or ``None`` if absent."""
        with self._lock:
            if key not in self._store:
                self._misses += 1
                return None
            self._store.move_to_end(key)
            self._hits += 1
            return self._store[key]

    def set(self, key: Any, value: Any) -> None:
        """Store *value* under *key*, evicting the least recently used entry if full."""
        with self._lock:
            if key in self._store:
                self._store.move_to_end(key)
            elif len(self._store) >= self._maxsize:
                self._store.popitem(last=False)
                self._evictions += 1
            self._store[key] = value

    def discard_where(self, predicate: Callable[[Any, Any], bool]) -> int:
        """Remove every entry for which ``predicate(key, value)`` is true.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            doomed = [k for k, v in self._store.items() if predicate(k, v)]
            for k in doomed:
                del self._store[k]
            return len(doomed)

    def clear(self) -> None:
        """Remove all entries from the cache."""
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def __contains__(self, key: Any) -> bool:
        with self._lock:
            return key in self._store

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def stats(self) -> dict[str, int]:
        """Return cache statistics.

        Returns:
            Dict with keys ``hits``, ``misses``, ``evictions`` and ``size``.
        """
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "size": len(self._store),
            }
