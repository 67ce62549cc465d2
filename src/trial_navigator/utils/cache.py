"""
Shared in-memory response cache.

Used by data source clients and the trial search service to avoid redundant
network calls. Entries are keyed by a SHA-256 hash of (namespace, params) and
expire lazily on read: nothing is evicted until a stale entry is requested.
"""

import hashlib
import json
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


def cache_key(namespace: str, params: dict[str, Any]) -> str:
    """Return a deterministic hex digest for the given namespace and params.

    The parameters are serialized exactly as given, with no normalization:
    differently ordered object keys, ``["A", "B"]`` versus ``["B", "A"]``, and
    ``65`` versus ``"65"`` all produce different keys.
    """
    raw = json.dumps({"ns": namespace, **params}, default=str)
    return hashlib.sha256(raw.encode()).hexdigest()


class ResponseCache:
    """Timestamped key/value store with TTL checked at read time.

    A single instance is meant to be shared by every client in the process.
    The store is unbounded; ``size()`` is exposed so callers can watch it.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, ttl_seconds: float) -> Any | None:
        """Return the stored value iff it is younger than ``ttl_seconds``."""
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        age = self._clock() - stored_at
        if age >= ttl_seconds:
            logger.debug("Cache expired for %s (age=%.0fs)", key[:12], age)
            return None
        logger.debug("Cache hit for %s", key[:12])
        return value

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` stamped with the current time, overwriting."""
        with self._lock:
            self._entries[key] = (value, self._clock())

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
