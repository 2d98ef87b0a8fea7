"""In-memory TTL cache for Graph API aggregates. No Redis needed.

Note: Each uvicorn worker has its own cache instance. With --workers 2,
an aggregate may be fetched twice (once per worker). Invalidation is also
per worker, so a sync only clears the worker that served it.

Entries expire lazily on read and are also reclaimed by a background
sweeper thread, so keys that are written once and never read again do
not pile up.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 20 * 60
SWEEP_INTERVAL_SECONDS = 5 * 60


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """Thread-safe key/value store with per-key expiry.

    A ttl of 0 stores an entry that is already expired: the next get()
    misses and the next sweep drops it.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if self._clock() < entry.expires_at:
                return entry.value
            del self._store[key]
            return None

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        if ttl < 0:
            raise ValueError(f"ttl_seconds must be >= 0, got {ttl}")
        with self._lock:
            self._store[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix. Returns how many were removed."""
        with self._lock:
            keys = [k for k in self._store if k.startswith(prefix)]
            for k in keys:
                del self._store[k]
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def ttl(self, key: str) -> float | None:
        """Remaining seconds before key expires, or None if missing/expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            remaining = entry.expires_at - self._clock()
        return remaining if remaining > 0 else None

    def stats(self) -> dict:
        with self._lock:
            return {"size": len(self._store), "keys": list(self._store)}

    def sweep(self) -> int:
        """Drop all expired entries. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._store.items() if e.expires_at <= now]
            for k in expired:
                del self._store[k]
        if expired:
            logger.debug("Cache sweep evicted %d entries", len(expired))
        return len(expired)

    # -- background sweeper -------------------------------------------------

    def start_sweeper(self) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="ttl-cache-sweeper", daemon=True
        )
        self._sweeper.start()
        logger.info("Cache sweeper started (interval=%ss)", self.sweep_interval)

    def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._stop.set()
        self._sweeper.join()
        self._sweeper = None
        logger.info("Cache sweeper stopped")

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.sweep_interval):
            try:
                self.sweep()
            except Exception:
                logger.exception("Cache sweep failed")
