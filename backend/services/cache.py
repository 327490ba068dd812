"""
Aggregation cache.

TTL-bounded memoization in front of the sheet pipeline. One instance is
created at process start and handed to the engine; tests build their own.

- A live entry is returned without calling the compute function.
- Concurrent misses for the same key coalesce: the first caller computes,
  later callers wait on its result (or its exception).
- Failed computations store nothing. The last expired value for a key is
  kept aside so callers can choose to serve it while the source is down.
- Expired entries are evicted lazily on lookup; there is no sweeper thread.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    created_at: float
    expires_at: float

    def is_live(self, now: float) -> bool:
        return now < self.expires_at


class _InFlight:
    """Completion marker for a computation other callers can wait on."""

    def __init__(self):
        self.done = threading.Event()
        self.value: Any = None
        self.error: Optional[BaseException] = None


class AggregationCache:
    """Process-wide TTL cache with per-key in-flight coalescing."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._expired: dict[str, CacheEntry] = {}
        self._in_flight: dict[str, _InFlight] = {}
        self._last_error: dict[str, str] = {}
        # Bumped by clear() so computations started earlier do not republish
        self._epoch = 0
        self._key_epochs: dict[str, int] = {}

    def _lookup(self, key: str, now: float) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_live(now):
            return entry
        del self._entries[key]
        self._expired[key] = entry
        return None

    def _stamp(self, key: str) -> tuple[int, int]:
        return self._epoch, self._key_epochs.get(key, 0)

    def get(self, key: str) -> Any:
        """Live value for key, or None."""
        with self._lock:
            entry = self._lookup(key, self._clock())
        return entry.value if entry else None

    def get_or_compute(
        self,
        key: str,
        ttl: float,
        compute_fn: Callable[[], Any],
        force: bool = False,
    ) -> Any:
        """
        Return the live value for key, computing it at most once if missing.

        ttl is in seconds. force=True skips the live entry and republishes a
        fresh value (still coalesced with any computation already running).
        """
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")

        with self._lock:
            if not force:
                entry = self._lookup(key, self._clock())
                if entry is not None:
                    logger.debug("[Cache] hit %s", key)
                    return entry.value

            flight = self._in_flight.get(key)
            leader = flight is None
            if leader:
                flight = _InFlight()
                self._in_flight[key] = flight
                stamp = self._stamp(key)

        if not leader:
            logger.debug("[Cache] waiting on in-flight computation for %s", key)
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.value

        logger.info("[Cache] miss %s, computing", key)
        try:
            value = compute_fn()
        except BaseException as e:
            with self._lock:
                self._in_flight.pop(key, None)
                self._last_error[key] = str(e) or e.__class__.__name__
            flight.error = e
            flight.done.set()
            raise

        with self._lock:
            now = self._clock()
            if self._stamp(key) == stamp:
                self._entries[key] = CacheEntry(key=key, value=value, created_at=now, expires_at=now + ttl)
                self._expired.pop(key, None)
                self._last_error.pop(key, None)
            else:
                logger.info("[Cache] %s was cleared during computation, not publishing", key)
            self._in_flight.pop(key, None)

        flight.value = value
        flight.done.set()
        return value

    def stale(self, key: str) -> Any:
        """The most recent expired value for key, or None."""
        with self._lock:
            self._lookup(key, self._clock())
            entry = self._expired.get(key)
        return entry.value if entry else None

    def clear(self, key: Optional[str] = None) -> None:
        """Evict one key, or everything when key is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
                self._expired.clear()
                self._last_error.clear()
                self._epoch += 1
            else:
                self._entries.pop(key, None)
                self._expired.pop(key, None)
                self._last_error.pop(key, None)
                self._key_epochs[key] = self._key_epochs.get(key, 0) + 1
        logger.info("[Cache] cleared %s", key or "all entries")

    def status(self, key: str) -> dict:
        """Diagnostics for one key."""
        with self._lock:
            now = self._clock()
            entry = self._lookup(key, now)
            return {
                "exists": entry is not None,
                "ageSeconds": round(now - entry.created_at, 3) if entry else None,
                "ttlRemainingSeconds": round(entry.expires_at - now, 3) if entry else None,
                "inFlight": key in self._in_flight,
                "hasStale": key in self._expired,
                "lastError": self._last_error.get(key),
            }

    def keys(self) -> list[str]:
        with self._lock:
            now = self._clock()
            return sorted(k for k, e in self._entries.items() if e.is_live(now))
