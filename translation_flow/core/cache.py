"""
Translation Cache - in-memory response cache and in-flight request sharing.

Both stores are process-wide and guarded by a lock; they are built once by
the service and injected into the API client.
"""

from __future__ import annotations

from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, TypeVar


logger = logging.getLogger("translation_flow.cache")

T = TypeVar("T")


@dataclass
class CacheEntry:
    value: Any
    expires_at: Optional[float]
    created_at: float


class TranslationCache:
    """TTL cache with lazy expiry and oldest-first overflow eviction."""

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_entries: int = 1000,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = max(1, int(max_entries))
        self._clock = clock
        self._store: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expires_at is not None and entry.expires_at <= self._clock():
                del self._store[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl is None else float(ttl)
        with self._lock:
            now = self._clock()
            self._store.pop(key, None)
            self._store[key] = CacheEntry(
                value=value,
                expires_at=now + ttl if ttl > 0 else None,
                created_at=now,
            )
            while len(self._store) > self.max_entries:
                self._store.popitem(last=False)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def cleanup(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [
                key
                for key, entry in self._store.items()
                if entry.expires_at is not None and entry.expires_at <= now
            ]
            for key in expired:
                del self._store[key]
        if expired:
            logger.debug("Cache sweep removed %d expired entries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total else 0.0,
            }


class CacheSweeper:
    """Optional background thread calling ``cache.cleanup`` periodically."""

    def __init__(self, cache: TranslationCache, interval_seconds: float) -> None:
        self.cache = cache
        self.interval_seconds = float(interval_seconds)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.interval_seconds <= 0 or self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name="translation-cache-sweeper", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.cache.cleanup()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None


@dataclass
class _InFlight:
    future: Future
    ref_count: int
    created_at: float


class RequestDeduplicator:
    """Share one in-flight call among concurrent identical requests.

    The first caller runs the factory; later callers with the same key block
    on its future. The entry leaves the table as soon as the call settles,
    whatever the outcome.
    """

    def __init__(
        self,
        max_in_flight: int = 500,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_in_flight = max(1, int(max_in_flight))
        self._clock = clock
        self._in_flight: Dict[str, _InFlight] = {}
        self._lock = threading.Lock()

    def run(self, key: str | None, factory: Callable[[], T]) -> T:
        if not key:
            return factory()

        with self._lock:
            existing = self._in_flight.get(key)
            if existing is not None:
                existing.ref_count += 1
                shared = existing.future
            else:
                shared = None
                entry = _InFlight(future=Future(), ref_count=1, created_at=self._clock())
                self._in_flight[key] = entry
                if len(self._in_flight) > self.max_in_flight:
                    oldest_key = min(self._in_flight, key=lambda k: self._in_flight[k].created_at)
                    del self._in_flight[oldest_key]

        if shared is not None:
            logger.debug("Joined in-flight translation request")
            return shared.result()

        try:
            value = factory()
        except Exception as exc:
            entry.future.set_exception(exc)
            raise
        else:
            entry.future.set_result(value)
            return value
        finally:
            with self._lock:
                if self._in_flight.get(key) is entry:
                    del self._in_flight[key]

    def size(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def clear(self) -> None:
        with self._lock:
            self._in_flight.clear()
