from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

STALE = "stale"


@dataclass
class CacheEntry:
    key: str
    data: Any
    created_at: float
    last_accessed_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


@dataclass(frozen=True)
class LoadOutcome:
    value: Any
    source: str

    @property
    def stale(self) -> bool:
        return self.source == STALE


class _Flight:
    def __init__(self) -> None:
        self.done = threading.Event()
        self.outcome: LoadOutcome | None = None
        self.error: BaseException | None = None

    def result(self) -> LoadOutcome:
        self.done.wait()
        if self.error is not None:
            raise self.error
        assert self.outcome is not None
        return self.outcome


class TTLCache:
    """Expiring key/value cache with LRU eviction and single-flight loading.

    Expired entries are not removed on read; they stay available as stale
    fallbacks until ``cleanup`` sweeps them. The sweeper runs on its own daemon
    thread between ``start`` and ``close``.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: float = 600.0,
        cleanup_interval: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._inflight: dict[str, _Flight] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None
        self._stats = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
            "cleanups": 0,
            "expired": 0,
            "evictions": 0,
            "stale_served": 0,
        }

    # lifecycle

    def start(self) -> TTLCache:
        if self._sweeper is not None and self._sweeper.is_alive():
            return self
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="ttl-cache-sweeper", daemon=True
        )
        self._sweeper.start()
        return self

    def close(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def __enter__(self) -> TTLCache:
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.cleanup_interval):
            self.cleanup()

    # reads and writes

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is None or entry.is_expired(now):
                self._stats["misses"] += 1
                return default
            entry.last_accessed_at = now
            self._entries.move_to_end(key)
            self._stats["hits"] += 1
            return entry.data

    def peek(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        with self._lock:
            self._store(key, value, ttl)

    def _store(self, key: str, value: Any, ttl: float | None) -> None:
        # Caller holds self._lock.
        if key not in self._entries and len(self._entries) >= self.max_size:
            evicted_key, _ = self._entries.popitem(last=False)
            self._stats["evictions"] += 1
            logger.debug(f"Cache full, evicted least recently used key {evicted_key}")

        now = self._clock()
        self._entries[key] = CacheEntry(
            key=key,
            data=value,
            created_at=now,
            last_accessed_at=now,
            ttl=self.default_ttl if ttl is None else ttl,
        )
        self._entries.move_to_end(key)
        self._stats["sets"] += 1

    def invalidate(self, key: str) -> bool:
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self._stats["deletes"] += 1
            return removed

    def invalidate_pattern(self, pattern: str) -> int:
        with self._lock:
            matching = [key for key in self._entries if pattern in key]
            for key in matching:
                del self._entries[key]
            self._stats["deletes"] += len(matching)
            return len(matching)

    def clear(self) -> int:
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            self._stats["deletes"] += removed
            return removed

    def cleanup(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._stats["cleanups"] += 1
            self._stats["expired"] += len(expired)

        if expired:
            logger.info(f"Cache cleanup: {len(expired)} expired entries removed")
        return len(expired)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # single-flight

    def get_or_load(
        self,
        key: str,
        loader: Callable[[], Any],
        ttl: float | None = None,
        force_refresh: bool = False,
        allow_stale: bool = True,
    ) -> LoadOutcome:
        """Return the cached value for ``key`` or load it exactly once.

        Concurrent callers for the same key share the in-flight load and get
        the same outcome, error included. When the loader fails and an older
        entry exists (and ``allow_stale`` is set by the loading caller), every
        caller gets that older value with ``source == "stale"``.
        """
        with self._lock:
            if not force_refresh:
                entry = self._entries.get(key)
                now = self._clock()
                if entry is not None and not entry.is_expired(now):
                    entry.last_accessed_at = now
                    self._entries.move_to_end(key)
                    self._stats["hits"] += 1
                    return LoadOutcome(entry.data, "cache")
                self._stats["misses"] += 1

            flight = self._inflight.get(key)
            leader = flight is None
            if flight is None:
                flight = _Flight()
                self._inflight[key] = flight

        if not leader:
            return flight.result()

        try:
            value = loader()
        except BaseException as exc:
            # Waiters must be released even when the loader is interrupted.
            with self._lock:
                previous = self._entries.get(key)
                if allow_stale and previous is not None and isinstance(exc, Exception):
                    self._stats["stale_served"] += 1
                    flight.outcome = LoadOutcome(previous.data, STALE)
                else:
                    flight.error = exc
                self._inflight.pop(key, None)
            flight.done.set()

            if flight.error is not None:
                raise
            logger.warning(f"Loader for {key} failed, serving stale entry: {exc}")
            return flight.result()

        with self._lock:
            self._store(key, value, ttl)
            flight.outcome = LoadOutcome(value, "loaded")
            del self._inflight[key]
        flight.done.set()
        return flight.result()

    def in_flight(self) -> list[str]:
        with self._lock:
            return list(self._inflight)

    # statistics

    def stats(self) -> dict[str, Any]:
        with self._lock:
            snapshot: dict[str, Any] = dict(self._stats)
            snapshot["size"] = len(self._entries)
        snapshot["max_size"] = self.max_size
        lookups = snapshot["hits"] + snapshot["misses"]
        snapshot["hit_rate"] = round(snapshot["hits"] / lookups, 4) if lookups else 0.0
        return snapshot
