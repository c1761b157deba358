"""
In-process TTL cache store for booking service responses.
"""

import threading
import time
from dataclasses import dataclass
from numbers import Real
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from shared.logging import get_logger


DEFAULT_TTL_SECONDS = 300
NO_EXPIRY = 0
SWEEP_BATCH_SIZE = 256

_MISSING = object()


@dataclass(frozen=True)
class CacheEntry:
    """A cached value and its absolute expiry on the store clock.

    ``expires_at`` is ``None`` for entries stored with ``NO_EXPIRY``.
    """

    key: str
    value: Any
    expires_at: Optional[float]

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass
class CacheStats:
    """Counters reported by ``CacheStore.stats``."""

    hits: int = 0
    misses: int = 0
    key_count: int = 0
    sets: int = 0
    deletes: int = 0
    expired: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "key_count": self.key_count,
            "sets": self.sets,
            "deletes": self.deletes,
            "expired": self.expired,
        }


@dataclass
class _Counters:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    expired: int = 0


class CacheStore:
    """Thread-safe key/value store with per-entry TTL.

    Expiry is enforced twice: lazily on every read (``get``/``has``/``get_many``)
    and proactively by ``sweep``, which the background sweeper calls on an
    interval. Entries are immutable, so a reader always sees value and expiry
    from the same ``set``.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not self._valid_ttl(default_ttl):
            raise ValueError(f"default_ttl must be a non-negative number, got {default_ttl!r}")
        self.default_ttl = default_ttl
        self.clock = clock
        self.logger = get_logger("booking.cache.store")

        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._counters = _Counters()

        self.logger.info("Cache initialized", default_ttl=default_ttl)

    @staticmethod
    def _valid_ttl(ttl: Any) -> bool:
        return isinstance(ttl, Real) and not isinstance(ttl, bool) and ttl >= 0

    def _expiry_for(self, ttl: float, now: float) -> Optional[float]:
        if ttl == NO_EXPIRY:
            return None
        return now + ttl

    def _lookup(self, key: str, now: float) -> Any:
        """Return the live value for ``key`` or ``_MISSING``. Caller holds the lock."""
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        if entry.is_expired(now):
            del self._entries[key]
            self._counters.expired += 1
            return _MISSING
        return entry.value

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or ``default`` when absent or expired."""
        with self._lock:
            value = self._lookup(key, self.clock())
            if value is _MISSING:
                self._counters.misses += 1
                return default
            self._counters.hits += 1
            return value

    def has(self, key: str) -> bool:
        """Whether ``key`` holds a live entry. Does not touch hit/miss counters."""
        with self._lock:
            return self._lookup(key, self.clock()) is not _MISSING

    def get_many(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Return the live entries among ``keys``."""
        found: Dict[str, Any] = {}
        with self._lock:
            now = self.clock()
            for key in keys:
                value = self._lookup(key, now)
                if value is _MISSING:
                    self._counters.misses += 1
                else:
                    self._counters.hits += 1
                    found[key] = value
        return found

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """Store ``value`` under ``key``, replacing any previous entry.

        ``ttl=None`` uses the store default, ``ttl=0`` never expires. An invalid
        ttl leaves the store untouched and returns ``False``.
        """
        ttl = self.default_ttl if ttl is None else ttl
        if not self._valid_ttl(ttl):
            self.logger.warning("Rejected cache set with invalid ttl", key=key, ttl=ttl)
            return False

        with self._lock:
            now = self.clock()
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=self._expiry_for(ttl, now))
            self._counters.sets += 1
        return True

    def set_many(self, items: Mapping[str, Any], ttl: Optional[float] = None) -> bool:
        """Store every pair in ``items`` with the same ttl."""
        ttl = self.default_ttl if ttl is None else ttl
        if not self._valid_ttl(ttl):
            self.logger.warning("Rejected cache set_many with invalid ttl", keys=len(items), ttl=ttl)
            return False

        with self._lock:
            now = self.clock()
            expires_at = self._expiry_for(ttl, now)
            for key, value in items.items():
                self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)
            self._counters.sets += len(items)
        return True

    def delete(self, key: str) -> int:
        """Remove ``key``. Returns 1 if an entry was removed, else 0."""
        with self._lock:
            if self._entries.pop(key, None) is None:
                return 0
            self._counters.deletes += 1
            return 1

    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``."""
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            self._counters.deletes += len(doomed)
        return len(doomed)

    def flush(self) -> None:
        """Remove every entry."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        self.logger.info("Cache flushed", removed=removed)

    def keys(self) -> List[str]:
        """Keys of entries that are live as of this call."""
        with self._lock:
            now = self.clock()
            return [key for key, entry in self._entries.items() if not entry.is_expired(now)]

    def size(self) -> int:
        return len(self.keys())

    def sweep(self) -> int:
        """Evict every expired entry and return how many were removed.

        Works from a snapshot of the keys and takes the lock per batch, so
        readers are never blocked for a full scan. Each candidate is re-checked
        under the lock; an entry refreshed since the snapshot survives.
        """
        with self._lock:
            snapshot = list(self._entries.keys())

        evicted = 0
        for start in range(0, len(snapshot), SWEEP_BATCH_SIZE):
            batch = snapshot[start:start + SWEEP_BATCH_SIZE]
            with self._lock:
                now = self.clock()
                removed = 0
                for key in batch:
                    entry = self._entries.get(key)
                    if entry is not None and entry.is_expired(now):
                        del self._entries[key]
                        removed += 1
                self._counters.expired += removed
            evicted += removed

        if evicted:
            self.logger.info("Cache sweep evicted expired entries", evicted=evicted)
        else:
            self.logger.debug("Cache sweep found nothing to evict")
        return evicted

    def stats(self) -> CacheStats:
        """Snapshot of the store counters.

        ``key_count`` is the number of entries physically held, including
        expired ones that neither a read nor a sweep has removed yet.
        """
        with self._lock:
            return CacheStats(
                hits=self._counters.hits,
                misses=self._counters.misses,
                key_count=len(self._entries),
                sets=self._counters.sets,
                deletes=self._counters.deletes,
                expired=self._counters.expired,
            )
