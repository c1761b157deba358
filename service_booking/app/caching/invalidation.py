"""
Write-path cache invalidation.

Invalidation runs before the write is handed to its handler and is
best-effort: a failure is logged and counted, the write goes ahead, and the
stale entry ages out with its TTL.
"""

import functools
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, Optional, Sequence

from fastapi import Request, Response

from shared.logging import get_logger
from .keys import collection_targets
from .store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


Handler = Callable[[Request], Awaitable[Response]]


class InvalidationTrigger:
    """Removes cached reads affected by a write."""

    def __init__(self, store: CacheStore, *, metrics: Optional["MetricsCollector"] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("booking.cache.invalidation")

    def invalidate(self, keys: Iterable[str] = (), collections: Iterable[str] = ()) -> int:
        """Delete exact ``keys`` and every cached view under ``collections``.

        Returns the number of entries removed. Never raises.
        """
        removed = 0
        for key in keys:
            removed += self._delete_key(key, target=key)

        for collection in collections:
            exact, prefixes = collection_targets(collection)
            for key in exact:
                removed += self._delete_key(key, target=collection)
            for prefix in prefixes:
                removed += self._delete_prefix(prefix, target=collection)

        return removed

    def wrap(
        self,
        handler: Handler,
        keys: Sequence[str] = (),
        collections: Sequence[str] = (),
    ) -> Handler:
        """Return ``handler`` preceded by invalidation of ``keys``/``collections``."""

        @functools.wraps(handler)
        async def invalidating_handler(request: Request) -> Response:
            self.invalidate(keys, collections)
            return await handler(request)

        return invalidating_handler

    def dependency(self, keys: Sequence[str] = (), collections: Sequence[str] = ()) -> Callable[[], None]:
        """FastAPI dependency performing the same invalidation.

        List it after the route's auth dependency so rejected writes leave the
        cache alone.
        """
        keys = tuple(keys)
        collections = tuple(collections)

        def invalidate_cache() -> None:
            self.invalidate(keys, collections)

        return invalidate_cache

    def _delete_key(self, key: str, *, target: str) -> int:
        try:
            removed = self.store.delete(key)
        except Exception as exc:
            self._report_failure(target, exc)
            return 0
        self._report(target, removed)
        return removed

    def _delete_prefix(self, prefix: str, *, target: str) -> int:
        try:
            removed = self.store.delete_prefix(prefix)
        except Exception as exc:
            self._report_failure(target, exc)
            return 0
        self._report(target, removed)
        return removed

    def _report(self, target: str, removed: int) -> None:
        if not removed:
            return
        self.logger.info("Cache invalidated", target=target, removed=removed)
        self._count("cache_invalidations_total", amount=removed, target=target)

    def _report_failure(self, target: str, exc: Exception) -> None:
        self.logger.error("Cache invalidation failed; relying on TTL expiry", target=target, error=str(exc))
        self._count("cache_errors_total", operation="invalidate")

    def _count(self, metric_name: str, amount: float = 1, **labels) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.increment_counter(metric_name, amount=amount, **labels)
        except Exception as exc:
            self.logger.debug("Failed to record cache metric", metric=metric_name, error=str(exc))
