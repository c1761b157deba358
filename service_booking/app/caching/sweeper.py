"""
Background expiry sweep for the response cache.
"""

import asyncio
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from shared.logging import get_logger
from .store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_SWEEP_INTERVAL_SECONDS = 600


class CacheSweeper:
    """Periodically evicts expired entries so unread keys do not pile up."""

    def __init__(
        self,
        store: CacheStore,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        *,
        metrics: Optional["MetricsCollector"] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.store = store
        self.interval_seconds = interval_seconds
        self.metrics = metrics
        self._sleep = sleep
        self.logger = get_logger("booking.cache.sweeper")

        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the sweep loop on the running event loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run())
        self.logger.info("Cache sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop the sweep loop and wait for it to exit."""
        if not self._running and self._task is None:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                self.logger.error("Cache sweeper exited with an error", error=str(exc))
            self._task = None
        self.logger.info("Cache sweeper stopped")

    def run_once(self) -> int:
        """Run one sweep pass. Errors are logged, never raised."""
        try:
            evicted = self.store.sweep()
            if self.metrics:
                if evicted:
                    self.metrics.increment_counter("cache_sweep_evictions_total", amount=evicted)
                self.metrics.set_gauge("cache_entries", self.store.stats().key_count)
        except Exception as exc:
            self.logger.error("Cache sweep failed", error=str(exc))
            self._count_failure()
            return 0
        return evicted

    def _count_failure(self) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.increment_counter("cache_errors_total", operation="sweep")
        except Exception as exc:
            self.logger.debug("Failed to record cache metric", error=str(exc))

    async def _run(self) -> None:
        try:
            while self._running:
                await self._sleep(self.interval_seconds)
                try:
                    self.run_once()
                except Exception as exc:
                    self.logger.error("Cache sweep iteration failed", error=str(exc))
        finally:
            self._running = False
