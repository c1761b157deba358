"""
Cache-aside interception for read routes.

``CacheInterceptor.wrap`` decorates any ``async (Request) -> Response`` handler.
On a hit the stored response is replayed without calling the handler; on a
miss the handler runs and a successful response is captured before it goes
back to the caller. ``route_class`` applies the same wrapper to a FastAPI
route through ``route_class_override``.
"""

import functools
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Tuple, Type

from fastapi import Request, Response
from fastapi.routing import APIRoute

from shared.logging import get_logger
from .keys import request_cache_key
from .store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


Handler = Callable[[Request], Awaitable[Response]]

CACHEABLE_METHODS = frozenset({"GET"})
_UNCACHED_HEADERS = frozenset({"content-length", "set-cookie", "x-request-id", "x-cache"})


@dataclass(frozen=True)
class CachedResponse:
    """Serialized response replayed verbatim on a cache hit."""

    status_code: int
    body: bytes
    headers: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def capture(cls, response: Response) -> Optional["CachedResponse"]:
        """Snapshot ``response`` if it has a fully rendered body."""
        body = getattr(response, "body", None)
        if not isinstance(body, (bytes, bytearray)):
            return None
        headers = tuple(
            (name, value)
            for name, value in response.headers.items()
            if name.lower() not in _UNCACHED_HEADERS
        )
        return cls(status_code=response.status_code, body=bytes(body), headers=headers)

    def to_response(self) -> Response:
        return Response(content=self.body, status_code=self.status_code, headers=dict(self.headers))


class CacheInterceptor:
    """Cache-aside wrapper for idempotent read handlers."""

    def __init__(
        self,
        store: CacheStore,
        ttl_seconds: Optional[float] = None,
        *,
        enabled: bool = True,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self.metrics = metrics
        self.logger = get_logger("booking.cache.interceptor")

    def wrap(
        self,
        handler: Handler,
        ttl_seconds: Optional[float] = None,
        *,
        route_label: Optional[str] = None,
    ) -> Handler:
        """Return ``handler`` wrapped with cache-aside lookup and population."""
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        # Metric labels stay bounded: one per route, never one per concrete URL
        label = route_label or getattr(handler, "__name__", "handler")

        @functools.wraps(handler)
        async def cached_handler(request: Request) -> Response:
            if not self.enabled or request.method not in CACHEABLE_METHODS:
                return await handler(request)

            key = request_cache_key(request)

            cached = self._lookup(key)
            if cached is not None:
                self.logger.debug("Cache hit", key=key)
                self._count("cache_hits_total", route=label)
                response = cached.to_response()
                response.headers["X-Cache"] = "HIT"
                return response

            self.logger.debug("Cache miss", key=key)
            self._count("cache_misses_total", route=label)

            response = await handler(request)
            self._populate(key, response, ttl)
            response.headers["X-Cache"] = "MISS"
            return response

        return cached_handler

    def route_class(self, ttl_seconds: Optional[float] = None) -> Type[APIRoute]:
        """APIRoute subclass whose request handler goes through this interceptor."""
        interceptor = self

        class CachedRoute(APIRoute):
            def get_route_handler(self) -> Handler:
                handler = super().get_route_handler()
                return interceptor.wrap(handler, ttl_seconds, route_label=self.path)

        return CachedRoute

    def _lookup(self, key: str) -> Optional[CachedResponse]:
        try:
            value = self.store.get(key)
        except Exception as exc:
            self.logger.error("Cache lookup failed, treating as miss", key=key, error=str(exc))
            self._count("cache_errors_total", operation="get")
            return None

        if value is None:
            return None
        if not isinstance(value, CachedResponse):
            self.logger.warning("Ignoring unexpected cached payload", key=key, payload_type=type(value).__name__)
            self._count("cache_errors_total", operation="decode")
            return None
        return value

    def _populate(self, key: str, response: Response, ttl: Optional[float]) -> None:
        if not 200 <= response.status_code < 300:
            return

        snapshot = CachedResponse.capture(response)
        if snapshot is None:
            self.logger.debug("Response has no buffered body, not cached", key=key)
            return

        try:
            stored = self.store.set(key, snapshot, ttl)
        except Exception as exc:
            self.logger.error("Cache population failed", key=key, error=str(exc))
            self._count("cache_errors_total", operation="set")
            return

        if not stored:
            self._count("cache_errors_total", operation="set")

    def _count(self, metric_name: str, **labels) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.increment_counter(metric_name, **labels)
        except Exception as exc:  # pragma: no cover
            self.logger.debug("Failed to record cache metric", metric=metric_name, error=str(exc))
