"""
Tests for the cache-aside response interceptor.
"""

from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.testclient import TestClient

from shared.metrics import MetricsCollector
from service_booking.app.caching.interceptor import CacheInterceptor, CachedResponse


class TestCacheInterceptor:
    """Test cases for CacheInterceptor.wrap."""

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("booking")

    @pytest.fixture
    def interceptor(self, store, metrics):
        return CacheInterceptor(store, ttl_seconds=300, metrics=metrics)

    @pytest.fixture
    def calls(self):
        return []

    @pytest.fixture
    def handler(self, calls):
        async def list_doctors(request):
            calls.append(request.url.path)
            return JSONResponse({"doctors": ["Dr. A", "Dr. B"], "call": len(calls)})

        return list_doctors

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, make_request, interceptor, handler, calls, metrics):
        wrapped = interceptor.wrap(handler)

        first = await wrapped(make_request())
        second = await wrapped(make_request())

        assert calls == ["/api/v1/doctors"]
        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        assert second.body == first.body
        assert second.headers["content-type"] == "application/json"
        assert metrics.sample_value("cache_hits_total", {"route": "list_doctors"}) == 1
        assert metrics.sample_value("cache_misses_total", {"route": "list_doctors"}) == 1

    @pytest.mark.asyncio
    async def test_detail_paths_share_one_metric_label(self, make_request, interceptor, metrics):
        async def get_doctor(request):
            return JSONResponse({"id": request.url.path.rsplit("/", 1)[-1]})

        wrapped = interceptor.wrap(get_doctor)
        for doctor_id in ("doc-1", "doc-2", "doc-3"):
            await wrapped(make_request(path=f"/api/v1/doctors/{doctor_id}"))

        assert metrics.sample_value("cache_misses_total", {"route": "get_doctor"}) == 3
        assert metrics.sample_value("cache_misses_total", {"route": "/api/v1/doctors/doc-1"}) is None

    @pytest.mark.asyncio
    async def test_query_order_shares_entry(self, make_request, interceptor, handler, calls):
        wrapped = interceptor.wrap(handler)

        await wrapped(make_request(query="sort=price&query=heart"))
        response = await wrapped(make_request(query="query=heart&sort=price"))

        assert len(calls) == 1
        assert response.headers["X-Cache"] == "HIT"

    @pytest.mark.asyncio
    async def test_entry_expires_with_ttl(self, make_request, interceptor, handler, calls, clock):
        wrapped = interceptor.wrap(handler, ttl_seconds=60)

        await wrapped(make_request())
        clock.advance(60)
        response = await wrapped(make_request())

        assert len(calls) == 2
        assert response.headers["X-Cache"] == "MISS"

    @pytest.mark.asyncio
    async def test_per_route_ttl_overrides_default(self, make_request, interceptor, handler, store):
        await interceptor.wrap(handler, ttl_seconds=600)(make_request())

        entry = store._entries["cache:/api/v1/doctors"]
        assert entry.expires_at == store.clock() + 600

    @pytest.mark.asyncio
    async def test_non_get_bypasses_cache(self, make_request, interceptor, handler, calls, store):
        wrapped = interceptor.wrap(handler)

        await wrapped(make_request(method="POST"))
        response = await wrapped(make_request(method="POST"))

        assert len(calls) == 2
        assert "X-Cache" not in response.headers
        assert store.stats().key_count == 0

    @pytest.mark.asyncio
    async def test_error_responses_are_not_cached(self, make_request, interceptor, calls, store):
        async def missing_doctor(request):
            calls.append(request.url.path)
            return JSONResponse({"message": "Doctor not found"}, status_code=404)

        wrapped = interceptor.wrap(missing_doctor)
        await wrapped(make_request(path="/api/v1/doctors/nope"))
        await wrapped(make_request(path="/api/v1/doctors/nope"))

        assert len(calls) == 2
        assert store.stats().key_count == 0

    @pytest.mark.asyncio
    async def test_handler_exception_propagates_and_is_not_cached(self, make_request, interceptor, store):
        async def broken(request):
            raise RuntimeError("database unavailable")

        with pytest.raises(RuntimeError):
            await interceptor.wrap(broken)(make_request())

        assert store.stats().key_count == 0

    @pytest.mark.asyncio
    async def test_streaming_response_is_passed_through(self, make_request, interceptor, store):
        async def stream(request):
            async def chunks():
                yield b"chunk"

            return StreamingResponse(chunks())

        response = await interceptor.wrap(stream)(make_request())

        assert response.headers["X-Cache"] == "MISS"
        assert store.stats().key_count == 0

    @pytest.mark.asyncio
    async def test_store_read_failure_fails_open(self, make_request, handler, calls, metrics):
        store = MagicMock()
        store.get.side_effect = RuntimeError("store corrupted")
        store.set.return_value = True
        interceptor = CacheInterceptor(store, ttl_seconds=300, metrics=metrics)

        response = await interceptor.wrap(handler)(make_request())

        assert response.status_code == 200
        assert calls == ["/api/v1/doctors"]
        assert metrics.sample_value("cache_errors_total", {"operation": "get"}) == 1

    @pytest.mark.asyncio
    async def test_store_write_failure_still_returns_response(self, make_request, handler, metrics):
        store = MagicMock()
        store.get.return_value = None
        store.set.side_effect = RuntimeError("out of memory")
        interceptor = CacheInterceptor(store, ttl_seconds=300, metrics=metrics)

        response = await interceptor.wrap(handler)(make_request())

        assert response.status_code == 200
        assert metrics.sample_value("cache_errors_total", {"operation": "set"}) == 1

    @pytest.mark.asyncio
    async def test_unexpected_payload_is_treated_as_miss(self, make_request, interceptor, handler, calls, store):
        store.set("cache:/api/v1/doctors", {"not": "a response"})

        response = await interceptor.wrap(handler)(make_request())

        assert calls == ["/api/v1/doctors"]
        assert response.headers["X-Cache"] == "MISS"
        assert isinstance(store.get("cache:/api/v1/doctors"), CachedResponse)

    @pytest.mark.asyncio
    async def test_disabled_interceptor_calls_handler(self, make_request, store, handler, calls):
        interceptor = CacheInterceptor(store, ttl_seconds=300, enabled=False)
        wrapped = interceptor.wrap(handler)

        await wrapped(make_request())
        response = await wrapped(make_request())

        assert len(calls) == 2
        assert "X-Cache" not in response.headers
        assert store.stats().key_count == 0


class TestCachedResponse:
    """Test cases for CachedResponse snapshots."""

    def test_capture_drops_per_request_headers(self):
        response = JSONResponse({"ok": True}, headers={"X-Request-ID": "abc", "X-Cache": "MISS"})
        response.set_cookie("session", "secret")

        snapshot = CachedResponse.capture(response)

        names = {name.lower() for name, _ in snapshot.headers}
        assert "x-request-id" not in names
        assert "set-cookie" not in names
        assert "x-cache" not in names
        assert "content-type" in names

    def test_to_response_replays_status_and_body(self):
        snapshot = CachedResponse(status_code=203, body=b'{"ok":true}', headers=(("content-type", "application/json"),))

        response = snapshot.to_response()

        assert response.status_code == 203
        assert response.body == b'{"ok":true}'
        assert response.headers["content-type"] == "application/json"


class TestCachedRoute:
    """route_class wires the interceptor into FastAPI routing."""

    def test_route_class_caches_fastapi_route(self, store):
        app = FastAPI()
        interceptor = CacheInterceptor(store, ttl_seconds=300)
        calls = []

        async def list_items(limit: int = 10):
            calls.append(limit)
            return {"limit": limit}

        app.router.add_api_route("/items", list_items, methods=["GET"], route_class_override=interceptor.route_class(600))
        client = TestClient(app)

        first = client.get("/items?limit=3")
        second = client.get("/items?limit=3")
        other = client.get("/items?limit=4")

        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        assert second.json() == {"limit": 3}
        assert other.headers["X-Cache"] == "MISS"
        assert calls == [3, 4]

    def test_validation_errors_are_not_cached(self, store):
        app = FastAPI()
        interceptor = CacheInterceptor(store, ttl_seconds=300)

        async def list_items(limit: int = 10):
            return {"limit": limit}

        app.router.add_api_route("/items", list_items, methods=["GET"], route_class_override=interceptor.route_class())
        client = TestClient(app)

        response = client.get("/items?limit=many")

        assert response.status_code == 422
        assert store.stats().key_count == 0

    def test_route_metrics_use_path_template(self, store):
        app = FastAPI()
        metrics = MetricsCollector("booking")
        interceptor = CacheInterceptor(store, ttl_seconds=300, metrics=metrics)

        async def get_item(item_id: str):
            return {"id": item_id}

        app.router.add_api_route(
            "/items/{item_id}", get_item, methods=["GET"], route_class_override=interceptor.route_class()
        )
        client = TestClient(app)

        client.get("/items/a")
        client.get("/items/b")
        client.get("/items/a")

        assert metrics.sample_value("cache_misses_total", {"route": "/items/{item_id}"}) == 2
        assert metrics.sample_value("cache_hits_total", {"route": "/items/{item_id}"}) == 1
