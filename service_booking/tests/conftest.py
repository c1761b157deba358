"""
Shared fixtures for booking service tests.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from shared.config import ServiceConfig
from service_booking.app.auth.tokens import bearer_header
from service_booking.app.caching.store import CacheStore
from service_booking.app.domain.models import Doctor
from service_booking.app.main import BookingService


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_request(method: str = "GET", path: str = "/api/v1/doctors", query: str = "", headers=None) -> Request:
    """Build a bare Starlette request."""
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "root_path": "",
        "scheme": "http",
        "server": ("testserver", 80),
        "query_string": query.encode(),
        "headers": [(name.lower().encode(), value.encode()) for name, value in (headers or {}).items()],
    }
    return Request(scope)


@pytest.fixture
def make_request():
    return _make_request


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return CacheStore(default_ttl=300, clock=clock)


@pytest.fixture
def config():
    return ServiceConfig(service_name="booking", port=8000, jwt_secret="test-secret")


@pytest.fixture
def service(config):
    return BookingService(config)


@pytest.fixture
def client(service):
    return TestClient(service.app)


@pytest.fixture
def doctors():
    return [
        Doctor(id="doc-1", name="Dr. Ada Hart", email="ada@medicare.test", specialization="Cardiologist",
               ticket_price=100, average_rating=4.5, is_approved="approved"),
        Doctor(id="doc-2", name="Dr. Ben Osei", email="ben@medicare.test", specialization="Dermatologist",
               ticket_price=60, average_rating=3.9, is_approved="approved"),
        Doctor(id="doc-3", name="Dr. Cleo Park", email="cleo@medicare.test", specialization="Cardiac Surgeon",
               ticket_price=150, average_rating=4.9, is_approved="pending"),
    ]


@pytest.fixture
def seeded_service(service, doctors):
    async def _seed():
        for doctor in doctors:
            await service.repositories.doctors.insert(doctor)

    asyncio.run(_seed())
    return service


@pytest.fixture
def seeded_client(seeded_service):
    return TestClient(seeded_service.app)


@pytest.fixture
def auth_headers(service):
    """Factory for Authorization headers signed by the service under test."""

    def _headers(subject: str, role: str):
        return bearer_header(service.auth.issue_token(subject, role))

    return _headers
