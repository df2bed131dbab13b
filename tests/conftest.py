"""Shared fixtures: in-memory MongoDB + ASGI test client.

Every test gets its own mongomock database injected through the ``get_db``
dependency, so the lifespan (and a real MongoDB) is never involved.
"""

import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import ServerSelectionTimeoutError

from database import get_db
from main import app


class _BrokenCollection:
    """Every driver call raises ``error``; by default the way an unreachable cluster does."""

    def __init__(self, error):
        self._error = error

    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise self._error
        return _fail


class _BrokenDatabase:
    name = "homehero_db"

    def __init__(self, error):
        self._error = error

    def __getitem__(self, collection_name):
        return _BrokenCollection(self._error)

    async def list_collection_names(self):
        raise self._error


@pytest.fixture
def mongo_db():
    return AsyncMongoMockClient()[f"homehero_test_{uuid.uuid4().hex[:8]}"]


async def _client_for(database):
    app.dependency_overrides[get_db] = lambda: database
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
async def client(mongo_db):
    async for c in _client_for(mongo_db):
        yield c


@pytest.fixture
async def broken_client(request):
    """Client whose database raises a storage fault on every operation.

    Parametrize indirectly to choose the exception raised.
    """
    error = getattr(request, "param", ServerSelectionTimeoutError("cluster0: timed out"))
    async for c in _client_for(_BrokenDatabase(error)):
        yield c


@pytest.fixture
def service_payload():
    return {
        "name": "Deep Kitchen Cleaning",
        "category": "Cleaning",
        "price": 49.5,
        "description": "Full kitchen degrease, appliances included.",
        "image": "https://img.homehero.io/kitchen.jpg",
        "provider_name": "Rita Gomes",
        "provider_email": "rita@homehero.io",
    }


@pytest.fixture
def booking_payload():
    return {
        "serviceId": "6650f0c2a1b2c3d4e5f60718",
        "bookingDate": "2026-11-02",
        "price": 49.5,
        "userEmail": "sam@homehero.io",
    }
