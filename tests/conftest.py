"""Pytest configuration and fixtures for the delivery engine tests.

Provides in-memory and SQLite-backed settings stores, notifiers, a mock
geocoder with known Torino addresses, and an API client with the quote
service dependency overridden. No live network, database or Redis is used.
"""

import os

# Must be set before delivery_engine reads its settings
os.environ.setdefault("ENV_MODE", "development")
os.environ.setdefault("CONFIG_BACKEND", "memory")
os.environ.setdefault("NOTIFIER_BACKEND", "local")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from delivery_engine.schemas import DeliverySettings, DeliveryZone
from delivery_engine.services.config import InMemoryConfigStore
from delivery_engine.services.delivery import DeliveryQuoteService, GeocodeCache
from delivery_engine.services.geo import MockGeocodingClient
from delivery_engine.services.notifier import InProcessChangeNotifier


RESTAURANT = (45.0703, 7.6869)

# Addresses with fixed coordinates, measured from RESTAURANT
NEAR_ADDRESS = "Via Garibaldi 10, Torino"       # ~1.5 km
FOUR_KM_ADDRESS = "Corso Unione Sovietica 300, Torino"
TWELVE_KM_ADDRESS = "Via Torino 1, Chieri"
FAR_ADDRESS = "Strada Comunale 1, Pino Torinese"  # 16 km


def point_north_of(lat: float, lng: float, km: float) -> tuple[float, float]:
    """A point `km` due north of (lat, lng) on the haversine sphere."""
    return lat + km / 111.19492664455873, lng


# ── Configuration Fixtures ───────────────────────────────────────

@pytest.fixture
def delivery_settings() -> DeliverySettings:
    """Settings matching the defaults (Torino, 15 km, free from 50.00)."""
    return DeliverySettings(
        enabled=True,
        restaurant_address="Piazza della Repubblica, 10100 Torino TO",
        restaurant_lat=RESTAURANT[0],
        restaurant_lng=RESTAURANT[1],
        max_delivery_distance_km=15,
        base_delivery_fee=5.00,
        free_delivery_threshold=50.00,
    )


@pytest.fixture
def zones() -> list[DeliveryZone]:
    """Three ascending zones: 5 / 10 / 15 km at 3 / 5 / 7."""
    return [
        DeliveryZone(id="1", name="Zone 1", max_distance_km=5, delivery_fee=3.00,
                     estimated_time_text="20-30 minutes"),
        DeliveryZone(id="2", name="Zone 2", max_distance_km=10, delivery_fee=5.00,
                     estimated_time_text="30-45 minutes"),
        DeliveryZone(id="3", name="Zone 3", max_distance_km=15, delivery_fee=7.00,
                     estimated_time_text="45-60 minutes"),
    ]


# ── Service Fixtures ─────────────────────────────────────────────

@pytest.fixture
def notifier() -> InProcessChangeNotifier:
    return InProcessChangeNotifier()


@pytest.fixture
def store(notifier: InProcessChangeNotifier) -> InMemoryConfigStore:
    """Empty in-memory store wired to the notifier (defaults apply)."""
    return InMemoryConfigStore(notifier=notifier)


@pytest.fixture
def geocoder() -> MockGeocodingClient:
    """Deterministic mock geocoder with the fixture addresses registered."""
    client = MockGeocodingClient()
    client.add_location(NEAR_ADDRESS, 45.0801, 7.6734, "Via Garibaldi, 10, 10122 Torino TO, Italy")
    lat, lng = point_north_of(*RESTAURANT, 4.0)
    client.add_location(FOUR_KM_ADDRESS, lat, lng, "Corso Unione Sovietica, 300, Torino")
    lat, lng = point_north_of(*RESTAURANT, 12.0)
    client.add_location(TWELVE_KM_ADDRESS, lat, lng, "Via Torino, 1, 10023 Chieri TO, Italy")
    lat, lng = point_north_of(*RESTAURANT, 16.0)
    client.add_location(FAR_ADDRESS, lat, lng, "Strada Comunale, 1, 10025 Pino Torinese TO, Italy")
    return client


@pytest_asyncio.fixture
async def service(
    store: InMemoryConfigStore,
    geocoder: MockGeocodingClient,
    notifier: InProcessChangeNotifier,
) -> AsyncGenerator[DeliveryQuoteService, None]:
    """Started quote service over the in-memory store."""
    quote_service = DeliveryQuoteService(
        store=store,
        geocoder=geocoder,
        notifier=notifier,
        cache=GeocodeCache(ttl_seconds=3600, max_entries=100),
        max_age_seconds=60,
    )
    await quote_service.start()

    yield quote_service

    await quote_service.stop()


# ── Database Fixtures ────────────────────────────────────────────

@pytest_asyncio.fixture
async def session_maker() -> AsyncGenerator[async_sessionmaker, None]:
    """SQLite in-memory database with the settings table created."""
    from delivery_engine.database import init_db, make_session_maker

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)

    yield make_session_maker(engine)

    await engine.dispose()


# ── API Fixtures ─────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(service: DeliveryQuoteService) -> AsyncGenerator[AsyncClient, None]:
    """API client with the quote service dependency overridden."""
    from delivery_engine.main import app, get_service

    app.dependency_overrides[get_service] = lambda: service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
