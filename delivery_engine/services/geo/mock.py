"""
Mock Geocoding Client

Simulates the Google Geocoding API without making real API calls.
Used in development mode (ENV_MODE=development) and in tests.

Behavior:
    - Known addresses resolve to fixed coordinates (Torino area)
    - Other addresses resolve deterministically to a point derived from a
      hash of the normalized address, within `spread_km` of the city center
    - Addresses containing "nowhere" are not found
    - Optional simulated latency and random transient failure rate
    - Scripted outcomes can be queued per address to exercise error paths
"""

import asyncio
import hashlib
import logging
import math
import random
from collections import deque
from typing import Optional

from delivery_engine.services.geo.base import (
    BaseGeocodingClient,
    GeocodeOutcome,
    GeocodeStatus,
)

logger = logging.getLogger(__name__)

KNOWN_LOCATIONS: dict[str, tuple[float, float, str]] = {
    "piazza della repubblica, 10100 torino to": (
        45.0703, 7.6869, "Piazza della Repubblica, 10122 Torino TO, Italy",
    ),
    "via roma 1, torino, italy": (
        45.0676, 7.6825, "Via Roma, 1, 10123 Torino TO, Italy",
    ),
    "via po 25, torino, italy": (
        45.0671, 7.6937, "Via Po, 25, 10124 Torino TO, Italy",
    ),
    "corso francia 100, torino, italy": (
        45.0764, 7.6371, "Corso Francia, 100, 10143 Torino TO, Italy",
    ),
    "moncalieri, italy": (
        44.9999, 7.6822, "10024 Moncalieri, Metropolitan City of Turin, Italy",
    ),
    "milano, italy": (
        45.4642, 9.1900, "Milan, Metropolitan City of Milan, Italy",
    ),
}


class MockGeocodingClient(BaseGeocodingClient):
    """
    Mock implementation of the geocoding client.

    Attributes:
        failure_rate: Probability of a simulated transient failure (0.0-1.0)
        min_latency: Minimum response time in seconds
        max_latency: Maximum response time in seconds
        calls: Number of resolve() calls served

    Example:
        >>> client = MockGeocodingClient()
        >>> outcome = await client.resolve("Via Roma 1, Torino, Italy")
        >>> print(outcome.is_resolved)
        True
    """

    # Torino center coordinates for generating realistic mock data
    CENTER_LAT = 45.0703
    CENTER_LNG = 7.6869

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
        spread_km: float = 12.0,
        locations: Optional[dict[str, tuple[float, float, str]]] = None,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.spread_km = spread_km
        self.calls = 0
        self._locations = dict(KNOWN_LOCATIONS)
        for address, location in (locations or {}).items():
            self._locations[address.strip().casefold()] = location
        self._scripted: dict[str, deque[GeocodeOutcome]] = {}

        logger.info(
            f"MockGeocodingClient initialized "
            f"(failure_rate={failure_rate:.0%}, known_addresses={len(self._locations)})"
        )

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "mock"

    def script(self, address: str, *outcomes: GeocodeOutcome) -> None:
        """Queue outcomes returned (in order) for the next calls on `address`."""
        key = address.strip().casefold()
        queue = self._scripted.setdefault(key, deque())
        queue.extend(outcomes)

    def add_location(self, address: str, lat: float, lng: float, formatted: Optional[str] = None) -> None:
        self._locations[address.strip().casefold()] = (lat, lng, formatted or address)

    async def _simulate_latency(self) -> None:
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _hashed_coordinates(self, key: str) -> tuple[float, float]:
        """Deterministic point within spread_km of the center."""
        digest = hashlib.sha256(key.encode("utf-8")).digest()
        bearing = int.from_bytes(digest[:4], "big") / 2**32 * 2 * math.pi
        radius = int.from_bytes(digest[4:8], "big") / 2**32 * self.spread_km

        lat = self.CENTER_LAT + (radius / 111.32) * math.cos(bearing)
        lng = self.CENTER_LNG + (
            radius / (111.32 * math.cos(math.radians(self.CENTER_LAT)))
        ) * math.sin(bearing)
        return round(lat, 6), round(lng, 6)

    async def resolve(
        self,
        address: str,
        api_key: Optional[str] = None,
    ) -> GeocodeOutcome:
        """Resolve an address (mock implementation)."""
        self.calls += 1
        key = address.strip().casefold()

        await self._simulate_latency()

        scripted = self._scripted.get(key)
        if scripted:
            outcome = scripted.popleft()
            logger.debug(f"Mock: scripted outcome {outcome.status.value}")
            return outcome

        if self.failure_rate and random.random() < self.failure_rate:
            logger.debug("Mock: Simulated provider failure")
            return GeocodeOutcome.failure(
                GeocodeStatus.TRANSIENT_ERROR,
                "Geocoding service temporarily unavailable",
            )

        if not key or "nowhere" in key:
            return GeocodeOutcome.failure(GeocodeStatus.NOT_FOUND, "ZERO_RESULTS")

        if key in self._locations:
            lat, lng, formatted = self._locations[key]
        else:
            lat, lng = self._hashed_coordinates(key)
            formatted = f"{address.strip().title()}, Torino TO, Italy"

        logger.info(f"Mock: Address resolved - {formatted}")
        return GeocodeOutcome.resolved(lat=lat, lng=lng, formatted_address=formatted)

    async def health_check(self) -> bool:
        """Mock health check always returns True."""
        logger.debug("Mock: Geocoder health check passed")
        return True
