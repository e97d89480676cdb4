"""
Geocoding Client Factory

Provides a single entry point for obtaining a geocoding client instance.
Automatically selects Mock or Google Maps based on ENV_MODE configuration.

Usage:
    from delivery_engine.services.geo import get_geocoding_client

    client = get_geocoding_client()
    outcome = await client.resolve("Via Roma 1, Torino", api_key=key)
"""

import logging
from functools import lru_cache

from delivery_engine.core.config import get_settings
from delivery_engine.services.geo.base import (
    BaseGeocodingClient,
    GeocodeOutcome,
    GeocodeStatus,
)
from delivery_engine.services.geo.distance import distance_km
from delivery_engine.services.geo.google import GoogleGeocodingClient
from delivery_engine.services.geo.mock import MockGeocodingClient
from delivery_engine.services.geo.retry import RetryPolicy

logger = logging.getLogger(__name__)


@lru_cache()
def get_geocoding_client() -> BaseGeocodingClient:
    """
    Get the configured geocoding client instance.

    Returns:
        BaseGeocodingClient: MockGeocodingClient in development,
            GoogleGeocodingClient otherwise
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Geocoder: Using MockGeocodingClient (development mode)")
        return MockGeocodingClient(
            failure_rate=0.05,  # 5% simulated failures
            min_latency=0.1,
            max_latency=0.5,
        )

    logger.info(
        f"Geocoder: Using GoogleGeocodingClient "
        f"({settings.env_mode.value} mode)"
    )
    return GoogleGeocodingClient()


def reset_geocoding_client() -> None:
    """
    Clear the cached geocoding client instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_geocoding_client.cache_clear()
    logger.debug("Geocoding client cache cleared")


__all__ = [
    "get_geocoding_client",
    "reset_geocoding_client",
    "BaseGeocodingClient",
    "GeocodeOutcome",
    "GeocodeStatus",
    "GoogleGeocodingClient",
    "MockGeocodingClient",
    "RetryPolicy",
    "distance_km",
]
