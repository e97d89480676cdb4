"""
Delivery Quote Service Factory

Wires the process-wide settings store, geocoding client and change
notifier into a single DeliveryQuoteService.

Usage:
    from delivery_engine.services.delivery import get_quote_service

    service = get_quote_service()
    await service.start()
    result = await service.quote("Via Roma 1, Torino", 32.50)
"""

import logging
from functools import lru_cache

from delivery_engine.core.config import get_settings
from delivery_engine.services.config import get_config_store
from delivery_engine.services.delivery.cache import GeocodeCache, GeocodeResult
from delivery_engine.services.delivery.quote import (
    DeliveryDisabled,
    DeliveryError,
    DeliveryErrorKind,
    DeliveryQuoteService,
    QuoteResult,
    normalize_address,
)
from delivery_engine.services.delivery.snapshot import DeliveryConfigProvider, DeliveryConfigSnapshot
from delivery_engine.services.delivery.zones import (
    DeliveryQuote,
    load_delivery_settings,
    load_zones,
    parse_zones,
    resolve_delivery_zone,
    validate_zones,
)
from delivery_engine.services.geo import get_geocoding_client
from delivery_engine.services.notifier import get_change_notifier

logger = logging.getLogger(__name__)


@lru_cache()
def get_quote_service() -> DeliveryQuoteService:
    """
    Get the process-wide quote service.

    Returns:
        DeliveryQuoteService: Service bound to the configured collaborators
    """
    settings = get_settings()

    service = DeliveryQuoteService(
        store=get_config_store(),
        geocoder=get_geocoding_client(),
        notifier=get_change_notifier(),
        cache=GeocodeCache(
            ttl_seconds=settings.geocode_cache_ttl_seconds,
            max_entries=settings.geocode_cache_max_entries,
        ),
        max_age_seconds=settings.settings_max_age_seconds,
    )
    logger.info("DeliveryQuoteService created")
    return service


def reset_quote_service() -> None:
    """Clear the cached quote service instance."""
    get_quote_service.cache_clear()
    logger.debug("Quote service cache cleared")


__all__ = [
    "get_quote_service",
    "reset_quote_service",
    "DeliveryConfigProvider",
    "DeliveryConfigSnapshot",
    "DeliveryDisabled",
    "DeliveryError",
    "DeliveryErrorKind",
    "DeliveryQuote",
    "DeliveryQuoteService",
    "GeocodeCache",
    "GeocodeResult",
    "QuoteResult",
    "load_delivery_settings",
    "load_zones",
    "normalize_address",
    "parse_zones",
    "resolve_delivery_zone",
    "validate_zones",
]
