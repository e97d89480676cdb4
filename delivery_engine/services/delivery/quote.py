"""
Delivery Quote Service

Orchestrates a delivery quote:

    1. Read the current delivery configuration snapshot
    2. If delivery is disabled, answer DeliveryDisabled (not an error)
    3. Normalize the address and look it up in the geocode cache
    4. On a miss, geocode it (typed outcome, retries handled by the client)
    5. Compute the distance to the restaurant and resolve the zone

Geocoding failures come back as DeliveryError values carrying the failure
kind, so the storefront can tell "try again" from "fix your configuration"
from "fix the address". A failed geocode never falls back to a default
distance.

The service subscribes to changes of both delivery keys. A change drops the
configuration snapshot; if the restaurant's address or coordinates moved,
the geocode cache is dropped too.

Version: 4.0.0
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional, Union

from delivery_engine.services.config.base import BaseConfigStore, UpsertResult
from delivery_engine.services.config.layers import DELIVERY_SETTINGS_KEY, DELIVERY_ZONES_KEY
from delivery_engine.services.delivery.cache import GeocodeCache, GeocodeResult, utcnow
from delivery_engine.services.delivery.snapshot import DeliveryConfigProvider, DeliveryConfigSnapshot
from delivery_engine.services.delivery.zones import DeliveryQuote, resolve_delivery_zone
from delivery_engine.services.geo.base import BaseGeocodingClient, GeocodeOutcome, GeocodeStatus
from delivery_engine.services.geo.distance import distance_km
from delivery_engine.services.notifier.base import BaseChangeNotifier, ChangeEvent

logger = logging.getLogger(__name__)


class DeliveryErrorKind(str, Enum):
    """Why an address could not be quoted."""
    NOT_FOUND = "not_found"
    QUOTA_EXCEEDED = "quota_exceeded"
    DENIED = "denied"
    TRANSIENT = "transient"


ERROR_MESSAGES = {
    DeliveryErrorKind.NOT_FOUND: (
        "We could not find this address. Please check it and try again."
    ),
    DeliveryErrorKind.QUOTA_EXCEEDED: (
        "Address lookup is temporarily unavailable (service limit reached). "
        "Please contact the restaurant."
    ),
    DeliveryErrorKind.DENIED: (
        "Address lookup is not configured correctly. Please contact the restaurant."
    ),
    DeliveryErrorKind.TRANSIENT: (
        "Address lookup is temporarily unavailable. Please try again in a moment."
    ),
}

_KIND_BY_STATUS = {
    GeocodeStatus.NOT_FOUND: DeliveryErrorKind.NOT_FOUND,
    GeocodeStatus.QUOTA_EXCEEDED: DeliveryErrorKind.QUOTA_EXCEEDED,
    GeocodeStatus.DENIED: DeliveryErrorKind.DENIED,
    GeocodeStatus.TRANSIENT_ERROR: DeliveryErrorKind.TRANSIENT,
}


@dataclass(frozen=True)
class DeliveryError:
    """A quote that could not be computed because geocoding failed."""
    kind: DeliveryErrorKind
    message: str
    detail: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: GeocodeOutcome) -> "DeliveryError":
        kind = _KIND_BY_STATUS[outcome.status]
        return cls(kind=kind, message=ERROR_MESSAGES[kind], detail=outcome.error_message)


@dataclass(frozen=True)
class DeliveryDisabled:
    """Delivery is switched off in the settings."""
    message: str = "Delivery is currently unavailable."


QuoteResult = Union[DeliveryQuote, DeliveryDisabled, DeliveryError]


def normalize_address(address: str) -> str:
    """
    Cache key for an address: trimmed, inner whitespace collapsed, case-folded.

    Example:
        >>> normalize_address("  Via  Roma 1,\\tTORINO ")
        'via roma 1, torino'
    """
    return " ".join(address.split()).casefold()


class DeliveryQuoteService:
    """
    Delivery quote orchestrator.

    Example:
        >>> service = DeliveryQuoteService(store, MockGeocodingClient(), notifier)
        >>> await service.start()
        >>> result = await service.quote("Via Roma 1, Torino, Italy", 32.50)
        >>> result.fee
        3.0
    """

    def __init__(
        self,
        store: BaseConfigStore,
        geocoder: BaseGeocodingClient,
        notifier: Optional[BaseChangeNotifier] = None,
        cache: Optional[GeocodeCache] = None,
        max_age_seconds: float = 60.0,
    ):
        self._store = store
        self._geocoder = geocoder
        self._notifier = notifier
        self.cache = cache or GeocodeCache()
        self.config = DeliveryConfigProvider(store, max_age_seconds=max_age_seconds)
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def store(self) -> BaseConfigStore:
        return self._store

    @property
    def geocoder(self) -> BaseGeocodingClient:
        return self._geocoder

    @property
    def notifier(self) -> Optional[BaseChangeNotifier]:
        return self._notifier

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to changes of the delivery configuration keys."""
        if self._notifier is None or self._unsubscribers:
            return
        for key in (DELIVERY_SETTINGS_KEY, DELIVERY_ZONES_KEY):
            self._unsubscribers.append(self._notifier.subscribe(key, self._on_config_changed))
        logger.info("DeliveryQuoteService subscribed to configuration changes")

    async def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    async def _on_config_changed(self, event: ChangeEvent) -> None:
        logger.info(f"Configuration '{event.key}' changed, reloading delivery config")
        self.config.invalidate()
        # Reload now so a moved restaurant drops the geocode cache before
        # the next quote arrives
        await self.current_config()

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def current_config(self) -> DeliveryConfigSnapshot:
        """
        Return the current configuration snapshot.

        Raises:
            ConfigTransportError: If the store is unreachable
            InvalidConfiguration: If the stored configuration is invalid
        """
        snapshot = await self.config.current()
        self.cache.bind(snapshot.settings.location_fingerprint)
        return snapshot

    async def geocode(
        self,
        address: str,
        snapshot: DeliveryConfigSnapshot,
    ) -> Union[GeocodeResult, DeliveryError]:
        """Resolve an address through the cache, then the geocoding client."""
        key = normalize_address(address)

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        outcome = await self._geocoder.resolve(
            " ".join(address.split()),
            api_key=snapshot.settings.geocoding_api_key or None,
        )
        if not outcome.is_resolved:
            logger.warning(f"Geocoding failed: {outcome.status.value}")
            return DeliveryError.from_outcome(outcome)

        result = GeocodeResult(
            normalized_address=key,
            lat=outcome.lat,
            lng=outcome.lng,
            formatted_address=outcome.formatted_address or "",
            resolved_at=utcnow(),
        )
        self.cache.put(result)
        return result

    async def quote(self, address: str, order_subtotal: float) -> QuoteResult:
        """
        Compute a delivery quote.

        Args:
            address: Free-text delivery address
            order_subtotal: Order subtotal, for the free-delivery threshold

        Returns:
            DeliveryQuote, DeliveryDisabled, or DeliveryError

        Raises:
            ConfigTransportError: If the store is unreachable
            InvalidConfiguration: If the stored configuration is invalid
        """
        snapshot = await self.current_config()
        settings = snapshot.settings

        if not settings.enabled:
            logger.debug("Quote requested while delivery is disabled")
            return DeliveryDisabled()

        located = await self.geocode(address, snapshot)
        if isinstance(located, DeliveryError):
            return located

        distance = distance_km(
            settings.restaurant_lat,
            settings.restaurant_lng,
            located.lat,
            located.lng,
        )
        quote = resolve_delivery_zone(distance, order_subtotal, snapshot.zones, settings)

        logger.info(
            f"Quote: {distance:.2f} km -> "
            f"{quote.zone_name or ('out of range' if not quote.within_range else 'base fee')}"
            f"{' (free delivery)' if quote.free_delivery_applied else ''}"
        )
        return replace(quote, formatted_address=located.formatted_address or None)

    async def locate_restaurant(self) -> tuple[Union[GeocodeOutcome, DeliveryError], Optional[UpsertResult]]:
        """
        Geocode the stored restaurant address and store its coordinates.

        The write goes through the settings store, so subscribers (this
        service included) see the new reference point.

        Returns:
            (outcome or error, write result when the coordinates were stored)
        """
        value = await self._store.get(DELIVERY_SETTINGS_KEY)
        address = value.get("restaurantAddress", "")

        outcome = await self._geocoder.resolve(
            address,
            api_key=value.get("geocodingApiKey") or None,
        )
        if not outcome.is_resolved:
            logger.warning(f"Restaurant address could not be located: {outcome.status.value}")
            return DeliveryError.from_outcome(outcome), None

        updated = {**value, "restaurantLat": outcome.lat, "restaurantLng": outcome.lng}
        write = await self._store.upsert(DELIVERY_SETTINGS_KEY, updated)
        logger.info(f"Restaurant located at ({outcome.lat:.5f}, {outcome.lng:.5f})")
        return outcome, write
