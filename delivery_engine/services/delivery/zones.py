"""
Zone Resolver

Maps a distance (plus the order subtotal) to a priced delivery zone, or to
an out-of-range result. Pure computation: no I/O, no shared state.

Rules:
    - Only active zones take part. In stored order their maxDistanceKm must
      be strictly increasing; a table that is unsorted or repeats a
      boundary is rejected, never reordered. Their fees must not decrease
      with distance.
    - maxDeliveryDistanceKm is the hard cutoff, applied first.
    - The first active zone with maxDistanceKm >= distance wins
      (boundaries are inclusive-upper).
    - Within the cutoff but past the last zone, baseDeliveryFee applies
      as an implicit final zone (zone=None), floored at the last active
      zone's fee.
    - orderSubtotal >= freeDeliveryThreshold forces fee 0 for in-range
      orders; the matched zone is kept for its name and ETA.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from pydantic import ValidationError

from delivery_engine.core.exceptions import InvalidDeliverySettings, InvalidZoneConfiguration
from delivery_engine.schemas import DeliverySettings, DeliveryZone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryQuote:
    """
    Computed quote for one address.

    Attributes:
        distance_km: Great-circle distance from the restaurant
        zone: Matched zone; None when out of range or on the implicit final zone
        fee: Delivery fee; None when out of range
        within_range: False when distance exceeds maxDeliveryDistanceKm
        free_delivery_applied: True when the free-delivery threshold zeroed the fee
        formatted_address: Provider's formatted address, when known
    """
    distance_km: float
    zone: Optional[DeliveryZone]
    fee: Optional[float]
    within_range: bool
    free_delivery_applied: bool = False
    formatted_address: Optional[str] = None

    @property
    def zone_name(self) -> Optional[str]:
        return self.zone.name if self.zone else None

    @property
    def estimated_time_text(self) -> Optional[str]:
        return self.zone.estimated_time_text if self.zone else None


def _describe(error: ValidationError, prefix: str = "") -> list[str]:
    problems = []
    for err in error.errors():
        loc = ".".join(str(part) for part in err["loc"])
        problems.append(f"{prefix}{loc}: {err['msg']}" if loc else f"{prefix}{err['msg']}")
    return problems


def load_delivery_settings(value: Any) -> DeliverySettings:
    """
    Parse the merged "deliverySettings" blob.

    Raises:
        InvalidDeliverySettings: If the blob violates its invariants
    """
    if not isinstance(value, dict):
        raise InvalidDeliverySettings([f"expected an object, got {type(value).__name__}"])
    try:
        return DeliverySettings.model_validate(value)
    except ValidationError as e:
        raise InvalidDeliverySettings(_describe(e)) from e


def parse_zones(value: Any) -> list[DeliveryZone]:
    """
    Parse the "deliveryZones" blob into zone models, without table checks.

    Raises:
        InvalidZoneConfiguration: If the blob is not a list of zones
    """
    if not isinstance(value, list):
        raise InvalidZoneConfiguration([f"expected a list of zones, got {type(value).__name__}"])

    zones = []
    problems = []
    for index, item in enumerate(value):
        try:
            zones.append(DeliveryZone.model_validate(item))
        except ValidationError as e:
            problems.extend(_describe(e, prefix=f"zones[{index}]."))
    if problems:
        raise InvalidZoneConfiguration(problems)
    return zones


def validate_zones(zones: Iterable[DeliveryZone]) -> tuple[DeliveryZone, ...]:
    """
    Check a zone table and return its active zones in ascending order.

    Raises:
        InvalidZoneConfiguration: Listing every problem found
    """
    zones = list(zones)
    problems = []
    seen_ids = set()

    for zone in zones:
        if zone.id in seen_ids:
            problems.append(f"duplicate zone id '{zone.id}'")
        seen_ids.add(zone.id)
        if not math.isfinite(zone.max_distance_km) or zone.max_distance_km < 0:
            problems.append(f"zone '{zone.id}' has invalid maxDistanceKm {zone.max_distance_km}")
        if not math.isfinite(zone.delivery_fee) or zone.delivery_fee < 0:
            problems.append(f"zone '{zone.id}' has invalid deliveryFee {zone.delivery_fee}")

    active = tuple(zone for zone in zones if zone.is_active)
    for previous, current in zip(active, active[1:]):
        if current.max_distance_km == previous.max_distance_km:
            problems.append(
                f"zones '{previous.id}' and '{current.id}' share the boundary "
                f"{current.max_distance_km} km"
            )
        elif current.max_distance_km < previous.max_distance_km:
            problems.append(
                f"zone '{current.id}' ({current.max_distance_km} km) follows "
                f"zone '{previous.id}' ({previous.max_distance_km} km): "
                f"active zones must be in ascending order"
            )
        elif current.delivery_fee < previous.delivery_fee:
            problems.append(
                f"zone '{current.id}' (fee {current.delivery_fee}) is cheaper than the nearer "
                f"zone '{previous.id}' (fee {previous.delivery_fee}): fees must not decrease with distance"
            )

    if problems:
        raise InvalidZoneConfiguration(problems)
    return active


def load_zones(value: Any) -> tuple[DeliveryZone, ...]:
    """Parse and validate the "deliveryZones" blob; returns the active zones."""
    return validate_zones(parse_zones(value))


def resolve_delivery_zone(
    distance_km: float,
    order_subtotal: float,
    zones: Sequence[DeliveryZone],
    settings: DeliverySettings,
) -> DeliveryQuote:
    """
    Resolve a distance to a priced zone.

    Args:
        distance_km: Distance from the restaurant
        order_subtotal: Order subtotal, for the free-delivery threshold
        zones: Zone table in stored order (inactive zones are ignored)
        settings: Delivery settings (cutoff, base fee, threshold)

    Raises:
        InvalidZoneConfiguration: If the active zones are not strictly increasing
            in distance or their fees decrease
        ValueError: If distance_km is negative
    """
    if distance_km < 0:
        raise ValueError(f"distance_km must be non-negative, got {distance_km}")

    active = validate_zones(zones)

    if distance_km > settings.max_delivery_distance_km:
        return DeliveryQuote(
            distance_km=distance_km,
            zone=None,
            fee=None,
            within_range=False,
        )

    zone = next((z for z in active if z.max_distance_km >= distance_km), None)
    if zone is not None:
        fee = zone.delivery_fee
    else:
        # Past the last zone never costs less than the last zone
        fee = max(settings.base_delivery_fee, active[-1].delivery_fee) if active else settings.base_delivery_fee

    free = order_subtotal >= settings.free_delivery_threshold
    if free:
        fee = 0.0

    return DeliveryQuote(
        distance_km=distance_km,
        zone=zone,
        fee=fee,
        within_range=True,
        free_delivery_applied=free,
    )
