"""
Layered Configuration Resolver

Compiled defaults form the base layer; the stored value overrides it
field-by-field. Mappings merge recursively, everything else (lists,
scalars) is replaced wholesale by the stored layer.

Stored blobs written by older admin tooling use a few legacy field names;
those are upgraded before merging so the stored value is not shadowed by
the default under the new name.
"""

import copy
import logging
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

DELIVERY_SETTINGS_KEY = "deliverySettings"
DELIVERY_ZONES_KEY = "deliveryZones"

DEFAULT_DELIVERY_SETTINGS: dict[str, Any] = {
    "enabled": True,
    "restaurantAddress": "Piazza della Repubblica, 10100 Torino TO",
    "restaurantLat": 45.0703,
    "restaurantLng": 7.6869,
    "maxDeliveryDistanceKm": 15,
    "baseDeliveryFee": 5.00,
    "freeDeliveryThreshold": 50.00,
    "geocodingApiKey": "",
}

DEFAULT_DELIVERY_ZONES: list[dict[str, Any]] = [
    {
        "id": "1",
        "name": "Zone 1",
        "maxDistanceKm": 5,
        "deliveryFee": 3.00,
        "estimatedTimeText": "20-30 minutes",
        "isActive": True,
    },
    {
        "id": "2",
        "name": "Zone 2",
        "maxDistanceKm": 10,
        "deliveryFee": 5.00,
        "estimatedTimeText": "30-45 minutes",
        "isActive": True,
    },
    {
        "id": "3",
        "name": "Zone 3",
        "maxDistanceKm": 15,
        "deliveryFee": 7.00,
        "estimatedTimeText": "45-60 minutes",
        "isActive": True,
    },
]

DEFAULTS: dict[str, Any] = {
    DELIVERY_SETTINGS_KEY: DEFAULT_DELIVERY_SETTINGS,
    DELIVERY_ZONES_KEY: DEFAULT_DELIVERY_ZONES,
}

# legacy name -> current name
LEGACY_SETTINGS_FIELDS: dict[str, str] = {
    "maxDeliveryDistance": "maxDeliveryDistanceKm",
    "deliveryFee": "baseDeliveryFee",
    "googleMapsApiKey": "geocodingApiKey",
}

LEGACY_ZONE_FIELDS: dict[str, str] = {
    "maxDistance": "maxDistanceKm",
    "estimatedTime": "estimatedTimeText",
}


def deep_merge(base: Any, override: Any) -> Any:
    """
    Merge `override` onto `base` without mutating either.

    Mapping keys present in `override` win; nested mappings are merged
    recursively. Any non-mapping override replaces the base value.

    Example:
        >>> deep_merge({"a": 1, "b": {"c": 2}}, {"b": {"d": 3}})
        {'a': 1, 'b': {'c': 2, 'd': 3}}
    """
    if isinstance(base, Mapping) and isinstance(override, Mapping):
        merged = {k: copy.deepcopy(v) for k, v in base.items()}
        for k, v in override.items():
            merged[k] = deep_merge(merged[k], v) if k in merged else copy.deepcopy(v)
        return merged
    return copy.deepcopy(override)


def _rename_fields(value: Mapping[str, Any], renames: Mapping[str, str], key: str) -> dict:
    upgraded = dict(value)
    for old, new in renames.items():
        if old in upgraded:
            legacy = upgraded.pop(old)
            if new not in upgraded:
                upgraded[new] = legacy
            logger.warning(f"Setting '{key}' uses legacy field '{old}' (now '{new}')")
    return upgraded


def upgrade_legacy_fields(key: str, value: Any) -> Any:
    """Rename legacy fields in a stored blob to their current names."""
    if key == DELIVERY_SETTINGS_KEY and isinstance(value, Mapping):
        return _rename_fields(value, LEGACY_SETTINGS_FIELDS, key)
    if key == DELIVERY_ZONES_KEY and isinstance(value, list):
        return [
            _rename_fields(zone, LEGACY_ZONE_FIELDS, key) if isinstance(zone, Mapping) else zone
            for zone in value
        ]
    return value


def get_default(key: str) -> Optional[Any]:
    """Return a private copy of the compiled default for `key`, if any."""
    default = DEFAULTS.get(key)
    return copy.deepcopy(default)


def has_default(key: str) -> bool:
    return key in DEFAULTS


def resolve(key: str, stored: Any, *, has_stored: bool = True) -> Any:
    """
    Resolve the effective value of `key`.

    Args:
        key: Settings key
        stored: Value read from the store (ignored when has_stored is False)
        has_stored: Whether the store holds a row for the key

    Returns:
        The stored layer merged onto the compiled default
    """
    default = get_default(key)
    if not has_stored or stored is None:
        return default
    stored = upgrade_legacy_fields(key, stored)
    if default is None:
        return copy.deepcopy(stored)
    return deep_merge(default, stored)
