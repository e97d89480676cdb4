"""
Delivery Configuration Verification Script

Loads the stored delivery configuration, checks it the same way the quote
service does, and prints a report.
Run from project root: python scripts/verify.py

Version: 4.0.0
"""

import asyncio
import os
import sys
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from delivery_engine.core.exceptions import ConfigTransportError, InvalidConfiguration
from delivery_engine.services.config import (
    DELIVERY_SETTINGS_KEY,
    DELIVERY_ZONES_KEY,
    get_config_store,
)
from delivery_engine.services.delivery import load_delivery_settings, parse_zones, validate_zones


async def verify_configuration() -> bool:
    """Verify the stored delivery configuration."""
    store = get_config_store()

    print("=" * 60)
    print("DELIVERY CONFIGURATION REPORT")
    print("=" * 60)
    print(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Store: {store.backend_name}")
    print("=" * 60)

    ok = True

    try:
        settings_row = await store.fetch(DELIVERY_SETTINGS_KEY)
        zones_row = await store.fetch(DELIVERY_ZONES_KEY)
        settings_value = await store.get(DELIVERY_SETTINGS_KEY)
        zones_value = await store.get(DELIVERY_ZONES_KEY)
    except ConfigTransportError as e:
        print(f"\nSettings store unreachable: {e}")
        return False

    for key, row in ((DELIVERY_SETTINGS_KEY, settings_row), (DELIVERY_ZONES_KEY, zones_row)):
        if row is None:
            print(f"\n'{key}': not stored (defaults in use)")
        else:
            print(f"\n'{key}': stored, updated {row.updated_at.isoformat()}")

    print("\nSETTINGS:")
    try:
        settings = load_delivery_settings(settings_value)
        print(f"   Enabled: {settings.enabled}")
        print(f"   Restaurant: {settings.restaurant_address}")
        print(f"   Location: ({settings.restaurant_lat}, {settings.restaurant_lng})")
        print(f"   Max distance: {settings.max_delivery_distance_km} km")
        print(f"   Base fee: {settings.base_delivery_fee:.2f}")
        print(f"   Free delivery from: {settings.free_delivery_threshold:.2f}")
        print(f"   Geocoding key stored: {'yes' if settings.geocoding_api_key else 'no'}")
    except InvalidConfiguration as e:
        ok = False
        settings = None
        print("   INVALID:")
        for problem in e.problems:
            print(f"   - {problem}")

    print("\nZONES:")
    try:
        zones = parse_zones(zones_value)
        active = validate_zones(zones)
        for zone in zones:
            state = "active" if zone.is_active else "inactive"
            print(
                f"   [{zone.id}] {zone.name}: <= {zone.max_distance_km} km, "
                f"fee {zone.delivery_fee:.2f}, {zone.estimated_time_text or '-'} ({state})"
            )
        if settings is not None and active:
            last = active[-1].max_distance_km
            if last > settings.max_delivery_distance_km:
                print(f"\n   Note: zones reach {last} km but the cutoff is "
                      f"{settings.max_delivery_distance_km} km")
            elif last < settings.max_delivery_distance_km:
                print(f"\n   Note: {last}-{settings.max_delivery_distance_km} km "
                      f"is charged the base fee")
    except InvalidConfiguration as e:
        ok = False
        print("   INVALID:")
        for problem in e.problems:
            print(f"   - {problem}")

    print("\n" + "=" * 60)
    print("VERIFICATION COMPLETE" if ok else "VERIFICATION FAILED")
    print("=" * 60)

    return ok


if __name__ == "__main__":
    sys.exit(0 if asyncio.run(verify_configuration()) else 1)
