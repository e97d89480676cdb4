"""
Quote Concurrency Simulation Script

Fires concurrent delivery quotes at a running server while an admin edit
of the zone table lands mid-run, then reports outcomes per kind.
Run from project root: python scripts/simulate.py

Version: 4.0.0
"""

import argparse
import asyncio
import random
import sys
import time
from collections import Counter
from datetime import datetime
from typing import Any

import httpx

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_QUOTES = 50

# Sample data for random quotes (Torino area)
STREETS = [
    "Via Roma", "Via Po", "Corso Francia", "Via Garibaldi", "Corso Vittorio Emanuele II",
    "Via Nizza", "Corso Regina Margherita", "Via Cernaia", "Corso Giulio Cesare",
]
TOWNS = ["Torino", "Moncalieri", "Collegno", "Grugliasco", "Settimo Torinese", "Chieri"]
SUBTOTALS = [12.50, 18.00, 24.90, 32.50, 49.99, 50.00, 75.00]


def generate_random_address() -> str:
    """Generate a random street address."""
    return f"{random.choice(STREETS)} {random.randint(1, 200)}, {random.choice(TOWNS)}, Italy"


def classify(data: dict[str, Any]) -> str:
    """Outcome label for a quote response body."""
    if not data.get("deliveryEnabled", True):
        return "disabled"
    if data.get("errorKind"):
        return f"error:{data['errorKind']}"
    if not data.get("withinRange"):
        return "out_of_range"
    if data.get("freeDeliveryApplied"):
        return f"free:{data.get('zoneName') or 'base'}"
    return data.get("zoneName") or "base_fee"


async def send_quote(client: httpx.AsyncClient, quote_num: int) -> dict[str, Any]:
    """Request one delivery quote."""
    payload = {
        "address": generate_random_address(),
        "orderSubtotal": random.choice(SUBTOTALS),
    }
    start_time = time.time()

    try:
        response = await client.post(f"{API_BASE_URL}/api/quote", json=payload, timeout=30.0)
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 200:
            data = response.json()
            return {
                "quote_num": quote_num,
                "success": True,
                "outcome": classify(data),
                "fee": data.get("fee"),
                "time": elapsed,
            }
        return {
            "quote_num": quote_num,
            "success": False,
            "outcome": f"http_{response.status_code}",
            "error": response.text[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        elapsed = round(time.time() - start_time, 3)
        return {
            "quote_num": quote_num,
            "success": False,
            "outcome": "connection_error",
            "error": str(e)[:100],
            "time": elapsed,
        }


async def edit_zones_midway(client: httpx.AsyncClient, delay: float) -> dict[str, Any]:
    """Replace the zone table while quotes are in flight."""
    await asyncio.sleep(delay)

    response = await client.get(f"{API_BASE_URL}/api/settings/deliveryZones")
    response.raise_for_status()
    zones = response.json()["value"]

    # Raise every fee by 0.50; the table stays sorted
    for zone in zones:
        zone["deliveryFee"] = round(zone["deliveryFee"] + 0.50, 2)

    response = await client.put(
        f"{API_BASE_URL}/api/settings/deliveryZones",
        json={"zones": zones},
    )
    return {"status": response.status_code, "body": response.json()}


async def run_simulation(num_quotes: int = TOTAL_QUOTES, edit_delay: float = 0.2) -> dict[str, Any]:
    """
    Run the concurrency simulation.

    Args:
        num_quotes: Number of concurrent quote requests
        edit_delay: Seconds after start at which the admin edit lands
    """
    print("=" * 70)
    print("QUOTE SIMULATION - CONCURRENT QUOTES + ADMIN EDIT")
    print("=" * 70)
    print(f"Total Quotes: {num_quotes}")
    print(f"Target: {API_BASE_URL}")
    print(f"Admin edit at: +{edit_delay}s")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        edit_task = asyncio.create_task(edit_zones_midway(client, edit_delay))
        results = await asyncio.gather(*(send_quote(client, i + 1) for i in range(num_quotes)))
        edit = await edit_task

    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    outcomes = Counter(r["outcome"] for r in results)

    print("\n" + "=" * 70)
    print("SIMULATION RESULTS")
    print("=" * 70)
    print(f"\nAnswered: {len(successful)}/{num_quotes}")
    print(f"Failed: {len(failed)}/{num_quotes}")
    print(f"Total Time: {total_time}s")
    print(f"Admin edit: HTTP {edit['status']} (applied={edit['body'].get('applied')})")

    print("\nOutcomes:")
    for outcome, count in outcomes.most_common():
        print(f"   {outcome:<28} {count}")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print("\nPerformance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")

    if failed:
        print("\nFailed Quote Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Quote #{f['quote_num']} [{f['outcome']}]: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)
    print("Run: python scripts/verify.py to check the stored configuration")
    print("=" * 70)

    return {
        "total": num_quotes,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "outcomes": dict(outcomes),
    }


async def test_single_flows() -> bool:
    """Check the server before the simulation."""
    print("\n" + "=" * 70)
    print("TESTING INDIVIDUAL FLOWS")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        print("\n1. Health Check...")
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"   Failed: {e}")
            return False
        if response.status_code != 200:
            print(f"   Failed: {response.text}")
            return False
        data = response.json()
        print(f"   Status: {data.get('status')}")
        print(f"   Config store: {data.get('config_store')}")
        print(f"   Geocoder: {data.get('geocoder')}")

        print("\n2. Delivery Zones...")
        response = await client.get(f"{API_BASE_URL}/api/delivery-zones")
        if response.status_code != 200:
            print(f"   Failed: {response.text}")
            return False
        for zone in response.json()["zones"]:
            print(f"   {zone['name']}: up to {zone['maxDistanceKm']} km, fee {zone['deliveryFee']:.2f}")

        print("\n3. Single Quote...")
        response = await client.post(
            f"{API_BASE_URL}/api/quote",
            json={"address": "Via Roma 1, Torino, Italy", "orderSubtotal": 25.00},
        )
        if response.status_code == 200:
            print(f"   Outcome: {classify(response.json())}")
        else:
            print(f"   Failed: {response.text[:100]}")
            return False

    print("\n" + "=" * 70)
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Quote Concurrency Simulation")
    parser.add_argument("--quotes", type=int, default=TOTAL_QUOTES, help="Number of quotes")
    parser.add_argument("--edit-delay", type=float, default=0.2, help="Seconds before the admin edit")
    parser.add_argument("--skip-tests", action="store_true", help="Skip individual tests")
    args = parser.parse_args()

    if not args.skip_tests:
        if not asyncio.run(test_single_flows()):
            print("\nPre-flight tests failed. Fix issues before running simulation.")
            sys.exit(1)
        print("\nPre-flight tests passed!")

    asyncio.run(run_simulation(args.quotes, args.edit_delay))
