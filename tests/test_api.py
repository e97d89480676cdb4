"""Tests for the Quote and Admin API endpoints."""

import pytest

from delivery_engine.services.config import DELIVERY_SETTINGS_KEY, DELIVERY_ZONES_KEY
from delivery_engine.services.geo import GeocodeOutcome, GeocodeStatus

from tests.conftest import FAR_ADDRESS, FOUR_KM_ADDRESS, NEAR_ADDRESS


@pytest.mark.integration
@pytest.mark.asyncio
class TestQuoteAPI:
    """Test POST /api/quote."""

    async def test_quote_in_zone(self, client):
        response = await client.post("/api/quote", json={"address": NEAR_ADDRESS, "orderSubtotal": 20})

        assert response.status_code == 200
        data = response.json()
        assert data["withinRange"] is True
        assert data["fee"] == 3.0
        assert data["zoneName"] == "Zone 1"
        assert data["estimatedTimeText"] == "20-30 minutes"
        assert "errorKind" not in data

    async def test_quote_out_of_range_has_no_fee(self, client):
        response = await client.post("/api/quote", json={"address": FAR_ADDRESS, "orderSubtotal": 20})

        data = response.json()
        assert data["withinRange"] is False
        assert "fee" not in data
        assert "errorKind" not in data

    async def test_free_delivery(self, client):
        response = await client.post("/api/quote", json={"address": FOUR_KM_ADDRESS, "orderSubtotal": 50.00})

        data = response.json()
        assert data["fee"] == 0
        assert data["freeDeliveryApplied"] is True
        assert data["zoneName"] == "Zone 1"

    @pytest.mark.parametrize("status,kind", [
        (GeocodeStatus.NOT_FOUND, "not_found"),
        (GeocodeStatus.QUOTA_EXCEEDED, "quota_exceeded"),
        (GeocodeStatus.DENIED, "denied"),
        (GeocodeStatus.TRANSIENT_ERROR, "transient"),
    ])
    async def test_geocode_failure_reports_kind(self, client, geocoder, status, kind):
        geocoder.script(NEAR_ADDRESS, GeocodeOutcome.failure(status))

        response = await client.post("/api/quote", json={"address": NEAR_ADDRESS, "orderSubtotal": 20})

        assert response.status_code == 200
        data = response.json()
        assert data["withinRange"] is False
        assert data["errorKind"] == kind
        assert data["message"]
        assert "fee" not in data

    async def test_disabled_delivery(self, client, store):
        await store.upsert(DELIVERY_SETTINGS_KEY, {"enabled": False})

        data = (await client.post("/api/quote", json={"address": NEAR_ADDRESS, "orderSubtotal": 20})).json()

        assert data["deliveryEnabled"] is False
        assert data["withinRange"] is False
        assert "errorKind" not in data

    @pytest.mark.parametrize("body", [
        {"address": "   ", "orderSubtotal": 10},
        {"address": NEAR_ADDRESS, "orderSubtotal": -1},
        {"orderSubtotal": 10},
    ])
    async def test_invalid_request_rejected(self, client, body):
        response = await client.post("/api/quote", json=body)
        assert response.status_code == 422

    async def test_store_unavailable_is_503(self, client, service, store):
        service.config.invalidate()
        store.unavailable = True

        response = await client.post("/api/quote", json={"address": NEAR_ADDRESS, "orderSubtotal": 20})

        assert response.status_code == 503
        assert response.json()["success"] is False

    async def test_invalid_stored_zones_is_500(self, client, store):
        await store.upsert(DELIVERY_ZONES_KEY, [
            {"id": "1", "name": "A", "maxDistanceKm": 10, "deliveryFee": 5},
            {"id": "2", "name": "B", "maxDistanceKm": 5, "deliveryFee": 3},
        ])

        response = await client.post("/api/quote", json={"address": NEAR_ADDRESS, "orderSubtotal": 20})

        assert response.status_code == 500
        assert response.json()["error"] == "Invalid Delivery Configuration"


@pytest.mark.integration
@pytest.mark.asyncio
class TestZonesAPI:
    """Test GET /api/delivery-zones."""

    async def test_lists_active_zones(self, client, store):
        await store.upsert(DELIVERY_ZONES_KEY, [
            {"id": "1", "name": "Centro", "maxDistanceKm": 4, "deliveryFee": 2},
            {"id": "2", "name": "Chiusa", "maxDistanceKm": 8, "deliveryFee": 4, "isActive": False},
            {"id": "3", "name": "Cintura", "maxDistanceKm": 12, "deliveryFee": 6},
        ])

        data = (await client.get("/api/delivery-zones")).json()

        assert [z["name"] for z in data["zones"]] == ["Centro", "Cintura"]
        assert data["deliveryEnabled"] is True
        assert data["freeDeliveryThreshold"] == 50.0
        assert data["zones"][0]["maxDistanceKm"] == 4


@pytest.mark.integration
@pytest.mark.asyncio
class TestAdminAPI:
    """Test the settings endpoints."""

    async def test_read_default_settings(self, client):
        response = await client.get("/api/settings/deliverySettings")

        assert response.status_code == 200
        assert response.json()["value"]["maxDeliveryDistanceKm"] == 15

    async def test_read_unknown_key_is_404(self, client):
        assert (await client.get("/api/settings/bannerText")).status_code == 404

    async def test_write_settings(self, client, store):
        response = await client.put(
            "/api/settings/deliverySettings",
            json={"enabled": True, "freeDeliveryThreshold": 30, "baseDeliveryFee": 4},
        )

        assert response.status_code == 200
        assert response.json()["applied"] is True
        value = await store.get(DELIVERY_SETTINGS_KEY)
        assert value["freeDeliveryThreshold"] == 30

    async def test_write_settings_with_legacy_names(self, client, store):
        response = await client.put("/api/settings/deliverySettings", json={"maxDeliveryDistance": 9})

        assert response.status_code == 200
        assert (await store.get(DELIVERY_SETTINGS_KEY))["maxDeliveryDistanceKm"] == 9

    async def test_invalid_settings_rejected(self, client, store):
        response = await client.put("/api/settings/deliverySettings", json={"restaurantLat": 120})

        assert response.status_code == 422
        assert await store.fetch(DELIVERY_SETTINGS_KEY) is None

    async def test_settings_write_changes_next_quote(self, client):
        await client.put("/api/settings/deliverySettings", json={"freeDeliveryThreshold": 10})

        data = (await client.post("/api/quote", json={"address": NEAR_ADDRESS, "orderSubtotal": 20})).json()
        assert data["freeDeliveryApplied"] is True

    async def test_write_zones(self, client, store):
        zones = [
            {"id": "1", "name": "Centro", "maxDistanceKm": 3, "deliveryFee": 2.5,
             "estimatedTimeText": "15-25 minutes", "isActive": True},
            {"id": "2", "name": "Periferia", "maxDistanceKm": 15, "deliveryFee": 6,
             "estimatedTimeText": "40-50 minutes", "isActive": True},
        ]

        response = await client.put("/api/settings/deliveryZones", json={"zones": zones})

        assert response.status_code == 200
        assert await store.get(DELIVERY_ZONES_KEY) == zones
        quote = (await client.post("/api/quote", json={"address": NEAR_ADDRESS, "orderSubtotal": 0})).json()
        assert quote["zoneName"] == "Centro"

    async def test_unsorted_zones_rejected(self, client, store):
        zones = [
            {"id": "1", "name": "A", "maxDistanceKm": 10, "deliveryFee": 5},
            {"id": "2", "name": "B", "maxDistanceKm": 5, "deliveryFee": 3},
        ]

        response = await client.put("/api/settings/deliveryZones", json={"zones": zones})

        assert response.status_code == 422
        assert await store.fetch(DELIVERY_ZONES_KEY) is None

    async def test_nan_zone_rejected(self, client, store):
        body = (
            '{"zones": ['
            '{"id": "1", "name": "A", "maxDistanceKm": 5, "deliveryFee": 3},'
            '{"id": "2", "name": "B", "maxDistanceKm": NaN, "deliveryFee": 4},'
            '{"id": "3", "name": "C", "maxDistanceKm": 2, "deliveryFee": 5}'
            ']}'
        )

        response = await client.put(
            "/api/settings/deliveryZones",
            content=body,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 422
        assert response.json()["detail"][0]["field"] == "body -> zones -> 1 -> maxDistanceKm"
        assert await store.fetch(DELIVERY_ZONES_KEY) is None

    async def test_locate_restaurant(self, client, store):
        await store.upsert(DELIVERY_SETTINGS_KEY, {"restaurantAddress": "Via Po 25, Torino, Italy"})

        response = await client.post("/api/settings/deliverySettings/locate")

        data = response.json()
        assert data["success"] is True
        assert (data["restaurantLat"], data["restaurantLng"]) == (45.0671, 7.6937)

    async def test_locate_restaurant_failure(self, client, geocoder):
        geocoder.script(
            "Piazza della Repubblica, 10100 Torino TO",
            GeocodeOutcome.failure(GeocodeStatus.NOT_FOUND),
        )

        data = (await client.post("/api/settings/deliverySettings/locate")).json()

        assert data["success"] is False
        assert data["errorKind"] == "not_found"


@pytest.mark.integration
@pytest.mark.asyncio
class TestHealthAPI:

    async def test_health_operational(self, client):
        data = (await client.get("/health")).json()

        assert data["status"] == "operational"
        assert data["config_store"] == "healthy"

    async def test_health_reports_cache_stats(self, client):
        await client.post("/api/quote", json={"address": NEAR_ADDRESS, "orderSubtotal": 20})
        await client.post("/api/quote", json={"address": NEAR_ADDRESS, "orderSubtotal": 20})

        data = (await client.get("/health")).json()

        assert data["geocode_cache"] == {"entries": 1, "hits": 1, "misses": 1}

    async def test_health_degraded_when_store_down(self, client, store):
        store.unavailable = True

        data = (await client.get("/health")).json()

        assert data["status"] == "degraded"
        assert data["config_store"] == "unhealthy"
