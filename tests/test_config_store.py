"""Tests for the settings stores (in-memory and SQL on SQLite)."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from delivery_engine.core.exceptions import ConfigTransportError
from delivery_engine.models import Setting
from delivery_engine.services.config import (
    DELIVERY_SETTINGS_KEY,
    DELIVERY_ZONES_KEY,
    InMemoryConfigStore,
    deep_merge,
)
from delivery_engine.services.config.base import utcnow
from delivery_engine.services.config.layers import DEFAULT_DELIVERY_SETTINGS, DEFAULT_DELIVERY_ZONES
from delivery_engine.services.config.sql import SQLConfigStore
from delivery_engine.services.notifier import ChangeEvent, InProcessChangeNotifier


class RecordingHandler:
    """Collects change events."""

    def __init__(self):
        self.events: list[ChangeEvent] = []

    async def __call__(self, event: ChangeEvent) -> None:
        self.events.append(event)


@pytest.fixture(params=["memory", "sql"])
def any_store(request, notifier, session_maker):
    """Each test runs against both backends."""
    if request.param == "memory":
        return InMemoryConfigStore(notifier=notifier)
    return SQLConfigStore(session_maker, notifier=notifier)


@pytest.mark.asyncio
class TestConfigStoreContract:
    """Behaviour shared by every backend."""

    async def test_get_absent_key_returns_default(self, any_store):
        value = await any_store.get(DELIVERY_SETTINGS_KEY)
        assert value == DEFAULT_DELIVERY_SETTINGS

    async def test_get_absent_key_seeds_default(self, any_store):
        await any_store.get(DELIVERY_ZONES_KEY)

        record = await any_store.fetch(DELIVERY_ZONES_KEY)
        assert record is not None
        assert record.value == DEFAULT_DELIVERY_ZONES

    async def test_upsert_then_get_round_trip(self, any_store):
        stored = {"enabled": False, "freeDeliveryThreshold": 30}
        await any_store.upsert(DELIVERY_SETTINGS_KEY, stored)

        value = await any_store.get(DELIVERY_SETTINGS_KEY)
        assert value == deep_merge(DEFAULT_DELIVERY_SETTINGS, stored)

    async def test_upsert_replaces_previous_value(self, any_store):
        await any_store.upsert(DELIVERY_SETTINGS_KEY, {"baseDeliveryFee": 1})
        await any_store.upsert(DELIVERY_SETTINGS_KEY, {"freeDeliveryThreshold": 10})

        value = await any_store.get(DELIVERY_SETTINGS_KEY)
        assert value["baseDeliveryFee"] == DEFAULT_DELIVERY_SETTINGS["baseDeliveryFee"]
        assert value["freeDeliveryThreshold"] == 10

    async def test_upsert_notifies_subscribers(self, any_store, notifier):
        handler = RecordingHandler()
        notifier.subscribe(DELIVERY_SETTINGS_KEY, handler)

        result = await any_store.upsert(DELIVERY_SETTINGS_KEY, {"enabled": False})

        assert result.applied
        assert [e.key for e in handler.events] == [DELIVERY_SETTINGS_KEY]

    async def test_older_write_is_superseded(self, any_store, notifier):
        handler = RecordingHandler()
        notifier.subscribe(DELIVERY_SETTINGS_KEY, handler)
        now = utcnow()

        newer = await any_store.upsert(DELIVERY_SETTINGS_KEY, {"baseDeliveryFee": 2}, updated_at=now)
        older = await any_store.upsert(
            DELIVERY_SETTINGS_KEY, {"baseDeliveryFee": 9}, updated_at=now - timedelta(seconds=5)
        )

        assert newer.applied
        assert not older.applied
        assert len(handler.events) == 1
        value = await any_store.get(DELIVERY_SETTINGS_KEY)
        assert value["baseDeliveryFee"] == 2

    async def test_caller_mutation_does_not_leak_into_store(self, any_store):
        stored = {"enabled": True, "baseDeliveryFee": 4}
        await any_store.upsert(DELIVERY_SETTINGS_KEY, stored)
        stored["baseDeliveryFee"] = 400

        value = await any_store.get(DELIVERY_SETTINGS_KEY)
        assert value["baseDeliveryFee"] == 4

    async def test_store_accepts_unsorted_zone_table(self, any_store):
        unsorted = [
            {"id": "b", "name": "B", "maxDistanceKm": 10, "deliveryFee": 5},
            {"id": "a", "name": "A", "maxDistanceKm": 5, "deliveryFee": 3},
        ]
        result = await any_store.upsert(DELIVERY_ZONES_KEY, unsorted)

        assert result.applied
        assert await any_store.get(DELIVERY_ZONES_KEY) == unsorted

    async def test_seed_defaults_never_overwrites(self, any_store, notifier):
        handler = RecordingHandler()
        notifier.subscribe(DELIVERY_SETTINGS_KEY, handler)
        await any_store.upsert(DELIVERY_SETTINGS_KEY, {"enabled": False})
        handler.events.clear()

        seeded = await any_store.seed_defaults()

        assert seeded == [DELIVERY_ZONES_KEY]
        assert handler.events == []
        assert (await any_store.get(DELIVERY_SETTINGS_KEY))["enabled"] is False

    async def test_seed_defaults_is_idempotent(self, any_store):
        assert sorted(await any_store.seed_defaults()) == [DELIVERY_SETTINGS_KEY, DELIVERY_ZONES_KEY]
        assert await any_store.seed_defaults() == []

    async def test_health_check(self, any_store):
        assert await any_store.health_check() is True


@pytest.mark.asyncio
class TestInMemoryStore:
    """In-memory specific behaviour."""

    async def test_initial_rows_lose_to_any_write(self):
        store = InMemoryConfigStore(initial={DELIVERY_SETTINGS_KEY: {"baseDeliveryFee": 1}})

        assert (await store.get(DELIVERY_SETTINGS_KEY))["baseDeliveryFee"] == 1
        await store.upsert(DELIVERY_SETTINGS_KEY, {"baseDeliveryFee": 2})
        assert (await store.get(DELIVERY_SETTINGS_KEY))["baseDeliveryFee"] == 2

    async def test_unavailable_store_raises_transport_error(self):
        store = InMemoryConfigStore()
        store.unavailable = True

        with pytest.raises(ConfigTransportError):
            await store.get(DELIVERY_SETTINGS_KEY)
        with pytest.raises(ConfigTransportError):
            await store.upsert(DELIVERY_SETTINGS_KEY, {})
        assert await store.health_check() is False

    async def test_failed_write_does_not_notify(self):
        notifier = InProcessChangeNotifier()
        handler = RecordingHandler()
        notifier.subscribe(DELIVERY_SETTINGS_KEY, handler)
        store = InMemoryConfigStore(notifier=notifier)
        store.unavailable = True

        with pytest.raises(ConfigTransportError):
            await store.upsert(DELIVERY_SETTINGS_KEY, {"enabled": False})
        assert handler.events == []


@pytest.mark.asyncio
class TestSQLStore:
    """SQL specific behaviour."""

    async def test_single_row_per_key(self, session_maker):
        store = SQLConfigStore(session_maker)
        await store.upsert(DELIVERY_SETTINGS_KEY, {"baseDeliveryFee": 1})
        await store.upsert(DELIVERY_SETTINGS_KEY, {"baseDeliveryFee": 2})

        async with session_maker() as session:
            rows = (await session.execute(select(Setting))).scalars().all()

        assert len(rows) == 1
        assert rows[0].value == {"baseDeliveryFee": 2}

    async def test_missing_table_raises_transport_error(self, session_maker):
        store = SQLConfigStore(session_maker)
        async with session_maker.kw["bind"].begin() as conn:
            await conn.run_sync(Setting.__table__.drop)

        with pytest.raises(ConfigTransportError):
            await store.fetch(DELIVERY_SETTINGS_KEY)
        with pytest.raises(ConfigTransportError):
            await store.upsert(DELIVERY_SETTINGS_KEY, {"enabled": False})
