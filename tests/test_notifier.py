"""Tests for the change notifiers."""

import asyncio
import json
from datetime import datetime, timezone

import pytest
import redis.asyncio as redis

from delivery_engine.services.notifier import (
    ChangeEvent,
    InProcessChangeNotifier,
    RedisChangeNotifier,
)

KEY = "deliverySettings"
WHEN = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeRedis:
    """Records publishes; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published: list[tuple[str, str]] = []
        self.closed = False

    async def publish(self, channel: str, data: str) -> int:
        if self.fail:
            raise redis.ConnectionError("connection refused")
        self.published.append((channel, data))
        return 1

    async def ping(self) -> bool:
        if self.fail:
            raise redis.ConnectionError("connection refused")
        return True

    async def aclose(self) -> None:
        self.closed = True


@pytest.mark.asyncio
class TestInProcessNotifier:
    """Test local fan-out."""

    async def test_subscriber_receives_event(self):
        notifier = InProcessChangeNotifier()
        received = []

        async def handler(event):
            received.append(event)

        notifier.subscribe(KEY, handler)
        await notifier.publish(ChangeEvent(key=KEY, updated_at=WHEN))

        assert [e.updated_at for e in received] == [WHEN]

    async def test_other_keys_not_delivered(self):
        notifier = InProcessChangeNotifier()
        received = []

        async def handler(event):
            received.append(event)

        notifier.subscribe("deliveryZones", handler)
        await notifier.publish(ChangeEvent(key=KEY, updated_at=WHEN))

        assert received == []

    async def test_unsubscribe(self):
        notifier = InProcessChangeNotifier()
        received = []

        async def handler(event):
            received.append(event)

        unsubscribe = notifier.subscribe(KEY, handler)
        unsubscribe()
        await notifier.publish(ChangeEvent(key=KEY, updated_at=WHEN))

        assert received == []
        assert notifier.subscriber_count(KEY) == 0

    async def test_failing_handler_does_not_block_others(self, caplog):
        notifier = InProcessChangeNotifier()
        received = []

        async def broken(event):
            raise RuntimeError("boom")

        async def handler(event):
            received.append(event)

        notifier.subscribe(KEY, broken)
        notifier.subscribe(KEY, handler)

        with caplog.at_level("ERROR"):
            await notifier.publish(ChangeEvent(key=KEY, updated_at=WHEN))

        assert len(received) == 1
        assert "Change handler failed" in caplog.text

    async def test_events_for_one_key_are_handled_in_order(self):
        notifier = InProcessChangeNotifier()
        seen = []

        async def slow_handler(event):
            seen.append(("start", event.updated_at.second))
            await asyncio.sleep(0.01)
            seen.append(("end", event.updated_at.second))

        notifier.subscribe(KEY, slow_handler)
        await asyncio.gather(
            notifier.publish(ChangeEvent(key=KEY, updated_at=WHEN.replace(second=1))),
            notifier.publish(ChangeEvent(key=KEY, updated_at=WHEN.replace(second=2))),
        )

        assert seen == [("start", 1), ("end", 1), ("start", 2), ("end", 2)]

    async def test_subscribing_during_dispatch_is_safe(self):
        notifier = InProcessChangeNotifier()
        late = []

        async def late_handler(event):
            late.append(event)

        async def handler(event):
            notifier.subscribe(KEY, late_handler)

        notifier.subscribe(KEY, handler)
        await notifier.publish(ChangeEvent(key=KEY, updated_at=WHEN))
        assert late == []

        await notifier.publish(ChangeEvent(key=KEY, updated_at=WHEN))
        assert len(late) == 1


@pytest.mark.asyncio
class TestRedisNotifier:
    """Test the Redis pub/sub notifier without a Redis server."""

    async def test_publish_dispatches_locally_and_to_redis(self):
        fake = FakeRedis()
        notifier = RedisChangeNotifier("redis://unused", client=fake)
        received = []

        async def handler(event):
            received.append(event)

        notifier.subscribe(KEY, handler)
        await notifier.publish(ChangeEvent(key=KEY, updated_at=WHEN))

        assert len(received) == 1
        channel, data = fake.published[0]
        assert channel == "settings:changed:deliverySettings"
        payload = json.loads(data)
        assert payload["key"] == KEY
        assert payload["origin"] == notifier.instance_id

    async def test_publish_failure_is_not_raised(self, caplog):
        notifier = RedisChangeNotifier("redis://unused", client=FakeRedis(fail=True))
        received = []

        async def handler(event):
            received.append(event)

        notifier.subscribe(KEY, handler)
        with caplog.at_level("WARNING"):
            await notifier.publish(ChangeEvent(key=KEY, updated_at=WHEN))

        assert len(received) == 1
        assert "failed to publish" in caplog.text

    async def test_message_from_other_process_is_dispatched(self):
        sender = RedisChangeNotifier("redis://unused", client=FakeRedis())
        receiver = RedisChangeNotifier("redis://unused", client=FakeRedis())
        received = []

        async def handler(event):
            received.append(event)

        receiver.subscribe(KEY, handler)
        data = sender.encode(ChangeEvent(key=KEY, updated_at=WHEN))
        await receiver.handle_message({"type": "pmessage", "data": data})

        assert len(received) == 1
        assert received[0].updated_at == WHEN
        assert received[0].origin == sender.instance_id

    async def test_own_messages_are_skipped(self):
        notifier = RedisChangeNotifier("redis://unused", client=FakeRedis())
        received = []

        async def handler(event):
            received.append(event)

        notifier.subscribe(KEY, handler)
        data = notifier.encode(ChangeEvent(key=KEY, updated_at=WHEN))
        await notifier.handle_message({"type": "pmessage", "data": data})

        assert received == []

    async def test_malformed_and_control_messages_are_ignored(self):
        notifier = RedisChangeNotifier("redis://unused", client=FakeRedis())
        received = []

        async def handler(event):
            received.append(event)

        notifier.subscribe(KEY, handler)
        await notifier.handle_message({"type": "psubscribe", "data": 1})
        await notifier.handle_message({"type": "pmessage", "data": "not json"})
        await notifier.handle_message({"type": "pmessage", "data": json.dumps({"key": KEY})})

        assert received == []

    async def test_health_check(self):
        assert await RedisChangeNotifier("redis://unused", client=FakeRedis()).health_check()
        assert not await RedisChangeNotifier("redis://unused", client=FakeRedis(fail=True)).health_check()

    async def test_stop_closes_client(self):
        fake = FakeRedis()
        notifier = RedisChangeNotifier("redis://unused", client=fake)
        await notifier.stop()
        assert fake.closed
