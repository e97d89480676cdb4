"""
Redis Pub/Sub Change Notifier

Cross-process implementation used when several API processes share the
same settings table. Each process:
    - dispatches its own writes to local handlers immediately, so a write
      is visible to the next read in the writing process
    - publishes the event on `<prefix>:<key>`
    - listens on `<prefix>:*` and dispatches events from other processes

Redis pub/sub is fire-and-forget: a process that is disconnected while an
event is published never sees it. Subscribers bound that staleness with
their own snapshot max age.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Optional

import redis.asyncio as redis

from delivery_engine.services.notifier.base import BaseChangeNotifier, ChangeEvent

logger = logging.getLogger(__name__)


class RedisChangeNotifier(BaseChangeNotifier):
    """
    Change notifier backed by Redis pub/sub.

    Attributes:
        channel_prefix: Channel namespace (events go to "<prefix>:<key>")
        reconnect_delay: Seconds to wait before re-subscribing after an error
    """

    def __init__(
        self,
        redis_url: str,
        channel_prefix: str = "settings:changed",
        reconnect_delay: float = 1.0,
        client: Optional[redis.Redis] = None,
    ):
        super().__init__()
        self.channel_prefix = channel_prefix
        self.reconnect_delay = reconnect_delay
        self._client = client or redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._listener: Optional[asyncio.Task] = None

    @property
    def provider_name(self) -> str:
        return "redis"

    def channel_for(self, key: str) -> str:
        return f"{self.channel_prefix}:{key}"

    def encode(self, event: ChangeEvent) -> str:
        return json.dumps({
            "key": event.key,
            "updated_at": event.updated_at.isoformat(),
            "origin": event.origin or self.instance_id,
        })

    def decode(self, data: str) -> ChangeEvent:
        payload = json.loads(data)
        return ChangeEvent(
            key=payload["key"],
            updated_at=datetime.fromisoformat(payload["updated_at"]),
            origin=payload.get("origin", ""),
        )

    async def publish(self, event: ChangeEvent) -> None:
        await self._dispatch(event)

        try:
            receivers = await self._client.publish(
                self.channel_for(event.key),
                self.encode(event),
            )
            logger.debug(f"Redis: '{event.key}' change published to {receivers} listener(s)")
        except redis.RedisError as e:
            logger.warning(f"Redis: failed to publish change for '{event.key}' - {e}")

    async def handle_message(self, message: dict) -> None:
        """Dispatch one pub/sub message unless this process published it."""
        if message.get("type") not in ("message", "pmessage"):
            return

        try:
            event = self.decode(message["data"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Redis: ignoring malformed change message - {e}")
            return

        if event.origin == self.instance_id:
            return

        logger.info(f"Redis: '{event.key}' changed in another process")
        await self._dispatch(event)

    async def _listen(self) -> None:
        pattern = f"{self.channel_prefix}:*"
        while True:
            pubsub = self._client.pubsub()
            try:
                await pubsub.psubscribe(pattern)
                logger.info(f"Redis: listening for settings changes on {pattern}")
                async for message in pubsub.listen():
                    await self.handle_message(message)
            except redis.RedisError as e:
                logger.warning(
                    f"Redis: change listener disconnected - {e}; "
                    f"retrying in {self.reconnect_delay}s"
                )
                await asyncio.sleep(self.reconnect_delay)
            finally:
                await pubsub.aclose()

    async def start(self) -> None:
        if self._listener is None or self._listener.done():
            self._listener = asyncio.create_task(self._listen(), name="settings-change-listener")

    async def stop(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        await self._client.aclose()

    async def health_check(self) -> bool:
        try:
            return bool(await self._client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis: health check failed - {e}")
            return False
