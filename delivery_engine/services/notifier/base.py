"""
Change Notifier Abstract Base Class

Publish/subscribe channel announcing "this settings key changed".
Events carry the key and the write timestamp, never the value: handlers
re-read the store, so a duplicated or reordered event can never install a
stale value.

Delivery guarantees:
    - At-least-once (a handler may see the same event twice)
    - Ordered per key within a process (handlers for one key run serially)
    - No ordering across keys
    - Best effort: a failed delivery is logged, and subscribers fall back
      to their own periodic reads

Version: 4.0.0
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    """
    A committed settings write.

    Attributes:
        key: Settings key that changed
        updated_at: Timestamp stamped on the write
        origin: Instance id of the notifier that published it
    """
    key: str
    updated_at: datetime
    origin: str = ""


ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]


class BaseChangeNotifier(ABC):
    """
    Abstract base class for change notifiers.

    Subclasses implement `publish` (and optionally `start`/`stop` for a
    background listener); subscription bookkeeping and in-process dispatch
    are shared.
    """

    def __init__(self):
        self.instance_id = uuid.uuid4().hex
        # key -> handlers; replaced as a whole on every (un)subscribe
        self._handlers: dict[str, tuple[ChangeHandler, ...]] = {}
        self._key_locks: dict[str, asyncio.Lock] = {}

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the notifier name (e.g., "local", "redis")."""
        pass

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        """
        Announce a committed write to every subscriber of `event.key`.

        Must not raise on delivery failure.
        """
        pass

    async def start(self) -> None:
        """Start background delivery, if the backend needs it."""

    async def stop(self) -> None:
        """Stop background delivery and release connections."""

    async def health_check(self) -> bool:
        return True

    def subscribe(self, key: str, handler: ChangeHandler) -> Callable[[], None]:
        """
        Register `handler` for changes to `key`.

        Returns:
            A callable that unsubscribes the handler
        """
        current = self._handlers.get(key, ())
        self._handlers = {**self._handlers, key: current + (handler,)}
        logger.debug(f"Subscribed {getattr(handler, '__qualname__', handler)} to '{key}'")
        return lambda: self.unsubscribe(key, handler)

    def unsubscribe(self, key: str, handler: ChangeHandler) -> None:
        """Remove `handler` for `key`; unknown handlers are ignored."""
        current = self._handlers.get(key, ())
        remaining = tuple(h for h in current if h != handler)
        handlers = dict(self._handlers)
        if remaining:
            handlers[key] = remaining
        else:
            handlers.pop(key, None)
        self._handlers = handlers

    def subscriber_count(self, key: str) -> int:
        return len(self._handlers.get(key, ()))

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._key_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[key] = lock
        return lock

    async def _dispatch(self, event: ChangeEvent) -> None:
        """Invoke this process's handlers for `event.key`, one at a time."""
        handlers = self._handlers.get(event.key, ())
        if not handlers:
            return

        async with self._lock_for(event.key):
            for handler in handlers:
                try:
                    await handler(event)
                except Exception:
                    logger.exception(f"Change handler failed for '{event.key}'")
