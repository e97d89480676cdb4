"""
In-Process Change Notifier

Delivers events to handlers registered in the same process. Used in
development and tests, and whenever a single API process owns the store.
"""

import logging

from delivery_engine.services.notifier.base import BaseChangeNotifier, ChangeEvent

logger = logging.getLogger(__name__)


class InProcessChangeNotifier(BaseChangeNotifier):
    """Synchronous fan-out to local subscribers."""

    @property
    def provider_name(self) -> str:
        return "local"

    async def publish(self, event: ChangeEvent) -> None:
        logger.debug(f"Local: '{event.key}' changed at {event.updated_at.isoformat()}")
        await self._dispatch(event)
