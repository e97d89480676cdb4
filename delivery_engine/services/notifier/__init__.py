"""
Change Notifier Factory

Returns the in-process notifier or the Redis pub/sub notifier based on the
NOTIFIER_BACKEND configuration.

Usage:
    from delivery_engine.services.notifier import get_change_notifier

    notifier = get_change_notifier()
    unsubscribe = notifier.subscribe("deliverySettings", handler)
"""

import logging
from functools import lru_cache

from delivery_engine.core.config import get_settings, NotifierBackend
from delivery_engine.services.notifier.base import (
    BaseChangeNotifier,
    ChangeEvent,
    ChangeHandler,
)
from delivery_engine.services.notifier.local import InProcessChangeNotifier
from delivery_engine.services.notifier.redis_pubsub import RedisChangeNotifier

logger = logging.getLogger(__name__)


@lru_cache()
def get_change_notifier() -> BaseChangeNotifier:
    """
    Get the configured change notifier instance.

    Returns:
        BaseChangeNotifier: Process-wide notifier
    """
    settings = get_settings()

    if settings.notifier_backend == NotifierBackend.REDIS:
        logger.info("Change Notifier: Using RedisChangeNotifier")
        return RedisChangeNotifier(
            redis_url=settings.redis_url,
            channel_prefix=settings.settings_channel_prefix,
        )

    logger.info("Change Notifier: Using InProcessChangeNotifier")
    return InProcessChangeNotifier()


def reset_change_notifier() -> None:
    """Clear the cached notifier instance."""
    get_change_notifier.cache_clear()
    logger.debug("Change notifier cache cleared")


__all__ = [
    "get_change_notifier",
    "reset_change_notifier",
    "BaseChangeNotifier",
    "ChangeEvent",
    "ChangeHandler",
    "InProcessChangeNotifier",
    "RedisChangeNotifier",
]
