"""
Config Store Factory

Provides a single entry point for the process-wide settings store.
Selects the SQL or in-memory backend from CONFIG_BACKEND and wires it to
the process-wide change notifier.

Usage:
    from delivery_engine.services.config import get_config_store

    store = get_config_store()
    settings = await store.get("deliverySettings")
    await store.upsert("deliverySettings", {**settings, "enabled": False})
"""

import logging
from functools import lru_cache

from delivery_engine.core.config import get_settings, ConfigBackend
from delivery_engine.services.config.base import (
    BaseConfigStore,
    SettingRecord,
    UpsertResult,
)
from delivery_engine.services.config.layers import (
    DELIVERY_SETTINGS_KEY,
    DELIVERY_ZONES_KEY,
    deep_merge,
)
from delivery_engine.services.config.memory import InMemoryConfigStore
from delivery_engine.services.notifier import get_change_notifier

logger = logging.getLogger(__name__)


@lru_cache()
def get_config_store() -> BaseConfigStore:
    """
    Get the configured settings store instance.

    Returns:
        BaseConfigStore: SQLConfigStore or InMemoryConfigStore
    """
    settings = get_settings()
    notifier = get_change_notifier()

    if settings.config_backend == ConfigBackend.MEMORY:
        logger.info("Config Store: Using InMemoryConfigStore")
        return InMemoryConfigStore(notifier=notifier)

    # Imported here so the memory backend works without a database driver
    from delivery_engine.database import async_session_maker
    from delivery_engine.services.config.sql import SQLConfigStore

    logger.info("Config Store: Using SQLConfigStore")
    return SQLConfigStore(async_session_maker, notifier=notifier)


def reset_config_store() -> None:
    """Clear the cached store instance."""
    get_config_store.cache_clear()
    logger.debug("Config store cache cleared")


__all__ = [
    "get_config_store",
    "reset_config_store",
    "BaseConfigStore",
    "SettingRecord",
    "UpsertResult",
    "InMemoryConfigStore",
    "DELIVERY_SETTINGS_KEY",
    "DELIVERY_ZONES_KEY",
    "deep_merge",
]
