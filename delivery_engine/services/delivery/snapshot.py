"""
Delivery Configuration Snapshots

The quote path never reads mutable global settings. It holds a reference
to an immutable DeliveryConfigSnapshot (validated settings + active zones)
which the provider replaces as a whole when the configuration changes or
the snapshot grows older than its max age.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from delivery_engine.schemas import DeliverySettings, DeliveryZone
from delivery_engine.services.config.base import BaseConfigStore
from delivery_engine.services.config.layers import DELIVERY_SETTINGS_KEY, DELIVERY_ZONES_KEY
from delivery_engine.services.delivery.zones import load_delivery_settings, load_zones

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryConfigSnapshot:
    """
    Validated delivery configuration at one point in time.

    Attributes:
        settings: Delivery settings
        zones: Active zones, ascending by maxDistanceKm
        loaded_at: Clock reading when the snapshot was built
    """
    settings: DeliverySettings
    zones: tuple[DeliveryZone, ...]
    loaded_at: float = field(default=0.0, compare=False)


class DeliveryConfigProvider:
    """
    Loads and hands out DeliveryConfigSnapshot instances.

    invalidate() is called on change notifications. A reload that was
    already in flight when an invalidation arrived still answers its own
    caller but is not installed, so a stale read never replaces a newer one.
    """

    def __init__(
        self,
        store: BaseConfigStore,
        max_age_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._max_age = max_age_seconds
        self._clock = clock
        self._snapshot: Optional[DeliveryConfigSnapshot] = None
        self._generation = 0

    @property
    def snapshot(self) -> Optional[DeliveryConfigSnapshot]:
        """The installed snapshot, if any (may be stale)."""
        return self._snapshot

    def _is_fresh(self, snapshot: DeliveryConfigSnapshot) -> bool:
        return self._clock() - snapshot.loaded_at < self._max_age

    async def current(self) -> DeliveryConfigSnapshot:
        """
        Return a snapshot no older than max age.

        Raises:
            ConfigTransportError: If the store is unreachable
            InvalidConfiguration: If the stored configuration is invalid
        """
        snapshot = self._snapshot
        if snapshot is not None and self._is_fresh(snapshot):
            return snapshot
        return await self.reload()

    async def reload(self) -> DeliveryConfigSnapshot:
        """Read both keys from the store and install a new snapshot."""
        generation = self._generation

        settings_value = await self._store.get(DELIVERY_SETTINGS_KEY)
        zones_value = await self._store.get(DELIVERY_ZONES_KEY)

        snapshot = DeliveryConfigSnapshot(
            settings=load_delivery_settings(settings_value),
            zones=load_zones(zones_value),
            loaded_at=self._clock(),
        )

        if generation == self._generation:
            self._snapshot = snapshot
            logger.debug(f"Delivery config loaded ({len(snapshot.zones)} active zones)")
        else:
            logger.debug("Delivery config changed during reload, not installing snapshot")

        return snapshot

    def invalidate(self) -> None:
        """Discard the installed snapshot; the next read reloads."""
        self._generation += 1
        self._snapshot = None
