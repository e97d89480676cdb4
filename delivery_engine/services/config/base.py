"""
Config Store Abstract Base Class

Durable key/value store of named JSON configuration blobs.

Contract:
    - get(key) never reports "not found": it returns the stored value
      merged onto the compiled default (default alone when nothing is
      stored, seeding the row on the way). It fails only with
      ConfigTransportError.
    - upsert(key, value) is an atomic insert-or-update keyed by `key` and
      stamped with `updated_at`. Racing writers resolve last-write-wins on
      that timestamp; no merge of concurrent writes is attempted. A write
      that is applied is announced through the change notifier.

Version: 4.0.0
"""

import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from delivery_engine.services.config import layers
from delivery_engine.services.notifier.base import BaseChangeNotifier, ChangeEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettingRecord:
    """A stored settings row."""
    key: str
    value: Any
    updated_at: datetime


@dataclass(frozen=True)
class UpsertResult:
    """
    Outcome of an upsert.

    Attributes:
        record: The record that was written
        applied: False when a write with a newer timestamp already won
    """
    record: SettingRecord
    applied: bool


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseConfigStore(ABC):
    """
    Abstract base class for settings stores.

    Subclasses implement raw row access; default layering, seeding and
    change notification are shared.
    """

    def __init__(self, notifier: Optional[BaseChangeNotifier] = None):
        self._notifier = notifier

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend name (e.g., "database", "memory")."""
        pass

    @abstractmethod
    async def fetch(self, key: str) -> Optional[SettingRecord]:
        """
        Read the raw stored row for `key`.

        Raises:
            ConfigTransportError: If the store is unreachable
        """
        pass

    @abstractmethod
    async def _write(self, record: SettingRecord) -> bool:
        """
        Insert or update atomically, last-write-wins on updated_at.

        Returns:
            bool: True if the record is now the stored value
        """
        pass

    @abstractmethod
    async def _insert_if_absent(self, record: SettingRecord) -> bool:
        """Insert only when no row exists for the key."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    async def get(self, key: str) -> Any:
        """
        Return the effective value of `key`.

        Raises:
            ConfigTransportError: If the store is unreachable
        """
        record = await self.fetch(key)

        if record is None:
            if not layers.has_default(key):
                return None
            seeded = await self._insert_if_absent(
                SettingRecord(key=key, value=layers.get_default(key), updated_at=utcnow())
            )
            if seeded:
                logger.info(f"Seeded default for '{key}' on first read")
                return layers.resolve(key, None, has_stored=False)
            # A concurrent writer got there first
            record = await self.fetch(key)
            if record is None:
                return layers.resolve(key, None, has_stored=False)

        return layers.resolve(key, record.value)

    async def upsert(
        self,
        key: str,
        value: Any,
        updated_at: Optional[datetime] = None,
    ) -> UpsertResult:
        """
        Write `value` under `key` and notify subscribers.

        Args:
            key: Settings key
            value: JSON-serializable blob
            updated_at: Write timestamp (defaults to now, UTC)

        Raises:
            ConfigTransportError: If the write could not be committed
        """
        record = SettingRecord(
            key=key,
            value=copy.deepcopy(value),
            updated_at=updated_at or utcnow(),
        )
        applied = await self._write(record)

        if not applied:
            logger.info(
                f"Upsert of '{key}' at {record.updated_at.isoformat()} "
                f"superseded by a newer write"
            )
            return UpsertResult(record=record, applied=False)

        logger.info(f"Setting '{key}' updated ({self.backend_name})")

        if self._notifier is not None:
            await self._notifier.publish(ChangeEvent(key=key, updated_at=record.updated_at))

        return UpsertResult(record=record, applied=True)

    async def seed_defaults(self) -> list[str]:
        """
        Insert the compiled default for every registered key that is absent.

        Existing rows are never overwritten and no change event is sent.

        Returns:
            Keys that were seeded
        """
        seeded = []
        for key in layers.DEFAULTS:
            record = SettingRecord(key=key, value=layers.get_default(key), updated_at=utcnow())
            if await self._insert_if_absent(record):
                seeded.append(key)

        if seeded:
            logger.info(f"Seeded default settings: {seeded}")
        return seeded
