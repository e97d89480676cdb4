"""
In-Memory Config Store

Process-local settings store with the same last-write-wins semantics as the
SQL store. Used by tests, the simulation script, and CONFIG_BACKEND=memory.

The record map is never mutated in place: every write builds a new dict
and swaps it in, so a concurrent reader always sees a consistent map.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Optional

from delivery_engine.core.exceptions import ConfigTransportError
from delivery_engine.services.config.base import BaseConfigStore, SettingRecord
from delivery_engine.services.notifier.base import BaseChangeNotifier

logger = logging.getLogger(__name__)

# Timestamp of rows passed as `initial`; any real write supersedes them
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class InMemoryConfigStore(BaseConfigStore):
    """
    Dictionary-backed settings store.

    Attributes:
        unavailable: When True, every operation raises ConfigTransportError (for
            exercising transport failure handling)
    """

    def __init__(
        self,
        notifier: Optional[BaseChangeNotifier] = None,
        initial: Optional[dict] = None,
    ):
        super().__init__(notifier)
        self._records: dict[str, SettingRecord] = {}
        self.unavailable = False
        for key, value in (initial or {}).items():
            self._records = {
                **self._records,
                key: SettingRecord(key=key, value=copy.deepcopy(value), updated_at=EPOCH),
            }

    @property
    def backend_name(self) -> str:
        return "memory"

    def _check_available(self, key: str) -> None:
        if self.unavailable:
            raise ConfigTransportError("Settings store unreachable (simulated)", key=key)

    async def fetch(self, key: str) -> Optional[SettingRecord]:
        self._check_available(key)
        record = self._records.get(key)
        if record is None:
            return None
        return SettingRecord(key=record.key, value=copy.deepcopy(record.value), updated_at=record.updated_at)

    async def _write(self, record: SettingRecord) -> bool:
        self._check_available(record.key)
        current = self._records.get(record.key)
        if current is not None and current.updated_at > record.updated_at:
            return False
        self._records = {**self._records, record.key: record}
        return True

    async def _insert_if_absent(self, record: SettingRecord) -> bool:
        self._check_available(record.key)
        if record.key in self._records:
            return False
        self._records = {**self._records, record.key: record}
        return True

    async def health_check(self) -> bool:
        return not self.unavailable
