"""
Geocode Cache

Process-local cache of successful geocodes keyed by normalized address.

Entries expire after a TTL and the whole cache is dropped when the
restaurant's reference point changes. The entry map is never mutated in
place: each write builds a new dict and swaps it in, so a reader never
observes a half-applied update.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Hashable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeocodeResult:
    """A cached geocode."""
    normalized_address: str
    lat: float
    lng: float
    formatted_address: str
    resolved_at: datetime


@dataclass(frozen=True)
class _Entry:
    result: GeocodeResult
    expires_at: float


class GeocodeCache:
    """
    TTL cache of GeocodeResult values.

    Attributes:
        ttl_seconds: Entry lifetime
        max_entries: Capacity; the oldest entries are dropped first
        hits: Number of lookups served from the cache
        misses: Number of lookups that found nothing usable

    Example:
        >>> cache = GeocodeCache(ttl_seconds=3600)
        >>> cache.put(GeocodeResult("via roma 1", 45.06, 7.68, "Via Roma, 1", now))
        >>> cache.get("via roma 1").lat
        45.06
    """

    def __init__(
        self,
        ttl_seconds: float = 86400,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._fingerprint: Optional[Hashable] = None
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, normalized_address: str) -> bool:
        return self.get(normalized_address, count=False) is not None

    def get(self, normalized_address: str, count: bool = True) -> Optional[GeocodeResult]:
        """Return the cached result, or None if absent or expired."""
        entry = self._entries.get(normalized_address)

        if entry is not None and entry.expires_at <= self._clock():
            entries = dict(self._entries)
            entries.pop(normalized_address, None)
            self._entries = entries
            entry = None

        if count:
            if entry is None:
                self.misses += 1
                logger.debug("Geocode cache miss")
            else:
                self.hits += 1
                logger.debug("Geocode cache hit")

        return entry.result if entry is not None else None

    def put(self, result: GeocodeResult) -> None:
        """Store a successful geocode."""
        entries = dict(self._entries)
        entries.pop(result.normalized_address, None)
        entries[result.normalized_address] = _Entry(
            result=result,
            expires_at=self._clock() + self.ttl_seconds,
        )

        overflow = len(entries) - self.max_entries
        if overflow > 0:
            for stale in list(entries)[:overflow]:
                del entries[stale]

        self._entries = entries

    def invalidate(self) -> int:
        """
        Drop every entry.

        Returns:
            Number of entries dropped
        """
        dropped = len(self._entries)
        self._entries = {}
        if dropped:
            logger.info(f"Geocode cache invalidated ({dropped} entries dropped)")
        return dropped

    def bind(self, fingerprint: Hashable) -> bool:
        """
        Tie the cache to a restaurant reference point.

        The first call only records the fingerprint. A later call with a
        different fingerprint invalidates the whole cache.

        Returns:
            bool: True if the cache was invalidated
        """
        previous = self._fingerprint
        self._fingerprint = fingerprint

        if previous is None or previous == fingerprint:
            return False

        logger.info("Restaurant location changed, dropping cached geocodes")
        self.invalidate()
        return True

    def stats(self) -> dict:
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
        }


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
