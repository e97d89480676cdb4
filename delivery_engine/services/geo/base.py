"""
Geocoding Client Abstract Base Class

Defines the interface contract for all geocoding client implementations.
Both MockGeocodingClient and GoogleGeocodingClient must implement these
methods.

Every call returns a GeocodeOutcome; provider failures are classified into
typed statuses and never raised, so callers can tell "fix the address" from
"fix the configuration" from "try again".

Version: 4.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class GeocodeStatus(str, Enum):
    """
    Classified geocoding outcome.

    Attributes:
        RESOLVED: Coordinates found
        NOT_FOUND: Provider has no match for the address
        QUOTA_EXCEEDED: Request allowance exhausted (not retried)
        DENIED: Key missing/invalid or API disabled (not retried)
        TRANSIENT_ERROR: Timeout, 5xx, connection failure, unknown error
    """
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    QUOTA_EXCEEDED = "quota_exceeded"
    DENIED = "denied"
    TRANSIENT_ERROR = "transient_error"


@dataclass(frozen=True)
class GeocodeOutcome:
    """
    Standardized result from a geocoding call.

    Attributes:
        status: Classified outcome
        lat: Latitude (RESOLVED only)
        lng: Longitude (RESOLVED only)
        formatted_address: Provider-normalized address (RESOLVED only)
        error_message: Provider or transport detail for failures
        attempts: Provider requests issued, retries included
        response_time_ms: Total time spent, retries included
    """
    status: GeocodeStatus
    lat: Optional[float] = None
    lng: Optional[float] = None
    formatted_address: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int = 1
    response_time_ms: float = 0.0

    @property
    def is_resolved(self) -> bool:
        return self.status == GeocodeStatus.RESOLVED

    @property
    def is_transient(self) -> bool:
        return self.status == GeocodeStatus.TRANSIENT_ERROR

    @classmethod
    def resolved(cls, lat: float, lng: float, formatted_address: str) -> "GeocodeOutcome":
        return cls(
            status=GeocodeStatus.RESOLVED,
            lat=lat,
            lng=lng,
            formatted_address=formatted_address,
        )

    @classmethod
    def failure(cls, status: GeocodeStatus, error_message: Optional[str] = None) -> "GeocodeOutcome":
        return cls(status=status, error_message=error_message)


class BaseGeocodingClient(ABC):
    """
    Abstract base class for geocoding clients.

    Example:
        >>> client = get_geocoding_client()
        >>> outcome = await client.resolve("Via Roma 1, Torino", api_key="...")
        >>> if outcome.is_resolved:
        ...     print(outcome.lat, outcome.lng)
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the geocoding provider.

        Returns:
            str: Provider name (e.g., "mock", "google")
        """
        pass

    @abstractmethod
    async def resolve(
        self,
        address: str,
        api_key: Optional[str] = None,
    ) -> GeocodeOutcome:
        """
        Resolve a free-text address to coordinates.

        Transient failures are retried per the client's retry policy before
        being returned; quota and denial are returned immediately.

        Args:
            address: Free-text address (e.g., "Via Roma 1, Torino")
            api_key: Provider key; falls back to the configured key

        Returns:
            GeocodeOutcome: Classified result
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify connectivity to the geocoding provider.

        Returns:
            bool: True if service is operational
        """
        pass

    async def aclose(self) -> None:
        """Release network resources held by the client."""
