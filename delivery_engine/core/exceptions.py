"""
Delivery Engine Exceptions

Errors that indicate something an operator must fix (unreachable store,
broken configuration). Geocoding failures are NOT exceptions: they come back
as typed GeocodeOutcome values so callers can render a specific message.
"""

from typing import Optional


class DeliveryEngineError(Exception):
    """Base class for all delivery engine errors."""


class ConfigTransportError(DeliveryEngineError):
    """The settings store could not be reached or the write failed."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class InvalidConfiguration(DeliveryEngineError):
    """
    Stored configuration failed validation at load time.

    Attributes:
        key: Settings key whose value is invalid
        problems: Human-readable list of what is wrong
    """

    def __init__(self, key: str, problems: list[str]):
        self.key = key
        self.problems = list(problems)
        super().__init__(f"Invalid configuration for '{key}': " + "; ".join(self.problems))


class InvalidZoneConfiguration(InvalidConfiguration):
    """Zone table is unsorted, has duplicate boundaries, or negative values."""

    def __init__(self, problems: list[str], key: str = "deliveryZones"):
        super().__init__(key, problems)


class InvalidDeliverySettings(InvalidConfiguration):
    """Delivery settings blob violates its invariants (coordinates, limits)."""

    def __init__(self, problems: list[str], key: str = "deliverySettings"):
        super().__init__(key, problems)
