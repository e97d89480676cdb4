"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from delivery_engine.core.config import get_settings, Settings, EnvironmentMode
from delivery_engine.core.exceptions import (
    DeliveryEngineError,
    ConfigTransportError,
    InvalidConfiguration,
    InvalidZoneConfiguration,
    InvalidDeliverySettings,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "DeliveryEngineError",
    "ConfigTransportError",
    "InvalidConfiguration",
    "InvalidZoneConfiguration",
    "InvalidDeliverySettings",
]
