"""
Pydantic Schemas for Configuration and Request/Response Validation

Two groups of models:
    - Stored configuration (DeliverySettings, DeliveryZone): the JSON
      shapes persisted under the "deliverySettings" and "deliveryZones"
      keys. Immutable once loaded.
    - API bodies for the storefront Quote API and the admin console.

JSON uses camelCase keys; Python code uses snake_case attributes.

Version: 4.0.0
"""

from datetime import datetime
from typing import Optional, List, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# =============================================================================
# STORED CONFIGURATION
# =============================================================================

class DeliverySettings(CamelModel):
    """
    Delivery settings blob (key "deliverySettings").

    Attributes:
        enabled: Master switch for delivery quotes
        restaurant_address: Free-text address of the restaurant
        restaurant_lat: Restaurant latitude (reference point for distances)
        restaurant_lng: Restaurant longitude
        max_delivery_distance_km: Hard out-of-range cutoff
        base_delivery_fee: Fee when no zone matches but still within cutoff
        free_delivery_threshold: Subtotal at or above which delivery is free
        geocoding_api_key: Provider key (falls back to GOOGLE_MAPS_API_KEY)
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        allow_inf_nan=False,
    )

    enabled: bool = True
    restaurant_address: str = ""
    restaurant_lat: float = Field(..., ge=-90, le=90)
    restaurant_lng: float = Field(..., ge=-180, le=180)
    max_delivery_distance_km: float = Field(..., gt=0)
    base_delivery_fee: float = Field(default=0.0, ge=0)
    free_delivery_threshold: float = Field(default=0.0, ge=0)
    geocoding_api_key: str = Field(default="", repr=False)

    @property
    def location_fingerprint(self) -> tuple[str, float, float]:
        """The restaurant reference point; cached geocodes are tied to it."""
        return (self.restaurant_address, self.restaurant_lat, self.restaurant_lng)


class DeliveryZone(CamelModel):
    """
    A priced distance band (one element of key "deliveryZones").

    Ordering and sign invariants are checked on the whole table by the zone
    resolver, so that a bad table is reported in one place with every problem.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        allow_inf_nan=False,
    )

    id: str
    name: str
    max_distance_km: float
    delivery_fee: float
    estimated_time_text: str = ""
    is_active: bool = True

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        """Older tooling stored numeric ids."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class QuoteRequest(CamelModel):
    """Storefront request for a delivery quote."""
    address: str = Field(..., min_length=1, max_length=500, examples=["Via Roma 1, Torino"])
    order_subtotal: float = Field(..., ge=0, allow_inf_nan=False, examples=[32.50])

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Address is required")
        return v


class DeliveryZonesUpdate(CamelModel):
    """Admin replacement of the whole zone table."""
    zones: List[DeliveryZone]


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class QuoteResponse(CamelModel):
    """
    Response of the Quote API.

    `fee` is omitted when the address is out of range, delivery is disabled,
    or the address could not be resolved.
    """
    within_range: bool
    fee: Optional[float] = None
    zone_name: Optional[str] = None
    estimated_time_text: Optional[str] = None
    distance_km: Optional[float] = None
    free_delivery_applied: bool = False
    delivery_enabled: bool = True
    formatted_address: Optional[str] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None


class ZoneListResponse(CamelModel):
    """Active zones for storefront display."""
    delivery_enabled: bool
    free_delivery_threshold: float
    max_delivery_distance_km: float
    zones: List[DeliveryZone]


class SettingResponse(CamelModel):
    """Merged value of a settings key."""
    key: str
    value: Any


class SettingWriteResponse(CamelModel):
    """Result of an admin settings write."""
    success: bool
    key: str
    updated_at: datetime
    applied: bool = True


class LocateRestaurantResponse(CamelModel):
    """Result of geocoding the stored restaurant address."""
    success: bool
    restaurant_address: str
    restaurant_lat: Optional[float] = None
    restaurant_lng: Optional[float] = None
    formatted_address: Optional[str] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[Any] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    config_store: str
    notifier: str
    geocoder: str
    geocode_cache: dict[str, int] = {}
    timestamp: datetime
