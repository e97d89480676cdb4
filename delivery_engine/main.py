"""
FastAPI Application Entry Point

Delivery Zone Engine - Hybrid Architecture
Supports both Mock geocoding (development) and the Google Geocoding API
(production).

Endpoints:
    - POST /api/quote: Delivery quote for an address (storefront checkout)
    - GET /api/delivery-zones: Active zones for storefront display
    - GET /api/settings/{key}: Merged value of a settings key
    - PUT /api/settings/deliverySettings: Replace delivery settings (admin)
    - PUT /api/settings/deliveryZones: Replace the zone table (admin)
    - POST /api/settings/deliverySettings/locate: Geocode the restaurant (admin)
    - GET /health: System health check

Version: 4.0.0
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from delivery_engine.core.config import ConfigBackend, get_settings, setup_logging
from delivery_engine.core.exceptions import (
    ConfigTransportError,
    InvalidConfiguration,
)
from delivery_engine.schemas import (
    DeliveryZonesUpdate,
    ErrorResponse,
    HealthResponse,
    LocateRestaurantResponse,
    QuoteRequest,
    QuoteResponse,
    SettingResponse,
    SettingWriteResponse,
    ZoneListResponse,
)
from delivery_engine.services.config import layers
from delivery_engine.services.delivery import (
    DeliveryDisabled,
    DeliveryError,
    DeliveryQuoteService,
    get_quote_service,
    load_delivery_settings,
    validate_zones,
)

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


def get_service() -> DeliveryQuoteService:
    """Dependency returning the process-wide quote service."""
    return get_quote_service()


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    if settings.config_backend == ConfigBackend.DATABASE:
        from delivery_engine.database import init_db
        await init_db()
        logger.info("Database initialized")

    service = get_quote_service()
    await service.store.seed_defaults()
    await service.notifier.start()
    await service.start()

    logger.info(f"Config Store: {service.store.backend_name}")
    logger.info(f"Change Notifier: {service.notifier.provider_name}")
    logger.info(f"Geocoder: {service.geocoder.provider_name}")

    # Validate production config
    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await service.stop()
    await service.notifier.stop()
    await service.geocoder.aclose()
    if settings.config_backend == ConfigBackend.DATABASE:
        from delivery_engine.database import engine
        await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Delivery-zone resolution engine: geocodes delivery addresses, "
        "maps distance to priced zones, and serves admin-editable "
        "delivery configuration."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    service: DeliveryQuoteService = Depends(get_service),
) -> HealthResponse:
    """Verify all system components are operational."""

    store_status = "healthy" if await service.store.health_check() else "unhealthy"
    notifier_status = "healthy" if await service.notifier.health_check() else "unhealthy"
    geocoder_status = "healthy" if await service.geocoder.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [store_status, notifier_status, geocoder_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        config_store=store_status,
        notifier=notifier_status,
        geocoder=geocoder_status,
        geocode_cache=service.cache.stats(),
        timestamp=datetime.now(),
    )


# =============================================================================
# QUOTE API (STOREFRONT)
# =============================================================================

@app.post(
    "/api/quote",
    response_model=QuoteResponse,
    response_model_exclude_none=True,
    responses={500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Quotes"],
    summary="Delivery Quote",
)
async def create_quote(
    request: QuoteRequest,
    service: DeliveryQuoteService = Depends(get_service),
) -> QuoteResponse:
    """
    Quote delivery for an address.

    Geocoding failures are answered with `withinRange=false` and an
    `errorKind` (not_found, quota_exceeded, denied, transient) so the
    checkout can show a specific message. An out-of-range address has no
    `errorKind` and no `fee`.
    """
    result = await service.quote(request.address, request.order_subtotal)

    if isinstance(result, DeliveryDisabled):
        return QuoteResponse(
            within_range=False,
            delivery_enabled=False,
            message=result.message,
        )

    if isinstance(result, DeliveryError):
        return QuoteResponse(
            within_range=False,
            error_kind=result.kind.value,
            message=result.message,
        )

    return QuoteResponse(
        within_range=result.within_range,
        fee=result.fee,
        zone_name=result.zone_name,
        estimated_time_text=result.estimated_time_text,
        distance_km=round(result.distance_km, 3),
        free_delivery_applied=result.free_delivery_applied,
        formatted_address=result.formatted_address,
        message=None if result.within_range else "This address is outside our delivery area.",
    )


@app.get(
    "/api/delivery-zones",
    response_model=ZoneListResponse,
    tags=["Quotes"],
    summary="List Active Zones",
)
async def list_delivery_zones(
    service: DeliveryQuoteService = Depends(get_service),
) -> ZoneListResponse:
    """Active zones in ascending order, for storefront display."""
    snapshot = await service.current_config()

    return ZoneListResponse(
        delivery_enabled=snapshot.settings.enabled,
        free_delivery_threshold=snapshot.settings.free_delivery_threshold,
        max_delivery_distance_km=snapshot.settings.max_delivery_distance_km,
        zones=list(snapshot.zones),
    )


# =============================================================================
# ADMIN API
# =============================================================================

@app.get(
    "/api/settings/{key}",
    response_model=SettingResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def read_setting(
    key: str,
    service: DeliveryQuoteService = Depends(get_service),
) -> SettingResponse:
    """Get the merged (stored over default) value of a settings key."""
    if not layers.has_default(key):
        raise HTTPException(status_code=404, detail=f"Unknown settings key '{key}'")

    value = await service.store.get(key)
    return SettingResponse(key=key, value=value)


@app.put(
    "/api/settings/deliverySettings",
    response_model=SettingWriteResponse,
    responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def write_delivery_settings(
    body: dict[str, Any] = Body(...),
    service: DeliveryQuoteService = Depends(get_service),
) -> SettingWriteResponse:
    """
    Replace the stored delivery settings.

    Fields left out of the body fall back to their defaults. The body is
    checked against the settings invariants before anything is written.
    """
    value = layers.upgrade_legacy_fields(layers.DELIVERY_SETTINGS_KEY, body)
    try:
        load_delivery_settings(layers.resolve(layers.DELIVERY_SETTINGS_KEY, value))
    except InvalidConfiguration as e:
        logger.warning(f"Rejected delivery settings update: {e.problems}")
        raise HTTPException(status_code=422, detail=e.problems)

    result = await service.store.upsert(layers.DELIVERY_SETTINGS_KEY, value)

    return SettingWriteResponse(
        success=True,
        key=layers.DELIVERY_SETTINGS_KEY,
        updated_at=result.record.updated_at,
        applied=result.applied,
    )


@app.put(
    "/api/settings/deliveryZones",
    response_model=SettingWriteResponse,
    responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def write_delivery_zones(
    body: DeliveryZonesUpdate,
    service: DeliveryQuoteService = Depends(get_service),
) -> SettingWriteResponse:
    """
    Replace the whole zone table.

    An invalid table (unsorted, shared boundary, negative values, duplicate
    ids) is rejected and nothing is written.
    """
    try:
        validate_zones(body.zones)
    except InvalidConfiguration as e:
        logger.warning(f"Rejected zone table update: {e.problems}")
        raise HTTPException(status_code=422, detail=e.problems)

    value = [zone.model_dump(by_alias=True) for zone in body.zones]
    result = await service.store.upsert(layers.DELIVERY_ZONES_KEY, value)

    return SettingWriteResponse(
        success=True,
        key=layers.DELIVERY_ZONES_KEY,
        updated_at=result.record.updated_at,
        applied=result.applied,
    )


@app.post(
    "/api/settings/deliverySettings/locate",
    response_model=LocateRestaurantResponse,
    response_model_exclude_none=True,
    tags=["Admin"],
)
async def locate_restaurant(
    service: DeliveryQuoteService = Depends(get_service),
) -> LocateRestaurantResponse:
    """Geocode the stored restaurant address and store its coordinates."""
    outcome, write = await service.locate_restaurant()
    current = await service.store.get(layers.DELIVERY_SETTINGS_KEY)

    if isinstance(outcome, DeliveryError):
        return LocateRestaurantResponse(
            success=False,
            restaurant_address=current.get("restaurantAddress", ""),
            error_kind=outcome.kind.value,
            message=outcome.message,
        )

    return LocateRestaurantResponse(
        success=write is not None and write.applied,
        restaurant_address=current.get("restaurantAddress", ""),
        restaurant_lat=outcome.lat,
        restaurant_lng=outcome.lng,
        formatted_address=outcome.formatted_address,
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body or parameters failed validation."""
    logger.warning(f"Validation error on {request.url.path}")

    # Rejected input is not echoed back: it may hold NaN, which is not valid JSON
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "Validation Error",
            "detail": errors,
        },
    )


@app.exception_handler(ConfigTransportError)
async def config_transport_handler(request: Request, exc: ConfigTransportError) -> JSONResponse:
    """Settings store unreachable."""
    logger.error(f"Settings store unavailable: {exc}")

    return JSONResponse(
        status_code=503,
        content={
            "success": False,
            "error": "Service Unavailable",
            "detail": "Delivery configuration is temporarily unavailable",
        },
    )


@app.exception_handler(InvalidConfiguration)
async def invalid_configuration_handler(request: Request, exc: InvalidConfiguration) -> JSONResponse:
    """Stored configuration is broken; an admin has to fix it."""
    logger.error(f"Invalid stored configuration: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Invalid Delivery Configuration",
            "detail": exc.problems if settings.debug else f"Invalid configuration for '{exc.key}'",
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


# =============================================================================
# DEVELOPMENT SERVER
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "delivery_engine.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
