"""
Google Maps Geocoding Client

Production implementation calling the Google Geocoding web service
directly over httpx, so that requests are non-blocking, bounded by a
timeout, and cancelled together with the quote request that issued them.
Used when ENV_MODE=production or ENV_MODE=staging.

Response classification:
    OK                -> RESOLVED (NOT_FOUND if results are empty)
    ZERO_RESULTS      -> NOT_FOUND
    OVER_QUERY_LIMIT  -> QUOTA_EXCEEDED   (never retried)
    REQUEST_DENIED    -> DENIED           (never retried)
    anything else     -> TRANSIENT_ERROR  (retried with backoff)
    timeout / 5xx / connection failure -> TRANSIENT_ERROR

API Documentation:
    https://developers.google.com/maps/documentation/geocoding

Version: 4.0.0
"""

import logging
import math
import time
from typing import Any, Optional

import httpx

from delivery_engine.core.config import get_settings
from delivery_engine.services.geo.base import (
    BaseGeocodingClient,
    GeocodeOutcome,
    GeocodeStatus,
)
from delivery_engine.services.geo.retry import RetryPolicy

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "ZERO_RESULTS": GeocodeStatus.NOT_FOUND,
    "OVER_QUERY_LIMIT": GeocodeStatus.QUOTA_EXCEEDED,
    "REQUEST_DENIED": GeocodeStatus.DENIED,
}


def classify_response(payload: dict[str, Any]) -> GeocodeOutcome:
    """
    Map a provider response body to a GeocodeOutcome.

    Args:
        payload: Decoded JSON body ({"status": ..., "results": [...]})
    """
    status = payload.get("status")

    if status == "OK":
        results = payload.get("results") or []
        if not results:
            return GeocodeOutcome.failure(GeocodeStatus.NOT_FOUND, "OK with no results")

        best = results[0] if isinstance(results, list) else None
        geometry = best.get("geometry") if isinstance(best, dict) else None
        location = geometry.get("location") if isinstance(geometry, dict) else None
        if not isinstance(location, dict):
            return GeocodeOutcome.failure(
                GeocodeStatus.TRANSIENT_ERROR,
                "Malformed result: missing geometry.location",
            )
        try:
            lat = float(location["lat"])
            lng = float(location["lng"])
        except (KeyError, TypeError, ValueError):
            lat = lng = math.nan
        if not (math.isfinite(lat) and math.isfinite(lng)):
            return GeocodeOutcome.failure(
                GeocodeStatus.TRANSIENT_ERROR,
                "Malformed result: invalid coordinates",
            )
        return GeocodeOutcome.resolved(
            lat=lat,
            lng=lng,
            formatted_address=str(best.get("formatted_address") or ""),
        )

    mapped = STATUS_MAP.get(status, GeocodeStatus.TRANSIENT_ERROR)
    return GeocodeOutcome.failure(mapped, payload.get("error_message") or status)


class GoogleGeocodingClient(BaseGeocodingClient):
    """
    Production Google Maps geocoding client.

    Example:
        >>> client = GoogleGeocodingClient()
        >>> outcome = await client.resolve("Via Roma 1, Torino", api_key="...")
        >>> print(outcome.formatted_address)
        'Via Roma, 1, 10123 Torino TO, Italy'
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_policy: Optional[RetryPolicy[GeocodeOutcome]] = None,
        region: Optional[str] = None,
        language: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: Default key when a call does not pass one
            base_url: Geocoding endpoint
            timeout: Per-request timeout in seconds
            retry_policy: Policy for transient failures
            region: Region bias (ccTLD)
            language: Language of formatted addresses
            http_client: Pre-built httpx client (tests)
        """
        settings = get_settings()

        self._default_key = api_key if api_key is not None else settings.google_maps_api_key
        self._base_url = base_url or settings.geocoding_base_url
        self._region = region if region is not None else settings.geocoding_region
        self._language = language if language is not None else settings.geocoding_language
        self._retry_policy = retry_policy or RetryPolicy(
            max_attempts=settings.geocoding_max_retries + 1,
            backoff=settings.geocoding_backoff_schedule,
            retry_on=lambda outcome: outcome.is_transient,
        )
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout or settings.geocoding_timeout_seconds,
        )

        logger.info("GoogleGeocodingClient initialized")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "google"

    async def _request_once(self, address: str, api_key: str) -> GeocodeOutcome:
        params = {"address": address, "key": api_key}
        if self._region:
            params["region"] = self._region
        if self._language:
            params["language"] = self._language

        try:
            response = await self._http.get(self._base_url, params=params)
        except httpx.TimeoutException:
            logger.warning("Google: geocoding request timed out")
            return GeocodeOutcome.failure(GeocodeStatus.TRANSIENT_ERROR, "timeout")
        except httpx.TransportError as e:
            logger.warning(f"Google: transport error - {type(e).__name__}")
            return GeocodeOutcome.failure(GeocodeStatus.TRANSIENT_ERROR, "connection failure")

        if response.status_code >= 500:
            logger.warning(f"Google: server error {response.status_code}")
            return GeocodeOutcome.failure(
                GeocodeStatus.TRANSIENT_ERROR,
                f"HTTP {response.status_code}",
            )

        try:
            payload = response.json()
        except ValueError:
            logger.warning(f"Google: undecodable response (HTTP {response.status_code})")
            return GeocodeOutcome.failure(
                GeocodeStatus.TRANSIENT_ERROR,
                f"HTTP {response.status_code} with non-JSON body",
            )

        if not isinstance(payload, dict):
            return GeocodeOutcome.failure(GeocodeStatus.TRANSIENT_ERROR, "Unexpected response shape")

        return classify_response(payload)

    async def resolve(
        self,
        address: str,
        api_key: Optional[str] = None,
    ) -> GeocodeOutcome:
        """
        Geocode an address using the Google Geocoding API.

        A missing key is reported as DENIED without issuing a request.
        """
        key = api_key or self._default_key
        if not key:
            logger.error("Google: no geocoding API key configured")
            return GeocodeOutcome.failure(GeocodeStatus.DENIED, "No geocoding API key configured")

        start_time = time.monotonic()
        logger.debug("Google: geocoding address")

        outcome, attempts = await self._retry_policy.run(
            lambda: self._request_once(address, key)
        )

        elapsed_ms = (time.monotonic() - start_time) * 1000
        outcome = GeocodeOutcome(
            status=outcome.status,
            lat=outcome.lat,
            lng=outcome.lng,
            formatted_address=outcome.formatted_address,
            error_message=outcome.error_message,
            attempts=attempts,
            response_time_ms=elapsed_ms,
        )

        if outcome.is_resolved:
            logger.info(f"Google: address resolved - {outcome.formatted_address}")
        else:
            logger.warning(
                f"Google: geocoding failed - {outcome.status.value} "
                f"after {attempts} attempt(s): {outcome.error_message}"
            )

        return outcome

    async def health_check(self) -> bool:
        """
        Verify Google Geocoding API connectivity and credentials.

        Makes a single geocode request for a well-known address.
        """
        outcome = await self.resolve("Piazza Castello, Torino")
        if outcome.is_resolved:
            logger.debug("Google: Health check passed")
            return True
        logger.error(f"Google: Health check failed - {outcome.status.value}")
        return False

    async def aclose(self) -> None:
        await self._http.aclose()
