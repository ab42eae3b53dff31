"""
Distance Matrix Client

Measures the driving distance between a pickup and a delivery address with the
Google Distance Matrix API (imperial units) and checks single addresses with
the Geocoding API. Timeouts and transport failures are retried a bounded
number of times with exponential backoff; answers the service gives (unknown
address, no route) are not retried.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

import httpx

from alltown.config import settings
from alltown.exceptions import GeocodingError
from alltown.utils.metrics import record_distance_request

logger = logging.getLogger(__name__)

MILES_PER_METER = Decimal("0.000621371")


@dataclass(frozen=True)
class DistanceResult:
    distance_miles: Decimal
    duration_minutes: int


@dataclass(frozen=True)
class AddressValidation:
    is_valid: bool
    formatted_address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    error_message: str | None = None


class DistanceClient(Protocol):
    async def measure(self, origin: str, destination: str) -> DistanceResult: ...

    async def validate_address(self, address: str) -> AddressValidation: ...


class GoogleMapsDistanceClient:
    """
    httpx-backed DistanceClient.

    The AsyncClient is created lazily unless one is passed in (tests pass one
    built on httpx.MockTransport). Call `aclose()` on shutdown.
    """

    def __init__(
        self,
        api_key: str | None = None,
        url: str | None = None,
        geocode_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        client: httpx.AsyncClient | None = None,
        sleep=asyncio.sleep,
    ):
        self.api_key = api_key if api_key is not None else settings.google_maps_api_key
        self.url = url or settings.distance_matrix_url
        self.geocode_url = geocode_url or settings.geocode_url
        self.timeout = timeout if timeout is not None else settings.distance_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.distance_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.distance_backoff_seconds
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def measure(self, origin: str, destination: str) -> DistanceResult:
        params = {
            "origins": origin,
            "destinations": destination,
            "units": "imperial",
        }
        response = await self._get(self.url, params)
        return self._parse(response)

    async def validate_address(self, address: str) -> AddressValidation:
        """
        Geocode one address.

        An address the service cannot place is reported as invalid rather than
        raised; only an unreachable service raises GeocodingError.
        """
        response = await self._get(self.geocode_url, {"address": address})
        if response.status_code != 200:
            record_distance_request("error")
            raise GeocodingError(f"Geocoding service returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            record_distance_request("error")
            raise GeocodingError("Geocoding service returned an unreadable response") from e

        record_distance_request("ok")
        if data.get("status") != "OK":
            return AddressValidation(is_valid=False, error_message=f"Address validation failed: {data.get('status')}")
        if not data.get("results"):
            return AddressValidation(is_valid=False, error_message="No results found for this address")

        result = data["results"][0]
        location = result.get("geometry", {}).get("location", {})
        return AddressValidation(
            is_valid=True,
            formatted_address=result.get("formatted_address"),
            latitude=location.get("lat"),
            longitude=location.get("lng"),
        )

    async def _get(self, url: str, params: dict) -> httpx.Response:
        if not self.api_key:
            logger.error("Distance matrix API key is not configured")
            record_distance_request("error")
            raise GeocodingError("Distance service is not configured")

        params = {**params, "key": self.api_key}
        attempt = 0
        while True:
            try:
                response = await self.client.get(url, params=params, timeout=self.timeout)
                if response.status_code >= 500:
                    raise httpx.HTTPStatusError(
                        f"Distance service returned {response.status_code}",
                        request=response.request,
                        response=response,
                    )
                break
            except (httpx.TimeoutException, httpx.TransportError, httpx.HTTPStatusError) as e:
                if attempt >= self.max_retries:
                    outcome = "timeout" if isinstance(e, httpx.TimeoutException) else "error"
                    record_distance_request(outcome)
                    logger.error(f"Distance service unavailable after {attempt + 1} attempts: {e}")
                    raise GeocodingError("Distance service is unavailable") from e
                delay = self.backoff_seconds * (2**attempt)
                logger.warning(f"Distance request failed ({e}); retrying in {delay:.2f}s")
                attempt += 1
                await self._sleep(delay)

        return response

    @staticmethod
    def _parse(response: httpx.Response) -> DistanceResult:
        if response.status_code != 200:
            record_distance_request("error")
            raise GeocodingError(f"Distance service returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            record_distance_request("error")
            raise GeocodingError("Distance service returned an unreadable response") from e

        if data.get("status") != "OK":
            record_distance_request("error")
            logger.warning(f"Distance matrix status: {data.get('status')} {data.get('error_message', '')}")
            raise GeocodingError("Could not calculate distance between addresses")

        try:
            element = data["rows"][0]["elements"][0]
        except (KeyError, IndexError, TypeError) as e:
            record_distance_request("error")
            raise GeocodingError("Could not calculate distance between addresses") from e

        if element.get("status") != "OK":
            record_distance_request("error")
            raise GeocodingError("No route found between the pickup and delivery addresses")

        meters = Decimal(str(element["distance"]["value"]))
        seconds = element["duration"]["value"]
        miles = (meters * MILES_PER_METER).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

        record_distance_request("ok")
        return DistanceResult(distance_miles=miles, duration_minutes=math.ceil(seconds / 60))
