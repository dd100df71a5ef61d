"""Google Geocoding API client.

https://developers.google.com/maps/documentation/geocoding/requests-geocoding
"""

from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from services.facility_import.app.core.errors import ExternalServiceError
from services.facility_import.app.core.schemas import AddressComponent, GeocodeCandidate
from services.facility_import.app.geocoding.base import GeocodingClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class GoogleGeocodingClient(GeocodingClient):
    """Geocoding client for the Google Maps Geocoding API."""

    PROVIDER_NAME = "google"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://maps.googleapis.com/maps/api/geocode/json",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Google geocoding client.

        Args:
            api_key: Google Maps API key
            base_url: Geocoding endpoint URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = httpx.Timeout(timeout)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def validate_credentials(self) -> None:
        if not self.api_key:
            raise ExternalServiceError("Google Maps API key not configured")

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _parse_candidate(self, item: dict[str, Any]) -> GeocodeCandidate:
        """Parse one Google result into a GeocodeCandidate."""
        location = item["geometry"]["location"]
        return GeocodeCandidate(
            formatted_address=item["formatted_address"],
            latitude=location["lat"],
            longitude=location["lng"],
            partial_match=bool(item.get("partial_match", False)),
            address_components=[
                AddressComponent(
                    long_name=c.get("long_name", ""),
                    short_name=c.get("short_name", ""),
                    types=c.get("types", []),
                )
                for c in item.get("address_components", [])
            ],
        )

    async def geocode(
        self,
        address: str,
        region: str | None = None,
    ) -> list[GeocodeCandidate]:
        self.validate_credentials()

        params = {"address": address, "key": self.api_key}
        if region:
            params["region"] = region

        client = await self.get_client()
        try:
            response = await client.get(self.base_url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as e:
            raise ExternalServiceError(f"Geocoding request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                f"Geocoding request failed with HTTP {e.response.status_code}",
                provider_status=str(e.response.status_code),
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Geocoding request failed: {e}") from e
        except ValueError as e:
            raise ExternalServiceError("Malformed geocoding response") from e

        status = payload.get("status") if isinstance(payload, dict) else None

        logger.debug(
            "geocode_request",
            provider=self.PROVIDER_NAME,
            status=status,
            http_status=response.status_code,
        )

        if status == "ZERO_RESULTS":
            return []

        if status != "OK":
            message = payload.get("error_message") if isinstance(payload, dict) else None
            raise ExternalServiceError(
                message or f"Geocoding provider returned status {status}",
                provider_status=status,
            )

        try:
            return [self._parse_candidate(item) for item in payload.get("results", [])]
        except (KeyError, TypeError, PydanticValidationError) as e:
            raise ExternalServiceError("Malformed geocoding response") from e
