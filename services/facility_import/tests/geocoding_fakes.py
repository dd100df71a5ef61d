"""Scripted geocoding doubles shared by the facility import tests."""

import asyncio
import time

from services.facility_import.app.core.errors import ExternalServiceError
from services.facility_import.app.core.schemas import AddressComponent, GeocodeCandidate
from services.facility_import.app.geocoding.base import GeocodingClient

CUPERTINO_ADDRESS = "1 Infinite Loop, Cupertino, CA"


def make_candidate(
    formatted_address: str = "1 Infinite Loop, Cupertino, CA 95014, USA",
    latitude: float = 37.3318,
    longitude: float = -122.0312,
    partial_match: bool = False,
    city: str | None = "Cupertino",
    state: str | None = "CA",
) -> GeocodeCandidate:
    """Build a provider candidate with locality and state components."""
    components = []
    if city:
        components.append(
            AddressComponent(long_name=city, short_name=city, types=["locality", "political"])
        )
    if state:
        components.append(
            AddressComponent(
                long_name="California" if state == "CA" else state,
                short_name=state,
                types=["administrative_area_level_1", "political"],
            )
        )
    return GeocodeCandidate(
        formatted_address=formatted_address,
        latitude=latitude,
        longitude=longitude,
        partial_match=partial_match,
        address_components=components,
    )


class FakeGeocoder(GeocodingClient):
    """Scripted geocoder recording every call.

    Addresses missing from `responses` resolve to an exact match built
    from the address itself. A response may be a candidate list or an
    exception instance to raise.
    """

    PROVIDER_NAME = "fake"

    def __init__(self, responses=None, credentials_ok: bool = True):
        self.responses = dict(responses or {})
        self.credentials_ok = credentials_ok
        self.calls: list[tuple[str, float]] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    def validate_credentials(self) -> None:
        if not self.credentials_ok:
            raise ExternalServiceError("Google Maps API key not configured")

    async def geocode(self, address, region=None):
        self.calls.append((address, time.monotonic()))
        if self.gate is not None:
            await self.gate.wait()

        response = self.responses.get(address)
        if isinstance(response, Exception):
            raise response
        if response is not None:
            return response
        return [make_candidate(formatted_address=f"{address}, USA", city="Springfield", state="IL")]

    async def close(self) -> None:
        self.closed = True
