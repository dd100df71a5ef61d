"""Geocoding providers."""

from services.facility_import.app.geocoding.base import (
    BatchRateLimit,
    BatchRateLimiter,
    GeocodingClient,
)
from services.facility_import.app.geocoding.google import GoogleGeocodingClient

__all__ = [
    "BatchRateLimit",
    "BatchRateLimiter",
    "GeocodingClient",
    "GoogleGeocodingClient",
]
