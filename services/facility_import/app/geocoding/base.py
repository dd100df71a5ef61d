"""Geocoding client interface and batch rate limiting."""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from services.facility_import.app.core.schemas import GeocodeCandidate
from shared.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BatchRateLimit:
    """Batch size and minimum spacing between consecutive batch starts."""

    batch_size: int = 50
    delay_seconds: float = 1.0

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")


class BatchRateLimiter:
    """Fixed-window limiter applied between batches, not per request.

    The first call to `acquire` returns immediately; every later call
    waits until `delay_seconds` have passed since the previous batch
    finished (or started, if it was never released).
    """

    def __init__(self, delay_seconds: float):
        """Initialize rate limiter.

        Args:
            delay_seconds: Minimum gap between batches
        """
        self.delay_seconds = delay_seconds
        self._last_start: float | None = None
        self._last_end: float | None = None

    async def acquire(self) -> None:
        """Wait until the next batch may start."""
        if self._last_start is not None:
            now = time.monotonic()
            previous = self._last_end if self._last_end is not None else self._last_start
            wait_time = previous + self.delay_seconds - now
            if wait_time > 0:
                logger.debug("batch_rate_limit_wait", wait_seconds=wait_time)
                await asyncio.sleep(wait_time)
        self._last_start = time.monotonic()
        self._last_end = None

    def release(self) -> None:
        """Mark the current batch as finished."""
        self._last_end = time.monotonic()


class GeocodingClient(ABC):
    """Base class for geocoding providers."""

    PROVIDER_NAME: str = "unknown"

    def validate_credentials(self) -> None:
        """Raise ExternalServiceError if the client cannot make calls at all."""

    @abstractmethod
    async def geocode(
        self,
        address: str,
        region: str | None = None,
    ) -> list[GeocodeCandidate]:
        """Resolve a free-text address.

        Args:
            address: Free-text address
            region: Optional region bias (ccTLD, e.g. "us")

        Returns:
            Candidates in provider order; empty when nothing matched

        Raises:
            ExternalServiceError: On transport, credential or payload failure
        """
        pass

    async def close(self) -> None:
        """Release any held resources."""
