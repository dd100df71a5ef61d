"""Geocoding batch processor for imported facility addresses."""

import asyncio
import time
from typing import NamedTuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.facility_import.app.core.errors import InvalidStateError, PersistenceError
from services.facility_import.app.core.models import (
    AddressMatchQuality,
    FacilityModel,
    ImportedRecordModel,
    ImportStatus,
    utc_now,
)
from services.facility_import.app.core.outcome import chunked, run_isolated
from services.facility_import.app.core.schemas import (
    GeocodeCandidate,
    GeocodeOutcome,
    ImportJob,
)
from services.facility_import.app.core.slugs import generate_slug
from services.facility_import.app.geocoding.base import (
    BatchRateLimit,
    BatchRateLimiter,
    GeocodingClient,
)
from services.facility_import.app.metrics import GEOCODE_BATCH_SECONDS, GEOCODE_RESULTS_TOTAL
from services.facility_import.app.services.job_manager import JobManager, as_uuid
from shared.utils.logging import get_logger

logger = get_logger(__name__)

ADDRESS_NOT_FOUND = "Address not found"
LOCALITY = "locality"
ADMIN_AREA_LEVEL_1 = "administrative_area_level_1"


class PendingRecord(NamedTuple):
    """Fields of a pending import record needed to geocode it."""

    record_id: UUID
    facility_id: UUID
    name: str
    raw_address: str


def classify_candidates(candidates: list[GeocodeCandidate]) -> GeocodeOutcome:
    """Classify provider candidates into a match outcome.

    Only the first candidate counts; its approximate-match flag alone
    decides between exact and partial.
    """
    if not candidates:
        return GeocodeOutcome(quality=AddressMatchQuality.NONE, error=ADDRESS_NOT_FOUND)

    top = candidates[0]
    locality = top.component(LOCALITY)
    admin_area = top.component(ADMIN_AREA_LEVEL_1)

    return GeocodeOutcome(
        quality=AddressMatchQuality.PARTIAL if top.partial_match else AddressMatchQuality.EXACT,
        formatted_address=top.formatted_address,
        latitude=top.latitude,
        longitude=top.longitude,
        city=locality.long_name if locality else "",
        state=admin_area.short_name if admin_area else "",
    )


def stat_deltas(outcome: GeocodeOutcome) -> dict[str, int]:
    """Job stat increments for one record outcome."""
    if outcome.quality == AddressMatchQuality.EXACT:
        return {"geocoded_addresses": 1}
    if outcome.quality == AddressMatchQuality.PARTIAL:
        return {"geocoded_addresses": 1, "partial_matches": 1}
    return {"failed_geocoding": 1}


async def apply_location(
    db: AsyncSession,
    facility_id: UUID,
    name: str,
    outcome: GeocodeOutcome,
) -> None:
    """Write a resolved location onto the facility (without committing)."""
    await db.execute(
        update(FacilityModel)
        .where(FacilityModel.facility_id == facility_id)
        .values(
            location=outcome.formatted_address,
            latitude=outcome.latitude,
            longitude=outcome.longitude,
            city=outcome.city,
            state=outcome.state,
            slug=generate_slug(name, outcome.formatted_address or ""),
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )


class GeocodingProcessor:
    """Resolve pending addresses for a job in rate-limited concurrent batches."""

    def __init__(
        self,
        db: AsyncSession,
        geocoder: GeocodingClient,
        rate_limit: BatchRateLimit | None = None,
        region: str | None = "us",
    ):
        """Initialize geocoding processor.

        Args:
            db: Database session
            geocoder: Geocoding provider client
            rate_limit: Batch size and inter-batch delay
            region: Region bias passed to the provider
        """
        self.db = db
        self.geocoder = geocoder
        self.rate_limit = rate_limit or BatchRateLimit()
        self.region = region
        self.job_manager = JobManager(db)

    async def geocode_address(self, address: str) -> GeocodeOutcome:
        """Geocode one address; provider failures become a `none` outcome."""
        outcome = await run_isolated(self.geocoder.geocode, address, region=self.region)

        if not outcome.ok:
            return GeocodeOutcome(
                quality=AddressMatchQuality.NONE,
                error=outcome.error_message,
            )

        return classify_candidates(outcome.value)

    async def _pending_records(self, job_id: UUID) -> list[PendingRecord]:
        result = await self.db.execute(
            select(
                ImportedRecordModel.record_id,
                ImportedRecordModel.facility_id,
                ImportedRecordModel.name,
                ImportedRecordModel.raw_address,
            )
            .where(
                ImportedRecordModel.job_id == job_id,
                ImportedRecordModel.address_match_quality == AddressMatchQuality.PENDING.value,
            )
            .order_by(ImportedRecordModel.created_at, ImportedRecordModel.record_id)
        )
        return [PendingRecord(*row) for row in result.all()]

    async def process_job(self, job_id: UUID | str) -> ImportJob:
        """Run the geocoding phase for a job in geocoding status.

        Individual address failures never fail the job. The job fails only
        when the phase cannot run: missing credentials, a failed pending
        query or a store write error.

        Args:
            job_id: Job identifier

        Returns:
            Job after the phase (completed, or failed if cancelled meanwhile)

        Raises:
            InvalidStateError: If the job is not in geocoding status
        """
        job_uuid = as_uuid(job_id, "ImportJob")
        status = await self.job_manager.get_status(job_uuid)
        if status != ImportStatus.GEOCODING:
            raise InvalidStateError(
                status.value,
                ImportStatus.GEOCODING.value,
                message=f"Job is not ready for geocoding (status: {status.value})",
            )

        try:
            self.geocoder.validate_credentials()
            pending = await self._pending_records(job_uuid)
            batches = chunked(pending, self.rate_limit.batch_size)

            logger.info(
                "geocoding_started",
                job_id=str(job_uuid),
                pending=len(pending),
                batches=len(batches),
            )

            limiter = BatchRateLimiter(self.rate_limit.delay_seconds)
            for number, batch in enumerate(batches, start=1):
                await limiter.acquire()

                if await self.job_manager.get_status(job_uuid) != ImportStatus.GEOCODING:
                    logger.info("geocoding_aborted", job_id=str(job_uuid), batch=number)
                    return await self.job_manager.get_job(job_uuid)

                try:
                    await self._process_batch(job_uuid, number, batch)
                finally:
                    limiter.release()
        except Exception as e:
            await self.db.rollback()
            logger.error("geocoding_phase_failed", job_id=str(job_uuid), error=str(e))
            await self.job_manager.fail_job(job_uuid, str(e))
            if isinstance(e, SQLAlchemyError):
                raise PersistenceError(str(e)) from e
            raise

        try:
            return await self.job_manager.update_status(job_uuid, ImportStatus.COMPLETED)
        except InvalidStateError:
            logger.info("geocoding_finished_after_cancel", job_id=str(job_uuid))
            return await self.job_manager.get_job(job_uuid)

    async def _process_batch(
        self,
        job_id: UUID,
        number: int,
        batch: list[PendingRecord],
    ) -> None:
        """Geocode one batch concurrently, then record each outcome."""
        logger.info("geocoding_batch_started", job_id=str(job_id), batch=number, size=len(batch))
        started = time.monotonic()

        outcomes = await asyncio.gather(
            *(self.geocode_address(item.raw_address) for item in batch)
        )
        GEOCODE_BATCH_SECONDS.observe(time.monotonic() - started)

        for item, outcome in zip(batch, outcomes):
            await self._record_outcome(job_id, item, outcome)

        logger.info("geocoding_batch_completed", job_id=str(job_id), batch=number)

    async def _record_outcome(
        self,
        job_id: UUID,
        item: PendingRecord,
        outcome: GeocodeOutcome,
    ) -> bool:
        """Persist one record's outcome with its facility and stat updates.

        The record update only applies while the record is still pending,
        so a cancellation sweep that landed first wins.

        Returns:
            True if the outcome was written
        """
        result = await self.db.execute(
            update(ImportedRecordModel)
            .where(
                ImportedRecordModel.record_id == item.record_id,
                ImportedRecordModel.address_match_quality == AddressMatchQuality.PENDING.value,
            )
            .values(
                address_match_quality=outcome.quality.value,
                needs_review=outcome.needs_review,
                geocoding_error=outcome.error,
                processed_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            await self.db.rollback()
            logger.info("record_already_resolved", record_id=str(item.record_id))
            return False

        if outcome.resolved:
            await apply_location(self.db, item.facility_id, item.name, outcome)

        await self.job_manager.increment_stats(job_id, commit=False, **stat_deltas(outcome))
        await self.db.commit()

        GEOCODE_RESULTS_TOTAL.labels(quality=outcome.quality.value).inc()
        log = logger.info if outcome.resolved else logger.warning
        log(
            "record_geocoded",
            record_id=str(item.record_id),
            quality=outcome.quality.value,
            error=outcome.error,
        )
        return True
