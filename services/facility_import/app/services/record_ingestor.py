"""Bulk record ingestion: placeholder facilities plus tracking records."""

from typing import Any, Mapping, Sequence
from uuid import UUID, uuid4

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
from services.facility_import.app.core.outcome import run_isolated
from services.facility_import.app.core.schemas import FacilityRow, ImportJob
from services.facility_import.app.core.slugs import generate_slug
from services.facility_import.app.metrics import ROWS_TOTAL
from services.facility_import.app.services.job_manager import CANCELLED_MESSAGE, JobManager
from shared.utils.logging import get_logger

logger = get_logger(__name__)


NAME_KEYS = ("name", "Facility Name")
WEBSITE_KEYS = ("website", "Facility Website")
ADDRESS_KEYS = ("raw_address", "address", "Facility Address")


def _lookup(row: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    """Return the first present value among a field's accepted keys."""
    for key in keys:
        if key in row:
            return row[key]
    raise KeyError(keys[0])


def _row_fields(row: FacilityRow | Mapping[str, Any]) -> tuple[str, str | None, str]:
    """Extract (name, website, raw_address) from a validated row.

    Mapping rows may use the same keys `FacilityRow` accepts, including
    the spreadsheet headers.
    """
    if isinstance(row, FacilityRow):
        website = str(row.website) if row.website else None
        return row.name, website, row.raw_address

    website = next((row[key] for key in WEBSITE_KEYS if key in row), None)
    website = str(website).strip() if website else ""
    return (
        str(_lookup(row, NAME_KEYS)).strip(),
        website or None,
        str(_lookup(row, ADDRESS_KEYS)).strip(),
    )


class RecordIngestor:
    """Turn validated rows into facilities and import records in one batch."""

    def __init__(
        self,
        db: AsyncSession,
        default_owner_id: str = "admin",
        moderation_status: str = "approved",
    ):
        """Initialize record ingestor.

        Args:
            db: Database session
            default_owner_id: Owner for placeholder facilities when the job has no creator
            moderation_status: Initial moderation status for placeholder facilities
        """
        self.db = db
        self.job_manager = JobManager(db)
        self.default_owner_id = default_owner_id
        self.moderation_status = moderation_status

    def _build_pair(
        self,
        job_id: UUID,
        owner_id: str,
        row: FacilityRow | Mapping[str, Any],
    ) -> tuple[FacilityModel, ImportedRecordModel]:
        """Build a placeholder facility and its pending import record."""
        name, website, raw_address = _row_fields(row)
        now = utc_now()

        facility = FacilityModel(
            facility_id=uuid4(),
            name=name,
            slug=generate_slug(name),
            owner_id=owner_id,
            description="",
            website=website,
            location="",
            city="",
            state="",
            latitude=0.0,
            longitude=0.0,
            rating=0.0,
            review_count=0,
            is_verified=False,
            is_featured=False,
            moderation_status=self.moderation_status,
            claim_status="unclaimed",
            created_at=now,
            updated_at=now,
        )

        record = ImportedRecordModel(
            record_id=uuid4(),
            job_id=job_id,
            facility=facility,
            facility_id=facility.facility_id,
            name=name,
            website=website,
            raw_address=raw_address,
            address_match_quality=AddressMatchQuality.PENDING.value,
            needs_review=False,
            created_at=now,
        )

        return facility, record

    async def ingest(
        self,
        job_id: UUID | str,
        rows: Sequence[FacilityRow | Mapping[str, Any]],
    ) -> ImportJob:
        """Run the importing phase for a pending job.

        Rows that cannot be turned into records are counted as failed and
        skipped; the rest are committed together or not at all.

        Args:
            job_id: Job identifier
            rows: Validated upload rows

        Returns:
            Job after the phase (geocoding, or failed if cancelled meanwhile)

        Raises:
            PersistenceError: If the batch commit fails; the job is marked failed
        """
        job = await self.job_manager.update_status(job_id, ImportStatus.IMPORTING)
        owner_id = job.created_by or self.default_owner_id

        prepared = 0
        failed = 0
        for index, row in enumerate(rows):
            outcome = await run_isolated(self._build_pair, job.job_id, owner_id, row)
            if outcome.ok:
                self.db.add_all(outcome.value)
                prepared += 1
            else:
                failed += 1
                logger.warning(
                    "row_prepare_failed",
                    job_id=str(job.job_id),
                    row=index,
                    error=outcome.error_message,
                )

        try:
            await self.job_manager.increment_stats(
                job.job_id,
                commit=False,
                processed_records=prepared,
                failed_records=failed,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("ingestion_commit_failed", job_id=str(job.job_id), error=str(e))
            await self.job_manager.fail_job(job.job_id, f"Batch commit failed: {e}")
            raise PersistenceError(f"Batch commit failed: {e}") from e

        ROWS_TOTAL.labels(result="prepared").inc(prepared)
        ROWS_TOTAL.labels(result="failed").inc(failed)

        logger.info(
            "ingestion_committed",
            job_id=str(job.job_id),
            prepared=prepared,
            failed=failed,
        )

        try:
            return await self.job_manager.update_status(job.job_id, ImportStatus.GEOCODING)
        except InvalidStateError:
            # Cancelled while the batch was committing; the sweep ran before
            # these records existed.
            swept = await self.job_manager.sweep_pending_records(job.job_id, CANCELLED_MESSAGE)
            logger.info("ingestion_cancelled", job_id=str(job.job_id), swept_records=swept)
            return await self.job_manager.get_job(job.job_id)
