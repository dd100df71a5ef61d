"""Review queue for imported records flagged for manual attention."""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from services.facility_import.app.core.errors import InvalidStateError, NotFoundError
from services.facility_import.app.core.models import (
    AddressMatchQuality,
    ImportedRecordModel,
    utc_now,
)
from services.facility_import.app.core.schemas import ImportedRecord
from services.facility_import.app.services.geocoding_processor import (
    GeocodingProcessor,
    apply_location,
)
from services.facility_import.app.services.job_manager import as_uuid
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class ReviewQueue:
    """Read view over records needing review, plus the correction path."""

    def __init__(
        self,
        db: AsyncSession,
        processor: GeocodingProcessor | None = None,
    ):
        """Initialize review queue.

        Args:
            db: Database session
            processor: Geocoding processor used to re-resolve corrected
                addresses; only required by `resolve`
        """
        self.db = db
        self.processor = processor

    async def list_needing_review(
        self,
        job_id: UUID | str | None = None,
    ) -> list[ImportedRecord]:
        """List records with the review flag set, optionally for one job."""
        query = select(ImportedRecordModel).where(ImportedRecordModel.needs_review.is_(True))

        if job_id is not None:
            query = query.where(ImportedRecordModel.job_id == as_uuid(job_id, "ImportJob"))

        query = query.order_by(ImportedRecordModel.created_at, ImportedRecordModel.record_id)
        result = await self.db.execute(query.execution_options(populate_existing=True))
        return [self._to_schema(r) for r in result.scalars().all()]

    async def count_needing_review(self, job_id: UUID | str | None = None) -> int:
        """Count records with the review flag set, optionally for one job."""
        query = select(func.count()).select_from(ImportedRecordModel).where(
            ImportedRecordModel.needs_review.is_(True)
        )

        if job_id is not None:
            query = query.where(ImportedRecordModel.job_id == as_uuid(job_id, "ImportJob"))

        result = await self.db.execute(query)
        return result.scalar_one()

    async def list_records(self, job_id: UUID | str) -> list[ImportedRecord]:
        """List every imported record of a job."""
        result = await self.db.execute(
            select(ImportedRecordModel)
            .where(ImportedRecordModel.job_id == as_uuid(job_id, "ImportJob"))
            .order_by(ImportedRecordModel.created_at, ImportedRecordModel.record_id)
            .execution_options(populate_existing=True)
        )
        return [self._to_schema(r) for r in result.scalars().all()]

    async def _load(self, record_id: UUID | str) -> ImportedRecordModel:
        result = await self.db.execute(
            select(ImportedRecordModel)
            .where(ImportedRecordModel.record_id == as_uuid(record_id, "ImportedRecord"))
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()

        if not record:
            raise NotFoundError("ImportedRecord", record_id)

        return record

    async def get_record(self, record_id: UUID | str) -> ImportedRecord:
        """Get one imported record.

        Raises:
            NotFoundError: If the record does not exist
        """
        return self._to_schema(await self._load(record_id))

    async def resolve(
        self,
        record_id: UUID | str,
        raw_address: str | None = None,
    ) -> ImportedRecord:
        """Re-geocode a reviewed record, optionally with a corrected address.

        Uses the same per-address classification as the batch processor.
        An exact match clears the review flag; partial or failed results
        keep it. Job stats are not changed.

        Args:
            record_id: Record identifier
            raw_address: Corrected free-text address

        Returns:
            Updated record

        Raises:
            NotFoundError: If the record does not exist
            InvalidStateError: If the record is still awaiting its first geocode
        """
        if self.processor is None:
            raise RuntimeError("ReviewQueue.resolve requires a geocoding processor")

        record = await self._load(record_id)
        if record.address_match_quality == AddressMatchQuality.PENDING.value:
            raise InvalidStateError(
                AddressMatchQuality.PENDING.value,
                "resolve",
                message="Record is still awaiting geocoding",
            )

        if raw_address is not None:
            record.raw_address = raw_address.strip()

        outcome = await self.processor.geocode_address(record.raw_address)

        record.address_match_quality = outcome.quality.value
        record.needs_review = outcome.needs_review
        record.geocoding_error = outcome.error
        record.processed_at = utc_now()

        if outcome.resolved:
            await apply_location(self.db, record.facility_id, record.name, outcome)

        await self.db.commit()

        logger.info(
            "review_resolved",
            record_id=str(record.record_id),
            quality=outcome.quality.value,
            needs_review=outcome.needs_review,
        )

        return self._to_schema(record)

    def _to_schema(self, model: ImportedRecordModel) -> ImportedRecord:
        """Convert model to schema."""
        return ImportedRecord(
            record_id=model.record_id,
            job_id=model.job_id,
            facility_id=model.facility_id,
            name=model.name,
            website=model.website,
            raw_address=model.raw_address,
            address_match_quality=AddressMatchQuality(model.address_match_quality),
            needs_review=model.needs_review,
            geocoding_error=model.geocoding_error,
            processed_at=model.processed_at,
        )
