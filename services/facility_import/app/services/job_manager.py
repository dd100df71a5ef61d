"""Import job management."""

from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from services.facility_import.app.core.errors import InvalidStateError, NotFoundError
from services.facility_import.app.core.models import (
    AddressMatchQuality,
    ImportedRecordModel,
    ImportJobModel,
    ImportStatus,
    utc_now,
)
from services.facility_import.app.core.schemas import ImportJob, ImportStats
from services.facility_import.app.core.state_machine import JobStateMachine
from shared.utils.logging import get_logger

logger = get_logger(__name__)

CANCELLED_MESSAGE = "Import cancelled by user"

STAT_FIELDS = frozenset({
    "processed_records",
    "failed_records",
    "geocoded_addresses",
    "partial_matches",
    "failed_geocoding",
})


def as_uuid(value: UUID | str, entity: str) -> UUID:
    """Coerce an ID argument, treating malformed IDs as unknown."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise NotFoundError(entity, value) from None


class JobManager:
    """Manage import jobs and their lifecycle."""

    def __init__(self, db: AsyncSession):
        """Initialize job manager.

        Args:
            db: Database session
        """
        self.db = db

    async def create_job(
        self,
        file_name: str,
        creator_id: str,
        total_records: int,
    ) -> ImportJob:
        """Create a new import job in pending status with zeroed stats.

        Args:
            file_name: Name of the uploaded source file
            creator_id: ID of the submitting user
            total_records: Number of rows in the upload

        Returns:
            Created job
        """
        now = utc_now()
        job_model = ImportJobModel(
            file_name=file_name,
            created_by=creator_id,
            status=ImportStatus.PENDING.value,
            total_records=total_records,
            started_at=now,
            created_at=now,
            updated_at=now,
        )

        self.db.add(job_model)
        await self.db.commit()
        await self.db.refresh(job_model)

        logger.info(
            "job_created",
            job_id=str(job_model.job_id),
            file_name=file_name,
            total_records=total_records,
        )

        return self._to_schema(job_model)

    async def _load(self, job_id: UUID | str) -> ImportJobModel:
        job_uuid = as_uuid(job_id, "ImportJob")
        result = await self.db.execute(
            select(ImportJobModel)
            .where(ImportJobModel.job_id == job_uuid)
            .execution_options(populate_existing=True)
        )
        job_model = result.scalar_one_or_none()

        if not job_model:
            raise NotFoundError("ImportJob", job_id)

        return job_model

    async def get_job(self, job_id: UUID | str) -> ImportJob:
        """Get job by ID.

        Raises:
            NotFoundError: If the job does not exist
        """
        return self._to_schema(await self._load(job_id))

    async def get_status(self, job_id: UUID | str) -> ImportStatus:
        """Read the job's current status straight from the store."""
        job_uuid = as_uuid(job_id, "ImportJob")
        result = await self.db.execute(
            select(ImportJobModel.status).where(ImportJobModel.job_id == job_uuid)
        )
        status = result.scalar_one_or_none()

        if status is None:
            raise NotFoundError("ImportJob", job_id)

        return ImportStatus(status)

    async def list_jobs(
        self,
        status: ImportStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ImportJob]:
        """List jobs, newest first.

        Args:
            status: Filter by status
            limit: Maximum results (None for all)
            offset: Pagination offset

        Returns:
            List of jobs
        """
        query = select(ImportJobModel).execution_options(populate_existing=True)

        if status:
            query = query.where(ImportJobModel.status == status.value)

        query = query.order_by(ImportJobModel.created_at.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return [self._to_schema(m) for m in result.scalars().all()]

    async def update_status(
        self,
        job_id: UUID | str,
        status: ImportStatus,
        error: str | None = None,
    ) -> ImportJob:
        """Move a job to a new status.

        The write is conditional on the status read beforehand, so a
        concurrent cancellation cannot be overwritten.

        Args:
            job_id: Job identifier
            status: New status
            error: Error message (for failed jobs)

        Returns:
            Updated job

        Raises:
            NotFoundError: If the job does not exist
            InvalidStateError: If the transition is not allowed
        """
        job_model = await self._load(job_id)
        current = ImportStatus(job_model.status)
        JobStateMachine.validate_transition(current, status)

        now = utc_now()
        values: dict[str, Any] = {"status": status.value, "updated_at": now}
        if error:
            values["error_message"] = error
        if status == ImportStatus.COMPLETED:
            values["completed_at"] = now

        result = await self.db.execute(
            update(ImportJobModel)
            .where(
                ImportJobModel.job_id == job_model.job_id,
                ImportJobModel.status == current.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        if result.rowcount == 0:
            latest = await self.get_status(job_id)
            raise InvalidStateError(latest.value, status.value)

        logger.info(
            "job_status_updated",
            job_id=str(job_model.job_id),
            from_status=current.value,
            status=status.value,
            error=error,
        )

        return await self.get_job(job_id)

    async def fail_job(self, job_id: UUID | str, error: str) -> ImportJob | None:
        """Record a phase failure on the job if it is still active.

        Returns:
            Updated job, or None when the job had already reached a
            terminal state (for example after a cancellation)
        """
        try:
            return await self.update_status(job_id, ImportStatus.FAILED, error=error)
        except InvalidStateError as e:
            logger.warning(
                "job_fail_skipped",
                job_id=str(job_id),
                status=e.current_state,
                error=error,
            )
            return None

    async def increment_stats(
        self,
        job_id: UUID | str,
        commit: bool = True,
        **deltas: int,
    ) -> None:
        """Atomically add to job stat counters.

        Args:
            job_id: Job identifier
            commit: Commit immediately; pass False to join the caller's transaction
            **deltas: Counter name to increment amount
        """
        unknown = set(deltas) - STAT_FIELDS
        if unknown:
            raise ValueError(f"Unknown stat fields: {sorted(unknown)}")

        values: dict[str, Any] = {
            name: getattr(ImportJobModel, name) + amount
            for name, amount in deltas.items()
            if amount
        }
        if not values:
            return
        values["updated_at"] = utc_now()

        await self.db.execute(
            update(ImportJobModel)
            .where(ImportJobModel.job_id == as_uuid(job_id, "ImportJob"))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if commit:
            await self.db.commit()

    async def cancel_job(self, job_id: UUID | str) -> ImportJob:
        """Cancel an importing or geocoding job.

        Sets the job to failed and sweeps every record still pending to
        `none` with the review flag set. Records already past pending are
        left untouched. Nothing is written when the job cannot be cancelled.

        Raises:
            NotFoundError: If the job does not exist
            InvalidStateError: If the job is not importing or geocoding
        """
        job_model = await self._load(job_id)
        if not JobStateMachine.can_cancel(ImportStatus(job_model.status)):
            raise self._not_cancellable(job_model.status)

        now = utc_now()
        result = await self.db.execute(
            update(ImportJobModel)
            .where(
                ImportJobModel.job_id == job_model.job_id,
                ImportJobModel.status.in_([s.value for s in JobStateMachine.CANCELLABLE]),
            )
            .values(
                status=ImportStatus.FAILED.value,
                error_message=CANCELLED_MESSAGE,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            await self.db.rollback()
            current = await self.get_status(job_id)
            raise self._not_cancellable(current.value)

        swept = await self._sweep_pending(job_model.job_id, CANCELLED_MESSAGE)
        await self.db.commit()

        logger.info(
            "job_cancelled",
            job_id=str(job_model.job_id),
            swept_records=swept,
        )

        return await self.get_job(job_id)

    @staticmethod
    def _not_cancellable(status: str) -> InvalidStateError:
        return InvalidStateError(
            status,
            ImportStatus.FAILED.value,
            message=f"Can only cancel jobs that are in progress (status: {status})",
        )

    async def sweep_pending_records(self, job_id: UUID | str, reason: str) -> int:
        """Resolve every still-pending record of a job to `none`.

        Used when rows land after the job was cancelled mid-ingestion.

        Returns:
            Number of records swept
        """
        swept = await self._sweep_pending(as_uuid(job_id, "ImportJob"), reason)
        await self.db.commit()
        return swept

    async def _sweep_pending(self, job_uuid: UUID, reason: str) -> int:
        result = await self.db.execute(
            update(ImportedRecordModel)
            .where(
                ImportedRecordModel.job_id == job_uuid,
                ImportedRecordModel.address_match_quality == AddressMatchQuality.PENDING.value,
            )
            .values(
                address_match_quality=AddressMatchQuality.NONE.value,
                needs_review=True,
                geocoding_error=reason,
                processed_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _to_schema(self, model: ImportJobModel) -> ImportJob:
        """Convert model to schema."""
        return ImportJob(
            job_id=model.job_id,
            file_name=model.file_name,
            status=ImportStatus(model.status),
            stats=ImportStats(
                total_records=model.total_records,
                processed_records=model.processed_records,
                failed_records=model.failed_records,
                geocoded_addresses=model.geocoded_addresses,
                partial_matches=model.partial_matches,
                failed_geocoding=model.failed_geocoding,
                started_at=model.started_at,
                completed_at=model.completed_at,
            ),
            created_by=model.created_by,
            error_message=model.error_message,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )
