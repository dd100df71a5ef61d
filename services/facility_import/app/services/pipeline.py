"""Import pipeline orchestration: job creation, ingestion, geocoding."""

import asyncio
from typing import Any, Coroutine, Mapping, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.facility_import.app.config import Settings, get_settings
from services.facility_import.app.core.errors import InvalidStateError, NotFoundError
from services.facility_import.app.core.models import ImportStatus
from services.facility_import.app.core.schemas import FacilityRow, ImportedRecord, ImportJob
from services.facility_import.app.geocoding.base import BatchRateLimit, GeocodingClient
from services.facility_import.app.geocoding.google import GoogleGeocodingClient
from services.facility_import.app.services.geocoding_processor import GeocodingProcessor
from services.facility_import.app.services.job_manager import JobManager
from services.facility_import.app.services.record_ingestor import RecordIngestor
from services.facility_import.app.services.review_queue import ReviewQueue
from shared.utils.logging import correlation_scope, get_logger

logger = get_logger(__name__)

Row = FacilityRow | Mapping[str, Any]


class ImportPipeline:
    """Entry point for bulk facility imports.

    Every phase runs in its own session from the factory, so status reads
    and cancellations never share a transaction with a running phase.
    At most one geocoding run per job may be active; callers must not
    start a second one for the same job.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        geocoder: GeocodingClient,
        rate_limit: BatchRateLimit | None = None,
        region: str | None = "us",
        default_owner_id: str = "admin",
        moderation_status: str = "approved",
    ):
        """Initialize import pipeline.

        Args:
            session_factory: Factory for database sessions
            geocoder: Geocoding provider client
            rate_limit: Batch size and inter-batch delay
            region: Region bias passed to the provider
            default_owner_id: Owner for placeholder facilities without a creator
            moderation_status: Initial moderation status for placeholder facilities
        """
        self.session_factory = session_factory
        self.geocoder = geocoder
        self.rate_limit = rate_limit or BatchRateLimit()
        self.region = region
        self.default_owner_id = default_owner_id
        self.moderation_status = moderation_status
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ) -> "ImportPipeline":
        """Build a pipeline wired to the Google geocoder from settings."""
        settings = settings or get_settings()
        geocoder = GoogleGeocodingClient(
            api_key=settings.google_maps_api_key,
            base_url=settings.google_geocoding_url,
            timeout=settings.geocoding_timeout_seconds,
        )
        return cls(
            session_factory=session_factory,
            geocoder=geocoder,
            rate_limit=BatchRateLimit(
                batch_size=settings.geocoding_batch_size,
                delay_seconds=settings.geocoding_batch_delay_seconds,
            ),
            region=settings.geocoding_region or None,
            default_owner_id=settings.default_owner_id,
            moderation_status=settings.default_moderation_status,
        )

    def _processor(self, session: AsyncSession) -> GeocodingProcessor:
        return GeocodingProcessor(
            session,
            self.geocoder,
            rate_limit=self.rate_limit,
            region=self.region,
        )

    # Job controller

    async def create_job(
        self,
        file_name: str,
        creator_id: str,
        total_records: int,
    ) -> ImportJob:
        async with self.session_factory() as session:
            return await JobManager(session).create_job(file_name, creator_id, total_records)

    async def get_job(self, job_id: UUID | str) -> ImportJob:
        async with self.session_factory() as session:
            return await JobManager(session).get_job(job_id)

    async def list_jobs(self, status: ImportStatus | None = None) -> list[ImportJob]:
        async with self.session_factory() as session:
            return await JobManager(session).list_jobs(status=status)

    async def cancel(self, job_id: UUID | str) -> ImportJob:
        """Cancel an importing or geocoding job.

        In-flight geocode calls of the current batch still finish, but
        their results are discarded and no further batch starts.
        """
        async with self.session_factory() as session:
            return await JobManager(session).cancel_job(job_id)

    # Phases

    async def ingest(self, job_id: UUID | str, rows: Sequence[Row]) -> ImportJob:
        """Run the importing phase for a pending job."""
        async with self.session_factory() as session:
            ingestor = RecordIngestor(
                session,
                default_owner_id=self.default_owner_id,
                moderation_status=self.moderation_status,
            )
            return await ingestor.ingest(job_id, rows)

    async def process_addresses(self, job_id: UUID | str) -> ImportJob:
        """Run the geocoding phase for a job in geocoding status."""
        async with self.session_factory() as session:
            return await self._processor(session).process_job(job_id)

    async def run(self, job_id: UUID | str, rows: Sequence[Row]) -> ImportJob:
        """Ingest rows, then geocode them, for a pending job.

        Any error escaping a phase is written onto the job before it
        propagates to the caller. A job in the wrong state for a phase
        is left as it is.
        """
        with correlation_scope(str(job_id), run="import"):
            try:
                job = await self.ingest(job_id, rows)
                if job.status != ImportStatus.GEOCODING:
                    return job
                return await self.process_addresses(job_id)
            except asyncio.CancelledError:
                await self._cancel_quietly(job_id)
                raise
            except InvalidStateError:
                raise
            except Exception as e:
                await self._record_failure(job_id, e)
                raise

    async def _resume_geocoding(self, job_id: UUID | str) -> ImportJob:
        with correlation_scope(str(job_id), run="geocode"):
            try:
                return await self.process_addresses(job_id)
            except asyncio.CancelledError:
                await self._cancel_quietly(job_id)
                raise
            except InvalidStateError:
                raise
            except Exception as e:
                await self._record_failure(job_id, e)
                raise

    # Task handles

    async def submit(
        self,
        file_name: str,
        creator_id: str,
        rows: Sequence[Row],
    ) -> tuple[ImportJob, "asyncio.Task[ImportJob]"]:
        """Create a job and start ingest + geocode in the background.

        Returns:
            The pending job and a task resolving to the final job
        """
        job = await self.create_job(file_name, creator_id, len(rows))
        task = self._spawn(self.run(job.job_id, rows), name=f"import-{job.job_id}")
        return job, task

    def start_geocoding(self, job_id: UUID | str) -> "asyncio.Task[ImportJob]":
        """Start (or resume) the geocoding phase in the background."""
        return self._spawn(self._resume_geocoding(job_id), name=f"geocode-{job_id}")

    def _spawn(self, coro: Coroutine[Any, Any, ImportJob], name: str) -> "asyncio.Task[ImportJob]":
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _record_failure(self, job_id: UUID | str, error: Exception) -> None:
        logger.error("import_run_failed", job_id=str(job_id), error=str(error))
        try:
            async with self.session_factory() as session:
                await JobManager(session).fail_job(job_id, str(error))
        except NotFoundError:
            logger.warning("import_run_failed_unknown_job", job_id=str(job_id))

    async def _cancel_quietly(self, job_id: UUID | str) -> None:
        try:
            await asyncio.shield(self.cancel(job_id))
        except (InvalidStateError, NotFoundError) as e:
            logger.info("import_task_cancelled", job_id=str(job_id), detail=str(e))

    # Review queue

    async def list_needing_review(self, job_id: UUID | str | None = None) -> list[ImportedRecord]:
        async with self.session_factory() as session:
            return await ReviewQueue(session).list_needing_review(job_id)

    async def resolve_record(
        self,
        record_id: UUID | str,
        raw_address: str | None = None,
    ) -> ImportedRecord:
        async with self.session_factory() as session:
            queue = ReviewQueue(session, processor=self._processor(session))
            return await queue.resolve(record_id, raw_address)

    async def close(self) -> None:
        """Wait for background runs, then release the geocoder."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.geocoder.close()
