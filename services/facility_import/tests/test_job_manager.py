"""Tests for import job management."""

import asyncio
from uuid import uuid4

import pytest
from sqlalchemy import select

from services.facility_import.app.core.errors import InvalidStateError, NotFoundError
from services.facility_import.app.core.models import (
    AddressMatchQuality,
    ImportedRecordModel,
    ImportStatus,
)
from services.facility_import.app.services.job_manager import CANCELLED_MESSAGE, JobManager
from services.facility_import.app.services.record_ingestor import RecordIngestor


async def _record_snapshot(session, job_id) -> list[tuple]:
    result = await session.execute(
        select(
            ImportedRecordModel.record_id,
            ImportedRecordModel.address_match_quality,
            ImportedRecordModel.needs_review,
            ImportedRecordModel.geocoding_error,
            ImportedRecordModel.processed_at,
        )
        .where(ImportedRecordModel.job_id == job_id)
        .order_by(ImportedRecordModel.record_id)
    )
    return [tuple(row) for row in result.all()]


class TestJobManager:
    """Tests for job manager."""

    @pytest.mark.asyncio
    async def test_create_job(self, test_session):
        """A new job starts pending with zeroed stats."""
        manager = JobManager(test_session)

        job = await manager.create_job("gyms.xlsx", "user-1", total_records=3)

        assert job.job_id is not None
        assert job.status == ImportStatus.PENDING
        assert job.file_name == "gyms.xlsx"
        assert job.created_by == "user-1"
        assert job.stats.total_records == 3
        assert job.stats.processed_records == 0
        assert job.stats.geocoded_addresses == 0
        assert job.stats.started_at is not None
        assert job.stats.completed_at is None
        assert job.progress == 0.0

    @pytest.mark.asyncio
    async def test_get_job(self, test_session):
        manager = JobManager(test_session)
        created = await manager.create_job("gyms.csv", "user-1", total_records=1)

        retrieved = await manager.get_job(str(created.job_id))

        assert retrieved.job_id == created.job_id
        assert retrieved.file_name == "gyms.csv"

    @pytest.mark.asyncio
    async def test_get_job_not_found(self, test_session):
        manager = JobManager(test_session)

        with pytest.raises(NotFoundError):
            await manager.get_job(uuid4())

    @pytest.mark.asyncio
    async def test_malformed_id_is_not_found(self, test_session):
        manager = JobManager(test_session)

        with pytest.raises(NotFoundError) as exc_info:
            await manager.get_job("nonexistent-id")

        assert exc_info.value.entity == "ImportJob"

    @pytest.mark.asyncio
    async def test_update_status_forward(self, test_session):
        manager = JobManager(test_session)
        job = await manager.create_job("gyms.csv", "user-1", total_records=0)

        await manager.update_status(job.job_id, ImportStatus.IMPORTING)
        await manager.update_status(job.job_id, ImportStatus.GEOCODING)
        updated = await manager.update_status(job.job_id, ImportStatus.COMPLETED)

        assert updated.status == ImportStatus.COMPLETED
        assert updated.stats.completed_at is not None
        assert updated.progress == 100.0

    @pytest.mark.asyncio
    async def test_update_status_rejects_skipping(self, test_session):
        manager = JobManager(test_session)
        job = await manager.create_job("gyms.csv", "user-1", total_records=0)

        with pytest.raises(InvalidStateError):
            await manager.update_status(job.job_id, ImportStatus.COMPLETED)

        assert (await manager.get_status(job.job_id)) == ImportStatus.PENDING

    @pytest.mark.asyncio
    async def test_update_status_after_concurrent_failure(self, session_factory):
        """A job failed from another session cannot be moved forward."""
        async with session_factory() as setup:
            job = await JobManager(setup).create_job("gyms.csv", "user-1", total_records=0)
            await JobManager(setup).update_status(job.job_id, ImportStatus.IMPORTING)

        async with session_factory() as first, session_factory() as second:
            slow = JobManager(first)
            assert (await slow.get_status(job.job_id)) == ImportStatus.IMPORTING
            await JobManager(second).update_status(job.job_id, ImportStatus.FAILED, error="boom")

            with pytest.raises(InvalidStateError):
                await slow.update_status(job.job_id, ImportStatus.GEOCODING)

            assert (await slow.get_status(job.job_id)) == ImportStatus.FAILED

    @pytest.mark.asyncio
    async def test_fail_job_records_error(self, test_session):
        manager = JobManager(test_session)
        job = await manager.create_job("gyms.csv", "user-1", total_records=0)
        await manager.update_status(job.job_id, ImportStatus.IMPORTING)

        failed = await manager.fail_job(job.job_id, "Connection lost")

        assert failed.status == ImportStatus.FAILED
        assert failed.error_message == "Connection lost"

    @pytest.mark.asyncio
    async def test_fail_job_keeps_terminal_state(self, test_session):
        manager = JobManager(test_session)
        job = await manager.create_job("gyms.csv", "user-1", total_records=0)
        await manager.update_status(job.job_id, ImportStatus.IMPORTING)
        await manager.cancel_job(job.job_id)

        assert await manager.fail_job(job.job_id, "late error") is None

        current = await manager.get_job(job.job_id)
        assert current.error_message == CANCELLED_MESSAGE

    @pytest.mark.asyncio
    async def test_increment_stats_is_additive(self, session_factory):
        """Increments from separate sessions never overwrite each other."""
        async with session_factory() as setup:
            job = await JobManager(setup).create_job("gyms.csv", "user-1", total_records=10)

        async def bump():
            async with session_factory() as session:
                await JobManager(session).increment_stats(
                    job.job_id,
                    geocoded_addresses=1,
                    partial_matches=1,
                )

        for _ in range(3):
            await bump()

        async with session_factory() as session:
            stats = (await JobManager(session).get_job(job.job_id)).stats
        assert stats.geocoded_addresses == 3
        assert stats.partial_matches == 3
        assert stats.failed_geocoding == 0

    @pytest.mark.asyncio
    async def test_increment_stats_rejects_unknown_field(self, test_session):
        manager = JobManager(test_session)
        job = await manager.create_job("gyms.csv", "user-1", total_records=1)

        with pytest.raises(ValueError):
            await manager.increment_stats(job.job_id, total_records=5)

    @pytest.mark.asyncio
    async def test_list_jobs_newest_first(self, test_session):
        manager = JobManager(test_session)
        first = await manager.create_job("a.csv", "user-1", total_records=0)
        await asyncio.sleep(0.01)
        second = await manager.create_job("b.csv", "user-1", total_records=0)

        jobs = await manager.list_jobs()

        assert [j.job_id for j in jobs] == [second.job_id, first.job_id]

    @pytest.mark.asyncio
    async def test_list_jobs_by_status(self, test_session):
        manager = JobManager(test_session)
        job1 = await manager.create_job("a.csv", "user-1", total_records=0)
        await manager.create_job("b.csv", "user-1", total_records=0)
        await manager.update_status(job1.job_id, ImportStatus.IMPORTING)

        pending = await manager.list_jobs(status=ImportStatus.PENDING)
        importing = await manager.list_jobs(status=ImportStatus.IMPORTING, limit=1)

        assert len(pending) == 1
        assert [j.job_id for j in importing] == [job1.job_id]


class TestCancelJob:
    """Tests for cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_geocoding_job_sweeps_pending_records(self, test_session, sample_rows):
        manager = JobManager(test_session)
        job = await manager.create_job("gyms.csv", "user-1", total_records=len(sample_rows))
        await RecordIngestor(test_session).ingest(job.job_id, sample_rows)

        cancelled = await manager.cancel_job(job.job_id)

        assert cancelled.status == ImportStatus.FAILED
        assert cancelled.error_message == CANCELLED_MESSAGE

        result = await test_session.execute(
            select(ImportedRecordModel)
            .where(ImportedRecordModel.job_id == job.job_id)
            .execution_options(populate_existing=True)
        )
        records = result.scalars().all()
        assert len(records) == 2
        for record in records:
            assert record.address_match_quality == AddressMatchQuality.NONE.value
            assert record.needs_review is True
            assert record.geocoding_error == CANCELLED_MESSAGE
            assert record.processed_at is not None

    @pytest.mark.asyncio
    async def test_cancel_leaves_resolved_records_alone(self, test_session, sample_rows):
        manager = JobManager(test_session)
        job = await manager.create_job("gyms.csv", "user-1", total_records=len(sample_rows))
        await RecordIngestor(test_session).ingest(job.job_id, sample_rows)

        result = await test_session.execute(
            select(ImportedRecordModel).where(ImportedRecordModel.job_id == job.job_id)
        )
        done = result.scalars().first()
        done.address_match_quality = AddressMatchQuality.EXACT.value
        await test_session.commit()

        await manager.cancel_job(job.job_id)

        await test_session.refresh(done)
        assert done.address_match_quality == AddressMatchQuality.EXACT.value
        assert done.needs_review is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [ImportStatus.PENDING, ImportStatus.COMPLETED, ImportStatus.FAILED],
    )
    async def test_cancel_rejected_outside_running_states_writes_nothing(
        self, test_session, sample_rows, status
    ):
        manager = JobManager(test_session)
        job = await manager.create_job("gyms.csv", "user-1", total_records=len(sample_rows))
        if status != ImportStatus.PENDING:
            await RecordIngestor(test_session).ingest(job.job_id, sample_rows)
        if status == ImportStatus.COMPLETED:
            await manager.update_status(job.job_id, ImportStatus.COMPLETED)
        if status == ImportStatus.FAILED:
            await manager.fail_job(job.job_id, "Batch commit failed")

        before = await manager.get_job(job.job_id)
        records_before = await _record_snapshot(test_session, job.job_id)

        with pytest.raises(InvalidStateError) as exc_info:
            await manager.cancel_job(job.job_id)

        assert f"status: {status.value}" in str(exc_info.value)
        after = await manager.get_job(job.job_id)
        assert after.status == status
        assert after.updated_at == before.updated_at
        assert after.error_message == before.error_message
        assert after.stats == before.stats
        assert await _record_snapshot(test_session, job.job_id) == records_before

    @pytest.mark.asyncio
    async def test_cancel_twice_rejected(self, test_session):
        manager = JobManager(test_session)
        job = await manager.create_job("gyms.csv", "user-1", total_records=0)
        await manager.update_status(job.job_id, ImportStatus.IMPORTING)
        await manager.cancel_job(job.job_id)

        with pytest.raises(InvalidStateError):
            await manager.cancel_job(job.job_id)

    @pytest.mark.asyncio
    async def test_cancel_unknown_job(self, test_session):
        with pytest.raises(NotFoundError):
            await JobManager(test_session).cancel_job(uuid4())
