"""Tests for the review queue."""

from uuid import uuid4

import pytest

from services.facility_import.app.core.errors import InvalidStateError, NotFoundError
from services.facility_import.app.core.models import AddressMatchQuality
from services.facility_import.app.geocoding.base import BatchRateLimit
from services.facility_import.app.services.geocoding_processor import GeocodingProcessor
from services.facility_import.app.services.job_manager import JobManager
from services.facility_import.app.services.record_ingestor import RecordIngestor
from services.facility_import.app.services.review_queue import ReviewQueue

from geocoding_fakes import CUPERTINO_ADDRESS, FakeGeocoder, make_candidate

NO_DELAY = BatchRateLimit(batch_size=50, delay_seconds=0)


@pytest.fixture
def geocoder():
    return FakeGeocoder({
        CUPERTINO_ADDRESS: [make_candidate(partial_match=True)],
        "asdkfj not a real place": [],
    })


async def geocoded_job(session, rows, geocoder):
    job = await JobManager(session).create_job("gyms.csv", "user-1", total_records=len(rows))
    await RecordIngestor(session).ingest(job.job_id, rows)
    return await GeocodingProcessor(session, geocoder, NO_DELAY).process_job(job.job_id)


class TestReviewQueue:
    """Tests for listing and resolving flagged records."""

    @pytest.mark.asyncio
    async def test_list_needing_review(self, test_session, sample_rows, geocoder):
        job = await geocoded_job(test_session, sample_rows, geocoder)
        queue = ReviewQueue(test_session)

        flagged = await queue.list_needing_review(job.job_id)

        assert {r.raw_address for r in flagged} == {CUPERTINO_ADDRESS, "asdkfj not a real place"}
        assert await queue.count_needing_review(job.job_id) == 2
        assert await queue.count_needing_review() == 2

    @pytest.mark.asyncio
    async def test_list_is_scoped_to_job(self, test_session, sample_rows, geocoder):
        await geocoded_job(test_session, sample_rows, geocoder)
        other = await geocoded_job(test_session, sample_rows[:1], FakeGeocoder())
        queue = ReviewQueue(test_session)

        assert await queue.list_needing_review(other.job_id) == []
        assert await queue.count_needing_review() == 2
        assert len(await queue.list_records(other.job_id)) == 1

    @pytest.mark.asyncio
    async def test_get_record_not_found(self, test_session):
        with pytest.raises(NotFoundError):
            await ReviewQueue(test_session).get_record(uuid4())

    @pytest.mark.asyncio
    async def test_resolve_with_corrected_address(self, test_session, sample_rows, geocoder):
        job = await geocoded_job(test_session, sample_rows, geocoder)
        processor = GeocodingProcessor(test_session, geocoder, NO_DELAY)
        queue = ReviewQueue(test_session, processor=processor)
        missing = next(
            r for r in await queue.list_needing_review(job.job_id)
            if r.address_match_quality == AddressMatchQuality.NONE
        )
        geocoder.responses["1 Infinite Loop Cupertino"] = [make_candidate()]

        resolved = await queue.resolve(missing.record_id, raw_address=" 1 Infinite Loop Cupertino ")

        assert resolved.raw_address == "1 Infinite Loop Cupertino"
        assert resolved.address_match_quality == AddressMatchQuality.EXACT
        assert resolved.needs_review is False
        assert resolved.geocoding_error is None
        assert await queue.count_needing_review(job.job_id) == 1

        stats = (await JobManager(test_session).get_job(job.job_id)).stats
        assert stats.geocoded_addresses == 1
        assert stats.failed_geocoding == 1

    @pytest.mark.asyncio
    async def test_resolve_still_partial_keeps_flag(self, test_session, sample_rows, geocoder):
        job = await geocoded_job(test_session, sample_rows, geocoder)
        queue = ReviewQueue(test_session, processor=GeocodingProcessor(test_session, geocoder))
        partial = next(
            r for r in await queue.list_needing_review(job.job_id)
            if r.address_match_quality == AddressMatchQuality.PARTIAL
        )

        resolved = await queue.resolve(partial.record_id)

        assert resolved.address_match_quality == AddressMatchQuality.PARTIAL
        assert resolved.needs_review is True

    @pytest.mark.asyncio
    async def test_resolve_pending_record_rejected(self, test_session, sample_rows, geocoder):
        job = await JobManager(test_session).create_job("gyms.csv", "user-1", total_records=2)
        await RecordIngestor(test_session).ingest(job.job_id, sample_rows)
        queue = ReviewQueue(test_session, processor=GeocodingProcessor(test_session, geocoder))
        record = (await queue.list_records(job.job_id))[0]

        with pytest.raises(InvalidStateError):
            await queue.resolve(record.record_id)

        assert geocoder.calls == []

    @pytest.mark.asyncio
    async def test_resolve_without_processor(self, test_session):
        with pytest.raises(RuntimeError):
            await ReviewQueue(test_session).resolve(uuid4())
