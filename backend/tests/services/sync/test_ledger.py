"""
Tests for the sync job ledger.
"""

from datetime import timedelta

import pytest

from sis_sync.core.sis_config import SyncEntityType
from sis_sync.models.sync_log import SyncJob, SyncJobStatus
from sis_sync.services.sync.ledger import SyncLedger, LedgerStateError
from sis_sync.utils import utcnow


@pytest.fixture
def ledger(db_session):
    return SyncLedger(db_session)


class TestLedgerTransitions:

    @pytest.mark.asyncio
    async def test_happy_path(self, ledger):
        job = await ledger.create(SyncEntityType.SCHOOLS)
        assert job.status == SyncJobStatus.PENDING

        await ledger.start(job.id)
        job = await ledger.complete(job.id, 12, {'preview': []})

        assert job.status == SyncJobStatus.COMPLETED
        assert job.record_count == 12
        assert job.result_summary == {'preview': []}
        assert job.started_at is not None
        assert job.completed_at >= job.started_at
        assert job.is_terminal
        assert job.duration_seconds >= 0

    @pytest.mark.asyncio
    async def test_fail_from_running(self, ledger):
        job = await ledger.create(SyncEntityType.TERMS)
        await ledger.start(job.id)

        job = await ledger.fail(job.id, "PowerSchool API error: 500")

        assert job.status == SyncJobStatus.FAILED
        assert job.error_message == "PowerSchool API error: 500"

    @pytest.mark.asyncio
    async def test_fail_from_pending(self, ledger):
        job = await ledger.create(SyncEntityType.TERMS)
        job = await ledger.fail(job.id, "")
        assert job.status == SyncJobStatus.FAILED
        assert job.error_message

    @pytest.mark.asyncio
    async def test_complete_requires_running(self, ledger):
        job = await ledger.create(SyncEntityType.COURSES)
        with pytest.raises(LedgerStateError):
            await ledger.complete(job.id, 0)

    @pytest.mark.asyncio
    async def test_start_only_once(self, ledger):
        job = await ledger.create(SyncEntityType.COURSES)
        await ledger.start(job.id)
        with pytest.raises(LedgerStateError):
            await ledger.start(job.id)

    @pytest.mark.asyncio
    async def test_terminal_jobs_are_immutable(self, ledger):
        job = await ledger.create(SyncEntityType.COURSES)
        await ledger.start(job.id)
        await ledger.complete(job.id, 1)

        with pytest.raises(LedgerStateError):
            await ledger.fail(job.id, "late failure")
        with pytest.raises(LedgerStateError):
            await ledger.complete(job.id, 2)

    @pytest.mark.asyncio
    async def test_unknown_job(self, ledger):
        with pytest.raises(LedgerStateError):
            await ledger.start(999)


class TestLedgerQueries:

    @pytest.mark.asyncio
    async def test_latest_and_listing(self, ledger):
        first = await ledger.create(SyncEntityType.SCHOOLS)
        second = await ledger.create(SyncEntityType.TERMS)
        third = await ledger.create(SyncEntityType.SCHOOLS)
        await ledger.start(third.id)

        assert (await ledger.get_latest()).id == third.id
        assert (await ledger.get_latest(SyncEntityType.TERMS)).id == second.id

        jobs = await ledger.list_jobs(entity_type=SyncEntityType.SCHOOLS)
        assert [j.id for j in jobs] == [third.id, first.id]

        running = await ledger.list_jobs(status=SyncJobStatus.RUNNING)
        assert [j.id for j in running] == [third.id]

    @pytest.mark.asyncio
    async def test_is_running_and_stats(self, ledger):
        a = await ledger.create(SyncEntityType.SCHOOLS)
        b = await ledger.create(SyncEntityType.TEACHERS)
        await ledger.start(a.id)
        await ledger.complete(a.id, 3)
        await ledger.start(b.id)

        assert await ledger.is_running() is True
        assert await ledger.is_running(SyncEntityType.TEACHERS) is True
        assert await ledger.is_running(SyncEntityType.SCHOOLS) is False

        await ledger.fail(b.id, "boom")
        assert await ledger.is_running() is False
        assert await ledger.get_stats() == {'total': 2, 'completed': 1, 'failed': 1, 'running': 0}

    @pytest.mark.asyncio
    async def test_cleanup_removes_old_terminal_jobs(self, ledger, db_session):
        old = await ledger.create(SyncEntityType.SCHOOLS)
        await ledger.fail(old.id, "old failure")
        stale_running = await ledger.create(SyncEntityType.TERMS)
        await ledger.start(stale_running.id)
        recent = await ledger.create(SyncEntityType.COURSES)
        await ledger.fail(recent.id, "recent failure")

        for job in (old, stale_running):
            job.created_at = utcnow() - timedelta(days=45)
        await db_session.commit()

        removed = await ledger.cleanup(30)

        assert removed == 1
        assert await db_session.get(SyncJob, recent.id) is not None
        assert await db_session.get(SyncJob, stale_running.id) is not None
