"""
Tests for the sync orchestrators, driven against mocked PowerSchool endpoints.
"""

import asyncio
from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from aioresponses import aioresponses
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from sis_sync.core.database import Base
from sis_sync.core.sis_config import SyncEntityType
from sis_sync.integrations.sis.collector import PaginatedCollector
from sis_sync.integrations.sis.error_handler import (
    ConfigIncompleteError, AuthAcquisitionError, UpstreamApiError, MalformedRecordError
)
from sis_sync.models.reference import School, Term, Teacher, EmailAddress
from sis_sync.models.sync_log import SyncJob, SyncJobStatus
from sis_sync.repositories.reference import TeacherRepository
from sis_sync.repositories.settings import CredentialStore
from sis_sync.services.sync.orchestrator import (
    SchoolSyncOrchestrator, TermSyncOrchestrator, TeacherSyncOrchestrator,
    ContactSyncOrchestrator, get_orchestrator, sync_all
)
from sis_sync.utils import utcnow


BASE = "https://ps.example.edu"
TOKEN_URL = f"{BASE}/oauth/access_token"
TOKEN_PAYLOAD = {"access_token": "tok", "token_type": "Bearer", "expires_in": 3600}


def query_url(name):
    return f"{BASE}/ws/schema/query/org.infocare.sync.{name}"


async def count(db, model):
    return (await db.execute(select(func.count(model.id)))).scalar_one()


async def jobs(db):
    return list((await db.execute(select(SyncJob).order_by(SyncJob.id))).scalars().all())


@pytest.fixture
def schools_payload(make_record):
    return {"name": "schools", "record": [
        make_record('schools', id=100, dcid=1000, name="Central High", abbreviation="CHS", school_number=100),
        make_record('schools', id=200, dcid=2000, name="East Middle", abbreviation="EMS", school_number=200),
    ]}


@pytest.fixture
def terms_payload(make_record):
    return {"name": "terms", "record": [
        make_record('terms', id=3501, dcid=11, name="Semester 1", firstday="2025-08-25",
                    lastday="2025-10-31", yearid=35, schoolid=100, isyearrec=0),
        make_record('terms', id=3500, dcid=10, name="2025-2026", firstday="2025-08-25",
                    lastday="2026-06-15", yearid=35, schoolid=100, isyearrec=1),
    ]}


class TestSchoolSync:

    @pytest.mark.asyncio
    async def test_sync_creates_records_and_completes_job(self, db_session, configured_store, schools_payload):
        with aioresponses() as m:
            m.post(TOKEN_URL, payload=TOKEN_PAYLOAD)
            m.post(query_url('schools'), payload=schools_payload)

            result = await SchoolSyncOrchestrator(db_session).run()

        assert result.count == 2
        assert result.stats == {'created': 2, 'updated': 0, 'unchanged': 0}
        assert [p['name'] for p in result.preview] == ["Central High", "East Middle"]
        assert result.message == "Synced 2 schools"
        assert await count(db_session, School) == 2

        job = await db_session.get(SyncJob, result.job_id)
        assert job.status == SyncJobStatus.COMPLETED
        assert job.record_count == 2
        assert job.result_summary['stats']['created'] == 2

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, db_session, configured_store, schools_payload):
        with aioresponses() as m:
            m.post(TOKEN_URL, payload=TOKEN_PAYLOAD)
            m.post(query_url('schools'), payload=schools_payload, repeat=True)

            await SchoolSyncOrchestrator(db_session).run()
            result = await SchoolSyncOrchestrator(db_session).run()

        assert result.stats == {'created': 0, 'updated': 0, 'unchanged': 2}
        assert await count(db_session, School) == 2
        assert [j.status for j in await jobs(db_session)] == [SyncJobStatus.COMPLETED] * 2

    @pytest.mark.asyncio
    async def test_summary_is_bounded(self, db_session, configured_store, make_record):
        payload = {"record": [
            make_record('schools', id=i, dcid=i, name=f"School {i}") for i in range(1, 31)
        ]}
        with aioresponses() as m:
            m.post(TOKEN_URL, payload=TOKEN_PAYLOAD)
            m.post(query_url('schools'), payload=payload)

            result = await SchoolSyncOrchestrator(db_session, summary_limit=20).run()

        assert result.count == 30
        assert len(result.preview) == 20

    @pytest.mark.asyncio
    async def test_expired_token_during_query_is_refreshed(self, db_session, configured_store, schools_payload):
        with aioresponses() as m:
            m.post(TOKEN_URL, payload=TOKEN_PAYLOAD)
            m.post(query_url('schools'), status=401, body="expired")
            m.post(TOKEN_URL, payload={"access_token": "tok-2", "expires_in": 3600})
            m.post(query_url('schools'), payload=schools_payload)

            result = await SchoolSyncOrchestrator(db_session).run()

        assert result.count == 2
        stored = await configured_store.get_config()
        assert stored.access_token == "tok-2"


class TestTermSync:

    @pytest.mark.asyncio
    async def test_sets_single_current_term(self, db_session, configured_store, terms_payload):
        with aioresponses() as m:
            m.post(TOKEN_URL, payload=TOKEN_PAYLOAD)
            m.post(query_url('terms'), payload=terms_payload)

            orchestrator = TermSyncOrchestrator(db_session, today=lambda: date(2025, 9, 15))
            result = await orchestrator.run()

            bodies = [call[0].kwargs.get('json') for key, call in m.requests.items() if 'terms' in str(key[1])]
            assert bodies == [{'schoolid': 100}]

        assert result.current_term == 3500
        current = (await db_session.execute(select(Term).where(Term.is_current.is_(True)))).scalars().all()
        assert [t.external_id for t in current] == [3500]

        school = (await db_session.execute(select(School))).scalar_one()
        assert school.external_id == 100
        assert school.name == "School 100"

    @pytest.mark.asyncio
    async def test_request_school_id_overrides_default(self, db_session, configured_store, terms_payload):
        with aioresponses() as m:
            m.post(TOKEN_URL, payload=TOKEN_PAYLOAD)
            m.post(query_url('terms'), payload=terms_payload)

            await TermSyncOrchestrator(db_session, today=lambda: date(2025, 9, 15)).run(school_id=200)

            bodies = [call[0].kwargs.get('json') for key, call in m.requests.items() if 'terms' in str(key[1])]
            assert bodies == [{'schoolid': 200}]

    @pytest.mark.asyncio
    async def test_current_term_moves_on_resync(self, db_session, configured_store, terms_payload, make_record):
        next_year = {"record": terms_payload["record"] + [
            make_record('terms', id=3600, dcid=12, name="2026-2027", firstday="2026-08-24",
                        lastday="2027-06-11", yearid=36, schoolid=100, isyearrec=1),
        ]}
        with aioresponses() as m:
            m.post(TOKEN_URL, payload=TOKEN_PAYLOAD)
            m.post(query_url('terms'), payload=terms_payload)
            m.post(query_url('terms'), payload=next_year)

            await TermSyncOrchestrator(db_session, today=lambda: date(2025, 9, 15)).run()
            result = await TermSyncOrchestrator(db_session, today=lambda: date(2026, 9, 1)).run()

        assert result.current_term == 3600
        current = (await db_session.execute(select(Term).where(Term.is_current.is_(True)))).scalars().all()
        assert [t.external_id for t in current] == [3600]

    @pytest.mark.asyncio
    async def test_missing_school_id(self, db_session):
        store = CredentialStore(db_session)
        await store.update_config(endpoint=BASE, client_id="id", client_secret="secret")

        with pytest.raises(ConfigIncompleteError) as exc_info:
            await TermSyncOrchestrator(db_session).run()

        assert exc_info.value.details['missing'] == ['school_id']
        assert await jobs(db_session) == []


class TestPreflightFailures:

    @pytest.mark.asyncio
    async def test_missing_client_secret_creates_no_job(self, db_session):
        store = CredentialStore(db_session)
        await store.update_config(endpoint=BASE, client_id="id")

        with pytest.raises(ConfigIncompleteError) as exc_info:
            await SchoolSyncOrchestrator(db_session).run()

        assert exc_info.value.status_code == 400
        assert exc_info.value.details['missing'] == ['client_secret']
        assert await jobs(db_session) == []

    @pytest.mark.asyncio
    async def test_token_failure_creates_no_job(self, db_session, configured_store):
        with aioresponses() as m:
            m.post(TOKEN_URL, status=401, body="invalid_client")

            orchestrator = SchoolSyncOrchestrator(db_session)
            with pytest.raises(AuthAcquisitionError):
                await orchestrator.run()

        assert orchestrator.last_job_id is None
        assert await jobs(db_session) == []


class TestJobTerminality:

    @pytest.mark.asyncio
    async def test_upstream_error_fails_job(self, db_session, configured_store):
        with aioresponses() as m:
            m.post(TOKEN_URL, payload=TOKEN_PAYLOAD)
            m.post(query_url('schools'), status=500, body="Internal Server Error")

            orchestrator = SchoolSyncOrchestrator(db_session)
            with pytest.raises(UpstreamApiError):
                await orchestrator.run()

        job = await db_session.get(SyncJob, orchestrator.last_job_id)
        assert job.status == SyncJobStatus.FAILED
        assert "500" in job.error_message
        assert job.completed_at is not None

    @pytest.mark.asyncio
    async def test_malformed_record_fails_job_and_persists_nothing(self, db_session, configured_store, make_record):
        payload = {"record": [
            make_record('schools', id=1, dcid=1, name="Good"),
            make_record('schools', id="x", dcid=2, name="Bad"),
        ]}
        with aioresponses() as m:
            m.post(TOKEN_URL, payload=TOKEN_PAYLOAD)
            m.post(query_url('schools'), payload=payload)

            orchestrator = SchoolSyncOrchestrator(db_session)
            with pytest.raises(MalformedRecordError):
                await orchestrator.run()

        job = await db_session.get(SyncJob, orchestrator.last_job_id)
        assert job.status == SyncJobStatus.FAILED
        assert job.error_message
        assert await count(db_session, School) == 0

    @pytest.mark.asyncio
    async def test_persist_failure_rolls_back_placeholders(self, db_session, configured_store, make_record):
        payload = {"record": [
            make_record('teachers', id=1, dcid=10, first_name="Ada", last_name="Lovelace", schoolid=5, staffstatus=1),
        ]}
        with aioresponses() as m:
            m.post(TOKEN_URL, payload=TOKEN_PAYLOAD)
            m.post(query_url('teachers'), payload=payload)

            orchestrator = TeacherSyncOrchestrator(db_session)
            with patch.object(TeacherRepository, 'upsert_many', AsyncMock(side_effect=RuntimeError("db exploded"))):
                with pytest.raises(RuntimeError):
                    await orchestrator.run()

        job = await db_session.get(SyncJob, orchestrator.last_job_id)
        assert job.status == SyncJobStatus.FAILED
        assert job.error_message == "RuntimeError: db exploded"
        assert await count(db_session, School) == 0
        assert await count(db_session, Teacher) == 0

    @pytest.mark.asyncio
    async def test_cancelled_run_fails_job(self, db_session, configured_store):
        with aioresponses() as m:
            m.post(TOKEN_URL, payload=TOKEN_PAYLOAD)

            orchestrator = SchoolSyncOrchestrator(db_session)
            with patch.object(PaginatedCollector, 'fetch_all', AsyncMock(side_effect=asyncio.CancelledError())):
                with pytest.raises(asyncio.CancelledError):
                    await orchestrator.run()

        job = await db_session.get(SyncJob, orchestrator.last_job_id)
        assert job.status == SyncJobStatus.FAILED
        assert job.error_message == "Sync was cancelled"


class TestContactSync:

    @pytest.mark.asyncio
    async def test_contacts_are_paginated(self, db_session, configured_store, make_record):
        def contacts(start, n):
            return {"record": [
                make_record('emailaddress', emailaddressid=i, emailaddress=f"p{i}@example.com")
                for i in range(start, start + n)
            ]}

        with aioresponses() as m:
            m.post(TOKEN_URL, payload=TOKEN_PAYLOAD)
            m.post(query_url('emailaddress'), payload=contacts(1, 2))
            m.post(query_url('emailaddress'), payload=contacts(3, 2))
            m.post(query_url('emailaddress'), payload=contacts(5, 1))

            result = await ContactSyncOrchestrator(db_session, page_size=2).run()

        assert result.count == 5
        assert await count(db_session, EmailAddress) == 5


class TestSyncAll:

    @pytest.mark.asyncio
    async def test_continues_past_failures(self, db_session, configured_store, schools_payload):
        with aioresponses() as m:
            m.post(TOKEN_URL, payload=TOKEN_PAYLOAD)
            m.post(query_url('schools'), payload=schools_payload)
            m.post(query_url('terms'), status=500, body="boom")
            m.post(query_url('teachers'), payload={"record": []})
            m.post(query_url('courses'), payload={"record": []})
            m.post(query_url('emailaddress'), payload={"record": []})

            outcome = await sync_all(db_session)

        assert outcome['success'] is False
        results = outcome['results']
        assert list(results) == ['schools', 'terms', 'teachers', 'courses', 'contacts']
        assert results['schools']['success'] is True
        assert results['terms']['success'] is False
        assert results['terms']['error_type'] == 'UpstreamApiError'
        assert all(results[name]['success'] for name in ('teachers', 'courses', 'contacts'))

        statuses = [j.status for j in await jobs(db_session)]
        assert statuses.count(SyncJobStatus.FAILED) == 1
        assert statuses.count(SyncJobStatus.COMPLETED) == 4

    @pytest.mark.asyncio
    async def test_get_orchestrator(self, db_session):
        assert isinstance(get_orchestrator("terms", db_session), TermSyncOrchestrator)
        assert get_orchestrator(SyncEntityType.SCHOOLS, db_session).entity_type == SyncEntityType.SCHOOLS


class TestConcurrentRuns:

    @pytest.mark.asyncio
    async def test_same_entity_runs_both_complete(self, tmp_path, schools_payload):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sync.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        async with session_factory() as db:
            store = CredentialStore(db)
            await store.update_config(endpoint=BASE, client_id="client-id", client_secret="client-secret")
            await store.update_token("tok", utcnow() + timedelta(hours=1))

        arrived = []
        both_collected = asyncio.Event()

        async def fetch_at_gate(self, query_url, access_token=None, body=None):
            arrived.append(query_url)
            if len(arrived) == 2:
                both_collected.set()
            await asyncio.wait_for(both_collected.wait(), timeout=5)
            return schools_payload['record']

        async def run_once():
            async with session_factory() as db:
                return await SchoolSyncOrchestrator(db).run()

        try:
            with patch.object(PaginatedCollector, 'fetch_all', fetch_at_gate):
                results = await asyncio.gather(run_once(), run_once())

            async with session_factory() as db:
                school_count = await count(db, School)
                statuses = [j.status for j in await jobs(db)]
        finally:
            await engine.dispose()

        assert school_count == 2
        assert statuses == [SyncJobStatus.COMPLETED, SyncJobStatus.COMPLETED]
        assert sorted(r.stats['created'] for r in results) == [0, 2]
        assert sum(r.stats['unchanged'] for r in results) == 2
