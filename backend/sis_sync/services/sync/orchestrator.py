"""
Sync Orchestrator

Runs one synchronization of one entity type from PowerSchool:

1. Check the stored connection settings
2. Make sure a valid access token is available
3. Open a ledger entry
4. Collect, transform and upsert every record
5. Resolve the current term (terms only)
6. Close the ledger entry

Configuration and token failures happen before any ledger entry exists. After the
entry is opened, every failure rolls back the run's writes and marks the job failed
before the error is re-raised.
"""

import asyncio
import logging
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Type

from sqlalchemy.ext.asyncio import AsyncSession

from sis_sync.core.config import settings
from sis_sync.core.sis_config import PowerSchoolCredential, SyncEntityType, get_entity_query
from sis_sync.integrations.sis.collector import PaginatedCollector
from sis_sync.integrations.sis.error_handler import SISError, ConfigIncompleteError
from sis_sync.integrations.sis.oauth_service import PowerSchoolOAuthService
from sis_sync.integrations.sis.providers.powerschool import PowerSchoolClient
from sis_sync.integrations.sis.token_manager import TokenManager
from sis_sync.repositories.base import UpsertRepository, UpsertStats
from sis_sync.repositories.reference import (
    SchoolRepository, TermRepository, TeacherRepository,
    CourseRepository, EmailAddressRepository
)
from sis_sync.repositories.settings import CredentialStore
from sis_sync.services.sync.ledger import SyncLedger
from sis_sync.services.sync.term_resolver import resolve_current
from sis_sync.services.sync.transformers import TRANSFORMERS
from sis_sync.utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SyncRunResult:
    """Outcome of a successful sync run."""
    entity_type: SyncEntityType
    job_id: int
    count: int
    duration_ms: int
    preview: List[Dict[str, Any]] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)
    current_term: Optional[int] = None

    @property
    def message(self) -> str:
        return f"Synced {self.count} {self.entity_type.value}"


def describe_failure(error: BaseException) -> str:
    """Human readable message stored on a failed job."""
    if isinstance(error, SISError):
        return error.message
    if isinstance(error, asyncio.CancelledError):
        return "Sync was cancelled"
    text = str(error)
    return f"{type(error).__name__}: {text}" if text else type(error).__name__


class SyncOrchestrator:
    """
    Base coordinator for one entity type.

    Subclasses choose the repository and override the ``collect``, ``persist`` and
    ``after_persist`` hooks where the entity needs more than the defaults.
    """

    entity_type: SyncEntityType
    repository_class: Type[UpsertRepository]

    def __init__(
        self,
        db: AsyncSession,
        client: Optional[PowerSchoolClient] = None,
        oauth_service: Optional[PowerSchoolOAuthService] = None,
        page_size: Optional[int] = None,
        summary_limit: Optional[int] = None
    ):
        self.db = db
        self.credential_store = CredentialStore(db)
        self.ledger = SyncLedger(db)
        self.repository = self.repository_class(db)
        self.query = get_entity_query(self.entity_type)
        self.transform: Callable[[Dict[str, Any]], Any] = TRANSFORMERS[self.entity_type]
        self.page_size = page_size or settings.PS_PAGE_SIZE
        self.summary_limit = summary_limit or settings.SYNC_SUMMARY_LIMIT
        self._client = client
        self._oauth_service = oauth_service
        self.last_job_id: Optional[int] = None

    def validate(self, credential: PowerSchoolCredential, options: Dict[str, Any]) -> None:
        if not credential.is_complete:
            missing = credential.missing_fields()
            raise ConfigIncompleteError(
                f"PowerSchool configuration is incomplete: missing {', '.join(missing)}",
                missing=missing
            )

    async def collect(
        self,
        collector: PaginatedCollector,
        credential: PowerSchoolCredential,
        options: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        url = credential.query_url(self.query.query_name)
        if self.query.paginated:
            return await collector.collect(url, None, self.page_size)
        return await collector.fetch_all(url, body=self.query_body(credential, options))

    def query_body(self, credential: PowerSchoolCredential, options: Dict[str, Any]) -> Dict[str, Any]:
        return {}

    async def persist(self, records: Sequence[Any]) -> UpsertStats:
        return await self.repository.upsert_many([record.to_row() for record in records])

    async def after_persist(self, records: Sequence[Any], result: SyncRunResult) -> None:
        pass

    def build_summary(self, records: Sequence[Any], result: SyncRunResult) -> Dict[str, Any]:
        summary = {
            'preview': result.preview,
            'stats': result.stats,
        }
        if result.current_term is not None:
            summary['current_term'] = result.current_term
        return summary

    async def run(self, **options) -> SyncRunResult:
        """
        Synchronize this entity type.

        Raises:
            ConfigIncompleteError: Connection settings are incomplete (no job is created)
            AuthError: No token could be obtained (no job is created)
            SISError: Collection or transformation failed (the job is marked failed)
        """
        started = time.monotonic()
        self.last_job_id = None

        credential = await self.credential_store.get_config()
        self.validate(credential, options)

        async with AsyncExitStack() as stack:
            oauth_service = self._oauth_service
            if oauth_service is None:
                oauth_service = await stack.enter_async_context(PowerSchoolOAuthService())
            client = self._client
            if client is None:
                client = await stack.enter_async_context(PowerSchoolClient())

            token_manager = TokenManager(self.credential_store, oauth_service)
            access_token = await token_manager.ensure_valid_token()

            job = await self.ledger.create(self.entity_type)
            job_id = job.id
            self.last_job_id = job_id

            try:
                await self.ledger.start(job_id)

                collector = PaginatedCollector(client, token_manager, access_token)
                raw_records = await self.collect(collector, credential, options)
                records = [self.transform(raw) for raw in raw_records]

                stats = await self.persist(records)
                result = SyncRunResult(
                    entity_type=self.entity_type,
                    job_id=job_id,
                    count=len(records),
                    duration_ms=0,
                    preview=[record.summary() for record in records[:self.summary_limit]],
                    stats=stats.to_dict(),
                )
                await self.after_persist(records, result)

                await self.ledger.complete(job_id, len(records), self.build_summary(records, result))

            except (Exception, asyncio.CancelledError) as e:
                await self._fail_job(job_id, e)
                raise

        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"{self.entity_type.value} sync job {job_id} finished: {result.count} records "
            f"({result.stats}) in {result.duration_ms}ms"
        )
        return result

    async def _fail_job(self, job_id: int, error: BaseException) -> None:
        await self.db.rollback()
        try:
            await self.ledger.fail(job_id, describe_failure(error))
        except Exception:
            logger.exception(f"Could not mark sync job {job_id} as failed")
            raise


class SchoolSyncOrchestrator(SyncOrchestrator):
    entity_type = SyncEntityType.SCHOOLS
    repository_class = SchoolRepository


class _SchoolScopedOrchestrator(SyncOrchestrator):
    """Entities that reference a school by its PowerSchool id."""

    async def persist(self, records: Sequence[Any]) -> UpsertStats:
        school_ids = await SchoolRepository(self.db).ensure_schools(
            record.school_external_id for record in records
        )
        return await self.repository.upsert_many(
            [record.to_row(school_ids[record.school_external_id]) for record in records]
        )


class TermSyncOrchestrator(_SchoolScopedOrchestrator):
    entity_type = SyncEntityType.TERMS
    repository_class = TermRepository

    def __init__(self, db: AsyncSession, today: Optional[Callable[[], date]] = None, **kwargs):
        super().__init__(db, **kwargs)
        self.today = today or (lambda: utcnow().date())

    def _school_id(self, credential: PowerSchoolCredential, options: Dict[str, Any]) -> Optional[int]:
        school_id = options.get('school_id')
        if school_id is None:
            school_id = credential.school_id
        return school_id

    def validate(self, credential: PowerSchoolCredential, options: Dict[str, Any]) -> None:
        super().validate(credential, options)
        if self._school_id(credential, options) is None:
            raise ConfigIncompleteError(
                "A PowerSchool school id is required to sync terms",
                missing=['school_id']
            )

    def query_body(self, credential: PowerSchoolCredential, options: Dict[str, Any]) -> Dict[str, Any]:
        return {'schoolid': self._school_id(credential, options)}

    async def after_persist(self, records: Sequence[Any], result: SyncRunResult) -> None:
        current = resolve_current(records, self.today())
        if current is None:
            return

        term = await self.repository.find_by_external_id(current)
        await self.repository.set_current(term.id)
        result.current_term = current
        logger.info(f"Current term set to PowerSchool term {current} ({term.name})")


class TeacherSyncOrchestrator(_SchoolScopedOrchestrator):
    entity_type = SyncEntityType.TEACHERS
    repository_class = TeacherRepository


class CourseSyncOrchestrator(SyncOrchestrator):
    entity_type = SyncEntityType.COURSES
    repository_class = CourseRepository


class ContactSyncOrchestrator(SyncOrchestrator):
    entity_type = SyncEntityType.CONTACTS
    repository_class = EmailAddressRepository


ORCHESTRATORS: Dict[SyncEntityType, Type[SyncOrchestrator]] = {
    SyncEntityType.SCHOOLS: SchoolSyncOrchestrator,
    SyncEntityType.TERMS: TermSyncOrchestrator,
    SyncEntityType.TEACHERS: TeacherSyncOrchestrator,
    SyncEntityType.COURSES: CourseSyncOrchestrator,
    SyncEntityType.CONTACTS: ContactSyncOrchestrator,
}

SYNC_ALL_ORDER = (
    SyncEntityType.SCHOOLS,
    SyncEntityType.TERMS,
    SyncEntityType.TEACHERS,
    SyncEntityType.COURSES,
    SyncEntityType.CONTACTS,
)


def get_orchestrator(entity_type: SyncEntityType, db: AsyncSession, **kwargs) -> SyncOrchestrator:
    return ORCHESTRATORS[SyncEntityType(entity_type)](db, **kwargs)


async def sync_all(db: AsyncSession, **kwargs) -> Dict[str, Any]:
    """
    Run every entity sync in order, continuing past failures.

    Returns:
        ``success`` (all runs succeeded) and one outcome per entity type
    """
    results: Dict[str, Dict[str, Any]] = {}

    for entity_type in SYNC_ALL_ORDER:
        orchestrator = get_orchestrator(entity_type, db, **kwargs)
        try:
            run = await orchestrator.run()
            results[entity_type.value] = {
                'success': True,
                'job_id': run.job_id,
                'count': run.count,
                'duration_ms': run.duration_ms,
            }
        except SISError as e:
            logger.warning(f"{entity_type.value} sync failed during full sync: {e.message}")
            results[entity_type.value] = {
                'success': False,
                'job_id': orchestrator.last_job_id,
                'error': e.message,
                'error_type': e.error_type,
            }
        except Exception as e:
            logger.exception(f"Unexpected error during {entity_type.value} sync")
            await db.rollback()
            results[entity_type.value] = {
                'success': False,
                'job_id': orchestrator.last_job_id,
                'error': describe_failure(e),
                'error_type': type(e).__name__,
            }

    return {
        'success': all(outcome['success'] for outcome in results.values()),
        'results': results,
    }
