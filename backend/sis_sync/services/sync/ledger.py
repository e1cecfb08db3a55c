"""
Sync Ledger

Append-only record of sync job attempts. Every transition is committed as soon as
it is made so the ledger reflects progress even if the surrounding run fails.

pending -> running -> completed | failed
pending -> failed
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from sis_sync.core.config import settings
from sis_sync.core.sis_config import SyncEntityType
from sis_sync.models.sync_log import SyncJob, SyncJobStatus, TERMINAL_STATUSES
from sis_sync.utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50


class LedgerStateError(RuntimeError):
    """An illegal ledger transition was requested."""


class SyncLedger:
    """Creates and transitions SyncJob rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_job(self, job_id: int) -> SyncJob:
        job = await self.db.get(SyncJob, job_id)
        if job is None:
            raise LedgerStateError(f"Sync job {job_id} not found")
        return job

    def _check_transition(self, job: SyncJob, target: SyncJobStatus, allowed) -> None:
        if job.status not in allowed:
            raise LedgerStateError(
                f"Cannot move sync job {job.id} from {job.status.value} to {target.value}"
            )

    async def create(self, entity_type: SyncEntityType) -> SyncJob:
        job = SyncJob(entity_type=SyncEntityType(entity_type), status=SyncJobStatus.PENDING, record_count=0)
        self.db.add(job)
        await self.db.commit()
        logger.debug(f"Created sync job {job.id} for {job.entity_type.value}")
        return job

    async def start(self, job_id: int) -> SyncJob:
        job = await self._get_job(job_id)
        self._check_transition(job, SyncJobStatus.RUNNING, (SyncJobStatus.PENDING,))
        job.status = SyncJobStatus.RUNNING
        job.started_at = utcnow()
        await self.db.commit()
        logger.info(f"Sync job {job_id} ({job.entity_type.value}) started")
        return job

    async def complete(self, job_id: int, record_count: int, summary: Optional[Dict[str, Any]] = None) -> SyncJob:
        """Mark a running job completed. Commits any pending writes of the run with it."""
        job = await self._get_job(job_id)
        self._check_transition(job, SyncJobStatus.COMPLETED, (SyncJobStatus.RUNNING,))
        job.status = SyncJobStatus.COMPLETED
        job.completed_at = utcnow()
        job.record_count = record_count
        job.result_summary = summary
        await self.db.commit()
        logger.info(f"Sync job {job_id} ({job.entity_type.value}) completed with {record_count} records")
        return job

    async def fail(self, job_id: int, message: str) -> SyncJob:
        job = await self._get_job(job_id)
        self._check_transition(job, SyncJobStatus.FAILED, (SyncJobStatus.PENDING, SyncJobStatus.RUNNING))
        job.status = SyncJobStatus.FAILED
        job.completed_at = utcnow()
        job.error_message = message or "Sync failed"
        await self.db.commit()
        logger.error(f"Sync job {job_id} ({job.entity_type.value}) failed: {job.error_message}")
        return job

    async def get(self, job_id: int) -> Optional[SyncJob]:
        return await self.db.get(SyncJob, job_id)

    async def get_latest(self, entity_type: Optional[SyncEntityType] = None) -> Optional[SyncJob]:
        query = select(SyncJob).order_by(SyncJob.id.desc()).limit(1)
        if entity_type is not None:
            query = query.where(SyncJob.entity_type == SyncEntityType(entity_type))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_jobs(
        self,
        entity_type: Optional[SyncEntityType] = None,
        status: Optional[SyncJobStatus] = None,
        limit: int = DEFAULT_LIST_LIMIT
    ) -> List[SyncJob]:
        """Newest jobs first."""
        query = select(SyncJob).order_by(SyncJob.id.desc()).limit(limit)
        if entity_type is not None:
            query = query.where(SyncJob.entity_type == SyncEntityType(entity_type))
        if status is not None:
            query = query.where(SyncJob.status == SyncJobStatus(status))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def is_running(self, entity_type: Optional[SyncEntityType] = None) -> bool:
        query = select(func.count(SyncJob.id)).where(SyncJob.status == SyncJobStatus.RUNNING)
        if entity_type is not None:
            query = query.where(SyncJob.entity_type == SyncEntityType(entity_type))
        result = await self.db.execute(query)
        return result.scalar_one() > 0

    async def get_stats(self) -> Dict[str, int]:
        result = await self.db.execute(
            select(SyncJob.status, func.count(SyncJob.id)).group_by(SyncJob.status)
        )
        counts = {status: count for status, count in result.all()}
        return {
            'total': sum(counts.values()),
            'completed': counts.get(SyncJobStatus.COMPLETED, 0),
            'failed': counts.get(SyncJobStatus.FAILED, 0),
            'running': counts.get(SyncJobStatus.RUNNING, 0),
        }

    async def cleanup(self, days_to_keep: Optional[int] = None) -> int:
        """Delete terminal jobs created before the retention window. Returns the number removed."""
        if days_to_keep is None:
            days_to_keep = settings.SYNC_LOG_RETENTION_DAYS
        cutoff = utcnow() - timedelta(days=days_to_keep)
        result = await self.db.execute(
            delete(SyncJob)
            .where(SyncJob.created_at < cutoff, SyncJob.status.in_(TERMINAL_STATUSES))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.info(f"Removed {result.rowcount} sync jobs older than {days_to_keep} days")
        return result.rowcount
