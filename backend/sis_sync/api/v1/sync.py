"""
FastAPI router for triggering PowerSchool syncs and inspecting their results.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from sis_sync.core.database import get_db
from sis_sync.core.sis_config import SyncEntityType
from sis_sync.integrations.sis.error_handler import SISError, handle_sis_errors, sis_error_handler
from sis_sync.models.sync_log import SyncJobStatus
from sis_sync.repositories.reference import (
    SchoolRepository, TermRepository, TeacherRepository,
    CourseRepository, EmailAddressRepository
)
from sis_sync.schemas.sync import (
    SyncRequest, SyncRunResponse, SyncErrorResponse, SyncJobResponse,
    SyncStatusResponse, SyncStats, SyncAllResponse, RecordListResponse,
    SchoolResponse, TermResponse, TeacherResponse, CourseResponse, EmailAddressResponse
)
from sis_sync.services.sync.ledger import SyncLedger
from sis_sync.services.sync.orchestrator import SyncRunResult, describe_failure, get_orchestrator, sync_all

logger = logging.getLogger(__name__)

router = APIRouter()


RECORD_VIEWS = {
    SyncEntityType.SCHOOLS: (SchoolRepository, SchoolResponse),
    SyncEntityType.TERMS: (TermRepository, TermResponse),
    SyncEntityType.TEACHERS: (TeacherRepository, TeacherResponse),
    SyncEntityType.COURSES: (CourseRepository, CourseResponse),
    SyncEntityType.CONTACTS: (EmailAddressRepository, EmailAddressResponse),
}


def _error_response(error: BaseException, job_id: Optional[int], started: float) -> JSONResponse:
    duration_ms = int((time.monotonic() - started) * 1000)
    if isinstance(error, SISError):
        status_code = error.status_code
        payload = SyncErrorResponse(
            error=error.message, error_type=error.error_type, job_id=job_id, duration_ms=duration_ms
        )
    else:
        status_code = 500
        payload = SyncErrorResponse(
            error=describe_failure(error), error_type=type(error).__name__, job_id=job_id, duration_ms=duration_ms
        )
    return JSONResponse(status_code=status_code, content=payload.model_dump())


@handle_sis_errors("sync")
async def _run_sync(orchestrator, **options) -> SyncRunResult:
    return await orchestrator.run(**options)


@router.post("/all", response_model=SyncAllResponse)
async def trigger_full_sync(db: AsyncSession = Depends(get_db)):
    """Sync every entity type in order; later entities still run when one fails."""
    outcome = await sync_all(db)
    return SyncAllResponse(**outcome)


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(db: AsyncSession = Depends(get_db)):
    """Whether a sync is running, the latest job, and job counts by outcome."""
    ledger = SyncLedger(db)
    latest = await ledger.get_latest()
    return SyncStatusResponse(
        is_running=await ledger.is_running(),
        last_sync=SyncJobResponse.model_validate(latest) if latest else None,
        stats=SyncStats(**await ledger.get_stats()),
    )


@router.get("/jobs", response_model=List[SyncJobResponse])
async def list_sync_jobs(
    entity_type: Optional[SyncEntityType] = None,
    status: Optional[SyncJobStatus] = None,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db)
):
    """List sync ledger entries, newest first."""
    jobs = await SyncLedger(db).list_jobs(entity_type=entity_type, status=status, limit=limit)
    return [SyncJobResponse.model_validate(job) for job in jobs]


@router.get("/errors", response_model=List[Dict[str, Any]])
async def list_recent_errors(
    severity: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500)
):
    """Errors recorded by sync and token operations since the process started."""
    return sis_error_handler.get_recent_errors(limit=limit, severity_filter=severity, category_filter=category)


@router.post("/{entity_type}", response_model=SyncRunResponse, responses={
    400: {"model": SyncErrorResponse},
    401: {"model": SyncErrorResponse},
    500: {"model": SyncErrorResponse},
})
async def trigger_sync(
    entity_type: SyncEntityType,
    request: Optional[SyncRequest] = Body(None),
    db: AsyncSession = Depends(get_db)
):
    """Run a sync for one entity type. Terms accept an optional ``school_id``."""
    started = time.monotonic()
    options = {}
    if request is not None and request.school_id is not None:
        options['school_id'] = request.school_id

    orchestrator = get_orchestrator(entity_type, db)
    try:
        result = await _run_sync(orchestrator, **options)
    except Exception as e:
        return _error_response(e, orchestrator.last_job_id, started)

    return SyncRunResponse(
        message=result.message,
        job_id=result.job_id,
        count=result.count,
        duration_ms=result.duration_ms,
        preview=result.preview,
        stats=result.stats,
        current_term=result.current_term,
    )


@router.get("/{entity_type}", response_model=RecordListResponse)
async def list_synced_records(entity_type: SyncEntityType, db: AsyncSession = Depends(get_db)):
    """List the locally stored records of one entity type."""
    repository_class, schema = RECORD_VIEWS[entity_type]
    repository = repository_class(db)
    rows = await repository.find_all()

    response = RecordListResponse(
        items=[schema.model_validate(row).model_dump(mode='json') for row in rows],
        total=len(rows),
    )
    if entity_type == SyncEntityType.TERMS:
        current = await repository.find_current()
        response.current_term = TermResponse.model_validate(current) if current else None
    return response
