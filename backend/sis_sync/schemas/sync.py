"""
Pydantic schemas for the sync and PowerSchool token API endpoints.
"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any, List
from datetime import date, datetime

from sis_sync.core.sis_config import SyncEntityType
from sis_sync.models.sync_log import SyncJobStatus


class SyncRequest(BaseModel):
    """Optional body for triggering a sync run."""
    school_id: Optional[int] = Field(None, ge=0)


class SyncRunResponse(BaseModel):
    """Successful sync run."""
    success: bool = True
    message: str
    job_id: int
    count: int
    duration_ms: int
    preview: List[Dict[str, Any]] = Field(default_factory=list)
    stats: Dict[str, int] = Field(default_factory=dict)
    current_term: Optional[int] = None


class SyncErrorResponse(BaseModel):
    """Failed sync run."""
    success: bool = False
    error: str
    error_type: str
    job_id: Optional[int] = None
    duration_ms: Optional[int] = None


class SyncJobResponse(BaseModel):
    """Schema for a sync ledger entry."""
    id: int
    entity_type: SyncEntityType
    status: SyncJobStatus
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    record_count: int
    result_summary: Optional[Dict[str, Any]]
    error_message: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SyncStats(BaseModel):
    total: int
    completed: int
    failed: int
    running: int


class SyncStatusResponse(BaseModel):
    is_running: bool
    last_sync: Optional[SyncJobResponse]
    stats: SyncStats


class SyncAllResponse(BaseModel):
    success: bool
    results: Dict[str, Dict[str, Any]]


class SchoolResponse(BaseModel):
    id: int
    external_id: int
    external_dcid: Optional[int]
    name: str
    abbreviation: Optional[str]
    school_number: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class TermResponse(BaseModel):
    id: int
    external_id: int
    external_dcid: Optional[int]
    name: str
    abbreviation: Optional[str]
    first_day: date
    last_day: date
    year_id: Optional[int]
    is_year_record: bool
    is_current: bool
    school_id: int

    model_config = ConfigDict(from_attributes=True)


class TeacherResponse(BaseModel):
    id: int
    external_id: int
    external_dcid: int
    first_name: str
    last_name: str
    display_name: Optional[str]
    email: Optional[str]
    staff_status: Optional[int]
    is_active: bool
    school_id: int

    model_config = ConfigDict(from_attributes=True)


class CourseResponse(BaseModel):
    id: int
    external_id: int
    external_dcid: int
    course_number: str
    course_name: str
    credit_hours: float
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class EmailAddressResponse(BaseModel):
    id: int
    external_id: int
    email_address: str

    model_config = ConfigDict(from_attributes=True)


class RecordListResponse(BaseModel):
    """Synced records of one entity type."""
    items: List[Dict[str, Any]]
    total: int
    current_term: Optional[TermResponse] = None


class TokenStatusResponse(BaseModel):
    configured: bool
    has_token: bool
    is_expired: bool
    expires_at: Optional[str]


class TokenRefreshResponse(BaseModel):
    success: bool = True
    access_token_present: bool
    token_type: str
    expires_at: datetime
