"""
SQLAlchemy model for the sync job ledger.
"""

from sqlalchemy import Column, Integer, DateTime, Text, JSON, Index, Enum as SQLEnum
import enum
from typing import Optional

from sis_sync.core.database import Base
from sis_sync.core.sis_config import SyncEntityType
from sis_sync.utils import utcnow


class SyncJobStatus(str, enum.Enum):
    """Status of a sync job."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = (SyncJobStatus.COMPLETED, SyncJobStatus.FAILED)


class SyncJob(Base):
    """One attempt to synchronize an entity type from PowerSchool."""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    entity_type = Column(SQLEnum(SyncEntityType), nullable=False)
    status = Column(SQLEnum(SyncJobStatus), nullable=False, default=SyncJobStatus.PENDING)

    # Timing
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Outcome
    record_count = Column(Integer, default=0)
    result_summary = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index('idx_sync_logs_type_status', entity_type, status),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get job duration in seconds."""
        if not self.started_at or not self.completed_at:
            return None
        return (self.completed_at - self.started_at).total_seconds()
