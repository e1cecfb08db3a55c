"""
PowerSchool Reference-Data Sync

Pulls schools, terms, teachers, courses and contact email addresses from PowerSchool
and merges them into the local database.

Components:
- Record transformers from PowerSchool query rows to typed records
- Current term resolution
- Sync job ledger
- Per-entity sync orchestrators and a full sync runner
"""

from .transformers import (
    SchoolRecord,
    TermRecord,
    TeacherRecord,
    CourseRecord,
    EmailAddressRecord,
    TRANSFORMERS
)
from .term_resolver import resolve_current
from .ledger import SyncLedger, LedgerStateError
from .orchestrator import (
    SyncOrchestrator,
    SyncRunResult,
    SchoolSyncOrchestrator,
    TermSyncOrchestrator,
    TeacherSyncOrchestrator,
    CourseSyncOrchestrator,
    ContactSyncOrchestrator,
    get_orchestrator,
    sync_all
)

__all__ = [
    # Transformation
    'SchoolRecord',
    'TermRecord',
    'TeacherRecord',
    'CourseRecord',
    'EmailAddressRecord',
    'TRANSFORMERS',
    'resolve_current',

    # Ledger
    'SyncLedger',
    'LedgerStateError',

    # Orchestration
    'SyncOrchestrator',
    'SyncRunResult',
    'SchoolSyncOrchestrator',
    'TermSyncOrchestrator',
    'TeacherSyncOrchestrator',
    'CourseSyncOrchestrator',
    'ContactSyncOrchestrator',
    'get_orchestrator',
    'sync_all'
]
