from .powerschool_settings import PowerSchoolSettings, MAIN_SETTINGS_ID
from .sync_log import SyncJob, SyncJobStatus, TERMINAL_STATUSES
from .reference import School, Term, Teacher, Course, EmailAddress

__all__ = [
    "PowerSchoolSettings",
    "MAIN_SETTINGS_ID",
    "SyncJob",
    "SyncJobStatus",
    "TERMINAL_STATUSES",
    "School",
    "Term",
    "Teacher",
    "Course",
    "EmailAddress",
]
