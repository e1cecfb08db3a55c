from .base import UpsertRepository, UpsertStats
from .settings import CredentialStore
from .reference import (
    SchoolRepository, TermRepository, TeacherRepository,
    CourseRepository, EmailAddressRepository, placeholder_school_name
)

__all__ = [
    "UpsertRepository",
    "UpsertStats",
    "CredentialStore",
    "SchoolRepository",
    "TermRepository",
    "TeacherRepository",
    "CourseRepository",
    "EmailAddressRepository",
    "placeholder_school_name",
]
