"""
Record Transformers

Map raw PowerSchool query records (``record.tables.<table>`` with string values)
into typed records ready for persistence.

- Required identifiers and term dates that cannot be parsed raise MalformedRecordError
- Optional numeric fields fall back to a default and log a warning
- Flags are true only for the exact string "1"
"""

import logging
import math
from dataclasses import dataclass, asdict
from datetime import date
from typing import Any, Callable, Dict, Optional

from sis_sync.core.sis_config import SyncEntityType
from sis_sync.integrations.sis.error_handler import MalformedRecordError

logger = logging.getLogger(__name__)

DEFAULT_CREDIT_HOURS = 0.0


@dataclass
class SchoolRecord:
    external_id: int
    external_dcid: int
    name: str
    abbreviation: Optional[str] = None
    school_number: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)

    def summary(self) -> Dict[str, Any]:
        return {'external_id': self.external_id, 'name': self.name}


@dataclass
class TermRecord:
    external_id: int
    external_dcid: int
    name: str
    first_day: date
    last_day: date
    school_external_id: int
    abbreviation: Optional[str] = None
    year_id: Optional[int] = None
    is_year_record: bool = False

    def to_row(self, school_id: int) -> Dict[str, Any]:
        row = asdict(self)
        del row['school_external_id']
        row['school_id'] = school_id
        return row

    def contains(self, day: date) -> bool:
        return self.first_day <= day <= self.last_day

    def summary(self) -> Dict[str, Any]:
        return {
            'external_id': self.external_id,
            'name': self.name,
            'first_day': self.first_day.isoformat(),
            'last_day': self.last_day.isoformat(),
            'is_year_record': self.is_year_record,
        }


@dataclass
class TeacherRecord:
    external_id: int
    external_dcid: int
    first_name: str
    last_name: str
    school_external_id: int
    display_name: Optional[str] = None
    email: Optional[str] = None
    staff_status: Optional[int] = None
    is_active: bool = False

    def to_row(self, school_id: int) -> Dict[str, Any]:
        row = asdict(self)
        del row['school_external_id']
        row['school_id'] = school_id
        return row

    def summary(self) -> Dict[str, Any]:
        return {
            'external_id': self.external_id,
            'name': self.display_name or f"{self.last_name}, {self.first_name}",
            'email': self.email,
        }


@dataclass
class CourseRecord:
    external_id: int
    external_dcid: int
    course_number: str
    course_name: str
    credit_hours: float = DEFAULT_CREDIT_HOURS
    is_active: bool = True

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)

    def summary(self) -> Dict[str, Any]:
        return {
            'external_id': self.external_id,
            'course_number': self.course_number,
            'course_name': self.course_name,
        }


@dataclass
class EmailAddressRecord:
    external_id: int
    email_address: str

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)

    def summary(self) -> Dict[str, Any]:
        return {'external_id': self.external_id, 'email_address': self.email_address}


def table_fields(raw: Any, table: str) -> Dict[str, Any]:
    """Return the ``tables.<table>`` block of a raw record."""
    tables = raw.get('tables') if isinstance(raw, dict) else None
    fields = tables.get(table) if isinstance(tables, dict) else None
    if not isinstance(fields, dict):
        raise MalformedRecordError(
            f"PowerSchool record is missing its '{table}' table block",
            field=f"tables.{table}"
        )
    return fields


def _text(fields: Dict[str, Any], name: str) -> Optional[str]:
    value = fields.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _require_int(fields: Dict[str, Any], name: str, table: str) -> int:
    value = fields.get(name)
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise MalformedRecordError(
            f"Invalid {table}.{name} in PowerSchool record: {value!r}",
            field=name,
            value=value
        )


def _optional_int(fields: Dict[str, Any], name: str, table: str) -> Optional[int]:
    value = _text(fields, name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring unparsable {table}.{name} value {value!r}")
        return None


def _require_date(fields: Dict[str, Any], name: str, table: str) -> date:
    value = fields.get(name)
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except (TypeError, ValueError):
        raise MalformedRecordError(
            f"Invalid {table}.{name} date in PowerSchool record: {value!r}",
            field=name,
            value=value
        )


def _flag(fields: Dict[str, Any], name: str) -> bool:
    return fields.get(name) == "1"


def transform_school(raw: Dict[str, Any]) -> SchoolRecord:
    fields = table_fields(raw, 'schools')
    external_id = _require_int(fields, 'id', 'schools')
    return SchoolRecord(
        external_id=external_id,
        external_dcid=_require_int(fields, 'dcid', 'schools'),
        name=_text(fields, 'name') or f"School {external_id}",
        abbreviation=_text(fields, 'abbreviation'),
        school_number=_text(fields, 'school_number'),
    )


def transform_term(raw: Dict[str, Any]) -> TermRecord:
    fields = table_fields(raw, 'terms')
    return TermRecord(
        external_id=_require_int(fields, 'id', 'terms'),
        external_dcid=_require_int(fields, 'dcid', 'terms'),
        name=_text(fields, 'name') or "",
        abbreviation=_text(fields, 'abbreviation'),
        first_day=_require_date(fields, 'firstday', 'terms'),
        last_day=_require_date(fields, 'lastday', 'terms'),
        year_id=_optional_int(fields, 'yearid', 'terms'),
        school_external_id=_require_int(fields, 'schoolid', 'terms'),
        is_year_record=_flag(fields, 'isyearrec'),
    )


def transform_teacher(raw: Dict[str, Any]) -> TeacherRecord:
    fields = table_fields(raw, 'teachers')
    return TeacherRecord(
        external_id=_require_int(fields, 'id', 'teachers'),
        external_dcid=_require_int(fields, 'dcid', 'teachers'),
        first_name=_text(fields, 'first_name') or "",
        last_name=_text(fields, 'last_name') or "",
        display_name=_text(fields, 'lastfirst'),
        email=_text(fields, 'email_addr'),
        school_external_id=_require_int(fields, 'schoolid', 'teachers'),
        staff_status=_optional_int(fields, 'staffstatus', 'teachers'),
        is_active=_flag(fields, 'staffstatus'),
    )


def transform_course(raw: Dict[str, Any]) -> CourseRecord:
    fields = table_fields(raw, 'courses')
    credit_hours = DEFAULT_CREDIT_HOURS
    value = _text(fields, 'credit_hours')
    if value is not None:
        try:
            credit_hours = float(value)
        except ValueError:
            credit_hours = math.nan
        if not math.isfinite(credit_hours):
            logger.warning(f"Invalid courses.credit_hours value {value!r}, using {DEFAULT_CREDIT_HOURS}")
            credit_hours = DEFAULT_CREDIT_HOURS

    return CourseRecord(
        external_id=_require_int(fields, 'id', 'courses'),
        external_dcid=_require_int(fields, 'dcid', 'courses'),
        course_number=_text(fields, 'course_number') or "",
        course_name=_text(fields, 'course_name') or "",
        credit_hours=credit_hours,
    )


def transform_email_address(raw: Dict[str, Any]) -> EmailAddressRecord:
    fields = table_fields(raw, 'emailaddress')
    return EmailAddressRecord(
        external_id=_require_int(fields, 'emailaddressid', 'emailaddress'),
        email_address=_text(fields, 'emailaddress') or "",
    )


TRANSFORMERS: Dict[SyncEntityType, Callable[[Dict[str, Any]], Any]] = {
    SyncEntityType.SCHOOLS: transform_school,
    SyncEntityType.TERMS: transform_term,
    SyncEntityType.TEACHERS: transform_teacher,
    SyncEntityType.COURSES: transform_course,
    SyncEntityType.CONTACTS: transform_email_address,
}
