"""
Upsert repositories for schools, terms, teachers, courses and email addresses.
"""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update

from sis_sync.models.reference import School, Term, Teacher, Course, EmailAddress
from sis_sync.repositories.base import UpsertRepository


logger = logging.getLogger(__name__)

DISTRICT_OFFICE_SCHOOL_ID = 0


def placeholder_school_name(external_id: int) -> str:
    if external_id == DISTRICT_OFFICE_SCHOOL_ID:
        return "District Office"
    return f"School {external_id}"


class SchoolRepository(UpsertRepository[School]):
    model = School

    def _order_by(self):
        return School.name

    async def ensure_schools(self, external_ids: Iterable[int]) -> Dict[int, int]:
        """
        Make sure a school row exists for every external id.

        Missing schools are created as placeholders and replaced by real data the
        next time schools are synced. A school another run creates at the same
        time is reused.

        Returns:
            Map of external school id -> local school id
        """
        wanted = list(dict.fromkeys(external_ids))
        existing = await self.find_by_external_ids(wanted)

        missing = [external_id for external_id in wanted if external_id not in existing]
        if missing:
            created = await self.insert_missing([
                {'external_id': external_id, 'name': placeholder_school_name(external_id)}
                for external_id in missing
            ])
            for external_id in missing:
                if external_id in created:
                    logger.info(f"Created placeholder school for PowerSchool school {external_id}")
            existing.update(await self.find_by_external_ids(missing))

        return {external_id: school.id for external_id, school in existing.items()}


class TermRepository(UpsertRepository[Term]):
    model = Term

    def _order_by(self):
        return Term.first_day.desc()

    async def find_current(self) -> Optional[Term]:
        result = await self.db.execute(select(Term).where(Term.is_current.is_(True)))
        return result.scalars().first()

    async def set_current(self, term_id: int) -> None:
        """
        Make ``term_id`` the only current term.

        The previous holder is cleared before the new one is set, both inside the
        caller's transaction, so no committed state ever has two current terms.
        """
        await self.db.execute(
            update(Term)
            .where(Term.is_current.is_(True), Term.id != term_id)
            .values(is_current=False)
        )
        await self.db.execute(
            update(Term)
            .where(Term.id == term_id)
            .values(is_current=True)
        )


class TeacherRepository(UpsertRepository[Teacher]):
    model = Teacher

    def _order_by(self):
        return Teacher.last_name


class CourseRepository(UpsertRepository[Course]):
    model = Course

    def _order_by(self):
        return Course.course_name

    async def find_all(self, active_only: bool = True) -> List[Course]:
        query = select(Course).order_by(Course.course_name)
        if active_only:
            query = query.where(Course.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())


class EmailAddressRepository(UpsertRepository[EmailAddress]):
    model = EmailAddress

    def _order_by(self):
        return EmailAddress.email_address
