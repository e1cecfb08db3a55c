"""
PowerSchool connection settings and the registry of upstream named queries.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict, field_validator


class SyncEntityType(str, Enum):
    """Entity types the sync engine can pull from PowerSchool."""
    SCHOOLS = "schools"
    TERMS = "terms"
    TEACHERS = "teachers"
    COURSES = "courses"
    CONTACTS = "contacts"


class PowerSchoolCredential(BaseModel):
    """Snapshot of the stored PowerSchool connection settings."""
    endpoint: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    school_id: Optional[int] = None
    access_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator('endpoint')
    @classmethod
    def strip_trailing_slash(cls, v):
        if v:
            return v.strip().rstrip('/')
        return v

    @property
    def is_complete(self) -> bool:
        """True when endpoint, client id and client secret are all present."""
        return bool(self.endpoint and self.client_id and self.client_secret)

    def missing_fields(self) -> list:
        missing = []
        if not self.endpoint:
            missing.append('endpoint')
        if not self.client_id:
            missing.append('client_id')
        if not self.client_secret:
            missing.append('client_secret')
        return missing

    @property
    def token_url(self) -> str:
        return f"{self.endpoint}/oauth/access_token"

    def query_url(self, query_name: str) -> str:
        return f"{self.endpoint}/ws/schema/query/{query_name}"


class EntityQuery(BaseModel):
    """Describes how one entity type is fetched from PowerSchool."""
    entity_type: SyncEntityType
    query_name: str
    table: str
    paginated: bool = False


ENTITY_QUERIES: Dict[SyncEntityType, EntityQuery] = {
    SyncEntityType.SCHOOLS: EntityQuery(
        entity_type=SyncEntityType.SCHOOLS,
        query_name="org.infocare.sync.schools",
        table="schools",
    ),
    SyncEntityType.TERMS: EntityQuery(
        entity_type=SyncEntityType.TERMS,
        query_name="org.infocare.sync.terms",
        table="terms",
    ),
    SyncEntityType.TEACHERS: EntityQuery(
        entity_type=SyncEntityType.TEACHERS,
        query_name="org.infocare.sync.teachers",
        table="teachers",
    ),
    SyncEntityType.COURSES: EntityQuery(
        entity_type=SyncEntityType.COURSES,
        query_name="org.infocare.sync.courses",
        table="courses",
    ),
    SyncEntityType.CONTACTS: EntityQuery(
        entity_type=SyncEntityType.CONTACTS,
        query_name="org.infocare.sync.emailaddress",
        table="emailaddress",
        paginated=True,
    ),
}


def get_entity_query(entity_type: SyncEntityType) -> EntityQuery:
    """Look up the query descriptor for an entity type."""
    return ENTITY_QUERIES[SyncEntityType(entity_type)]
