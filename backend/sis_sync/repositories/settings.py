"""
Credential store backed by the single-row PowerSchool settings table.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from sis_sync.core.sis_config import PowerSchoolCredential
from sis_sync.models.powerschool_settings import PowerSchoolSettings, MAIN_SETTINGS_ID
from sis_sync.utils import to_naive_utc


logger = logging.getLogger(__name__)


class CredentialStore:
    """Reads and writes the PowerSchool connection settings and cached token."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_row(self) -> Optional[PowerSchoolSettings]:
        return await self.db.get(PowerSchoolSettings, MAIN_SETTINGS_ID)

    async def _get_or_create_row(self) -> PowerSchoolSettings:
        row = await self._get_row()
        if row is None:
            row = PowerSchoolSettings(id=MAIN_SETTINGS_ID)
            self.db.add(row)
        return row

    async def get_config(self) -> PowerSchoolCredential:
        """Return the stored settings; an empty credential when nothing is stored."""
        row = await self._get_row()
        if row is None:
            return PowerSchoolCredential()
        return PowerSchoolCredential.model_validate(row)

    async def update_config(
        self,
        endpoint: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        school_id: Optional[int] = None,
    ) -> PowerSchoolCredential:
        """Update the provided connection fields; changing credentials drops the cached token."""
        row = await self._get_or_create_row()
        credentials_changed = False

        if endpoint is not None:
            credentials_changed |= row.endpoint != endpoint
            row.endpoint = endpoint
        if client_id is not None:
            credentials_changed |= row.client_id != client_id
            row.client_id = client_id
        if client_secret is not None:
            credentials_changed |= row.client_secret != client_secret
            row.client_secret = client_secret
        if school_id is not None:
            row.school_id = school_id

        if credentials_changed:
            row.access_token = None
            row.token_expires_at = None

        await self.db.commit()
        return PowerSchoolCredential.model_validate(row)

    async def seed(
        self,
        endpoint: Optional[str],
        client_id: Optional[str],
        client_secret: Optional[str],
        school_id: Optional[int] = None,
    ) -> bool:
        """Fill in connection fields that are not stored yet. Returns True when anything changed."""
        row = await self._get_or_create_row()
        changed = False
        for field, value in (
            ('endpoint', endpoint),
            ('client_id', client_id),
            ('client_secret', client_secret),
            ('school_id', school_id),
        ):
            if value is not None and value != "" and getattr(row, field) in (None, ""):
                setattr(row, field, value)
                changed = True

        if changed:
            await self.db.commit()
            logger.info("Seeded PowerSchool settings from environment")
        else:
            await self.db.rollback()
        return changed

    async def update_token(self, access_token: str, expires_at: datetime) -> None:
        """Persist a freshly issued access token. Aware expiry times are stored as naive UTC."""
        row = await self._get_or_create_row()
        row.access_token = access_token
        row.token_expires_at = to_naive_utc(expires_at)
        await self.db.commit()

    async def clear_token(self) -> None:
        row = await self._get_row()
        if row is None:
            return
        row.access_token = None
        row.token_expires_at = None
        await self.db.commit()
