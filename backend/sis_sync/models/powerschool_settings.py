"""
SQLAlchemy model for the stored PowerSchool connection settings.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.sql import func

from sis_sync.core.database import Base


MAIN_SETTINGS_ID = "main"


class PowerSchoolSettings(Base):
    """Single-row table holding PowerSchool credentials and the cached access token."""

    __tablename__ = "powerschool_settings"

    id = Column(String(20), primary_key=True, default=MAIN_SETTINGS_ID)

    # Connection
    endpoint = Column(String(500), nullable=True)
    client_id = Column(String(255), nullable=True)
    client_secret = Column(String(255), nullable=True)
    school_id = Column(Integer, nullable=True)  # default upstream school for term sync

    # Token cache
    access_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
