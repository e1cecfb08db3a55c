"""
SQLAlchemy models for reference data synchronized from PowerSchool.

Every table is keyed for upserts by ``external_id``, the PowerSchool id of the record.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Float,
    ForeignKey, Index, text
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from sis_sync.core.database import Base


class School(Base):
    """A PowerSchool school."""

    __tablename__ = "schools"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(Integer, unique=True, index=True, nullable=False)
    external_dcid = Column(Integer, nullable=True)
    name = Column(String(255), nullable=False)
    abbreviation = Column(String(50), nullable=True)
    school_number = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    terms = relationship("Term", back_populates="school")
    teachers = relationship("Teacher", back_populates="school")


class Term(Base):
    """A PowerSchool term: a full academic year or a sub-period of one."""

    __tablename__ = "terms"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(Integer, unique=True, index=True, nullable=False)
    external_dcid = Column(Integer, nullable=True)
    name = Column(String(255), nullable=False)
    abbreviation = Column(String(50), nullable=True)
    first_day = Column(Date, nullable=False)
    last_day = Column(Date, nullable=False)
    year_id = Column(Integer, nullable=True)
    is_year_record = Column(Boolean, default=False, nullable=False)
    is_current = Column(Boolean, default=False, nullable=False)
    school_id = Column(Integer, ForeignKey("schools.id"), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    school = relationship("School", back_populates="terms")

    __table_args__ = (
        # At most one current term across the table
        Index(
            'uq_terms_single_current',
            is_current,
            unique=True,
            sqlite_where=text('is_current = 1'),
            postgresql_where=text('is_current'),
        ),
    )


class Teacher(Base):
    """A PowerSchool staff member."""

    __tablename__ = "teachers"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(Integer, unique=True, index=True, nullable=False)
    external_dcid = Column(Integer, nullable=False)
    first_name = Column(String(255), nullable=False, default="")
    last_name = Column(String(255), nullable=False, default="")
    display_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    staff_status = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=False, nullable=False)
    school_id = Column(Integer, ForeignKey("schools.id"), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    school = relationship("School", back_populates="teachers")


class Course(Base):
    """A PowerSchool course."""

    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(Integer, unique=True, index=True, nullable=False)
    external_dcid = Column(Integer, nullable=False)
    course_number = Column(String(50), nullable=False, default="")
    course_name = Column(String(255), nullable=False, default="")
    credit_hours = Column(Float, nullable=False, default=0.0)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class EmailAddress(Base):
    """A contact email address."""

    __tablename__ = "email_addresses"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(Integer, unique=True, index=True, nullable=False)
    email_address = Column(String(320), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
