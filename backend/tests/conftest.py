"""
Shared fixtures: an in-memory database and PowerSchool payload builders.
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

import sis_sync.models  # noqa: F401
from sis_sync.core.database import Base
from sis_sync.repositories.settings import CredentialStore


PS_ENDPOINT = "https://ps.example.edu"


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def configured_store(db_session):
    """Credential store holding complete PowerSchool settings."""
    store = CredentialStore(db_session)
    await store.update_config(
        endpoint=PS_ENDPOINT,
        client_id="client-id",
        client_secret="client-secret",
        school_id=100,
    )
    return store


def ps_record(table, **fields):
    """Build one PowerSchool named-query record."""
    return {
        "id": fields.get("id", fields.get("emailaddressid")),
        "name": table,
        "tables": {table: {key: str(value) for key, value in fields.items()}},
    }


@pytest.fixture
def make_record():
    return ps_record
