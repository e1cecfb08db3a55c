"""
Generic keyed upsert repository.

Rows are matched on ``external_id``. New rows go through INSERT ... ON CONFLICT DO NOTHING,
so two runs storing the same key at once never violate the unique constraint. Writes
are flushed but never committed here: the caller owns the transaction so a whole sync
run commits or rolls back as one.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, Set, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from sis_sync.core.database import Base


logger = logging.getLogger(__name__)


ModelT = TypeVar("ModelT", bound=Base)

# Keeps IN (...) lists under SQLite's bound-parameter limit
LOOKUP_CHUNK_SIZE = 500

# Rows per multi-row INSERT, bounded by the same limit
INSERT_CHUNK_SIZE = 50


@dataclass
class UpsertStats:
    created: int = 0
    updated: int = 0
    unchanged: int = 0

    @property
    def total(self) -> int:
        return self.created + self.updated + self.unchanged

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class UpsertRepository(Generic[ModelT]):
    """Idempotent persistence for one externally keyed table."""

    model: Type[ModelT]
    key_column = "external_id"

    def __init__(self, db: AsyncSession):
        self.db = db

    def _order_by(self):
        return self.model.id

    async def find_all(self) -> List[ModelT]:
        result = await self.db.execute(select(self.model).order_by(self._order_by()))
        return list(result.scalars().all())

    async def find_by_external_id(self, external_id: int) -> Optional[ModelT]:
        result = await self.db.execute(
            select(self.model).where(getattr(self.model, self.key_column) == external_id)
        )
        return result.scalar_one_or_none()

    async def find_by_external_ids(self, external_ids: Sequence[int]) -> Dict[int, ModelT]:
        """Map external id -> row for the ids that exist locally."""
        key = getattr(self.model, self.key_column)
        ids = list(dict.fromkeys(external_ids))
        found: Dict[int, ModelT] = {}
        for start in range(0, len(ids), LOOKUP_CHUNK_SIZE):
            chunk = ids[start:start + LOOKUP_CHUNK_SIZE]
            result = await self.db.execute(select(self.model).where(key.in_(chunk)))
            for row in result.scalars():
                found[getattr(row, self.key_column)] = row
        return found

    def _insert(self):
        table = self.model.__table__
        if self.db.get_bind().dialect.name == 'postgresql':
            return pg_insert(table)
        return sqlite_insert(table)

    async def insert_missing(self, rows: Sequence[Mapping[str, Any]]) -> Set[int]:
        """
        Insert rows whose key is not stored yet and skip the rest.

        A key stored by a concurrent transaction is skipped rather than raising an
        IntegrityError.

        Returns:
            The external ids that this call inserted
        """
        key = self.model.__table__.c[self.key_column]
        inserted: Set[int] = set()
        for start in range(0, len(rows), INSERT_CHUNK_SIZE):
            chunk = [dict(row) for row in rows[start:start + INSERT_CHUNK_SIZE]]
            stmt = (
                self._insert()
                .values(chunk)
                .on_conflict_do_nothing(index_elements=[self.key_column])
                .returning(key)
            )
            result = await self.db.execute(stmt)
            inserted.update(result.scalars().all())
        return inserted

    async def upsert_many(self, rows: Sequence[Mapping[str, Any]]) -> UpsertStats:
        """
        Insert or update rows keyed by external id.

        Duplicate keys within one batch collapse to the last occurrence. Columns whose
        stored value already matches are left untouched, so re-running identical data
        produces no writes. A key that another run inserts between the lookup and the
        insert is compared and updated like any stored row.

        Args:
            rows: Column values per record; each must include ``external_id``

        Returns:
            Counts of created, updated and unchanged rows
        """
        stats = UpsertStats()
        by_key: Dict[int, Mapping[str, Any]] = {}
        for row in rows:
            by_key[row[self.key_column]] = row

        if not by_key:
            return stats

        existing = await self.find_by_external_ids(list(by_key))

        missing = [key for key in by_key if key not in existing]
        inserted = await self.insert_missing([by_key[key] for key in missing])
        stats.created = len(inserted)

        raced = [key for key in missing if key not in inserted]
        if raced:
            logger.info(f"{len(raced)} {self.model.__tablename__} rows were stored concurrently, updating instead")
            existing.update(await self.find_by_external_ids(raced))

        for key, values in by_key.items():
            if key in inserted:
                continue

            instance = existing[key]
            changed = False
            for field, value in values.items():
                if getattr(instance, field) != value:
                    setattr(instance, field, value)
                    changed = True

            if changed:
                stats.updated += 1
            else:
                stats.unchanged += 1

        await self.db.flush()
        return stats
