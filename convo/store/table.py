"""
Convo Backend — Record Store Tables
====================================

What:  Single-record primitives (read, create, update, delete, list) over one
       physical table, exchanging plain dicts.
How:   Every primitive opens its own AsyncSession and commits before it
       returns. Nothing spans two primitives, which mirrors a hosted record
       store reached over HTTP: there is no transaction to roll back, so
       multi-record consistency belongs to the mapper.
Who:   Used by convo.core.mapper and by services for lookups (e.g. login).

Error Translation:
    missing id on *_or_raise      → NotFoundError (404)
    any SQLAlchemyError           → DatabaseError (500), driver error in context
    transient connection failure  → retried (reads only) with tenacity
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type, Union

from sqlalchemy import String, cast, inspect as sa_inspect, or_, select
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from convo.config import settings
from convo.database import Base, async_session_factory
from convo.exceptions import DatabaseError, NotFoundError

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

# Columns the store manages itself; callers may only set them when restoring
# a snapshot through create()/create_or_update().
METADATA_FIELDS = ("id", "created_at", "updated_at")


@dataclass(frozen=True)
class Filter:
    """
    A declarative condition for `Table.get_many`.

    Operators:
        eq         field == value
        in         field IN value
        icontains  any of the fields contains value (case-insensitive)
        has_any    JSON list field contains at least one of value
    """

    field: Union[str, Tuple[str, ...]]
    op: str
    value: Any

    @property
    def fields(self) -> Tuple[str, ...]:
        return (self.field,) if isinstance(self.field, str) else tuple(self.field)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _read_retry():
    """Tenacity policy for idempotent reads hitting a flaky connection."""
    return retry(
        retry=retry_if_exception_type((OperationalError, InterfaceError)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait, max=settings.retry_max_wait
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


class Table:
    """
    One physical table of the record store.

    Records are plain dicts keyed by column name, always including `id`,
    `created_at` and `updated_at`.
    """

    def __init__(
        self,
        model: Type[Base],
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
    ):
        self.model = model
        self._session_factory = session_factory
        self._columns = tuple(attr.key for attr in sa_inspect(model).column_attrs)

    @property
    def name(self) -> str:
        return self.model.__tablename__

    def __repr__(self) -> str:
        return f"<Table {self.name}>"

    # ── Conversion helpers ────────────────────────────────────────────────

    def _to_record(self, obj: Any) -> Record:
        return {key: getattr(obj, key) for key in self._columns}

    def _column_values(self, values: Record, allow_metadata: bool = False) -> Record:
        unknown = [key for key in values if key not in self._columns]
        if unknown:
            raise ValueError(f"Unknown fields for table '{self.name}': {sorted(unknown)}")
        return {
            key: value
            for key, value in values.items()
            if allow_metadata or key not in METADATA_FIELDS
        }

    def _column(self, field: str):
        if field not in self._columns:
            raise ValueError(f"Unknown field for table '{self.name}': {field}")
        return getattr(self.model, field)

    def _clause(self, flt: Filter):
        columns = [self._column(field) for field in flt.fields]
        if flt.op == "eq":
            return columns[0] == flt.value
        if flt.op == "in":
            return columns[0].in_(list(flt.value))
        if flt.op == "icontains":
            pattern = f"%{_escape_like(str(flt.value))}%"
            return or_(*(column.ilike(pattern, escape="\\") for column in columns))
        if flt.op == "has_any":
            # JSON arrays of ids serialize as '["rec_a", "rec_b"]' on every backend
            return or_(
                *(
                    cast(columns[0], String).like(f'%"{_escape_like(str(v))}"%', escape="\\")
                    for v in flt.value
                )
            )
        raise ValueError(f"Unsupported filter operator: {flt.op}")

    def _wrap(self, operation: str, exc: SQLAlchemyError, **context: Any) -> DatabaseError:
        logger.error(
            "Record store %s on '%s' failed: %s", operation, self.name, exc, exc_info=True
        )
        return DatabaseError(
            context={
                "table": self.name,
                "operation": operation,
                "original_error": type(exc).__name__,
                **context,
            }
        )

    # ── Reads ─────────────────────────────────────────────────────────────

    @_read_retry()
    async def _read(self, record_id: str) -> Optional[Record]:
        async with self._session_factory() as session:
            obj = await session.get(self.model, record_id)
            return self._to_record(obj) if obj is not None else None

    async def read(self, record_id: Optional[str]) -> Optional[Record]:
        """Returns the record or None when the id is unknown (or empty)."""
        if not record_id:
            return None
        try:
            return await self._read(record_id)
        except SQLAlchemyError as e:
            raise self._wrap("read", e, record_id=record_id)

    async def read_or_raise(self, record_id: Optional[str]) -> Record:
        record = await self.read(record_id)
        if record is None:
            raise NotFoundError(resource=self.name, resource_id=record_id)
        return record

    @_read_retry()
    async def _get_many(self, offset: int, limit: int, filters: Sequence[Filter]) -> List[Record]:
        query = select(self.model)
        for flt in filters:
            query = query.where(self._clause(flt))
        query = query.order_by(self.model.created_at, self.model.id).offset(offset).limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [self._to_record(obj) for obj in result.scalars().all()]

    async def get_many(
        self,
        offset: int = 0,
        limit: int = 20,
        filters: Iterable[Filter] = (),
    ) -> List[Record]:
        """Returns up to `limit` records in creation order, skipping `offset`."""
        try:
            return await self._get_many(max(offset, 0), max(limit, 0), list(filters))
        except SQLAlchemyError as e:
            raise self._wrap("get_many", e, offset=offset, limit=limit)

    async def find_first(self, **equals: Any) -> Optional[Record]:
        """First record whose fields equal the given values, or None."""
        filters = [Filter(field, "eq", value) for field, value in equals.items()]
        records = await self.get_many(offset=0, limit=1, filters=filters)
        return records[0] if records else None

    # ── Writes ────────────────────────────────────────────────────────────

    async def create(self, values: Record) -> Record:
        """
        Inserts a record and returns it.

        An explicit `id` (and timestamps) in `values` is honoured so that a
        deleted record can be restored under its original identity.
        """
        data = self._column_values(values, allow_metadata=True)
        try:
            async with self._session_factory() as session:
                obj = self.model(**data)
                session.add(obj)
                await session.commit()
                logger.debug("Created %s record %s", self.name, obj.id)
                return self._to_record(obj)
        except SQLAlchemyError as e:
            raise self._wrap("create", e)

    async def update_or_raise(self, record: Record) -> Record:
        """
        Applies the non-metadata fields of `record` to the stored record with
        the same id. Fields absent from `record` are left untouched.
        """
        record_id = record.get("id")
        data = self._column_values(record)
        try:
            async with self._session_factory() as session:
                obj = await session.get(self.model, record_id) if record_id else None
                if obj is None:
                    raise NotFoundError(resource=self.name, resource_id=record_id)
                for key, value in data.items():
                    setattr(obj, key, value)
                await session.commit()
                logger.debug("Updated %s record %s", self.name, record_id)
                return self._to_record(obj)
        except SQLAlchemyError as e:
            raise self._wrap("update", e, record_id=record_id)

    async def create_or_update(self, record: Record) -> Record:
        """Writes `record` as-is, inserting it if its id no longer exists."""
        record_id = record.get("id")
        data = self._column_values(record, allow_metadata=True)
        try:
            async with self._session_factory() as session:
                obj = await session.get(self.model, record_id) if record_id else None
                if obj is None:
                    obj = self.model(**data)
                    session.add(obj)
                else:
                    for key, value in data.items():
                        if key != "id":
                            setattr(obj, key, value)
                await session.commit()
                logger.debug("Wrote %s record %s", self.name, obj.id)
                return self._to_record(obj)
        except SQLAlchemyError as e:
            raise self._wrap("create_or_update", e, record_id=record_id)

    async def delete(self, record_id: Optional[str]) -> Optional[Record]:
        """Deletes the record and returns its last state, or None if absent."""
        if not record_id:
            return None
        try:
            async with self._session_factory() as session:
                obj = await session.get(self.model, record_id)
                if obj is None:
                    return None
                record = self._to_record(obj)
                await session.delete(obj)
                await session.commit()
                logger.debug("Deleted %s record %s", self.name, record_id)
                return record
        except SQLAlchemyError as e:
            raise self._wrap("delete", e, record_id=record_id)

    async def delete_or_raise(self, record_id: Optional[str]) -> Record:
        record = await self.delete(record_id)
        if record is None:
            raise NotFoundError(resource=self.name, resource_id=record_id)
        return record

