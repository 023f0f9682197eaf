"""
Settlement store: reads and conditional writes over SQLAlchemy.

Provides the persistence primitives the settlement engine relies on:
- get: fetch one record by key (raises RecordNotFoundError)
- update: apply one ConditionalWrite
- apply_all: apply several ConditionalWrites in one transaction, all or nothing

Preconditions are compiled into the UPDATE's WHERE clause and the matched row
count is checked, so a stale precondition never mutates a row. A failed
precondition is reported as a WriteResult, not raised.
"""
from typing import Any, Dict, Sequence, Type, TypeVar

import structlog
from sqlalchemy import Update, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from donation_settlement.database.models import Base
from donation_settlement.database.preconditions import ConditionalWrite, WriteResult
from donation_settlement.errors import RecordNotFoundError

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


class _PreconditionFailed(Exception):
    """Aborts the surrounding transaction when a write matched no row."""

    def __init__(self, write: ConditionalWrite):
        super().__init__(write.label)
        self.write = write


def build_update_statement(write: ConditionalWrite) -> Update:
    """
    Compile a ConditionalWrite into a single UPDATE statement.

    The statement only matches the keyed row if every precondition value and
    every non-negative guard still holds.
    """
    model = write.model
    stmt = update(model)

    for name, value in write.key.items():
        stmt = stmt.where(getattr(model, name) == value)

    if write.precondition is not None:
        for name, value in write.precondition.expected_values().items():
            column = getattr(model, name)
            stmt = stmt.where(column.is_(None) if value is None else column == value)

    for name in write.keep_non_negative:
        column = getattr(model, name)
        stmt = stmt.where(column + write.increments.get(name, 0) >= 0)

    values: Dict[str, Any] = dict(write.set_values)
    for name, delta in write.increments.items():
        values[name] = getattr(model, name) + delta

    return stmt.values(**values).execution_options(synchronize_session=False)


class SettlementStore:
    """Record access for the settlement engine, one session per operation."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, model: Type[ModelT], **key: Any) -> ModelT:
        """
        Fetch one record by its key columns.

        Raises:
            RecordNotFoundError: If no row matches the key
        """
        async with self._session_factory() as session:
            result = await session.execute(select(model).filter_by(**key))
            row = result.scalar_one_or_none()

        if row is None:
            logger.warning("store_record_not_found", table=model.__tablename__, key=key)
            raise RecordNotFoundError(model.__tablename__, dict(key))
        return row

    async def update(self, write: ConditionalWrite) -> WriteResult:
        """Apply a single conditional write."""
        return await self.apply_all([write])

    async def apply_all(self, writes: Sequence[ConditionalWrite]) -> WriteResult:
        """
        Apply every write in one transaction, or none of them.

        Each statement must match exactly one row; the first that does not
        rolls the whole transaction back.
        """
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    for write in writes:
                        result = await session.execute(build_update_statement(write))
                        if result.rowcount != 1:
                            raise _PreconditionFailed(write)
            except _PreconditionFailed as failed:
                logger.warning(
                    "store_precondition_failed",
                    failed_write=failed.write.label,
                    table=failed.write.model.__tablename__,
                    key=dict(failed.write.key),
                )
                return WriteResult.condition_failed(failed.write.label)

        logger.info("store_writes_applied", writes=[write.label for write in writes])
        return WriteResult.ok()
