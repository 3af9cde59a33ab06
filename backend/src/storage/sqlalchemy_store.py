"""SQLAlchemy adapter for the RowStorePort.

Each call opens its own AsyncSession, executes one statement and commits.
Nothing is ever held open between calls, so a procedure made of several calls
gets no atomicity from this adapter; ordering and idempotence are the callers'
responsibility.
"""

import logging
from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy import MetaData, Table, delete, select, update
from sqlalchemy import insert as sa_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from database import build_session_factory, get_db_session
from models import Base
from .ports import Row, RowStorePort, StoreError, require_filter


logger = logging.getLogger(__name__)


class SqlAlchemyRowStore(RowStorePort):
    """Row store backed by an async SQLAlchemy engine.

    Args:
        engine: AsyncEngine for the target database
        metadata: Table definitions (defaults to the package models)
    """

    def __init__(self, engine: AsyncEngine, metadata: MetaData = Base.metadata):
        self.engine = engine
        self.session_factory = build_session_factory(engine)
        self.metadata = metadata

    async def select(
        self,
        table: str,
        *,
        columns: Optional[Sequence[str]] = None,
        eq: Optional[Mapping[str, Any]] = None,
        neq: Optional[Mapping[str, Any]] = None,
        in_: Optional[Mapping[str, Iterable[Any]]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Row]:
        sa_table = self._table(table)
        selected = [sa_table.c[c] for c in columns] if columns else [sa_table]
        stmt = select(*selected)
        for condition in _conditions(sa_table, eq, neq, in_):
            stmt = stmt.where(condition)
        if order_by:
            column = sa_table.c[order_by]
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self._execute(stmt, table, "select")
        return [dict(row._mapping) for row in result]

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        sa_table = self._table(table)
        stmt = sa_insert(sa_table).values(**row).returning(*sa_table.c)
        result = await self._execute(stmt, table, "insert")
        return dict(result[0]._mapping)

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        eq: Mapping[str, Any],
        in_: Optional[Mapping[str, Iterable[Any]]] = None,
    ) -> int:
        require_filter(table, "update", eq, in_)
        sa_table = self._table(table)
        stmt = update(sa_table).values(**values)
        for condition in _conditions(sa_table, eq, None, in_):
            stmt = stmt.where(condition)
        return await self._execute_rowcount(stmt, table, "update")

    async def delete(
        self,
        table: str,
        *,
        eq: Optional[Mapping[str, Any]] = None,
        in_: Optional[Mapping[str, Iterable[Any]]] = None,
    ) -> int:
        require_filter(table, "delete", eq, in_)
        sa_table = self._table(table)
        stmt = delete(sa_table)
        for condition in _conditions(sa_table, eq, None, in_):
            stmt = stmt.where(condition)
        return await self._execute_rowcount(stmt, table, "delete")

    async def upsert(self, table: str, row: Mapping[str, Any], *, on_conflict: str) -> Row:
        sa_table = self._table(table)
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(sa_table)
        elif dialect == "sqlite":
            stmt = sqlite_insert(sa_table)
        else:
            raise StoreError(f"Upsert is not supported on dialect '{dialect}'", table=table, operation="upsert")

        stmt = stmt.values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=[sa_table.c[on_conflict]],
            set_={k: v for k, v in row.items() if k != on_conflict},
        ).returning(*sa_table.c)
        result = await self._execute(stmt, table, "upsert")
        return dict(result[0]._mapping)

    def _table(self, table: str) -> Table:
        try:
            return self.metadata.tables[table]
        except KeyError:
            raise StoreError(f'relation "{table}" does not exist', table=table)

    async def _execute(self, stmt, table: str, operation: str) -> list:
        try:
            async with get_db_session(self.session_factory) as session:
                result = await session.execute(stmt)
                return list(result.all())
        except SQLAlchemyError as e:
            message = str(getattr(e, "orig", None) or e)
            logger.error(f"Row store {operation} on {table} failed: {message}")
            raise StoreError(message, table=table, operation=operation)

    async def _execute_rowcount(self, stmt, table: str, operation: str) -> int:
        try:
            async with get_db_session(self.session_factory) as session:
                result = await session.execute(stmt)
                return result.rowcount or 0
        except SQLAlchemyError as e:
            message = str(getattr(e, "orig", None) or e)
            logger.error(f"Row store {operation} on {table} failed: {message}")
            raise StoreError(message, table=table, operation=operation)


def _conditions(sa_table: Table, eq, neq, in_) -> list:
    conditions = []
    for column, value in (eq or {}).items():
        conditions.append(sa_table.c[column].is_(None) if value is None else sa_table.c[column] == value)
    for column, value in (neq or {}).items():
        conditions.append(sa_table.c[column] != value)
    for column, values in (in_ or {}).items():
        conditions.append(sa_table.c[column].in_(list(values)))
    return conditions
