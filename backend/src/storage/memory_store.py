"""
InMemoryRowStore - dict-backed RowStorePort for testing and development

Simulates the row storage engine without a database. Table layout, column
defaults and unique constraints are taken from the SQLAlchemy metadata so the
in-memory rows have the same shape as rows returned by SqlAlchemyRowStore.

Supports failure injection to simulate the engine rejecting a call:

    store = InMemoryRowStore()
    store.fail_on("delete", "profiles", message="permission denied for table profiles")
    result = await purge_account_data(store, account_id)
    assert result.success is False
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy import MetaData, Table, UniqueConstraint

from models import Base
from .ports import Row, RowStorePort, StoreError, require_filter


logger = logging.getLogger(__name__)


@dataclass
class _InjectedFailure:
    operation: str
    table: str
    message: str
    remaining: Optional[int]
    skip: int = 0


class InMemoryRowStore(RowStorePort):
    """
    In-memory row store.

    Every call is applied immediately and independently, exactly like the
    real engine: there is no transaction to roll back when a later call fails.

    Attributes:
        calls: (operation, table) for every call, in order, for assertions
    """

    def __init__(self, metadata: MetaData = Base.metadata):
        self._metadata = metadata
        self._rows: dict[str, list[Row]] = {name: [] for name in metadata.tables}
        self._failures: list[_InjectedFailure] = []
        self.calls: list[tuple[str, str]] = []

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail_on(
        self,
        operation: str,
        table: str,
        message: str = "Simulated storage failure",
        times: Optional[int] = None,
        skip: int = 0,
    ) -> None:
        """Make matching calls raise StoreError.

        The first `skip` matching calls pass through; after that `times` calls
        fail (None = every call).
        """
        self._failures.append(_InjectedFailure(operation, table, message, times, skip))

    def clear_failures(self) -> None:
        self._failures.clear()

    def rows(self, table: str) -> list[Row]:
        """Snapshot of a whole collection (bypasses call logging)."""
        return copy.deepcopy(self._table_rows(table))

    def seed(self, table: str, *rows: Mapping[str, Any]) -> list[Row]:
        """Insert rows without logging or failure injection."""
        return [self._insert_row(table, row) for row in rows]

    # ------------------------------------------------------------------
    # RowStorePort
    # ------------------------------------------------------------------

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
        self._enter("select", table)
        matched = [row for row in self._table_rows(table) if _matches(row, eq, neq, in_)]

        if order_by:
            # NULLs sort last, as in PostgreSQL ascending order
            matched.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=descending)
        if limit is not None:
            matched = matched[:limit]

        if columns:
            return [{c: copy.deepcopy(row.get(c)) for c in columns} for row in matched]
        return copy.deepcopy(matched)

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        self._enter("insert", table)
        return self._insert_row(table, row)

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        eq: Mapping[str, Any],
        in_: Optional[Mapping[str, Iterable[Any]]] = None,
    ) -> int:
        self._enter("update", table)
        require_filter(table, "update", eq, in_)
        sa_table = self._table(table)
        changed = 0
        for row in self._table_rows(table):
            if not _matches(row, eq, None, in_):
                continue
            candidate = {**row, **values}
            for column in sa_table.columns:
                if column.onupdate is not None and column.name not in values:
                    candidate[column.name] = _default_value(column.onupdate)
            self._check_unique(sa_table, candidate, ignore=row)
            row.update(candidate)
            changed += 1
        return changed

    async def delete(
        self,
        table: str,
        *,
        eq: Optional[Mapping[str, Any]] = None,
        in_: Optional[Mapping[str, Iterable[Any]]] = None,
    ) -> int:
        self._enter("delete", table)
        require_filter(table, "delete", eq, in_)
        rows = self._table_rows(table)
        kept = [row for row in rows if not _matches(row, eq, None, in_)]
        removed = len(rows) - len(kept)
        self._rows[table] = kept
        return removed

    async def upsert(self, table: str, row: Mapping[str, Any], *, on_conflict: str) -> Row:
        self._enter("upsert", table)
        key = row.get(on_conflict)
        for existing in self._table_rows(table):
            if existing.get(on_conflict) == key:
                sa_table = self._table(table)
                candidate = {**existing, **row}
                self._check_unique(sa_table, candidate, ignore=existing)
                existing.update(candidate)
                return copy.deepcopy(existing)
        return self._insert_row(table, row)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _enter(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        for failure in self._failures:
            if failure.operation == operation and failure.table == table:
                if failure.skip > 0:
                    failure.skip -= 1
                    continue
                if failure.remaining is not None:
                    failure.remaining -= 1
                    if failure.remaining <= 0:
                        self._failures.remove(failure)
                logger.info(f"InMemoryRowStore: simulating {operation} failure on {table}")
                raise StoreError(failure.message, table=table, operation=operation)

    def _table(self, table: str) -> Table:
        try:
            return self._metadata.tables[table]
        except KeyError:
            raise StoreError(f'relation "{table}" does not exist', table=table)

    def _table_rows(self, table: str) -> list[Row]:
        self._table(table)
        return self._rows.setdefault(table, [])

    def _insert_row(self, table: str, row: Mapping[str, Any]) -> Row:
        sa_table = self._table(table)
        unknown = set(row) - set(sa_table.columns.keys())
        if unknown:
            raise StoreError(
                f'column "{sorted(unknown)[0]}" of relation "{table}" does not exist',
                table=table,
                operation="insert",
            )

        new_row: Row = {}
        for column in sa_table.columns:
            if column.name in row:
                new_row[column.name] = copy.deepcopy(row[column.name])
            elif column.default is not None:
                new_row[column.name] = _default_value(column.default)
            else:
                new_row[column.name] = None

        for column in sa_table.columns:
            if new_row[column.name] is None and not column.nullable:
                raise StoreError(
                    f'null value in column "{column.name}" of relation "{table}" '
                    f'violates not-null constraint',
                    table=table,
                    operation="insert",
                )

        self._check_unique(sa_table, new_row)
        self._rows[table].append(new_row)
        return copy.deepcopy(new_row)

    def _check_unique(self, sa_table: Table, candidate: Row, ignore: Optional[Row] = None) -> None:
        for columns in _unique_column_sets(sa_table):
            key = tuple(candidate.get(c) for c in columns)
            if any(v is None for v in key):
                continue
            for existing in self._rows[sa_table.name]:
                if existing is ignore:
                    continue
                if tuple(existing.get(c) for c in columns) == key:
                    raise StoreError(
                        f'duplicate key value violates unique constraint on '
                        f'"{sa_table.name}" ({", ".join(columns)})',
                        table=sa_table.name,
                    )


def _matches(row: Row, eq, neq, in_) -> bool:
    for column, value in (eq or {}).items():
        if row.get(column) != value:
            return False
    for column, value in (neq or {}).items():
        # SQL: NULL <> value is unknown, so the row is not returned
        if row.get(column) is None or row.get(column) == value:
            return False
    for column, values in (in_ or {}).items():
        if row.get(column) not in list(values):
            return False
    return True


def _default_value(default) -> Any:
    if default.is_callable:
        return default.arg(None)
    if default.is_scalar:
        return copy.deepcopy(default.arg)
    return None


def _unique_column_sets(sa_table: Table) -> list[tuple[str, ...]]:
    sets = [tuple(c.name for c in sa_table.primary_key.columns)]
    for constraint in sa_table.constraints:
        if isinstance(constraint, UniqueConstraint):
            sets.append(tuple(c.name for c in constraint.columns))
    for column in sa_table.columns:
        if column.unique:
            sets.append((column.name,))
    return sets
