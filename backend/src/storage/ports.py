"""
RowStorePort - Port interface for the underlying row storage engine

Domain services depend only on this interface. The engine offers per-row
create/read/update/delete and conditional queries, but NOT transactions that
span several calls: every call is committed (or fails) on its own.

Implementations:
- SqlAlchemyRowStore: async SQLAlchemy engine (PostgreSQL in production)
- InMemoryRowStore: dict-backed store for tests and local development
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping, Optional, Sequence


# Collections
PROFILES = "profiles"
USER_SETTINGS = "user_settings"
ORGANIZATIONS = "organizations"
ORGANIZATION_MEMBERS = "organization_members"
ORGANIZATION_INSTRUCTIONS = "organization_instructions"
GLOBAL_SETTINGS = "global_settings"
PROJECTS = "projects"
PROJECT_DATA = "project_data"
ADMIN_LOG = "admin_log"

Row = dict[str, Any]


class StoreError(Exception):
    """
    Raised by store implementations when a call fails.

    The message is the engine's own error text; services pass it through
    verbatim inside StorageFailure.
    """

    def __init__(self, message: str, table: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.table = table
        self.operation = operation


class RowStorePort(ABC):
    """
    Abstract interface for named record collections.

    Filter arguments:
        eq: column -> value, all must match (None matches SQL NULL)
        neq: column -> value, none may match
        in_: column -> iterable of accepted values (empty iterable matches nothing)

    Deleting or updating rows that do not exist is not an error: the call
    reports zero affected rows. Mutations without any filter are refused.
    """

    @abstractmethod
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
        """Return matching rows as plain dicts."""
        pass

    @abstractmethod
    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        """Insert one row and return it with engine-side defaults applied."""
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        eq: Mapping[str, Any],
        in_: Optional[Mapping[str, Iterable[Any]]] = None,
    ) -> int:
        """Update matching rows, returning the number of rows changed."""
        pass

    @abstractmethod
    async def delete(
        self,
        table: str,
        *,
        eq: Optional[Mapping[str, Any]] = None,
        in_: Optional[Mapping[str, Iterable[Any]]] = None,
    ) -> int:
        """Delete matching rows, returning the number of rows removed."""
        pass

    @abstractmethod
    async def upsert(self, table: str, row: Mapping[str, Any], *, on_conflict: str) -> Row:
        """Insert, or update the row whose `on_conflict` column matches."""
        pass

    async def select_one(self, table: str, **filters: Any) -> Optional[Row]:
        """First matching row or None."""
        rows = await self.select(table, limit=1, **filters)
        return rows[0] if rows else None


def require_filter(table: str, operation: str, eq, in_) -> None:
    """Refuse unfiltered mutations (they would touch the whole collection)."""
    if not eq and not in_:
        raise StoreError(
            f"Refusing unfiltered {operation} on '{table}'",
            table=table,
            operation=operation,
        )
