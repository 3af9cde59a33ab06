"""Row storage port and adapters."""

from .ports import RowStorePort, StoreError
from .memory_store import InMemoryRowStore
from .sqlalchemy_store import SqlAlchemyRowStore

__all__ = [
    "RowStorePort",
    "StoreError",
    "InMemoryRowStore",
    "SqlAlchemyRowStore",
]
