"""Operation ID management for log correlation.

Every public admin operation runs under one operation id so that the log
lines of a multi-step deletion can be grouped together. The id lives in a
context variable and therefore follows the operation across awaits.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

# Context variable for operation_id (async-safe)
operation_id_var: ContextVar[Optional[str]] = ContextVar("operation_id", default=None)


def generate_operation_id() -> str:
    return str(uuid.uuid4())


def get_operation_id() -> str:
    """Current operation id, or "no-operation-id" outside an operation."""
    return operation_id_var.get() or "no-operation-id"


@contextmanager
def operation_scope(operation_id: Optional[str] = None) -> Iterator[str]:
    """Bind an operation id for the duration of the block.

    Nested scopes reuse the outer id so that a deletion calling the purge
    logs under a single id.
    """
    current = operation_id_var.get()
    if current is not None:
        yield current
        return

    token = operation_id_var.set(operation_id or generate_operation_id())
    try:
        yield operation_id_var.get()
    finally:
        operation_id_var.reset(token)
