"""Observability module.

Provides structured logging and operation-id correlation.
"""

from .logging_config import configure_logging
from .request_id import operation_id_var, get_operation_id, generate_operation_id, operation_scope

__all__ = [
    # Logging
    "configure_logging",
    # Operation ID
    "operation_id_var",
    "get_operation_id",
    "generate_operation_id",
    "operation_scope",
]
