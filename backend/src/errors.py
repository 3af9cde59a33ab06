"""Error taxonomy and the result value returned by every public operation.

Services raise the AdminError subclasses below internally. Public operations
never let an exception cross their boundary: the `admin_operation` decorator
converts any failure into a failed OperationResult carrying a specific,
user-presentable message.
"""

import functools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import ValidationError

from observability.request_id import operation_scope
from storage.ports import StoreError


logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    NOT_AUTHENTICATED = "not-authenticated"
    NOT_AUTHORIZED = "not-authorized"
    TARGET_IS_SELF = "target-is-self"
    TARGET_IS_PROTECTED = "target-is-protected"
    BLOCKED_BY_DEPENDENTS = "blocked-by-dependents"
    NOT_FOUND = "not-found"
    INVALID_INPUT = "invalid-input"
    STORAGE_FAILURE = "storage-failure"


class AdminError(Exception):
    """Base exception for policy and consistency failures."""

    code: ErrorCode = ErrorCode.STORAGE_FAILURE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationRequired(AdminError):
    code = ErrorCode.NOT_AUTHENTICATED

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class NotAuthorized(AdminError):
    code = ErrorCode.NOT_AUTHORIZED


class InvalidTarget(AdminError):
    """Self-targeting or a protected target (superadmin, organization owner)."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.TARGET_IS_PROTECTED):
        super().__init__(message)
        self.code = code


class DependentDataBlocks(AdminError):
    code = ErrorCode.BLOCKED_BY_DEPENDENTS


class NotFound(AdminError):
    code = ErrorCode.NOT_FOUND


class InvalidInput(AdminError):
    code = ErrorCode.INVALID_INPUT


class StorageFailure(AdminError):
    """Wraps the underlying store's error message verbatim."""

    code = ErrorCode.STORAGE_FAILURE

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.step = step

    @classmethod
    def from_store_error(cls, error: StoreError, step: Optional[str] = None) -> "StorageFailure":
        message = f"{step}: {error.message}" if step else error.message
        return cls(message, step=step)


@dataclass
class OperationResult:
    """
    Outcome of a public operation.

    Attributes:
        success: Whether the operation completed
        message: Human-readable message (always set on failure)
        code: Error code on failure
        data: Operation-specific payload (counts, affected ids, loaded rows)
    """
    success: bool
    message: Optional[str] = None
    code: Optional[ErrorCode] = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: Optional[str] = None, **data: Any) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def from_error(cls, error: AdminError) -> "OperationResult":
        return cls(success=False, message=error.message, code=error.code)


T = TypeVar("T")


def admin_operation(name: str, fallback_message: str) -> Callable:
    """Run an async service method as a public operation.

    - binds an operation id for log correlation
    - converts AdminError, StoreError and pydantic ValidationError into a
      failed OperationResult
    - converts anything else into a storage-failure result, logging the
      traceback; fallback_message is used only when the exception has no text
    """
    def decorator(func: Callable[..., Awaitable[OperationResult]]) -> Callable[..., Awaitable[OperationResult]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> OperationResult:
            with operation_scope():
                try:
                    return await func(*args, **kwargs)
                except AdminError as e:
                    logger.info(
                        f"{name} rejected: {e.message}",
                        extra={"operation": name},
                    )
                    return OperationResult.from_error(e)
                except StoreError as e:
                    logger.error(
                        f"{name} storage failure: {e.message}",
                        extra={"operation": name},
                    )
                    return OperationResult.from_error(StorageFailure.from_store_error(e))
                except ValidationError as e:
                    first = e.errors()[0]
                    return OperationResult.from_error(InvalidInput(first.get("msg", fallback_message)))
                except Exception as e:
                    logger.exception(f"{name} failed unexpectedly", extra={"operation": name})
                    return OperationResult(
                        success=False,
                        message=str(e) or fallback_message,
                        code=ErrorCode.STORAGE_FAILURE,
                    )
        return wrapper
    return decorator
