"""Session port: who is calling.

Credential verification, second-factor challenges and session management
live outside this package. Services only need three things from them: the
current account id, a way to end the session, and a way to remove the
credential record once an account has been purged.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from errors import AuthenticationRequired
from storage.ports import PROFILES, RowStorePort
from .roles import GlobalRole, is_privileged, is_superadmin


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """The authenticated account on whose behalf an operation runs."""
    account_id: str
    email: Optional[str]
    role: GlobalRole

    @property
    def is_superadmin(self) -> bool:
        return is_superadmin(self.role)

    @property
    def is_privileged(self) -> bool:
        return is_privileged(self.role)


class AuthSessionPort(ABC):
    """Interface to the external session / credential service."""

    @abstractmethod
    async def current_account_id(self) -> Optional[str]:
        """Id of the signed-in account, or None."""
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass

    @abstractmethod
    async def delete_credentials(self, account_id: str) -> None:
        """Remove the credential record of a purged account.

        May raise when the session service does not grant this right to the
        caller; callers treat that as a warning.
        """
        pass


class InMemoryAuthSession(AuthSessionPort):
    """Session stand-in for tests and local tooling."""

    def __init__(self, account_id: Optional[str] = None, can_delete_credentials: bool = True):
        self.account_id = account_id
        self.can_delete_credentials = can_delete_credentials
        self.deleted_credentials: list[str] = []
        self.sign_out_count = 0

    def sign_in(self, account_id: str) -> None:
        self.account_id = account_id

    async def current_account_id(self) -> Optional[str]:
        return self.account_id

    async def sign_out(self) -> None:
        self.sign_out_count += 1
        self.account_id = None

    async def delete_credentials(self, account_id: str) -> None:
        if not self.can_delete_credentials:
            raise PermissionError("User not allowed")
        self.deleted_credentials.append(account_id)


async def resolve_caller(session: AuthSessionPort, store: RowStorePort) -> Caller:
    """Load the caller's profile; the stored role is authoritative.

    Raises:
        AuthenticationRequired: no session, or the session's profile is gone
    """
    account_id = await session.current_account_id()
    if not account_id:
        raise AuthenticationRequired()

    profile = await store.select_one(
        PROFILES, columns=["id", "email", "role"], eq={"id": account_id}
    )
    if profile is None:
        logger.warning(f"Session account {account_id} has no profile")
        raise AuthenticationRequired("Account profile not found")

    return Caller(
        account_id=account_id,
        email=profile.get("email"),
        role=GlobalRole.parse(profile.get("role")),
    )


async def try_delete_credentials(session: AuthSessionPort, account_id: str) -> bool:
    """Best-effort credential removal after a successful purge."""
    try:
        await session.delete_credentials(account_id)
        return True
    except Exception as e:
        logger.warning(
            f"Credential removal for {account_id} not available: {e}",
            extra={"target_id": account_id},
        )
        return False
