"""Purge primitive: remove every record owned by one account.

Steps, in order:
1. Contents of every project owned by the account
2. Those projects
3. The account's settings row
4. Every membership held by the account
5. The account (profile) row

The store offers no transaction spanning these calls. Every step is a filtered
delete, so re-running the whole sequence after a partial failure is safe: rows
already gone simply match nothing. A failure reports the step that failed and
callers retry the whole purge rather than resuming mid-sequence.
"""

import logging
from dataclasses import dataclass
from typing import Any

from errors import OperationResult, StorageFailure, admin_operation
from storage.ports import (
    ORGANIZATION_MEMBERS,
    PROFILES,
    PROJECT_DATA,
    PROJECTS,
    USER_SETTINGS,
    RowStorePort,
    StoreError,
)

logger = logging.getLogger(__name__)


@dataclass
class PurgeCounts:
    projects_deleted: int = 0
    contents_deleted: int = 0
    memberships_deleted: int = 0
    profile_deleted: bool = False

    def as_details(self) -> dict[str, Any]:
        return {
            "projects_deleted": self.projects_deleted,
            "memberships_deleted": self.memberships_deleted,
        }


async def delete_projects(store: RowStorePort, step: str, **eq: Any) -> tuple[int, int]:
    """Delete the projects matching `eq`, contents first.

    Args:
        store: Row store
        step: Step label used in failure messages (e.g. "Projects delete failed")
        **eq: Equality filter on the projects collection

    Returns:
        (projects deleted, content rows deleted)

    Raises:
        StorageFailure: lookup or delete rejected by the store
    """
    try:
        projects = await store.select(PROJECTS, columns=["id"], eq=eq)
    except StoreError as e:
        raise StorageFailure.from_store_error(e, step)

    if not projects:
        return 0, 0

    project_ids = [p["id"] for p in projects]
    try:
        contents_deleted = await store.delete(PROJECT_DATA, in_={"project_id": project_ids})
    except StoreError as e:
        raise StorageFailure.from_store_error(e, "Project contents delete failed")

    try:
        projects_deleted = await store.delete(PROJECTS, in_={"id": project_ids})
    except StoreError as e:
        raise StorageFailure.from_store_error(e, step)

    return projects_deleted, contents_deleted


async def purge_account(store: RowStorePort, account_id: str) -> PurgeCounts:
    """Run the purge steps for one account.

    Raises:
        StorageFailure: a step failed; earlier steps have already been applied
    """
    counts = PurgeCounts()

    counts.projects_deleted, counts.contents_deleted = await delete_projects(
        store, "Projects delete failed", owner_id=account_id
    )

    try:
        await store.delete(USER_SETTINGS, eq={"user_id": account_id})
    except StoreError as e:
        raise StorageFailure.from_store_error(e, "Settings delete failed")

    try:
        counts.memberships_deleted = await store.delete(
            ORGANIZATION_MEMBERS, eq={"user_id": account_id}
        )
    except StoreError as e:
        raise StorageFailure.from_store_error(e, "Membership delete failed")

    try:
        deleted = await store.delete(PROFILES, eq={"id": account_id})
    except StoreError as e:
        logger.error(
            f"Profile delete failed for {account_id}; account left partially purged",
            extra={"target_id": account_id},
        )
        raise StorageFailure.from_store_error(e, "Profile delete failed")
    counts.profile_deleted = deleted > 0

    logger.info(
        f"Purged account {account_id}: {counts.projects_deleted} projects, "
        f"{counts.memberships_deleted} memberships",
        extra={"target_id": account_id},
    )
    return counts


@admin_operation("purge_account_data", "Purge failed")
async def purge_account_data(store: RowStorePort, account_id: str) -> OperationResult:
    """Purge one account and report the outcome as a result value.

    A failed result means the account may be partially purged; retry the whole
    call.
    """
    counts = await purge_account(store, account_id)
    return OperationResult.ok(**counts.as_details())
