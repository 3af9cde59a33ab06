"""Unit tests for account administration.

Tests cover:
- Account listing (privileged callers only)
- Global role changes: self-protection, superadmin protection, idempotency
- Audit log listing with email enrichment and limits
- Audit writes never fail the operation that triggered them
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.roles import GlobalRole
from conftest import rows_where
from errors import ErrorCode
from storage.ports import ADMIN_LOG, PROFILES


def seed_log(store, entry_id, minutes_ago, **fields):
    created_at = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc) - timedelta(minutes=minutes_ago)
    return store.seed(
        ADMIN_LOG,
        {"id": entry_id, "action": "role_change", "details": {}, "created_at": created_at, **fields},
    )[0]


class TestFetchUsers:

    @pytest.mark.asyncio
    async def test_admin_lists_accounts(self, core, session, tenants):
        session.sign_in(tenants.ada)

        result = await core.admin.fetch_users()

        assert result.success is True
        users = {u.id: u for u in result.data["users"]}
        assert len(users) == 9
        assert users[tenants.owner].display_name == "Owen Owner"
        assert users[tenants.member].display_name == "mia"
        assert users[tenants.root].role == GlobalRole.SUPERADMIN

    @pytest.mark.asyncio
    async def test_regular_user_not_authorized(self, core, session, tenants):
        session.sign_in(tenants.member)

        result = await core.admin.fetch_users()

        assert result.success is False
        assert result.code == ErrorCode.NOT_AUTHORIZED

    @pytest.mark.asyncio
    async def test_signed_out(self, core, tenants):
        result = await core.admin.fetch_users()

        assert result.code == ErrorCode.NOT_AUTHENTICATED


class TestUpdateUserRole:

    @pytest.mark.asyncio
    async def test_admin_promotes_user(self, core, store, session, tenants):
        session.sign_in(tenants.ada)

        result = await core.admin.update_user_role(tenants.member, "admin")

        assert result.success is True
        assert rows_where(store, PROFILES, id=tenants.member)[0]["role"] == "admin"
        [entry] = store.rows(ADMIN_LOG)
        assert entry["action"] == "role_change"
        assert entry["admin_id"] == tenants.ada
        assert entry["target_user_id"] == tenants.member
        assert entry["details"] == {
            "old_role": "user",
            "new_role": "admin",
            "target_email": "mia@example.com",
        }

    @pytest.mark.asyncio
    async def test_same_role_is_a_no_op(self, core, store, session, tenants):
        session.sign_in(tenants.ada)
        store.calls.clear()

        result = await core.admin.update_user_role(tenants.member, "user")

        assert result.success is True
        assert result.message == "Role unchanged"
        assert ("update", PROFILES) not in store.calls
        assert store.rows(ADMIN_LOG) == []

    @pytest.mark.asyncio
    async def test_own_role_cannot_change(self, core, session, tenants):
        session.sign_in(tenants.root)

        result = await core.admin.update_user_role(tenants.root, "user")

        assert result.code == ErrorCode.TARGET_IS_SELF
        assert result.message == "You cannot change your own role"

    @pytest.mark.asyncio
    async def test_own_role_refused_even_when_unchanged(self, core, store, session, tenants):
        session.sign_in(tenants.ada)

        result = await core.admin.update_user_role(tenants.ada, "admin")

        assert result.code == ErrorCode.TARGET_IS_SELF
        assert ("update", PROFILES) not in store.calls
        assert store.rows(ADMIN_LOG) == []

    @pytest.mark.asyncio
    async def test_admin_cannot_demote_superadmin(self, core, store, session, tenants):
        session.sign_in(tenants.ada)

        result = await core.admin.update_user_role(tenants.root, "user")

        assert result.code == ErrorCode.NOT_AUTHORIZED
        assert result.message == "Only Super Admin can modify Super Admin roles"
        assert rows_where(store, PROFILES, id=tenants.root)[0]["role"] == "superadmin"

    @pytest.mark.asyncio
    async def test_admin_cannot_grant_superadmin(self, core, session, tenants):
        session.sign_in(tenants.ada)

        result = await core.admin.update_user_role(tenants.member, "superadmin")

        assert result.code == ErrorCode.NOT_AUTHORIZED

    @pytest.mark.asyncio
    async def test_superadmin_demotes_superadmin(self, core, store, session, tenants):
        session.sign_in(tenants.root)

        result = await core.admin.update_user_role(tenants.root2, "admin")

        assert result.success is True
        assert rows_where(store, PROFILES, id=tenants.root2)[0]["role"] == "admin"

    @pytest.mark.asyncio
    async def test_unknown_role_rejected(self, core, store, session, tenants):
        session.sign_in(tenants.root)

        result = await core.admin.update_user_role(tenants.member, "owner")

        assert result.code == ErrorCode.INVALID_INPUT
        assert rows_where(store, PROFILES, id=tenants.member)[0]["role"] == "user"

    @pytest.mark.asyncio
    async def test_unknown_account(self, core, session, tenants):
        session.sign_in(tenants.root)

        result = await core.admin.update_user_role("ghost", "admin")

        assert result.code == ErrorCode.NOT_FOUND
        assert result.message == "User not found"

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_role_change(self, core, store, session, tenants):
        session.sign_in(tenants.root)
        store.fail_on("insert", ADMIN_LOG, message="permission denied for table admin_log")

        result = await core.admin.update_user_role(tenants.member, "admin")

        assert result.success is True
        assert rows_where(store, PROFILES, id=tenants.member)[0]["role"] == "admin"
        assert store.rows(ADMIN_LOG) == []


class TestFetchAdminLog:

    @pytest.mark.asyncio
    async def test_newest_first_with_emails(self, core, store, session, tenants):
        seed_log(store, "old", 10, admin_id=tenants.root, target_user_id=tenants.member)
        seed_log(store, "new", 1, admin_id=tenants.ada, target_user_id=tenants.owner)
        session.sign_in(tenants.ada)

        result = await core.admin.fetch_admin_log()

        entries = result.data["entries"]
        assert [e.id for e in entries] == ["new", "old"]
        assert entries[0].admin_email == "ada@example.com"
        assert entries[0].target_email == "owen@example.com"
        assert entries[1].admin_email == "root@example.com"

    @pytest.mark.asyncio
    async def test_purged_accounts_fall_back_to_details(self, core, store, session, tenants):
        seed_log(
            store,
            "gone",
            1,
            action="user_delete",
            admin_id="former-admin",
            target_user_id="former-user",
            details={"deleted_email": "former@example.com"},
        )
        session.sign_in(tenants.root)

        result = await core.admin.fetch_admin_log()

        [entry] = result.data["entries"]
        assert entry.admin_email == "Unknown"
        assert entry.target_email == "former@example.com"

    @pytest.mark.asyncio
    async def test_limit(self, core, store, session, tenants):
        for i in range(5):
            seed_log(store, f"e{i}", i)
        session.sign_in(tenants.root)

        result = await core.admin.fetch_admin_log(limit=2)

        assert [e.id for e in result.data["entries"]] == ["e0", "e1"]

    @pytest.mark.asyncio
    async def test_default_limit_from_settings(self, core, store, session, settings, tenants):
        for i in range(settings.ADMIN_LOG_DEFAULT_LIMIT + 3):
            seed_log(store, f"e{i}", i)
        session.sign_in(tenants.root)

        result = await core.admin.fetch_admin_log()

        assert len(result.data["entries"]) == settings.ADMIN_LOG_DEFAULT_LIMIT

    @pytest.mark.asyncio
    async def test_regular_user_not_authorized(self, core, session, tenants):
        session.sign_in(tenants.owner)

        result = await core.admin.fetch_admin_log()

        assert result.code == ErrorCode.NOT_AUTHORIZED
