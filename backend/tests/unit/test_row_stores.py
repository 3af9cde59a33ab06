"""Unit tests for the row store adapters.

Both adapters run the same contract tests: the in-memory store directly, the
SQLAlchemy store against a throwaway SQLite file (aiosqlite driver).
"""

import pytest
import pytest_asyncio

from database import build_engine, init_models
from storage.memory_store import InMemoryRowStore
from storage.ports import (
    ORGANIZATION_INSTRUCTIONS,
    ORGANIZATION_MEMBERS,
    ORGANIZATIONS,
    PROFILES,
    StoreError,
)
from storage.sqlalchemy_store import SqlAlchemyRowStore


@pytest_asyncio.fixture(params=["memory", "sqlalchemy"])
async def row_store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryRowStore()
        return

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}", echo=False)
    await init_models(engine)
    yield SqlAlchemyRowStore(engine)
    await engine.dispose()


async def seed_profiles(store):
    await store.insert(PROFILES, {"id": "a", "email": "a@example.com", "role": "admin"})
    await store.insert(PROFILES, {"id": "b", "email": "b@example.com", "active_organization_id": None})
    await store.insert(PROFILES, {"id": "c", "email": None})


class TestRowStoreContract:

    @pytest.mark.asyncio
    async def test_insert_applies_defaults(self, row_store):
        row = await row_store.insert(ORGANIZATIONS, {"name": "Acme", "slug": "acme"})

        assert row["id"]
        assert row["created_at"] is not None
        assert row["logo_url"] is None

    @pytest.mark.asyncio
    async def test_select_filters(self, row_store):
        await seed_profiles(row_store)

        admins = await row_store.select(PROFILES, columns=["id"], eq={"role": "admin"})
        by_ids = await row_store.select(PROFILES, columns=["id"], in_={"id": ["b", "c"]}, order_by="id")
        nobody = await row_store.select(PROFILES, in_={"id": []})

        assert admins == [{"id": "a"}]
        assert by_ids == [{"id": "b"}, {"id": "c"}]
        assert nobody == []

    @pytest.mark.asyncio
    async def test_eq_none_matches_null(self, row_store):
        await seed_profiles(row_store)

        rows = await row_store.select(PROFILES, columns=["id"], eq={"email": None})

        assert rows == [{"id": "c"}]

    @pytest.mark.asyncio
    async def test_neq_skips_null(self, row_store):
        await seed_profiles(row_store)

        rows = await row_store.select(
            PROFILES, columns=["id"], neq={"email": "a@example.com"}, order_by="id"
        )

        assert rows == [{"id": "b"}]

    @pytest.mark.asyncio
    async def test_order_and_limit(self, row_store):
        await seed_profiles(row_store)

        rows = await row_store.select(PROFILES, columns=["id"], order_by="id", descending=True, limit=2)

        assert rows == [{"id": "c"}, {"id": "b"}]

    @pytest.mark.asyncio
    async def test_update_and_delete_report_counts(self, row_store):
        await seed_profiles(row_store)

        updated = await row_store.update(PROFILES, {"display_name": "Bee"}, eq={"id": "b"})
        missing = await row_store.update(PROFILES, {"display_name": "X"}, eq={"id": "zzz"})
        deleted = await row_store.delete(PROFILES, in_={"id": ["a", "c", "zzz"]})

        assert (updated, missing, deleted) == (1, 0, 2)
        assert await row_store.select(PROFILES, columns=["id", "display_name"]) == [
            {"id": "b", "display_name": "Bee"}
        ]

    @pytest.mark.asyncio
    async def test_unfiltered_mutations_refused(self, row_store):
        await seed_profiles(row_store)

        with pytest.raises(StoreError):
            await row_store.delete(PROFILES)
        with pytest.raises(StoreError):
            await row_store.update(PROFILES, {"role": "user"}, eq={})

        assert len(await row_store.select(PROFILES)) == 3

    @pytest.mark.asyncio
    async def test_unique_constraint(self, row_store):
        org = await row_store.insert(ORGANIZATIONS, {"name": "Acme", "slug": "acme"})
        await row_store.insert(PROFILES, {"id": "a"})
        await row_store.insert(ORGANIZATION_MEMBERS, {"organization_id": org["id"], "user_id": "a"})

        with pytest.raises(StoreError):
            await row_store.insert(ORGANIZATIONS, {"name": "Other", "slug": "acme"})
        with pytest.raises(StoreError):
            await row_store.insert(ORGANIZATION_MEMBERS, {"organization_id": org["id"], "user_id": "a"})

    @pytest.mark.asyncio
    async def test_not_null_constraint(self, row_store):
        with pytest.raises(StoreError):
            await row_store.insert(ORGANIZATIONS, {"slug": "nameless"})

    @pytest.mark.asyncio
    async def test_unknown_table(self, row_store):
        with pytest.raises(StoreError) as exc:
            await row_store.select("no_such_table")

        assert 'relation "no_such_table" does not exist' in exc.value.message

    @pytest.mark.asyncio
    async def test_upsert_inserts_then_updates(self, row_store):
        org = await row_store.insert(ORGANIZATIONS, {"name": "Acme", "slug": "acme"})

        first = await row_store.upsert(
            ORGANIZATION_INSTRUCTIONS,
            {"organization_id": org["id"], "instructions": {"x": "1"}},
            on_conflict="organization_id",
        )
        second = await row_store.upsert(
            ORGANIZATION_INSTRUCTIONS,
            {"organization_id": org["id"], "instructions": None, "updated_by": "a"},
            on_conflict="organization_id",
        )

        assert first["id"] == second["id"]
        assert second["instructions"] is None
        [row] = await row_store.select(ORGANIZATION_INSTRUCTIONS)
        assert row["updated_by"] == "a"

    @pytest.mark.asyncio
    async def test_json_round_trip(self, row_store):
        org = await row_store.insert(ORGANIZATIONS, {"name": "Acme", "slug": "acme"})
        await row_store.insert(
            ORGANIZATION_INSTRUCTIONS,
            {"organization_id": org["id"], "instructions": {"greeting": "Živjo"}},
        )

        row = await row_store.select_one(ORGANIZATION_INSTRUCTIONS, eq={"organization_id": org["id"]})

        assert row["instructions"] == {"greeting": "Živjo"}


class TestInMemoryFailureInjection:

    @pytest.mark.asyncio
    async def test_times_limits_failures(self):
        store = InMemoryRowStore()
        store.fail_on("select", PROFILES, message="timeout", times=1)

        with pytest.raises(StoreError) as exc:
            await store.select(PROFILES)
        assert exc.value.message == "timeout"
        assert await store.select(PROFILES) == []

    @pytest.mark.asyncio
    async def test_skip_lets_first_calls_through(self):
        store = InMemoryRowStore()
        store.fail_on("select", PROFILES, skip=1)

        assert await store.select(PROFILES) == []
        with pytest.raises(StoreError):
            await store.select(PROFILES)

    @pytest.mark.asyncio
    async def test_seed_bypasses_failures_and_call_log(self):
        store = InMemoryRowStore()
        store.fail_on("insert", PROFILES)

        store.seed(PROFILES, {"id": "a"})

        assert store.calls == []
        assert store.rows(PROFILES)[0]["role"] == "user"

    @pytest.mark.asyncio
    async def test_returned_rows_are_copies(self):
        store = InMemoryRowStore()
        store.seed(PROFILES, {"id": "a", "email": "a@example.com"})

        [row] = await store.select(PROFILES)
        row["email"] = "changed"

        assert store.rows(PROFILES)[0]["email"] == "a@example.com"
