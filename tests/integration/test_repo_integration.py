import uuid

import pytest
from faker import Faker

from contactdb.services.builder import repo
from contactdb.services.builder.models import (
    ContactDatabase,
    DatabaseStatistics,
    DatabaseStatus,
    IssuedQuery,
    QuerySource,
    StructuredLocation,
)

fake = Faker()

pytestmark = pytest.mark.asyncio


def _database(user_id: str = "user_1") -> ContactDatabase:
    return ContactDatabase(
        id=str(uuid.uuid4()),
        user_id=user_id,
        name=fake.company(),
        search_query="dentists",
        location=StructuredLocation(country="US", state="TX", city="Austin"),
        target=100,
        credits_per_query=50,
        queries=[IssuedQuery(query="dentists in Austin, TX, US", source=QuerySource.BASE)],
        request_id="req-1",
    )


@pytest.mark.integration
class TestRepositoryIntegration:
    """Integration tests for repository functions with real database."""

    async def test_insert_and_get(self, test_db, clean_db):
        database = _database()

        inserted = await repo.insert_database(database)
        fetched = await repo.get_database(database.id)

        assert inserted.id == database.id
        assert fetched.status == DatabaseStatus.PENDING
        assert fetched.location == database.location
        assert fetched.queries == database.queries
        assert fetched.merged_query_index == -1
        assert fetched.created_at is not None

    async def test_user_scoping(self, test_db, clean_db):
        database = await repo.insert_database(_database("owner"))

        assert await repo.get_user_database(database.id, "owner") is not None
        assert await repo.get_user_database(database.id, "someone_else") is None
        assert [d.id for d in await repo.list_user_databases("owner")] == [database.id]
        assert await repo.delete_database(database.id, "someone_else") is False
        assert await repo.delete_database(database.id, "owner") is True
        assert await repo.get_database(database.id) is None

    async def test_query_lifecycle(self, test_db, clean_db):
        database = await repo.insert_database(_database())
        stats = DatabaseStatistics(queries_processed=1, total_results=40, unique_contacts=38)

        assert await repo.save_merge_state(database.id, 0, stats) is True
        queries = database.queries + [
            IssuedQuery(query="dentists in TX, US", source=QuerySource.STATE, value="TX")
        ]
        assert await repo.record_next_query(database.id, queries, database.location) is True
        assert await repo.update_request(database.id, "req-2", 1) is True

        fetched = await repo.get_database(database.id)
        assert fetched.status == DatabaseStatus.PROCESSING
        assert fetched.request_id == "req-2"
        assert fetched.current_query_index == 1
        assert fetched.merged_query_index == 0
        assert fetched.statistics == stats
        assert len(fetched.queries) == 2

    async def test_progress_snapshot(self, test_db, clean_db):
        database = await repo.insert_database(_database())
        records = [{"name": "A"}, {"name": "B"}]

        await repo.save_progress(database.id, records, 0, 2)
        progress = await repo.get_progress(database.id)
        assert progress["last_processed_index"] == 0
        assert progress["total_results_count"] == 2

        await repo.save_progress(database.id, None, 1, 2)
        progress = await repo.get_progress(database.id)
        assert progress["stored_results"] is None
        assert progress["last_processed_index"] == 1

    async def test_finalize_only_once(self, test_db, clean_db):
        database = await repo.insert_database(_database())
        stats = DatabaseStatistics(queries_processed=1, total_results=10, unique_contacts=10)

        assert await repo.complete_database(
            database.id, {"json": "p/a.json"}, ["json"], stats
        ) is True
        assert await repo.fail_database(database.id, "late failure") is False
        assert await repo.complete_database(database.id, {}, [], stats) is False
        assert await repo.record_next_query(database.id, database.queries, database.location) is False

        fetched = await repo.get_database(database.id)
        assert fetched.status == DatabaseStatus.COMPLETED
        assert fetched.formats == ["json"]
        assert fetched.export_progress == 100
        assert fetched.error_message is None

    async def test_credit_deduction(self, test_db, clean_db):
        async with test_db.acquire() as conn:
            await conn.execute(
                "INSERT INTO user_contact_credits (user_id, credits_available) VALUES ($1, $2)",
                "user_1",
                100,
            )

        balance = await repo.deduct_contact_credits("user_1", 60)
        assert balance["credits_available"] == 40
        assert balance["credits_used"] == 60
        assert await repo.deduct_contact_credits("user_1", 60) is None
        assert (await repo.get_contact_credits("user_1"))["credits_available"] == 40
