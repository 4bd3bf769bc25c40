"""Database repository for the database builder service."""

import json
from typing import Any, Optional

from loguru import logger

from contactdb.db.db import get_pool
from contactdb.db.sql_loader import credit_queries, database_queries
from contactdb.services.builder.models import (
    ContactDatabase,
    DatabaseStatistics,
    IssuedQuery,
    LocationDescriptor,
    parse_location,
)


def _decode(value: Any, default: Any) -> Any:
    """asyncpg returns jsonb columns as text."""
    if value is None:
        return default
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def _to_database(row) -> ContactDatabase:
    data = dict(row)
    data["location"] = parse_location(
        _decode(data.get("location"), None), data.get("query_type")
    )
    data["enrichments"] = _decode(data.get("enrichments"), [])
    data["queries"] = _decode(data.get("queries"), [])
    data["statistics"] = _decode(data.get("statistics"), {})
    data["file_paths"] = _decode(data.get("file_paths"), {})
    data["formats"] = _decode(data.get("formats"), [])
    return ContactDatabase(**data)


def _dump_location(location: LocationDescriptor) -> str:
    return location.model_dump_json()


def _dump_queries(queries: list[IssuedQuery]) -> str:
    return json.dumps([q.model_dump(mode="json") for q in queries])


async def get_database(database_id: str) -> Optional[ContactDatabase]:
    """Get a database build by ID."""
    pool = await get_pool()
    row = await database_queries.get_database(pool, database_id=database_id)
    return _to_database(row) if row else None


async def get_user_database(database_id: str, user_id: str) -> Optional[ContactDatabase]:
    """Get a database build by ID if it belongs to the user."""
    pool = await get_pool()
    row = await database_queries.get_user_database(
        pool, database_id=database_id, user_id=user_id
    )
    return _to_database(row) if row else None


async def list_user_databases(user_id: str) -> list[ContactDatabase]:
    """List a user's database builds, newest first."""
    pool = await get_pool()
    rows = await database_queries.list_user_databases(pool, user_id=user_id)
    return [_to_database(r) for r in rows or []]


async def insert_database(database: ContactDatabase) -> ContactDatabase:
    """Insert a new database build and return the stored row."""
    pool = await get_pool()
    row = await database_queries.insert_database(
        pool,
        database_id=database.id,
        user_id=database.user_id,
        name=database.name,
        search_query=database.search_query,
        query_type=database.query_type.value,
        location=_dump_location(database.location),
        target=database.target,
        credits_per_query=database.credits_per_query,
        language=database.language,
        enrichments=json.dumps(database.enrichments),
        queries=_dump_queries(database.queries),
        request_id=database.request_id,
        statistics=database.statistics.model_dump_json(),
    )
    logger.info(f"Inserted database {database.id} for user {database.user_id}")
    return _to_database(row)


async def record_next_query(
    database_id: str, queries: list[IssuedQuery], location: LocationDescriptor
) -> bool:
    """Persist the query history and remaining location lists.

    Returns False when the build no longer exists or is already finalized.
    """
    pool = await get_pool()
    row = await database_queries.record_next_query(
        pool,
        database_id=database_id,
        queries=_dump_queries(queries),
        location=_dump_location(location),
    )
    return row is not None


async def update_request(
    database_id: str, request_id: str, current_query_index: int
) -> bool:
    """Point a build at its new in-flight provider request."""
    pool = await get_pool()
    row = await database_queries.update_request(
        pool,
        database_id=database_id,
        request_id=request_id,
        current_query_index=current_query_index,
    )
    return row is not None


async def save_merge_state(
    database_id: str,
    merged_query_index: int,
    statistics: DatabaseStatistics,
    checkpoint_path: Optional[str] = None,
) -> bool:
    """Record that a query's results were merged, with updated statistics."""
    pool = await get_pool()
    row = await database_queries.save_merge_state(
        pool,
        database_id=database_id,
        merged_query_index=merged_query_index,
        statistics=statistics.model_dump_json(),
        checkpoint_path=checkpoint_path,
    )
    return row is not None


async def get_progress(database_id: str) -> Optional[dict]:
    """Get the raw inline progress snapshot for a build."""
    pool = await get_pool()
    row = await database_queries.get_progress(pool, database_id=database_id)
    return dict(row) if row else None


async def save_progress(
    database_id: str,
    stored_results: Optional[list[dict]],
    last_processed_index: int,
    total_results_count: int,
) -> bool:
    """Store the inline snapshot. `stored_results=None` stores a count-only checkpoint."""
    pool = await get_pool()
    row = await database_queries.save_progress(
        pool,
        database_id=database_id,
        stored_results=(
            json.dumps(stored_results, default=str)
            if stored_results is not None
            else None
        ),
        last_processed_index=last_processed_index,
        total_results_count=total_results_count,
    )
    return row is not None


async def update_export_progress(database_id: str, export_progress: int) -> None:
    """Report export generation progress."""
    pool = await get_pool()
    await database_queries.update_export_progress(
        pool, database_id=database_id, export_progress=export_progress
    )


async def complete_database(
    database_id: str,
    file_paths: dict[str, str],
    formats: list[str],
    statistics: DatabaseStatistics,
) -> bool:
    """Mark a build completed. Returns False if it was already finalized or deleted."""
    pool = await get_pool()
    row = await database_queries.complete_database(
        pool,
        database_id=database_id,
        file_paths=json.dumps(file_paths),
        formats=json.dumps(formats),
        statistics=statistics.model_dump_json(),
    )
    return row is not None


async def add_export_file(
    database_id: str, export_format: str, path: str, formats: list[str]
) -> bool:
    """Attach an export file to a completed build. Returns False if it is not completed."""
    pool = await get_pool()
    row = await database_queries.add_export_file(
        pool,
        database_id=database_id,
        file_paths=json.dumps({export_format: path}),
        formats=json.dumps(formats),
    )
    return row is not None


async def fail_database(database_id: str, error_message: Optional[str]) -> bool:
    """Mark a build failed. Returns False if it was already finalized or deleted."""
    pool = await get_pool()
    row = await database_queries.fail_database(
        pool, database_id=database_id, error_message=error_message
    )
    return row is not None


async def delete_database(database_id: str, user_id: str) -> bool:
    """Delete a build owned by the user."""
    pool = await get_pool()
    row = await database_queries.delete_database(
        pool, database_id=database_id, user_id=user_id
    )
    return row is not None


async def get_contact_credits(user_id: str) -> Optional[dict]:
    """Get a user's contact credit balance."""
    pool = await get_pool()
    row = await credit_queries.get_contact_credits(pool, user_id=user_id)
    return dict(row) if row else None


async def deduct_contact_credits(user_id: str, credits: int) -> Optional[dict]:
    """Deduct credits. Returns the new balance, or None if the balance was too low."""
    pool = await get_pool()
    row = await credit_queries.deduct_contact_credits(
        pool, user_id=user_id, credits=credits
    )
    return dict(row) if row else None
