"""Prefect flows that drive database builds to completion."""

import asyncio
from typing import Any, Optional

from prefect import flow, task

from contactdb.config import settings
from contactdb.db.db import close_pool
from contactdb.services.builder.models import (
    AdvanceResult,
    AdvanceStatus,
    CreateDatabaseParams,
    QueryType,
)
from contactdb.services.builder.service import Service

FINAL_STATUSES = {AdvanceStatus.COMPLETED, AdvanceStatus.FAILED, AdvanceStatus.DELETED}


@task(log_prints=True)
async def advance_task(database_id: str) -> AdvanceResult:
    """Run a single polling tick."""
    svc = Service(outscraper_api_key=settings.outscraper_api_key)
    return await svc.advance_job(database_id)


async def _poll(
    database_id: str,
    interval_seconds: float,
    max_ticks: int,
) -> dict:
    result = AdvanceResult(status=AdvanceStatus.PROCESSING)
    ticks = 0
    while ticks < max_ticks:
        ticks += 1
        result = await advance_task(database_id)
        print(f"[Database {database_id}] tick {ticks}: {result.status.value}")
        if result.status in FINAL_STATUSES:
            break
        await asyncio.sleep(interval_seconds)

    return {
        "database_id": database_id,
        "status": result.status.value,
        "ticks": ticks,
        "statistics": (
            result.database.statistics.model_dump() if result.database else None
        ),
        "message": result.message,
    }


@flow(name="contactdb-poll", log_prints=True)
async def poll_database_flow(
    database_id: str,
    interval_seconds: Optional[float] = None,
    max_ticks: Optional[int] = None,
) -> dict:
    """Advance a build until it completes, fails, disappears or runs out of ticks.

    Args:
        database_id: Build to poll.
        interval_seconds: Delay between ticks (defaults to settings).
        max_ticks: Upper bound on ticks (defaults to settings).
    """
    try:
        return await _poll(
            database_id,
            settings.poll_interval_seconds if interval_seconds is None else interval_seconds,
            max_ticks or settings.poll_max_ticks,
        )
    finally:
        await close_pool()


@flow(name="contactdb-build", log_prints=True)
async def build_database_flow(
    user_id: str,
    name: str,
    search_query: str,
    query_type: str = QueryType.SIMPLE.value,
    location: Any = None,
    credits: int = 50,
    target: Optional[int] = None,
    language: str = "en",
    interval_seconds: Optional[float] = None,
    max_ticks: Optional[int] = None,
) -> dict:
    """Create a build and poll it to a final state.

    Args:
        user_id: Owner of the build.
        name: Display name, also used for export file names.
        search_query: Business term to search for (e.g. 'dentists').
        query_type: simple, structured or free_text.
        location: Location descriptor (dict, JSON or newline-separated text).
        credits: Credits charged, also the per-query result limit.
        target: Unique contacts wanted (defaults to credits).
        language: Result language.
    """
    try:
        svc = Service(outscraper_api_key=settings.outscraper_api_key)
        database = await svc.create_database(
            user_id,
            CreateDatabaseParams(
                name=name,
                search_query=search_query,
                query_type=QueryType(query_type),
                location=location,
                credits=credits,
                target=target,
                language=language,
            ),
        )
        print(f"Created database {database.id}, first query '{database.queries[0].query}'")

        return await _poll(
            database.id,
            settings.poll_interval_seconds if interval_seconds is None else interval_seconds,
            max_ticks or settings.poll_max_ticks,
        )
    finally:
        await close_pool()
