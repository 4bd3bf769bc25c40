import asyncio
import json
from typing import Optional

import typer

from contactdb.config import settings
from contactdb.db.db import close_pool
from contactdb.services.builder.models import CreateDatabaseParams, QueryType
from contactdb.services.builder.service import Service

app = typer.Typer()


def _service() -> Service:
    return Service(outscraper_api_key=settings.outscraper_api_key)


def _parse_location(location: Optional[str]):
    if not location:
        return None
    text = location.strip()
    if text.startswith("{"):
        return json.loads(text)
    return text.replace("|", "\n")


@app.command()
def create(
    user_id: str = typer.Argument(..., help="Owner of the database"),
    name: str = typer.Argument(..., help="Database name"),
    search_query: str = typer.Argument(..., help="Business term, e.g. 'dentists'"),
    query_type: QueryType = typer.Option(QueryType.SIMPLE, "--type", "-t", help="simple, structured or free_text"),
    location: str = typer.Option(None, "--location", "-l", help="JSON object, or '|'-separated locations for free text"),
    credits: int = typer.Option(50, "--credits", "-c", help="Credits to spend (per-query result limit)"),
    target: int = typer.Option(None, "--target", help="Unique contacts wanted (defaults to credits)"),
    language: str = typer.Option("en", "--language", help="Result language"),
):
    """
    Create a database build and submit its first query.

    Examples:
        contactdb create user_1 "Austin dentists" dentists --type structured \\
            --location '{"country": "US", "state": "TX", "city": "Austin"}'

        contactdb create user_1 "Clinics" clinics --type free_text --location "Austin, TX|Dallas, TX"
    """

    async def run():
        try:
            database = await _service().create_database(
                user_id,
                CreateDatabaseParams(
                    name=name,
                    search_query=search_query,
                    query_type=query_type,
                    location=_parse_location(location),
                    credits=credits,
                    target=target,
                    language=language,
                ),
            )
            print(f"Created database {database.id}")
            print(f"First query: {database.queries[0].query}")
        finally:
            await close_pool()

    asyncio.run(run())


@app.command()
def advance(
    database_id: str = typer.Argument(..., help="Database to advance"),
):
    """Run a single polling tick."""

    async def run():
        try:
            result = await _service().advance_job(database_id)
            print(f"Status: {result.status.value}")
            if result.database:
                stats = result.database.statistics
                print(
                    f"Queries: {stats.queries_processed}, "
                    f"unique contacts: {stats.unique_contacts}/{result.database.target}"
                )
            if result.message:
                print(f"Message: {result.message}")
        finally:
            await close_pool()

    asyncio.run(run())


@app.command()
def poll(
    database_id: str = typer.Argument(..., help="Database to poll"),
    interval: float = typer.Option(None, "--interval", "-i", help="Seconds between ticks"),
    max_ticks: int = typer.Option(None, "--max-ticks", help="Stop after this many ticks"),
):
    """Poll a build until it completes or fails (runs the Prefect polling flow)."""
    from contactdb.services.builder.flows import poll_database_flow

    result = asyncio.run(
        poll_database_flow(database_id, interval_seconds=interval, max_ticks=max_ticks)
    )
    print(json.dumps(result, indent=2, default=str))
