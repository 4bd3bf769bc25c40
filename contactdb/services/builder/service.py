"""Database builder service: creates builds and drives them to completion.

A build is advanced one polling tick at a time by `advance_job`. Each tick
checks the in-flight provider request, merges a finished page into the
accumulated results, and then either issues the next query or finalizes.
Ticks may be retried or overlap, so every step is safe to repeat:

- merging is keyed by record identity, and statistics are only bumped the
  first time a query's page is merged (`merged_query_index`);
- a new query is written to the history before it is submitted, and a
  tick that finds a recorded query without a provider request resubmits
  it before doing anything else;
- finalization is guarded in SQL so only the first caller wins.
"""

import json
import uuid
from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger

from contactdb.core.logging import database_id_var, log_execution_time
from contactdb.services.builder import repo
from contactdb.services.builder.accumulator import (
    ResultSet,
    flatten_results,
    merge_results,
    should_checkpoint,
)
from contactdb.services.builder.evaluator import Decision, evaluate
from contactdb.services.builder.exceptions import (
    DatabaseNotFoundError,
    ExportError,
    InsufficientCreditsError,
    StorageError,
)
from contactdb.services.builder.exporter import (
    WRITERS,
    ExportFormat,
    encode,
    generate_exports,
    sanitize_file_name,
)
from contactdb.services.builder.location import is_specific
from contactdb.services.builder.models import (
    AdvanceResult,
    AdvanceStatus,
    ContactDatabase,
    CreateDatabaseParams,
    DatabaseStatistics,
    DatabaseStatus,
    NextQuery,
    RequestState,
    SearchOptions,
    StructuredLocation,
    parse_location,
)
from contactdb.services.builder.progress import INLINE_SNAPSHOT_LIMIT, ProgressStore
from contactdb.services.builder.sequencer import initial_query, next_query
from contactdb.services.builder.sources.base import SearchProvider
from contactdb.services.builder.sources.outscraper import OutscraperSource
from contactdb.services.storage import BlobStorage, database_path

EXHAUSTED_MESSAGE = "All queries failed and no alternative queries remain"


class IService(ABC):
    """Interface for the database builder service."""

    @abstractmethod
    async def create_database(
        self, user_id: str, params: CreateDatabaseParams
    ) -> ContactDatabase: ...

    @abstractmethod
    async def advance_job(self, database_id: str) -> AdvanceResult: ...

    @abstractmethod
    async def get_database(
        self, database_id: str, user_id: str
    ) -> Optional[ContactDatabase]: ...

    @abstractmethod
    async def list_databases(self, user_id: str) -> list[ContactDatabase]: ...

    @abstractmethod
    async def get_download_url(
        self, database_id: str, user_id: str, export_format: ExportFormat
    ) -> str: ...

    @abstractmethod
    async def export_format(
        self, database_id: str, user_id: str, export_format: ExportFormat
    ) -> str: ...

    @abstractmethod
    async def delete_database(self, database_id: str, user_id: str) -> bool: ...


class Service(IService):
    """Database builder service: query expansion, accumulation and export."""

    def __init__(
        self,
        outscraper_api_key: str,
        storage: Optional[BlobStorage] = None,
        provider: Optional[SearchProvider] = None,
    ):
        self.provider = provider or OutscraperSource(api_key=outscraper_api_key)
        self.storage = storage or BlobStorage()
        self.progress = ProgressStore(self.storage)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_database(
        self, user_id: str, params: CreateDatabaseParams
    ) -> ContactDatabase:
        """Create a build: check credits, submit the first query, store it as pending."""
        balance = await repo.get_contact_credits(user_id)
        if not balance:
            raise InsufficientCreditsError(f"No contact credits found for user {user_id}")
        if balance["credits_available"] < params.credits:
            raise InsufficientCreditsError(
                f"You need {params.credits} credits but only have "
                f"{balance['credits_available']}"
            )

        location = parse_location(params.location, params.query_type.value)
        first: NextQuery = initial_query(params.search_query, location)

        database = ContactDatabase(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=params.name,
            search_query=params.search_query,
            query_type=params.query_type,
            location=first.location,
            target=params.target or params.credits,
            credits_per_query=params.credits,
            language=params.language,
            enrichments=params.enrichments,
            queries=[first.issued],
        )

        database.request_id = await self.provider.submit_query(
            first.query, self._search_options(database)
        )
        database = await repo.insert_database(database)

        if not await repo.deduct_contact_credits(user_id, params.credits):
            logger.error(
                f"[Database {database.id}] Failed to deduct {params.credits} credits "
                f"from user {user_id}"
            )

        logger.info(
            f"[Database {database.id}] Created '{database.name}' with first query "
            f"'{first.query}' (target {database.target})"
        )
        return database

    # ------------------------------------------------------------------
    # Polling tick
    # ------------------------------------------------------------------

    @log_execution_time
    async def advance_job(self, database_id: str) -> AdvanceResult:
        """Run one polling tick for a build.

        Unexpected errors never fail the build: they are reported as an
        `error` result and the next tick retries from the same state.
        """
        database_id_var.set(database_id)
        try:
            return await self._advance(database_id)
        except Exception as e:
            logger.error(f"[Database {database_id}] Tick failed, will retry: {e}")
            return AdvanceResult(status=AdvanceStatus.ERROR, message=str(e))

    async def _advance(self, database_id: str) -> AdvanceResult:
        database = await repo.get_database(database_id)
        if not database:
            return AdvanceResult(
                status=AdvanceStatus.DELETED, message="Database no longer exists"
            )

        if database.status.is_terminal:
            return self._terminal_result(database)

        if database.has_unsubmitted_query or not database.request_id:
            logger.warning(
                f"[Database {database_id}] Resubmitting recorded query "
                f"#{len(database.queries) - 1}"
            )
            return await self._submit(database, len(database.queries) - 1)

        result = await self.provider.get_status(database.request_id)

        if result.state is RequestState.RUNNING:
            return AdvanceResult(status=AdvanceStatus.PROCESSING, database=database)

        if result.state is RequestState.FAILED:
            failed = database.queries[database.current_query_index].query
            logger.warning(
                f"[Database {database_id}] Query '{failed}' failed: {result.message}"
            )
            return await self._recover(database, result.message)

        return await self._merge_and_decide(database, result.data)

    async def _merge_and_decide(
        self, database: ContactDatabase, data
    ) -> AdvanceResult:
        page = flatten_results(data)
        prior = await self.progress.load(database.id)
        merged = merge_results(prior.results, page)

        newly_merged = not database.current_page_merged
        statistics = DatabaseStatistics(
            queries_processed=database.current_query_index + 1,
            total_results=database.statistics.total_results
            + (len(page) if newly_merged else 0),
            unique_contacts=len(merged),
        )

        checkpoint = None
        if len(merged) >= INLINE_SNAPSHOT_LIMIT or should_checkpoint(
            prior.count, len(merged), database.current_query_index
        ):
            checkpoint = await self.progress.checkpoint(database.id, merged)
        await self.progress.save(database.id, merged, database.current_query_index)

        saved = await repo.save_merge_state(
            database.id, database.current_query_index, statistics, checkpoint
        )
        if not saved:
            return await self._reload_result(database.id)

        database = database.model_copy(
            update={
                "statistics": statistics,
                "merged_query_index": database.current_query_index,
                "checkpoint_path": checkpoint or database.checkpoint_path,
            }
        )
        logger.info(
            f"[Database {database.id}] Merged {len(page)} results: "
            f"{statistics.unique_contacts}/{database.target} unique after "
            f"{statistics.queries_processed} queries"
        )

        decision = evaluate(
            unique_contacts=statistics.unique_contacts,
            target=database.target,
            specific=is_specific(database.location),
            queries_processed=statistics.queries_processed,
        )
        if decision is Decision.CONTINUE:
            chosen = next_query(database.search_query, database.location, database.queries)
            if chosen:
                return await self._issue(database, chosen)
            logger.info(f"[Database {database.id}] No more queries, finalizing")
        else:
            logger.info(f"[Database {database.id}] Finalizing: {decision.value}")

        return await self._finalize_completed(database, merged)

    async def _recover(
        self, database: ContactDatabase, message: Optional[str]
    ) -> AdvanceResult:
        # A specific location gets one fallback query, never a full expansion.
        if is_specific(database.location) and database.current_query_index > 0:
            return await self._finalize_failed(database, message or EXHAUSTED_MESSAGE)

        chosen = next_query(database.search_query, database.location, database.queries)
        if chosen:
            logger.info(
                f"[Database {database.id}] Recovering with query '{chosen.query}'"
            )
            return await self._issue(database, chosen)
        return await self._finalize_failed(database, message or EXHAUSTED_MESSAGE)

    async def _issue(self, database: ContactDatabase, chosen: NextQuery) -> AdvanceResult:
        """Record a new query in the history, then submit it."""
        queries = [*database.queries, chosen.issued]
        if not await repo.record_next_query(database.id, queries, chosen.location):
            return await self._reload_result(database.id)

        database = database.model_copy(
            update={"queries": queries, "location": chosen.location}
        )
        return await self._submit(database, len(queries) - 1)

    async def _submit(self, database: ContactDatabase, index: int) -> AdvanceResult:
        query = database.queries[index].query
        request_id = await self.provider.submit_query(
            query, self._search_options(database)
        )
        if not await repo.update_request(database.id, request_id, index):
            return await self._reload_result(database.id)

        logger.info(f"[Database {database.id}] Issued query #{index}: '{query}'")
        database = database.model_copy(
            update={
                "request_id": request_id,
                "current_query_index": index,
                "status": DatabaseStatus.PROCESSING,
            }
        )
        return AdvanceResult(status=AdvanceStatus.PROCESSING, database=database)

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    async def _finalize_completed(
        self, database: ContactDatabase, merged: ResultSet
    ) -> AdvanceResult:
        records = list(merged.values())

        async def _report(percent: int) -> None:
            await repo.update_export_progress(database.id, percent)

        file_paths = await generate_exports(
            database.id, database.name, records, self.storage, on_progress=_report
        )
        formats = list(file_paths)

        if not await repo.complete_database(
            database.id, file_paths, formats, database.statistics
        ):
            return await self._reload_result(database.id)

        logger.info(
            f"[Database {database.id}] Completed with "
            f"{database.statistics.unique_contacts} contacts ({', '.join(formats)})"
        )
        database = database.model_copy(
            update={
                "status": DatabaseStatus.COMPLETED,
                "file_paths": file_paths,
                "formats": formats,
                "export_progress": 100,
            }
        )
        return AdvanceResult(status=AdvanceStatus.COMPLETED, database=database)

    async def _finalize_failed(
        self, database: ContactDatabase, message: str
    ) -> AdvanceResult:
        if not await repo.fail_database(database.id, message):
            return await self._reload_result(database.id)

        logger.warning(f"[Database {database.id}] Failed: {message}")
        database = database.model_copy(
            update={"status": DatabaseStatus.FAILED, "error_message": message}
        )
        return AdvanceResult(
            status=AdvanceStatus.FAILED, database=database, message=message
        )

    async def _reload_result(self, database_id: str) -> AdvanceResult:
        """Result for a tick whose guarded write matched no row."""
        current = await repo.get_database(database_id)
        if not current:
            logger.info(f"[Database {database_id}] Deleted during tick")
            return AdvanceResult(
                status=AdvanceStatus.DELETED, message="Database no longer exists"
            )
        if current.status.is_terminal:
            return self._terminal_result(current)
        return AdvanceResult(
            status=AdvanceStatus.ERROR,
            database=current,
            message="Database was modified concurrently",
        )

    @staticmethod
    def _terminal_result(database: ContactDatabase) -> AdvanceResult:
        status = (
            AdvanceStatus.COMPLETED
            if database.status is DatabaseStatus.COMPLETED
            else AdvanceStatus.FAILED
        )
        return AdvanceResult(
            status=status, database=database, message=database.error_message
        )

    @staticmethod
    def _search_options(database: ContactDatabase) -> SearchOptions:
        region = None
        location = database.location
        if isinstance(location, StructuredLocation) and location.country:
            country = location.country.strip()
            region = country.upper() if len(country) == 2 else None
        return SearchOptions(
            limit=database.credits_per_query,
            language=database.language,
            enrichment=database.enrichments,
            region=region,
        )

    # ------------------------------------------------------------------
    # Reads, downloads, deletion
    # ------------------------------------------------------------------

    async def get_database(
        self, database_id: str, user_id: str
    ) -> Optional[ContactDatabase]:
        """Get a build scoped to its owner. None if missing or not theirs."""
        return await repo.get_user_database(database_id, user_id)

    async def list_databases(self, user_id: str) -> list[ContactDatabase]:
        return await repo.list_user_databases(user_id)

    async def get_download_url(
        self, database_id: str, user_id: str, export_format: ExportFormat
    ) -> str:
        """Signed URL for one export file.

        Raises DatabaseNotFoundError when the build is missing, ValueError
        when it is not completed and LookupError when the format is missing.
        """
        database = await repo.get_user_database(database_id, user_id)
        if not database:
            raise DatabaseNotFoundError(f"Database {database_id} not found")
        if database.status is not DatabaseStatus.COMPLETED:
            raise ValueError(f"Database {database_id} is not completed")

        path = database.file_paths.get(export_format.value)
        if not path:
            raise LookupError(
                f"Database {database_id} has no {export_format.value} export"
            )
        return await self.storage.signed_url(path)

    async def export_format(
        self, database_id: str, user_id: str, export_format: ExportFormat
    ) -> str:
        """Rebuild one export file from the stored JSON export.

        Used when a CSV or Excel file was skipped at finalization. Returns the
        storage path. Raises like `get_download_url`, plus ExportError when the
        JSON export cannot be read back.
        """
        database = await repo.get_user_database(database_id, user_id)
        if not database:
            raise DatabaseNotFoundError(f"Database {database_id} not found")
        if database.status is not DatabaseStatus.COMPLETED:
            raise ValueError(f"Database {database_id} is not completed")

        json_path = database.file_paths.get(ExportFormat.JSON.value)
        if not json_path:
            raise LookupError(f"Database {database_id} has no json export")
        if export_format is ExportFormat.JSON:
            return json_path

        try:
            records = flatten_results(json.loads(await self.storage.get(json_path)))
        except ValueError as e:
            raise ExportError(f"Stored JSON export for {database_id} is unreadable: {e}") from e

        writer_cls = WRITERS[export_format]
        path = database_path(
            database_id, f"{sanitize_file_name(database.name)}.{writer_cls.extension}"
        )
        await self.storage.put(
            path, await encode(export_format, records), writer_cls.content_type
        )

        formats = list(database.formats)
        if export_format.value not in formats:
            formats.append(export_format.value)
        if not await repo.add_export_file(database_id, export_format.value, path, formats):
            raise ValueError(f"Database {database_id} is not completed")

        logger.info(
            f"[Database {database_id}] Rebuilt {export_format.value} export "
            f"with {len(records)} records"
        )
        return path

    async def delete_database(self, database_id: str, user_id: str) -> bool:
        """Delete a build and its stored files. Returns False if not found."""
        database = await repo.get_user_database(database_id, user_id)
        if not database:
            return False

        paths = list(database.file_paths.values())
        if database.checkpoint_path:
            paths.append(database.checkpoint_path)

        for path in paths:
            try:
                await self.storage.delete([path])
            except StorageError as e:
                logger.error(f"[Database {database_id}] Could not delete {path}: {e}")

        deleted = await repo.delete_database(database_id, user_id)
        if deleted:
            logger.info(f"[Database {database_id}] Deleted with {len(paths)} files")
        return deleted
