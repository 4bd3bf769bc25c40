import os
from typing import Any, Dict, List, Optional, Protocol

import aiosql

# Load queries
query_dir = os.path.join(os.path.dirname(__file__), "query")


class DatabaseQueries(Protocol):
    """Protocol for user_databases SQL queries.

    Note: aiosql generates functions that accept **kwargs matching SQL :param names.
    The asyncpg adapter accepts either a connection or a pool as `conn`.
    """

    async def get_database(
        self, conn: Any, *, database_id: str
    ) -> Optional[Dict[str, Any]]: ...

    async def get_user_database(
        self, conn: Any, *, database_id: str, user_id: str
    ) -> Optional[Dict[str, Any]]: ...

    async def list_user_databases(
        self, conn: Any, *, user_id: str
    ) -> List[Dict[str, Any]]: ...

    async def insert_database(
        self, conn: Any, **kwargs: Any
    ) -> Optional[Dict[str, Any]]: ...

    async def record_next_query(
        self, conn: Any, *, database_id: str, queries: str, location: str
    ) -> Optional[Dict[str, Any]]: ...

    async def update_request(
        self,
        conn: Any,
        *,
        database_id: str,
        request_id: str,
        current_query_index: int,
    ) -> Optional[Dict[str, Any]]: ...

    async def save_merge_state(
        self,
        conn: Any,
        *,
        database_id: str,
        merged_query_index: int,
        statistics: str,
        checkpoint_path: Optional[str],
    ) -> Optional[Dict[str, Any]]: ...

    async def get_progress(
        self, conn: Any, *, database_id: str
    ) -> Optional[Dict[str, Any]]: ...

    async def save_progress(
        self,
        conn: Any,
        *,
        database_id: str,
        stored_results: Optional[str],
        last_processed_index: int,
        total_results_count: int,
    ) -> Optional[Dict[str, Any]]: ...

    async def update_export_progress(
        self, conn: Any, *, database_id: str, export_progress: int
    ) -> None: ...

    async def complete_database(
        self,
        conn: Any,
        *,
        database_id: str,
        file_paths: str,
        formats: str,
        statistics: str,
    ) -> Optional[Dict[str, Any]]: ...

    async def add_export_file(
        self, conn: Any, *, database_id: str, file_paths: str, formats: str
    ) -> Optional[Dict[str, Any]]: ...

    async def fail_database(
        self, conn: Any, *, database_id: str, error_message: Optional[str]
    ) -> Optional[Dict[str, Any]]: ...

    async def delete_database(
        self, conn: Any, *, database_id: str, user_id: str
    ) -> Optional[Dict[str, Any]]: ...


class CreditQueries(Protocol):
    """Protocol for contact credit SQL queries."""

    async def get_contact_credits(
        self, conn: Any, *, user_id: str
    ) -> Optional[Dict[str, Any]]: ...

    async def deduct_contact_credits(
        self, conn: Any, *, user_id: str, credits: int
    ) -> Optional[Dict[str, Any]]: ...


# Both facades are backed by every SQL file in the query directory
database_queries: DatabaseQueries = aiosql.from_path(query_dir, "asyncpg")  # type: ignore
credit_queries: CreditQueries = aiosql.from_path(query_dir, "asyncpg")  # type: ignore
