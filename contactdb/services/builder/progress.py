"""Resumable progress snapshots for database builds.

Two tiers: an inline snapshot stored on the build row (full result list
for small builds, a count-only checkpoint for large ones) and a JSON
checkpoint file in blob storage written periodically by the accumulator
policy. `load` tries the inline snapshot first, then the checkpoint file.
"""

import json
from typing import Optional

from loguru import logger
from pydantic import BaseModel

from contactdb.services.builder import repo
from contactdb.services.builder.accumulator import ResultSet, to_result_set
from contactdb.services.storage import BlobStorage, JSON_CONTENT_TYPE, database_path

INLINE_SNAPSHOT_LIMIT = 5000
CHECKPOINT_FILE_NAME = "interim_results.json"


class ProgressState(BaseModel):
    """Accumulated results recovered for a build."""

    results: ResultSet = {}
    offset: int = 0
    source: str = "empty"  # inline, checkpoint, empty

    @property
    def count(self) -> int:
        return len(self.results)


def checkpoint_path(database_id: str) -> str:
    return database_path(database_id, CHECKPOINT_FILE_NAME)


def _parse_records(raw) -> list[dict]:
    if isinstance(raw, (str, bytes)):
        raw = json.loads(raw)
    if not isinstance(raw, list):
        raise ValueError(f"Expected a list of records, got {type(raw).__name__}")
    return [r for r in raw if isinstance(r, dict)]


class ProgressStore:
    def __init__(self, storage: BlobStorage):
        self.storage = storage

    async def load(self, database_id: str) -> ProgressState:
        """Recover accumulated results. Never raises: failures mean no prior state."""
        try:
            snapshot = await repo.get_progress(database_id)
        except Exception as e:
            logger.warning(f"[Database {database_id}] Could not read progress snapshot: {e}")
            return ProgressState()

        if not snapshot:
            return ProgressState()

        offset = snapshot.get("last_processed_index") or 0

        if snapshot.get("stored_results") is not None:
            try:
                records = _parse_records(snapshot["stored_results"])
            except (ValueError, TypeError) as e:
                logger.error(
                    f"[Database {database_id}] Discarding corrupt inline snapshot: {e}"
                )
                return ProgressState()
            logger.info(
                f"[Database {database_id}] Recovered {len(records)} results "
                f"from inline snapshot (offset {offset})"
            )
            return ProgressState(
                results=to_result_set(records), offset=offset, source="inline"
            )

        path = snapshot.get("checkpoint_path")
        if not path:
            return ProgressState(offset=offset)

        try:
            records = _parse_records(await self.storage.get(path))
        except Exception as e:
            logger.error(
                f"[Database {database_id}] Discarding unreadable checkpoint {path}: {e}"
            )
            return ProgressState()

        logger.info(
            f"[Database {database_id}] Recovered {len(records)} results from checkpoint file"
        )
        return ProgressState(
            results=to_result_set(records), offset=offset, source="checkpoint"
        )

    async def save(self, database_id: str, merged: ResultSet, offset: int) -> bool:
        """Persist the inline snapshot.

        Below INLINE_SNAPSHOT_LIMIT records the full set is stored; at or
        above it only the count and offset are, and recovery relies on the
        storage checkpoint. Returns True when the full set was stored.
        """
        full = len(merged) < INLINE_SNAPSHOT_LIMIT
        saved = await repo.save_progress(
            database_id,
            stored_results=list(merged.values()) if full else None,
            last_processed_index=offset,
            total_results_count=len(merged),
        )
        if not saved:
            logger.warning(f"[Database {database_id}] Progress not saved: build is gone")
        logger.debug(
            f"[Database {database_id}] Stored {'full results' if full else 'checkpoint only'} "
            f"({len(merged)} records)"
        )
        return full

    async def checkpoint(self, database_id: str, merged: ResultSet) -> str:
        """Write the merged set to the storage checkpoint file."""
        path = checkpoint_path(database_id)
        payload = json.dumps(list(merged.values()), default=str).encode("utf-8")
        await self.storage.put(path, payload, JSON_CONTENT_TYPE)
        logger.info(f"[Database {database_id}] Saved checkpoint with {len(merged)} records")
        return path
