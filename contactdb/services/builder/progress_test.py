"""Unit tests for the progress store."""

import json

import pytest
from unittest.mock import AsyncMock, patch

from contactdb.services.builder.exceptions import StorageError
from contactdb.services.builder.progress import (
    INLINE_SNAPSHOT_LIMIT,
    ProgressStore,
    checkpoint_path,
)


def _records(n: int) -> list[dict]:
    return [{"place_id": f"p{i}", "name": f"Biz {i}"} for i in range(n)]


def _result_set(n: int) -> dict:
    return {f"place_id:p{i}": r for i, r in enumerate(_records(n))}


@pytest.fixture
def storage():
    return AsyncMock()


@pytest.fixture
def store(storage):
    return ProgressStore(storage)


@pytest.fixture(autouse=True)
def mock_repo():
    with patch("contactdb.services.builder.progress.repo") as m:
        m.get_progress = AsyncMock(return_value=None)
        m.save_progress = AsyncMock(return_value=True)
        yield m


@pytest.mark.unit
class TestLoad:
    @pytest.mark.asyncio
    async def test_no_row_is_empty(self, store):
        state = await store.load("db1")
        assert state.count == 0
        assert state.offset == 0
        assert state.source == "empty"

    @pytest.mark.asyncio
    async def test_inline_snapshot_first(self, store, storage, mock_repo):
        mock_repo.get_progress.return_value = {
            "stored_results": json.dumps(_records(3)),
            "last_processed_index": 2,
            "checkpoint_path": "databases/db1/interim_results.json",
        }
        state = await store.load("db1")
        assert state.count == 3
        assert state.offset == 2
        assert state.source == "inline"
        storage.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_inline_snapshot_as_list(self, store, mock_repo):
        mock_repo.get_progress.return_value = {
            "stored_results": _records(2),
            "last_processed_index": 1,
        }
        state = await store.load("db1")
        assert state.count == 2

    @pytest.mark.asyncio
    async def test_falls_back_to_checkpoint_file(self, store, storage, mock_repo):
        mock_repo.get_progress.return_value = {
            "stored_results": None,
            "last_processed_index": 7,
            "checkpoint_path": "databases/db1/interim_results.json",
        }
        storage.get.return_value = json.dumps(_records(6000)).encode()

        state = await store.load("db1")
        assert state.count == 6000
        assert state.offset == 7
        assert state.source == "checkpoint"
        storage.get.assert_awaited_once_with("databases/db1/interim_results.json")

    @pytest.mark.asyncio
    async def test_corrupt_inline_snapshot_is_empty(self, store, storage, mock_repo):
        mock_repo.get_progress.return_value = {
            "stored_results": "{not json",
            "last_processed_index": 3,
            "checkpoint_path": "databases/db1/interim_results.json",
        }
        state = await store.load("db1")
        assert state.count == 0
        storage.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unreadable_checkpoint_is_empty(self, store, storage, mock_repo):
        mock_repo.get_progress.return_value = {
            "stored_results": None,
            "last_processed_index": 3,
            "checkpoint_path": "databases/db1/interim_results.json",
        }
        storage.get.side_effect = StorageError("gone")
        state = await store.load("db1")
        assert state.count == 0

    @pytest.mark.asyncio
    async def test_read_failure_is_empty(self, store, mock_repo):
        mock_repo.get_progress.side_effect = RuntimeError("connection reset")
        state = await store.load("db1")
        assert state.count == 0

    @pytest.mark.asyncio
    async def test_no_snapshot_and_no_checkpoint(self, store, storage, mock_repo):
        mock_repo.get_progress.return_value = {
            "stored_results": None,
            "last_processed_index": 4,
            "checkpoint_path": None,
        }
        state = await store.load("db1")
        assert state.count == 0
        assert state.offset == 4
        storage.get.assert_not_awaited()


@pytest.mark.unit
class TestSave:
    @pytest.mark.asyncio
    async def test_below_limit_stores_full_set(self, store, mock_repo):
        full = await store.save("db1", _result_set(INLINE_SNAPSHOT_LIMIT - 1), 3)
        assert full is True
        kwargs = mock_repo.save_progress.call_args[1]
        assert len(kwargs["stored_results"]) == INLINE_SNAPSHOT_LIMIT - 1
        assert kwargs["last_processed_index"] == 3
        assert kwargs["total_results_count"] == INLINE_SNAPSHOT_LIMIT - 1

    @pytest.mark.asyncio
    async def test_at_limit_stores_count_only(self, store, mock_repo):
        full = await store.save("db1", _result_set(INLINE_SNAPSHOT_LIMIT), 3)
        assert full is False
        kwargs = mock_repo.save_progress.call_args[1]
        assert kwargs["stored_results"] is None
        assert kwargs["total_results_count"] == INLINE_SNAPSHOT_LIMIT

    @pytest.mark.asyncio
    async def test_missing_row_does_not_raise(self, store, mock_repo):
        mock_repo.save_progress.return_value = False
        assert await store.save("db1", _result_set(2), 0) is True


@pytest.mark.unit
class TestCheckpoint:
    @pytest.mark.asyncio
    async def test_writes_checkpoint_file(self, store, storage):
        path = await store.checkpoint("db1", _result_set(3))
        assert path == checkpoint_path("db1") == "databases/db1/interim_results.json"
        args = storage.put.call_args[0]
        assert args[0] == path
        assert len(json.loads(args[1])) == 3
