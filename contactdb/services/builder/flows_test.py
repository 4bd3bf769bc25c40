import pytest
from unittest.mock import AsyncMock, patch

from contactdb.services.builder.flows import _poll
from contactdb.services.builder.models import (
    AdvanceResult,
    AdvanceStatus,
    ContactDatabase,
    DatabaseStatistics,
)


def _result(status: AdvanceStatus, unique: int = 0) -> AdvanceResult:
    return AdvanceResult(
        status=status,
        database=ContactDatabase(
            id="db1",
            user_id="user_1",
            name="Dentists",
            search_query="dentists",
            target=50,
            statistics=DatabaseStatistics(unique_contacts=unique),
        ),
    )


@pytest.mark.unit
class TestPoll:
    @pytest.mark.asyncio
    async def test_stops_at_final_status(self):
        ticks = [
            _result(AdvanceStatus.PROCESSING, 10),
            AdvanceResult(status=AdvanceStatus.ERROR, message="timed out"),
            _result(AdvanceStatus.COMPLETED, 55),
            _result(AdvanceStatus.PROCESSING),
        ]
        with patch(
            "contactdb.services.builder.flows.advance_task", new=AsyncMock(side_effect=ticks)
        ) as advance, patch(
            "contactdb.services.builder.flows.asyncio.sleep", new=AsyncMock()
        ) as sleep:
            summary = await _poll("db1", interval_seconds=5, max_ticks=10)

        assert summary["status"] == "completed"
        assert summary["ticks"] == 3
        assert summary["statistics"]["unique_contacts"] == 55
        assert advance.await_count == 3
        assert sleep.await_count == 2
        sleep.assert_awaited_with(5)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_ticks(self):
        with patch(
            "contactdb.services.builder.flows.advance_task",
            new=AsyncMock(return_value=_result(AdvanceStatus.PROCESSING)),
        ), patch("contactdb.services.builder.flows.asyncio.sleep", new=AsyncMock()):
            summary = await _poll("db1", interval_seconds=0, max_ticks=3)

        assert summary["status"] == "processing"
        assert summary["ticks"] == 3

    @pytest.mark.asyncio
    async def test_deleted_build_stops(self):
        with patch(
            "contactdb.services.builder.flows.advance_task",
            new=AsyncMock(return_value=AdvanceResult(status=AdvanceStatus.DELETED)),
        ), patch("contactdb.services.builder.flows.asyncio.sleep", new=AsyncMock()):
            summary = await _poll("db1", interval_seconds=0, max_ticks=3)

        assert summary == {
            "database_id": "db1",
            "status": "deleted",
            "ticks": 1,
            "statistics": None,
            "message": None,
        }
