import asyncio
import json

import pytest
from loguru import logger

from contactdb.core.logging import (
    StructuredLogger,
    current_context,
    database_id_var,
    json_formatter,
    log_execution_time,
    log_http_request,
    request_id_var,
)


@pytest.fixture
def records():
    captured = []
    sink_id = logger.add(lambda m: captured.append(m.record), level="DEBUG", format="{message}")
    yield captured
    logger.remove(sink_id)


@pytest.fixture
def tracked_database():
    token = database_id_var.set("db1")
    yield "db1"
    database_id_var.reset(token)


@pytest.mark.unit
class TestContext:
    def test_unset_ids_are_left_out(self, tracked_database):
        assert current_context() == {"database_id": "db1"}

    def test_bound_into_records(self, records, tracked_database):
        StructuredLogger.debug("merged page", count=3)

        assert records[-1]["message"] == "merged page"
        assert records[-1]["extra"]["database_id"] == "db1"
        assert records[-1]["extra"]["count"] == 3


@pytest.mark.unit
class TestLogExecutionTime:
    def test_async_success(self, records):
        @log_execution_time
        async def tick():
            return "done"

        assert asyncio.run(tick()) == "done"
        assert records[-1]["extra"]["function"] == "tick"
        assert records[-1]["extra"]["status"] == "success"

    def test_sync_failure_is_logged_and_raised(self, records):
        @log_execution_time
        def broken():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            broken()
        assert records[-1]["level"].name == "ERROR"
        assert records[-1]["extra"]["error"] == "boom"


@pytest.mark.unit
class TestHttpAndJson:
    def test_error_status_logged_as_error(self, records):
        log_http_request("GET", "/requests/abc", 503, 0.2)

        assert records[-1]["level"].name == "ERROR"
        assert records[-1]["extra"]["status_code"] == 503

    def test_success_logged_as_debug(self, records):
        log_http_request("GET", "/requests/abc", 200)
        assert records[-1]["level"].name == "DEBUG"

    def test_json_lines_carry_context(self):
        lines = []
        sink_id = logger.add(lines.append, level="DEBUG", format=json_formatter)
        token = request_id_var.set("req-9")
        try:
            StructuredLogger.error("upload failed", path="databases/db1/a.csv")
        finally:
            request_id_var.reset(token)
            logger.remove(sink_id)

        payload = json.loads(lines[-1])
        assert payload["message"] == "upload failed"
        assert payload["level"] == "ERROR"
        assert payload["request_id"] == "req-9"
        assert payload["path"] == "databases/db1/a.csv"
        assert "_json" not in payload
