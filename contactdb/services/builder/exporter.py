"""Export file generation for completed builds.

Each format is produced by a BatchWriter fed fixed-size batches of
records, so large result sets are written incrementally. JSON is
required; CSV and Excel are best effort.
"""

import csv
import io
import json
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Iterator, Optional, Sequence

from loguru import logger
from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from contactdb.services.builder.exceptions import ExportError
from contactdb.services.storage import (
    BlobStorage,
    CSV_CONTENT_TYPE,
    EXCEL_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    database_path,
)

LARGE_EXPORT_THRESHOLD = 5000
EXPORT_BATCH_SIZE = 1000
EXCEL_MAX_CELL_LENGTH = 32767

ProgressCallback = Callable[[int], Awaitable[None]]


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"
    EXCEL = "excel"


def sanitize_file_name(name: str) -> str:
    """Make a database name safe for use as a storage file name."""
    name = re.sub(r"\s+", "_", name.strip()).lower()
    name = name.encode("ascii", "ignore").decode("ascii")
    name = re.sub(r"[^a-zA-Z0-9_\-.]", "_", name)
    name = re.sub(r"_{2,}", "_", name)
    return name.strip("_") or "database"


def collect_fields(records: Sequence[dict]) -> list[str]:
    """Union of record keys, in first-seen order."""
    fields: dict[str, None] = {}
    for record in records:
        for key in record:
            fields.setdefault(key, None)
    return list(fields)


def iter_batches(
    records: Sequence[dict], size: int = EXPORT_BATCH_SIZE
) -> Iterator[tuple[list[dict], int]]:
    """Yield (batch, percent_done) pairs. Percent stays below 100 until the caller finishes."""
    total = len(records)
    for start in range(0, total, size):
        batch = list(records[start:start + size])
        yield batch, min(round((start + len(batch)) / total * 100), 99)


def _flat_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str, ensure_ascii=False)
    return value


class BatchWriter(ABC):
    format: ExportFormat
    extension: str
    content_type: str

    def __init__(self, fields: list[str]):
        self.fields = fields

    @abstractmethod
    def write(self, batch: list[dict]) -> None: ...

    @abstractmethod
    def finish(self) -> bytes: ...


class JsonWriter(BatchWriter):
    format = ExportFormat.JSON
    extension = "json"
    content_type = JSON_CONTENT_TYPE

    def __init__(self, fields: list[str], indent: Optional[int] = None):
        super().__init__(fields)
        self._indent = indent
        self._buffer = io.StringIO()
        self._buffer.write("[")
        self._count = 0

    def write(self, batch: list[dict]) -> None:
        for record in batch:
            if self._count:
                self._buffer.write(",")
            self._buffer.write("\n" if self._indent else "")
            self._buffer.write(
                json.dumps(record, default=str, ensure_ascii=False, indent=self._indent)
            )
            self._count += 1

    def finish(self) -> bytes:
        self._buffer.write("\n]" if self._indent and self._count else "]")
        return self._buffer.getvalue().encode("utf-8")


class CsvWriter(BatchWriter):
    format = ExportFormat.CSV
    extension = "csv"
    content_type = CSV_CONTENT_TYPE

    def __init__(self, fields: list[str]):
        super().__init__(fields)
        self._buffer = io.StringIO()
        self._writer = csv.DictWriter(
            self._buffer, fieldnames=fields, restval="", extrasaction="ignore"
        )
        self._writer.writeheader()

    def write(self, batch: list[dict]) -> None:
        self._writer.writerows(
            {k: _flat_value(v) for k, v in record.items()} for record in batch
        )

    def finish(self) -> bytes:
        return self._buffer.getvalue().encode("utf-8")


class ExcelWriter(BatchWriter):
    format = ExportFormat.EXCEL
    extension = "xlsx"
    content_type = EXCEL_CONTENT_TYPE

    def __init__(self, fields: list[str]):
        super().__init__(fields)
        self._workbook = Workbook(write_only=True)
        self._sheet = self._workbook.create_sheet("Data")
        self._sheet.append(fields)

    @staticmethod
    def _cell(value: Any) -> Any:
        value = _flat_value(value)
        if isinstance(value, str):
            value = ILLEGAL_CHARACTERS_RE.sub("", value)[:EXCEL_MAX_CELL_LENGTH]
        elif not isinstance(value, (int, float, bool)):
            value = str(value)
        return value

    def write(self, batch: list[dict]) -> None:
        for record in batch:
            self._sheet.append([self._cell(record.get(f)) for f in self.fields])

    def finish(self) -> bytes:
        buffer = io.BytesIO()
        self._workbook.save(buffer)
        return buffer.getvalue()


WRITERS: dict[ExportFormat, type[BatchWriter]] = {
    ExportFormat.JSON: JsonWriter,
    ExportFormat.CSV: CsvWriter,
    ExportFormat.EXCEL: ExcelWriter,
}


async def encode(
    export_format: ExportFormat,
    records: Sequence[dict],
    fields: Optional[list[str]] = None,
    on_progress: Optional[Callable[[int], Awaitable[None]]] = None,
) -> bytes:
    """Encode records in one format.

    Large sets are written in EXPORT_BATCH_SIZE batches, reporting progress
    after each one; small sets are written in one shot.
    """
    fields = fields if fields is not None else collect_fields(records)
    if export_format is ExportFormat.JSON and len(records) <= LARGE_EXPORT_THRESHOLD:
        writer: BatchWriter = JsonWriter(fields, indent=2)
    else:
        writer = WRITERS[export_format](fields)

    if len(records) > LARGE_EXPORT_THRESHOLD:
        for batch, percent in iter_batches(records, EXPORT_BATCH_SIZE):
            writer.write(batch)
            if on_progress:
                await on_progress(percent)
    else:
        writer.write(list(records))
    return writer.finish()


async def generate_exports(
    database_id: str,
    name: str,
    records: Sequence[dict],
    storage: BlobStorage,
    formats: Sequence[ExportFormat] = tuple(ExportFormat),
    on_progress: Optional[ProgressCallback] = None,
) -> dict[str, str]:
    """Generate and upload every export format. Returns {format: storage path}.

    A JSON failure raises ExportError; CSV and Excel failures are logged and
    the format is left out.
    """
    base_name = sanitize_file_name(name)
    fields = collect_fields(records)
    file_paths: dict[str, str] = {}

    for position, export_format in enumerate(formats):

        async def _report(percent: int, position=position) -> None:
            if on_progress:
                overall = (position * 100 + percent) // len(formats)
                await on_progress(min(overall, 99))

        writer_cls = WRITERS[export_format]
        path = database_path(database_id, f"{base_name}.{writer_cls.extension}")
        try:
            data = await encode(export_format, records, fields, _report)
            await storage.put(path, data, writer_cls.content_type)
        except Exception as e:
            if export_format is ExportFormat.JSON:
                raise ExportError(f"Failed to export JSON for {database_id}: {e}") from e
            logger.error(
                f"[Database {database_id}] Skipping {export_format.value} export: {e}"
            )
            continue

        file_paths[export_format.value] = path
        logger.info(
            f"[Database {database_id}] Exported {len(records)} records as {export_format.value}"
        )

    return file_paths
