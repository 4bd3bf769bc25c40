"""Blob storage for export files and checkpoints."""

from .client import (
    BlobStorage,
    CSV_CONTENT_TYPE,
    EXCEL_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    database_path,
)

__all__ = [
    "BlobStorage",
    "CSV_CONTENT_TYPE",
    "EXCEL_CONTENT_TYPE",
    "JSON_CONTENT_TYPE",
    "database_path",
]
