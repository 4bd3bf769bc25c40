from .database import (
    AdvanceResponse,
    CreateDatabaseRequest,
    DatabaseListResponse,
    DatabaseResponse,
    DownloadResponse,
    ErrorResponse,
    StatisticsResponse,
)

__all__ = [
    "AdvanceResponse",
    "CreateDatabaseRequest",
    "DatabaseListResponse",
    "DatabaseResponse",
    "DownloadResponse",
    "ErrorResponse",
    "StatisticsResponse",
]
