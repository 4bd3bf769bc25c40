"""Pydantic models for the database builder API."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from contactdb.services.builder.models import ContactDatabase, QueryType


class CreateDatabaseRequest(BaseModel):
    """POST /api/databases request body."""

    name: str = Field(..., min_length=1)
    search_query: str = Field(..., alias="searchQuery", min_length=1)
    query_type: QueryType = Field(QueryType.SIMPLE, alias="queryType")
    location: Any = None
    credits: int = Field(50, gt=0)
    target: Optional[int] = Field(None, gt=0)
    language: str = "en"
    enrichments: list[str] = []

    model_config = {"populate_by_name": True, "str_strip_whitespace": True}


class StatisticsResponse(BaseModel):
    """Build statistics."""

    queries_processed: int = Field(0, alias="queriesProcessed")
    total_results: int = Field(0, alias="totalResults")
    unique_contacts: int = Field(0, alias="uniqueContacts")

    model_config = {"populate_by_name": True, "by_alias": True}


class DatabaseResponse(BaseModel):
    """Response for a single database build."""

    database_id: str = Field(..., alias="databaseID")
    name: str
    status: str
    search_query: str = Field(..., alias="searchQuery")
    query_type: str = Field(..., alias="queryType")
    target: int
    queries: list[str] = []
    current_query_index: int = Field(0, alias="currentQueryIndex")
    statistics: StatisticsResponse
    formats: list[str] = []
    export_progress: int = Field(0, alias="exportProgress")
    error_message: Optional[str] = Field(None, alias="errorMessage")
    created_at: Optional[str] = Field(None, alias="createdAt")

    model_config = {"populate_by_name": True, "by_alias": True}

    @classmethod
    def from_database(cls, database: ContactDatabase) -> "DatabaseResponse":
        return cls(
            databaseID=database.id,
            name=database.name,
            status=database.status.value,
            searchQuery=database.search_query,
            queryType=database.query_type.value,
            target=database.target,
            queries=database.query_strings,
            currentQueryIndex=database.current_query_index,
            statistics=StatisticsResponse(
                queriesProcessed=database.statistics.queries_processed,
                totalResults=database.statistics.total_results,
                uniqueContacts=database.statistics.unique_contacts,
            ),
            formats=database.formats,
            exportProgress=database.export_progress,
            errorMessage=database.error_message,
            createdAt=database.created_at.isoformat() if database.created_at else None,
        )


class DatabaseListResponse(BaseModel):
    """GET /api/databases response."""

    databases: list[DatabaseResponse]
    total: int


class AdvanceResponse(BaseModel):
    """POST /api/databases/{id}/status response."""

    status: str
    message: Optional[str] = None
    database: Optional[DatabaseResponse] = None


class DownloadResponse(BaseModel):
    """GET /api/databases/{id}/download response."""

    download_url: str = Field(..., alias="downloadUrl")
    format: str

    model_config = {"populate_by_name": True, "by_alias": True}


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    message: str
