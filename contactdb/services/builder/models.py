"""Pydantic models for the database builder service."""

import json
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

ALL_CITIES = "all_cities"
ALL_STATES = "all_states"


class DatabaseStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DatabaseStatus.COMPLETED, DatabaseStatus.FAILED)


class QueryType(str, Enum):
    SIMPLE = "simple"
    STRUCTURED = "structured"
    FREE_TEXT = "free_text"


# ---------------------------------------------------------------------------
# Location descriptors
# ---------------------------------------------------------------------------


class SimpleLocation(BaseModel):
    """Bare search term, no location."""

    kind: Literal["simple"] = "simple"


class StructuredLocation(BaseModel):
    """Country/state/city selection, optionally with expansion lists."""

    kind: Literal["structured"] = "structured"
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    cities: list[str] = []
    states: list[str] = []

    @property
    def concrete_city(self) -> Optional[str]:
        return self.city if self.city and self.city != ALL_CITIES else None

    @property
    def concrete_state(self) -> Optional[str]:
        return self.state if self.state and self.state != ALL_STATES else None


class FreeTextLocation(BaseModel):
    """A user-typed list of locations, one per line."""

    kind: Literal["free_text"] = "free_text"
    locations: list[str] = []


LocationDescriptor = Annotated[
    Union[SimpleLocation, StructuredLocation, FreeTextLocation],
    Field(discriminator="kind"),
]


def parse_location(raw: Any, query_type: Optional[str] = None) -> LocationDescriptor:
    """Normalize a stored location into a descriptor.

    Accepts a descriptor, a dict (with or without `kind`), a JSON string, or
    newline-separated free text. Anything empty is a simple location.
    """
    if isinstance(raw, (SimpleLocation, StructuredLocation, FreeTextLocation)):
        return raw
    if raw is None or raw == "" or raw == {}:
        return SimpleLocation()

    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("{"):
            raw = json.loads(text)
        else:
            locations = [line.strip() for line in text.splitlines() if line.strip()]
            return FreeTextLocation(locations=locations) if locations else SimpleLocation()

    if isinstance(raw, list):
        locations = [str(item).strip() for item in raw if str(item).strip()]
        return FreeTextLocation(locations=locations) if locations else SimpleLocation()

    if isinstance(raw, dict):
        kind = raw.get("kind")
        if kind == "free_text" or (kind is None and query_type == QueryType.FREE_TEXT.value):
            return FreeTextLocation(locations=raw.get("locations") or [])
        if kind == "simple":
            return SimpleLocation()
        fields = {k: v for k, v in raw.items() if k in StructuredLocation.model_fields}
        fields["cities"] = fields.get("cities") or []
        fields["states"] = fields.get("states") or []
        fields["kind"] = "structured"
        return StructuredLocation(**fields)

    raise ValueError(f"Unsupported location value: {type(raw).__name__}")


# ---------------------------------------------------------------------------
# Query history
# ---------------------------------------------------------------------------


class QuerySource(str, Enum):
    """Which sequencer branch produced a query."""

    BASE = "base"
    CITY = "city"
    STATE = "state"
    COUNTRY = "country"
    FREE_TEXT = "free_text"
    VARIATION = "variation"


class IssuedQuery(BaseModel):
    """One entry of a build's query history."""

    query: str
    source: QuerySource
    value: Optional[str] = None


class NextQuery(BaseModel):
    """A query chosen by the sequencer plus the location it leaves behind."""

    issued: IssuedQuery
    location: LocationDescriptor

    @property
    def query(self) -> str:
        return self.issued.query


# ---------------------------------------------------------------------------
# Database build (the job)
# ---------------------------------------------------------------------------


class DatabaseStatistics(BaseModel):
    queries_processed: int = 0
    total_results: int = 0
    unique_contacts: int = 0


class ContactDatabase(BaseModel):
    """A user-initiated contact database build."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    search_query: str
    query_type: QueryType = QueryType.SIMPLE
    location: LocationDescriptor = SimpleLocation()
    target: int
    credits_per_query: int = 50
    language: str = "en"
    enrichments: list[str] = []
    queries: list[IssuedQuery] = []
    current_query_index: int = 0
    merged_query_index: int = -1
    request_id: Optional[str] = None
    status: DatabaseStatus = DatabaseStatus.PENDING
    error_message: Optional[str] = None
    statistics: DatabaseStatistics = DatabaseStatistics()
    file_paths: dict[str, str] = {}
    formats: list[str] = []
    checkpoint_path: Optional[str] = None
    export_progress: int = 0
    created_at: Optional[datetime] = None

    @property
    def query_strings(self) -> list[str]:
        return [q.query for q in self.queries]

    @property
    def has_unsubmitted_query(self) -> bool:
        """True when a query was recorded but its provider request was never stored."""
        return len(self.queries) > self.current_query_index + 1

    @property
    def current_page_merged(self) -> bool:
        return self.merged_query_index >= self.current_query_index


class CreateDatabaseParams(BaseModel):
    """Parameters for a new database build."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    search_query: str = Field(..., min_length=1)
    query_type: QueryType = QueryType.SIMPLE
    location: Any = None
    credits: int = Field(50, gt=0)
    target: Optional[int] = Field(None, gt=0)
    language: str = "en"
    enrichments: list[str] = []


# ---------------------------------------------------------------------------
# Provider and tick results
# ---------------------------------------------------------------------------


class RequestState(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ProviderResult(BaseModel):
    """Status of one asynchronous provider request."""

    request_id: str
    state: RequestState
    data: Optional[list[Any]] = None
    message: Optional[str] = None


class SearchOptions(BaseModel):
    """Options sent with each provider query."""

    limit: int = 20
    language: str = "en"
    enrichment: list[str] = []
    drop_duplicates: bool = True
    search_depth: Optional[Literal["low", "medium", "high"]] = None
    region: Optional[str] = None


class AdvanceStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"
    DELETED = "deleted"


class AdvanceResult(BaseModel):
    """Outcome of one polling tick."""

    status: AdvanceStatus
    database: Optional[ContactDatabase] = None
    message: Optional[str] = None
