from .models import (
    AdvanceResult,
    AdvanceStatus,
    ContactDatabase,
    CreateDatabaseParams,
    DatabaseStatus,
    QueryType,
)
from .service import IService, Service

__all__ = [
    "AdvanceResult",
    "AdvanceStatus",
    "ContactDatabase",
    "CreateDatabaseParams",
    "DatabaseStatus",
    "IService",
    "QueryType",
    "Service",
]
