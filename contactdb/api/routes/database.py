"""Database builder API routes.

All endpoints require a valid JWT token.
Databases are scoped to the authenticated user's id.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from contactdb.api.auth import AuthUser, get_current_user
from contactdb.api.models.database import (
    AdvanceResponse,
    CreateDatabaseRequest,
    DatabaseListResponse,
    DatabaseResponse,
    DownloadResponse,
    ErrorResponse,
)
from contactdb.config import settings
from contactdb.services.builder.exceptions import (
    DatabaseNotFoundError,
    ExportError,
    InsufficientCreditsError,
    ProviderError,
    StorageError,
)
from contactdb.services.builder.exporter import ExportFormat
from contactdb.services.builder.models import CreateDatabaseParams
from contactdb.services.builder.service import Service

router = APIRouter(prefix="/api/databases", tags=["databases"])


def _get_service() -> Service:
    return Service(outscraper_api_key=settings.outscraper_api_key)


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"error": "NOT_FOUND", "message": "Database not found"},
    )


@router.post(
    "",
    response_model=DatabaseResponse,
    status_code=201,
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        402: {"model": ErrorResponse, "description": "Insufficient credits"},
        502: {"model": ErrorResponse, "description": "Search provider unavailable"},
    },
)
async def create_database(
    request: CreateDatabaseRequest,
    current_user: AuthUser = Depends(get_current_user),
):
    """Create a database build and submit its first query."""
    svc = _get_service()

    try:
        database = await svc.create_database(
            current_user.user_id,
            CreateDatabaseParams(
                name=request.name,
                search_query=request.search_query,
                query_type=request.query_type,
                location=request.location,
                credits=request.credits,
                target=request.target,
                language=request.language,
                enrichments=request.enrichments,
            ),
        )
    except InsufficientCreditsError as e:
        raise HTTPException(
            status_code=402,
            detail={"error": "INSUFFICIENT_CREDITS", "message": str(e)},
        )
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "BAD_REQUEST", "message": str(e)},
        )
    except ProviderError as e:
        raise HTTPException(
            status_code=502,
            detail={"error": "PROVIDER_ERROR", "message": str(e)},
        )

    return DatabaseResponse.from_database(database)


@router.post(
    "/{database_id}/status",
    response_model=AdvanceResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        404: {"model": ErrorResponse, "description": "Not found"},
    },
)
async def advance_database(
    database_id: str,
    current_user: AuthUser = Depends(get_current_user),
):
    """Run one polling tick and report the build's status."""
    svc = _get_service()
    if not await svc.get_database(database_id, user_id=current_user.user_id):
        raise _not_found()

    result = await svc.advance_job(database_id)
    return AdvanceResponse(
        status=result.status.value,
        message=result.message,
        database=(
            DatabaseResponse.from_database(result.database) if result.database else None
        ),
    )


@router.get(
    "",
    response_model=DatabaseListResponse,
    responses={401: {"model": ErrorResponse, "description": "Unauthorized"}},
)
async def list_databases(
    current_user: AuthUser = Depends(get_current_user),
):
    """List the current user's databases, newest first."""
    svc = _get_service()
    databases = await svc.list_databases(current_user.user_id)
    return DatabaseListResponse(
        databases=[DatabaseResponse.from_database(d) for d in databases],
        total=len(databases),
    )


@router.get(
    "/{database_id}",
    response_model=DatabaseResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        404: {"model": ErrorResponse, "description": "Not found"},
    },
)
async def get_database(
    database_id: str,
    current_user: AuthUser = Depends(get_current_user),
):
    """Get a database by ID (must belong to the current user)."""
    svc = _get_service()
    database = await svc.get_database(database_id, user_id=current_user.user_id)
    if not database:
        raise _not_found()
    return DatabaseResponse.from_database(database)


@router.get(
    "/{database_id}/download",
    response_model=DownloadResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Database not completed"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        404: {"model": ErrorResponse, "description": "Not found"},
    },
)
async def download_database(
    database_id: str,
    format: ExportFormat = Query(ExportFormat.JSON),
    current_user: AuthUser = Depends(get_current_user),
):
    """Get a signed download URL for one export format."""
    svc = _get_service()
    try:
        url = await svc.get_download_url(database_id, current_user.user_id, format)
    except DatabaseNotFoundError:
        raise _not_found()
    except LookupError as e:
        raise HTTPException(
            status_code=404,
            detail={"error": "FORMAT_NOT_FOUND", "message": str(e)},
        )
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "NOT_COMPLETED", "message": str(e)},
        )
    except StorageError as e:
        raise HTTPException(
            status_code=502,
            detail={"error": "STORAGE_ERROR", "message": str(e)},
        )

    return DownloadResponse(downloadUrl=url, format=format.value)


@router.post(
    "/{database_id}/export",
    response_model=DownloadResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Database not completed"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        404: {"model": ErrorResponse, "description": "Not found"},
    },
)
async def export_database(
    database_id: str,
    format: ExportFormat = Query(ExportFormat.CSV),
    current_user: AuthUser = Depends(get_current_user),
):
    """Rebuild one export format from the stored JSON and return a download URL."""
    svc = _get_service()
    try:
        await svc.export_format(database_id, current_user.user_id, format)
        url = await svc.get_download_url(database_id, current_user.user_id, format)
    except DatabaseNotFoundError:
        raise _not_found()
    except LookupError as e:
        raise HTTPException(
            status_code=404,
            detail={"error": "FORMAT_NOT_FOUND", "message": str(e)},
        )
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "NOT_COMPLETED", "message": str(e)},
        )
    except (ExportError, StorageError) as e:
        raise HTTPException(
            status_code=502,
            detail={"error": "EXPORT_ERROR", "message": str(e)},
        )

    return DownloadResponse(downloadUrl=url, format=format.value)


@router.delete(
    "/{database_id}",
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        404: {"model": ErrorResponse, "description": "Not found"},
    },
)
async def delete_database(
    database_id: str,
    current_user: AuthUser = Depends(get_current_user),
):
    """Delete a database and its export files."""
    svc = _get_service()
    if not await svc.delete_database(database_id, user_id=current_user.user_id):
        raise _not_found()
    return {"databaseID": database_id, "deleted": True}
