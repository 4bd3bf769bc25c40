"""Blob storage for export files and result checkpoints.

Backed by Supabase Storage. The supabase client is synchronous, so every
call is wrapped with asyncio.to_thread() to integrate with the async
codebase.
"""

import asyncio
from typing import Optional

from loguru import logger

from contactdb.config import settings
from contactdb.db.supabase_client import get_supabase
from contactdb.services.builder.exceptions import StorageError

JSON_CONTENT_TYPE = "application/json"
CSV_CONTENT_TYPE = "text/csv"
EXCEL_CONTENT_TYPE = (
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
)


def database_path(database_id: str, file_name: str) -> str:
    """Storage path for a file belonging to one database build."""
    return f"databases/{database_id}/{file_name}"


class BlobStorage:
    """Thin async wrapper around one storage bucket."""

    def __init__(self, bucket: Optional[str] = None, client=None):
        self.bucket = bucket or settings.storage_bucket
        self._client = client

    def _bucket(self):
        client = self._client or get_supabase()
        return client.storage.from_(self.bucket)

    async def put(
        self, path: str, data: bytes, content_type: str = JSON_CONTENT_TYPE
    ) -> str:
        """Upload (or overwrite) a file. Returns its path."""

        def _upload():
            self._bucket().upload(
                path=path,
                file=data,
                file_options={"content-type": content_type, "upsert": "true"},
            )

        try:
            await asyncio.to_thread(_upload)
        except Exception as e:
            raise StorageError(f"Failed to upload {path}: {e}") from e
        logger.debug(f"Uploaded {len(data)} bytes to {self.bucket}/{path}")
        return path

    async def get(self, path: str) -> bytes:
        """Download a file's contents."""
        try:
            return await asyncio.to_thread(self._bucket().download, path)
        except Exception as e:
            raise StorageError(f"Failed to download {path}: {e}") from e

    async def delete(self, paths: list[str]) -> None:
        """Remove files. Missing files are not an error."""
        if not paths:
            return
        try:
            await asyncio.to_thread(self._bucket().remove, paths)
        except Exception as e:
            raise StorageError(f"Failed to delete {paths}: {e}") from e

    async def signed_url(self, path: str, ttl: Optional[int] = None) -> str:
        """Create a time-limited download URL for a file."""
        expires_in = ttl or settings.signed_url_ttl_seconds
        try:
            result = await asyncio.to_thread(
                self._bucket().create_signed_url, path, expires_in
            )
        except Exception as e:
            raise StorageError(f"Failed to sign URL for {path}: {e}") from e

        # supabase-py has returned both spellings across versions
        url = result.get("signedURL") or result.get("signedUrl")
        if not url:
            raise StorageError(f"No signed URL returned for {path}")
        return url
