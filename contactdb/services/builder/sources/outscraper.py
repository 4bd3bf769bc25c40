"""Outscraper Google Maps search source.

Queries are submitted asynchronously: `submit_query` returns a request id
that is polled with `get_status` until the provider reports a result.
"""

import time
from typing import Any, Optional

import httpx
from loguru import logger

from contactdb.config import settings
from contactdb.core.logging import log_http_request
from contactdb.services.builder.exceptions import ProviderError
from contactdb.services.builder.models import (
    ProviderResult,
    RequestState,
    SearchOptions,
)
from contactdb.services.builder.sources.base import SearchProvider

HIGH_DEPTH_LIMIT = 20

RUNNING_STATUSES = {"pending", "running", "in progress", "queued"}
SUCCESS_STATUSES = {"success", "completed", "finished"}
FAILED_STATUSES = {"failed", "error"}


def map_status(status: Optional[str]) -> RequestState:
    """Map a provider status string to a RequestState. Unknown means still running."""
    normalized = (status or "").strip().lower()
    if normalized in SUCCESS_STATUSES:
        return RequestState.SUCCEEDED
    if normalized in FAILED_STATUSES:
        return RequestState.FAILED
    return RequestState.RUNNING


class OutscraperSource(SearchProvider):
    """Search places via the Outscraper Maps API."""

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        submit_timeout: Optional[float] = None,
        status_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or settings.outscraper_base_url).rstrip("/")
        self.submit_timeout = submit_timeout or settings.outscraper_submit_timeout
        self.status_timeout = status_timeout or settings.outscraper_status_timeout
        self._transport = transport

    @property
    def headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "X-API-KEY": self.api_key}

    @staticmethod
    def build_params(query: str, options: SearchOptions) -> dict[str, Any]:
        search_depth = options.search_depth or (
            "high" if options.limit > HIGH_DEPTH_LIMIT else None
        )
        params: dict[str, Any] = {
            "query": [query],
            "limit": options.limit,
            "language": options.language,
            "async": "true",
            "dropDuplicates": "true" if options.drop_duplicates else "false",
        }
        if search_depth:
            params["search_depth"] = search_depth
        if options.enrichment:
            params["enrichment"] = list(options.enrichment)
        if options.region:
            params["region"] = options.region
        return params

    async def _get(
        self, path: str, timeout: float, params: Optional[dict] = None
    ) -> dict:
        url = f"{self.base_url}{path}"
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(
                timeout=timeout, transport=self._transport, follow_redirects=True
            ) as client:
                resp = await client.get(url, params=params, headers=self.headers)
        except httpx.TimeoutException as e:
            raise ProviderError(f"Outscraper request timed out: {path}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Outscraper request failed: {e}") from e

        log_http_request(
            "GET", url, status_code=resp.status_code,
            duration=round(time.monotonic() - started, 3),
        )

        if resp.status_code >= 400:
            raise ProviderError(
                f"Outscraper error {resp.status_code}: {resp.text[:200]}"
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise ProviderError(f"Outscraper returned invalid JSON for {path}") from e
        if not isinstance(body, dict):
            raise ProviderError(f"Unexpected Outscraper response for {path}")
        return body

    async def submit_query(self, query: str, options: SearchOptions) -> str:
        body = await self._get(
            "/maps/search-v3", self.submit_timeout, self.build_params(query, options)
        )
        if body.get("error"):
            raise ProviderError(f"Outscraper rejected query '{query}': {body['error']}")

        request_id = body.get("id")
        if not request_id:
            raise ProviderError(f"Outscraper returned no request id for '{query}'")

        logger.info(f"Submitted query '{query}' as request {request_id}")
        return request_id

    async def get_status(self, request_id: str) -> ProviderResult:
        body = await self._get(f"/requests/{request_id}", self.status_timeout)
        status = body.get("status")
        state = map_status(status)
        data = body.get("data")

        if state is RequestState.SUCCEEDED and not data and status == "Completed":
            results = await self._get(
                f"/requests/{request_id}/results", self.status_timeout
            )
            data = results.get("data") or results.get("results")

        logger.debug(f"Request {request_id} status {status!r} -> {state.value}")
        return ProviderResult(
            request_id=body.get("id") or request_id,
            state=state,
            data=(data or []) if state is RequestState.SUCCEEDED else None,
            message=body.get("message") or body.get("description"),
        )
