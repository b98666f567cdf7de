"""ADSYNC — Meta API Client.

Handles authentication, retry logic, cursor pagination, and the batch endpoint.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from adsync.config import settings
from adsync.core.logging import get_logger

logger = get_logger("meta.client")


class MetaAPIError(Exception):
    """Raised when Meta API returns an error."""

    def __init__(self, message: str, status_code: int = 0, error_code: int = 0):
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


def _error_body(response: httpx.Response) -> Any:
    """Parsed JSON body of an error response, ``{}`` when it is not JSON."""
    if not response.headers.get("content-type", "").startswith("application/json"):
        return {}
    try:
        return response.json()
    except ValueError:
        # Gateways sometimes label HTML error pages as JSON
        return {}


class PageWalk(BaseModel):
    """Result of walking a cursor-paginated endpoint.

    A walk that stopped early still carries every record fetched before the
    failure; callers decide whether partial data is acceptable.
    """

    endpoint: str = ""
    items: List[Dict[str, Any]] = []
    pages: int = 0
    complete: bool = True
    hit_page_limit: bool = False
    error: Optional[str] = None

    @property
    def first_page_failed(self) -> bool:
        return self.pages == 0 and self.error is not None


class MetaClient:
    """Async HTTP client for Meta Marketing API."""

    def __init__(
        self,
        access_token: str | None = None,
        http_client: Optional[httpx.AsyncClient] = None,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
    ):
        self.access_token = access_token or settings.meta_access_token
        self.base_url = settings.graph_base
        self.max_retries = max_retries or settings.meta_max_retries
        self.retry_base_delay = (
            settings.meta_retry_base_delay
            if retry_base_delay is None
            else retry_base_delay
        )
        self._client: Optional[httpx.AsyncClient] = http_client
        self.request_count = 0

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=settings.meta_request_timeout)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def url(self, path: str) -> str:
        """Absolute Graph URL for a relative path like ``act_1/ads``."""
        return f"{self.base_url}/{path.lstrip('/')}"

    # ── Core Request Method ──

    async def _request(
        self,
        method: str,
        url: str,
        params: Dict[str, Any] | None = None,
    ) -> Any:
        """Make a request with retry + rate-limit handling.

        Timeouts are not retried: a slow page ends the walk immediately.
        """
        params = dict(params or {})
        params["access_token"] = self.access_token

        client = await self._get_client()

        for attempt in range(1, self.max_retries + 1):
            self.request_count += 1
            try:
                resp = await client.request(method, url, params=params)

                # Rate limited
                if resp.status_code == 429:
                    if attempt < self.max_retries:
                        wait = self.retry_base_delay * (2 ** (attempt - 1))
                        logger.warning(
                            f"Rate limited (429). Retrying in {wait}s (attempt {attempt}/{self.max_retries})"
                        )
                        await asyncio.sleep(wait)
                        continue
                    raise MetaAPIError("Rate limited", 429)

                resp.raise_for_status()
                return resp.json()

            except httpx.HTTPStatusError as e:
                body = _error_body(e.response)
                error = body.get("error", {}) if isinstance(body, dict) else {}
                error_msg = error.get("message", str(e))
                error_code = error.get("code", 0)

                if attempt < self.max_retries and e.response.status_code >= 500:
                    wait = self.retry_base_delay * (2 ** (attempt - 1))
                    logger.warning(
                        f"Server error {e.response.status_code}. Retrying in {wait}s"
                    )
                    await asyncio.sleep(wait)
                    continue

                raise MetaAPIError(error_msg, e.response.status_code, error_code) from e

            except httpx.TimeoutException as e:
                raise MetaAPIError(f"Request timed out: {e}") from e

            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    wait = self.retry_base_delay * (2 ** (attempt - 1))
                    logger.warning(f"Request error: {e}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise MetaAPIError(
                    f"Connection failed after {self.max_retries} retries: {e}"
                ) from e

            except ValueError as e:
                raise MetaAPIError(f"Malformed response: {e}") from e

        raise MetaAPIError("Max retries exhausted")

    # ── Pagination ──

    async def paginate(
        self,
        url: str,
        params: Dict[str, Any] | None = None,
        max_pages: int | None = None,
        page_delay: float = 0.0,
    ) -> PageWalk:
        """Follow ``paging.next`` cursors until exhausted, errored, or capped.

        Never raises for source errors: the walk is returned with whatever
        was accumulated and ``error`` set.
        """
        max_pages = max_pages or settings.listing_max_pages
        walk = PageWalk(endpoint=url)
        current_url = url

        for page in range(max_pages):
            try:
                result = await self._request(
                    "GET", current_url, params if page == 0 else None
                )
            except MetaAPIError as e:
                walk.error = str(e)
                walk.complete = False
                logger.warning(
                    f"Pagination aborted after {walk.pages} pages: {e}",
                    extra={"endpoint": url, "pages": walk.pages},
                )
                break

            if not isinstance(result, dict):
                walk.error = "Unexpected response envelope"
                walk.complete = False
                break

            if result.get("error"):
                error = result["error"]
                walk.error = (
                    error.get("message", str(error))
                    if isinstance(error, dict)
                    else str(error)
                )
                walk.complete = False
                logger.warning(
                    f"Meta API pagination error: {walk.error}",
                    extra={"endpoint": url, "pages": walk.pages},
                )
                break

            data = result.get("data", [])
            if isinstance(data, list):
                walk.items.extend(data)
            walk.pages += 1

            # Check for next page
            paging = result.get("paging") or {}
            next_url = paging.get("next")
            if not next_url:
                break
            if page + 1 >= max_pages:
                walk.hit_page_limit = True
                walk.complete = False
                logger.warning(
                    f"Page limit {max_pages} reached, stopping walk",
                    extra={"endpoint": url, "pages": walk.pages},
                )
                break
            current_url = next_url
            if page_delay:
                await asyncio.sleep(page_delay)

        logger.info(
            f"Fetched {len(walk.items)} records from {url}",
            extra={"endpoint": url, "pages": walk.pages},
        )
        return walk

    # ── Batch API ──

    async def batch(self, requests: List[Dict[str, str]]) -> List[Optional[Dict[str, Any]]]:
        """Run sub-requests through the batch endpoint.

        Returns one parsed body per sub-request, ``None`` where the
        sub-request failed or its body could not be parsed.
        """
        params = {
            "batch": json.dumps(requests),
            "include_headers": "false",
        }
        result = await self._request("POST", self.url(""), params)
        if not isinstance(result, list):
            raise MetaAPIError("Batch response was not a list")

        bodies: List[Optional[Dict[str, Any]]] = []
        for resp in result:
            if not isinstance(resp, dict) or resp.get("code") != 200:
                bodies.append(None)
                continue
            try:
                body = json.loads(resp.get("body") or "null")
            except ValueError:
                body = None
            bodies.append(body if isinstance(body, dict) else None)
        return bodies
