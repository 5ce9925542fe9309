"""ROASYNC — Meta Graph API Client.

Handles authentication, retry logic, rate limiting, and cursor pagination.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from roasync.config import settings
from roasync.core.errors import AuthError, ProviderError, RateLimited
from roasync.core.logging import get_logger
from roasync.core.run_context import RunContext
from roasync.models.provider_models import Page

logger = get_logger("meta.client")

PROVIDER = "facebook_ads"

# Graph API throttling signatures
RATE_LIMIT_CODES = {4, 17, 32, 613, 80004}
RATE_LIMIT_SUBCODES = {2446079}
TOKEN_ERROR_CODES = {190}


def _backoff(attempt: int) -> float:
    return settings.retry_base_delay * (2 ** (attempt - 1))


def _error_body(resp: httpx.Response) -> Dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body.get("error", {}) if isinstance(body, dict) else {}


def is_rate_limited(status_code: int, error: Dict[str, Any]) -> bool:
    if status_code == 429:
        return True
    return (
        error.get("code") in RATE_LIMIT_CODES
        or error.get("error_subcode") in RATE_LIMIT_SUBCODES
    )


class MetaClient:
    """Async HTTP client for the Meta Marketing API."""

    def __init__(
        self,
        access_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not access_token:
            raise AuthError("Facebook access token is missing")
        self.access_token = access_token
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "MetaClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def url(self, resource: str) -> str:
        if resource.startswith("http"):
            return resource
        return f"{settings.meta_base}/{resource.lstrip('/')}"

    # ── Core Request Method ──

    async def request(
        self,
        method: str,
        resource: str,
        params: Dict[str, Any] | None = None,
        data: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """Make a request with retry + rate-limit handling."""
        params = dict(params or {})
        params["access_token"] = self.access_token
        url = self.url(resource)
        client = await self._get_client()
        max_retries = settings.max_retries

        for attempt in range(1, max_retries + 1):
            try:
                resp = await client.request(method, url, params=params, data=data)
            except httpx.RequestError as e:
                if attempt < max_retries:
                    wait = _backoff(attempt)
                    logger.warning(f"Request error: {e}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise ProviderError(
                    f"Connection failed after {max_retries} retries: {e}",
                    provider=PROVIDER,
                ) from e

            if resp.is_success:
                return resp.json()

            error = _error_body(resp)
            message = error.get("message") or f"HTTP {resp.status_code}"
            code = error.get("code") or 0

            if is_rate_limited(resp.status_code, error):
                if attempt < max_retries:
                    wait = _backoff(attempt)
                    logger.warning(
                        f"Rate limited (code {code}). Retrying in {wait}s (attempt {attempt}/{max_retries})",
                        extra={"provider": PROVIDER, "status_code": resp.status_code},
                    )
                    await asyncio.sleep(wait)
                    continue
                raise RateLimited(
                    f"Facebook rate limit reached: {message}",
                    provider=PROVIDER,
                    retry_after=settings.rate_limit_retry_after,
                    error_code=code,
                )

            if resp.status_code == 401 or code in TOKEN_ERROR_CODES:
                raise AuthError(f"Facebook token rejected: {message}")

            if resp.status_code >= 500 and attempt < max_retries:
                wait = _backoff(attempt)
                logger.warning(f"Server error {resp.status_code}. Retrying in {wait}s")
                await asyncio.sleep(wait)
                continue

            raise ProviderError(
                message, provider=PROVIDER, status=resp.status_code, error_code=code
            )

        raise ProviderError("Max retries exhausted", provider=PROVIDER)

    # ── Pagination ──

    async def fetch_page(
        self,
        resource: str,
        params: Dict[str, Any] | None = None,
        cursor: Optional[str] = None,
    ) -> Page[Dict[str, Any]]:
        """Fetch one page; the cursor is ``paging.cursors.after``."""
        params = dict(params or {})
        if cursor:
            params["after"] = cursor
        result = await self.request("GET", resource, params)

        paging = result.get("paging") or {}
        next_cursor = None
        if paging.get("next"):
            next_cursor = (paging.get("cursors") or {}).get("after")
        return Page(records=result.get("data", []), next_cursor=next_cursor)

    async def paginate(
        self,
        resource: str,
        params: Dict[str, Any] | None = None,
        ctx: Optional[RunContext] = None,
        max_pages: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch pages until exhausted, the page cap, or the run deadline."""
        max_pages = max_pages or (ctx.max_pages if ctx else settings.max_pages_per_run)
        records: List[Dict[str, Any]] = []
        cursor: Optional[str] = None

        for page_number in range(max_pages):
            if ctx and ctx.expired:
                logger.warning(
                    f"Run deadline reached after {page_number} pages of {resource}",
                    extra={"run_id": ctx.run_id},
                )
                ctx.mark_truncated()
                break

            page = await self.fetch_page(resource, params, cursor)
            records.extend(page.records)
            cursor = page.next_cursor
            if not cursor:
                break
            if settings.meta_page_delay:
                await asyncio.sleep(settings.meta_page_delay)
        else:
            if cursor:
                logger.warning(f"Page cap ({max_pages}) reached for {resource}")
                if ctx:
                    ctx.mark_truncated()

        logger.info(f"Fetched {len(records)} records from {resource}")
        return records
