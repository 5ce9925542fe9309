"""ROASYNC — Shopify Admin API Client.

Handles authentication, retry logic, rate limiting, and Link-header
(``page_info``) pagination.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from roasync.config import settings
from roasync.core.errors import AuthError, ProviderError, RateLimited
from roasync.core.logging import get_logger
from roasync.core.run_context import RunContext
from roasync.models.provider_models import Page

logger = get_logger("shopify.client")

PROVIDER = "shopify"
PAGE_LIMIT = 250


def _backoff(attempt: int) -> float:
    return settings.retry_base_delay * (2 ** (attempt - 1))


def _retry_after(resp: httpx.Response) -> Optional[float]:
    value = resp.headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


def next_page_info(resp: httpx.Response) -> Optional[str]:
    """``page_info`` of the ``rel="next"`` Link, if any."""
    link = resp.links.get("next")
    if not link or not link.get("url"):
        return None
    return httpx.URL(link["url"]).params.get("page_info")


def shop_domain(meta: Dict[str, Any]) -> str:
    """Resolve the myshopify domain from integration metadata."""
    domain = meta.get("myshopify_domain")
    if domain:
        return domain
    store_name = meta.get("store_name")
    if not store_name:
        raise AuthError("Shopify integration has no store domain configured")
    return f"{store_name}.myshopify.com"


class ShopifyClient:
    """Async HTTP client for one Shopify store."""

    def __init__(
        self,
        domain: str,
        access_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not access_token:
            raise AuthError("Shopify access token is missing")
        self.domain = domain
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

    async def __aenter__(self) -> "ShopifyClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def url(self, resource: str) -> str:
        return (
            f"https://{self.domain}/admin/api/{settings.shopify_api_version}/"
            f"{resource.lstrip('/')}"
        )

    # ── Core Request Method ──

    async def send(
        self, method: str, resource: str, params: Dict[str, Any] | None = None
    ) -> httpx.Response:
        """Make a request with retry + rate-limit handling."""
        client = await self._get_client()
        headers = {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }
        url = self.url(resource)
        max_retries = settings.max_retries

        for attempt in range(1, max_retries + 1):
            try:
                resp = await client.request(method, url, params=params, headers=headers)
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
                return resp

            if resp.status_code == 429:
                retry_after = _retry_after(resp)
                if attempt < max_retries:
                    wait = retry_after if retry_after is not None else _backoff(attempt)
                    logger.warning(
                        f"Rate limited (429). Retrying in {wait}s (attempt {attempt}/{max_retries})",
                        extra={"provider": PROVIDER, "status_code": 429},
                    )
                    await asyncio.sleep(wait)
                    continue
                raise RateLimited(
                    f"Shopify rate limit reached for {resource}",
                    provider=PROVIDER,
                    retry_after=(
                        int(retry_after)
                        if retry_after is not None
                        else settings.rate_limit_retry_after
                    ),
                )

            if resp.status_code in (401, 403):
                raise AuthError(f"Shopify rejected the access token ({resp.status_code})")

            if resp.status_code >= 500 and attempt < max_retries:
                wait = _backoff(attempt)
                logger.warning(f"Server error {resp.status_code}. Retrying in {wait}s")
                await asyncio.sleep(wait)
                continue

            raise ProviderError(
                f"Shopify {resource} failed with HTTP {resp.status_code}",
                provider=PROVIDER,
                status=resp.status_code,
            )

        raise ProviderError("Max retries exhausted", provider=PROVIDER)

    async def get_json(
        self, resource: str, params: Dict[str, Any] | None = None
    ) -> Dict[str, Any]:
        resp = await self.send("GET", resource, params)
        return resp.json()

    # ── Pagination ──

    async def fetch_page(
        self,
        resource: str,
        key: str,
        params: Dict[str, Any] | None = None,
        cursor: Optional[str] = None,
    ) -> Page[Dict[str, Any]]:
        """Fetch one page of ``key`` records from a list endpoint."""
        params = dict(params or {})
        params.setdefault("limit", PAGE_LIMIT)
        if cursor:
            # Shopify rejects filters alongside page_info
            params = {"limit": params["limit"], "page_info": cursor}
        resp = await self.send("GET", resource, params)
        return Page(records=resp.json().get(key, []), next_cursor=next_page_info(resp))

    async def paginate(
        self,
        resource: str,
        key: str,
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

            page = await self.fetch_page(resource, key, params, cursor)
            records.extend(page.records)
            cursor = page.next_cursor
            if not cursor:
                break
            if settings.shopify_request_delay:
                await asyncio.sleep(settings.shopify_request_delay)
        else:
            if cursor:
                logger.warning(f"Page cap ({max_pages}) reached for {resource}")
                if ctx:
                    ctx.mark_truncated()

        logger.info(f"Fetched {len(records)} {key} from {self.domain}")
        return records
