"""ROASYNC — Meta API Endpoints.

Fetch functions for each Meta Marketing API resource. Every function returns
validated provider models, never raw JSON. Rows that fail validation are
dropped one by one and listed in ``rejected``.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

from roasync.config import settings
from roasync.connectors.date_ranges import DateRange
from roasync.connectors.meta.client import MetaClient
from roasync.core.logging import get_logger
from roasync.core.run_context import RunContext
from roasync.models.provider_models import (
    MetaAdAccount,
    MetaCampaign,
    MetaCreativeImage,
    MetaInsightRow,
    validate_rows,
)

logger = get_logger("meta.endpoints")

AD_ACCOUNT_FIELDS = "id,name,account_id,account_status,currency"
INSIGHT_FIELDS = "campaign_id,campaign_name,date_start,date_stop,spend,clicks,impressions,actions"
CAMPAIGN_FIELDS = (
    "id,name,status,objective,daily_budget,lifetime_budget,created_time"
)
ADSET_FIELDS = (
    "id,name,status,daily_budget,lifetime_budget,optimization_goal,"
    "billing_event,created_time,updated_time"
)
CREATIVE_FIELDS = (
    "id,name,status,creative{id,name,title,body,image_url,thumbnail_url,object_story_spec}"
)
IMAGE_CREATIVE_FIELDS = "creative{image_url,thumbnail_url,object_story_spec}"


def account_path(ad_account_id: str) -> str:
    """Graph node for an ad account, with the ``act_`` prefix ensured."""
    return ad_account_id if ad_account_id.startswith("act_") else f"act_{ad_account_id}"


class MetaEndpoints:
    """Typed fetches against the Graph API."""

    def __init__(self, client: MetaClient):
        self.client = client
        self.rejected: List[str] = []

    # ── Ad Accounts ──

    async def list_ad_accounts(self) -> List[MetaAdAccount]:
        data = await self.client.paginate(
            "me/adaccounts", {"fields": AD_ACCOUNT_FIELDS, "limit": 100}
        )
        return validate_rows(MetaAdAccount, data, self.rejected)

    async def fetch_account_currency(self, ad_account_id: str) -> Optional[str]:
        """Ad account currency, or None when Meta does not report one."""
        result = await self.client.request(
            "GET", account_path(ad_account_id), {"fields": "currency"}
        )
        currency = result.get("currency") or None
        if currency:
            logger.info(f"Account currency from Meta: {currency}")
        return currency

    # ── Insights ──

    async def fetch_campaign_insights(
        self,
        ad_account_id: str,
        date_range: DateRange,
        ctx: Optional[RunContext] = None,
    ) -> List[MetaInsightRow]:
        """Campaign-level insights broken down by day."""
        params = {
            "fields": INSIGHT_FIELDS,
            "time_range": json.dumps(date_range.as_meta_time_range()),
            "time_increment": "1",
            "level": "campaign",
            "limit": 500,
        }
        data = await self.client.paginate(
            f"{account_path(ad_account_id)}/insights", params, ctx
        )
        rows = validate_rows(MetaInsightRow, data, self.rejected)
        logger.info(f"Fetched {len(rows)} campaign insight rows")
        return rows

    async def fetch_daily_spend(
        self,
        ad_account_id: str,
        date_range: DateRange,
        ctx: Optional[RunContext] = None,
    ) -> Dict[str, float]:
        """Account-level spend per calendar date, in account currency."""
        params = {
            "fields": "spend,date_start",
            "time_range": json.dumps(date_range.as_meta_time_range()),
            "time_increment": "1",
            "level": "account",
        }
        data = await self.client.paginate(
            f"{account_path(ad_account_id)}/insights", params, ctx
        )
        spend: Dict[str, float] = {}
        for row in data:
            day = row.get("date_start")
            try:
                amount = float(row.get("spend") or 0)
            except (TypeError, ValueError):
                amount = None
            if not day or amount is None:
                message = f"Daily spend row rejected, invalid: {row}"
                logger.warning(message)
                self.rejected.append(message)
                continue
            spend[day] = spend.get(day, 0.0) + amount
        return spend

    # ── Structure ──

    async def list_campaigns(
        self, ad_account_id: str, ctx: Optional[RunContext] = None
    ) -> List[MetaCampaign]:
        data = await self.client.paginate(
            f"{account_path(ad_account_id)}/campaigns",
            {"fields": CAMPAIGN_FIELDS, "limit": 500},
            ctx,
        )
        return validate_rows(MetaCampaign, data, self.rejected)

    async def get_ad_sets(self, campaign_id: str) -> List[Dict[str, Any]]:
        result = await self.client.request(
            "GET", f"{campaign_id}/adsets", {"fields": ADSET_FIELDS}
        )
        return result.get("data", [])

    async def get_creatives(self, campaign_id: str) -> List[Dict[str, Any]]:
        result = await self.client.request(
            "GET", f"{campaign_id}/ads", {"fields": CREATIVE_FIELDS}
        )
        return result.get("data", [])

    async def update_campaign_status(self, campaign_id: str, status: str) -> bool:
        """Set a campaign to ACTIVE or PAUSED."""
        result = await self.client.request(
            "POST", campaign_id, data={"status": status}
        )
        logger.info(
            f"Campaign status set to {status}", extra={"campaign_id": campaign_id}
        )
        return bool(result.get("success", False))

    # ── Creative Images ──

    async def fetch_creative_image(self, campaign_id: str) -> MetaCreativeImage:
        """First creative image of a campaign, falling back to its first ad set."""
        result = await self.client.request(
            "GET", f"{campaign_id}/ads", {"fields": IMAGE_CREATIVE_FIELDS, "limit": 3}
        )
        for ad in result.get("data", []):
            image = MetaCreativeImage.from_creative(campaign_id, ad.get("creative") or {})
            if image.found:
                return image

        adsets = await self.client.request(
            "GET", f"{campaign_id}/adsets", {"fields": "id", "limit": 1}
        )
        for adset in adsets.get("data", []):
            ads = await self.client.request(
                "GET",
                f"{adset['id']}/ads",
                {"fields": IMAGE_CREATIVE_FIELDS, "limit": 1},
            )
            for ad in ads.get("data", []):
                image = MetaCreativeImage.from_creative(
                    campaign_id, ad.get("creative") or {}
                )
                if image.found:
                    return image
        return MetaCreativeImage(campaign_id=campaign_id)

    async def enrich_campaign_images(
        self, campaigns: List[MetaCampaign]
    ) -> List[MetaCampaign]:
        """Attach creative images in batches; a failed lookup leaves the
        campaign without an image instead of failing the batch."""
        batch_size = settings.image_batch_size
        enriched: List[MetaCampaign] = []

        for start in range(0, len(campaigns), batch_size):
            batch = campaigns[start : start + batch_size]
            results = await asyncio.gather(
                *(self.fetch_creative_image(c.id) for c in batch),
                return_exceptions=True,
            )
            for campaign, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.warning(
                        f"Image lookup failed: {result}",
                        extra={"campaign_id": campaign.id},
                    )
                    enriched.append(campaign)
                    continue
                enriched.append(
                    campaign.model_copy(
                        update={
                            "image_url": result.image_url,
                            "thumbnail_url": result.thumbnail_url,
                        }
                    )
                )
            if start + batch_size < len(campaigns) and settings.image_batch_delay:
                await asyncio.sleep(settings.image_batch_delay)

        found = sum(1 for c in enriched if c.image_url)
        logger.info(f"Creative images found for {found}/{len(enriched)} campaigns")
        return enriched
