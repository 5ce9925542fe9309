"""ROASYNC — Facebook Campaign Sync.

Daily campaign insights → DailyCampaignRecord rows in EUR, each campaign
paired with the best-matching Product by name.
"""

from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from roasync.analyzer.currency import CurrencyNormalizer, load_normalizer
from roasync.analyzer.decision_engine import apply_decisions
from roasync.analyzer.matcher import best_match
from roasync.config import settings
from roasync.connectors.date_ranges import DateRange
from roasync.connectors.meta.client import MetaClient
from roasync.connectors.meta.endpoints import MetaEndpoints
from roasync.connectors.meta.transformer import upsert_daily_record
from roasync.core.errors import AuthError, ProviderError
from roasync.core.logging import get_logger
from roasync.core.run_context import RunContext
from roasync.models.db_models import Integration, Product
from roasync.models.provider_models import MetaInsightRow
from roasync.models.result_models import SyncResult
from roasync.sync.providers import store_currency

logger = get_logger("sync.campaigns")


async def resolve_ad_account(
    integration: Integration,
    endpoints: MetaEndpoints,
    ad_account_id: Optional[str] = None,
) -> str:
    """Explicit argument, then stored metadata, then the first account Meta lists."""
    if ad_account_id:
        return ad_account_id
    stored = (integration.meta or {}).get("ad_account_id")
    if stored:
        return stored
    accounts = await endpoints.list_ad_accounts()
    if not accounts:
        raise AuthError("No Facebook ad account is available for this token")
    logger.info(f"Using first ad account {accounts[0].id}")
    return accounts[0].id


async def resolve_account_currency(
    session: Session,
    integration: Integration,
    endpoints: MetaEndpoints,
    ad_account_id: str,
) -> str:
    try:
        currency = await endpoints.fetch_account_currency(ad_account_id)
    except ProviderError as e:
        logger.warning(f"Could not fetch ad account currency: {e}")
        currency = None

    if currency:
        if (integration.meta or {}).get("currency") != currency:
            integration.update_meta(currency=currency)
            session.add(integration)
            session.commit()
        return currency
    return (integration.meta or {}).get("currency") or settings.reporting_currency


class ProductCatalog:
    """User's products as match candidates, with prices converted to EUR."""

    def __init__(self, session: Session, user_id: str, normalizer: CurrencyNormalizer):
        self.products: Dict[str, Product] = {
            str(p.id): p
            for p in session.exec(select(Product).where(Product.user_id == user_id)).all()
        }
        self.normalizer = normalizer
        self._currencies: Dict[int, str] = {}
        for integration_id in {p.integration_id for p in self.products.values()}:
            integration = session.get(Integration, integration_id)
            if integration:
                self._currencies[integration_id] = store_currency(integration)

    @property
    def candidates(self):
        return [(pid, p.product_name) for pid, p in self.products.items()]

    def match(self, campaign_name: str) -> Optional[Product]:
        result = best_match(campaign_name, self.candidates)
        return self.products.get(result.match_id) if result.matched else None

    def to_eur(self, product: Product, amount: Optional[float]) -> float:
        currency = self._currencies.get(product.integration_id, settings.reporting_currency)
        return self.normalizer.to_reporting_currency(amount or 0.0, currency)


async def sync_facebook_campaigns(
    session: Session,
    integration: Integration,
    client: MetaClient,
    date_range: DateRange,
    ad_account_id: Optional[str] = None,
    ctx: Optional[RunContext] = None,
    normalizer: Optional[CurrencyNormalizer] = None,
    apply_market: Optional[str] = None,
) -> SyncResult:
    ctx = ctx or RunContext()
    endpoints = MetaEndpoints(client)
    user_id = integration.user_id
    result = SyncResult()

    ad_account_id = await resolve_ad_account(integration, endpoints, ad_account_id)
    account_currency = await resolve_account_currency(
        session, integration, endpoints, ad_account_id
    )
    normalizer = normalizer or await load_normalizer()

    rows = await endpoints.fetch_campaign_insights(ad_account_id, date_range, ctx)
    result.total = len(rows) + len(endpoints.rejected)
    result.skipped += len(endpoints.rejected)
    result.errors.extend(endpoints.rejected)

    by_campaign: Dict[str, List[MetaInsightRow]] = defaultdict(list)
    for row in rows:
        by_campaign[row.campaign_id].append(row)

    catalog = ProductCatalog(session, user_id, normalizer)

    for campaign_id, campaign_rows in by_campaign.items():
        campaign_name = campaign_rows[0].campaign_name
        product = catalog.match(campaign_name)
        if product is None:
            logger.info(
                f"No product matched campaign '{campaign_name}'",
                extra={"campaign_id": campaign_id},
            )
        price_eur = catalog.to_eur(product, product.selling_price) if product else 0.0
        cog_eur = catalog.to_eur(product, product.cost_price) if product else 0.0

        created = updated = 0
        try:
            for row in campaign_rows:
                spend_eur = normalizer.to_reporting_currency(row.spend, account_currency)
                if upsert_daily_record(
                    session,
                    user_id,
                    ad_account_id,
                    row,
                    spend_eur,
                    product=product,
                    product_price_eur=price_eur,
                    cog_eur=cog_eur,
                ):
                    created += 1
                else:
                    updated += 1
            session.commit()
        except (SQLAlchemyError, ValueError) as e:
            session.rollback()
            logger.error(f"Failed to save campaign: {e}", extra={"campaign_id": campaign_id})
            result.errors.append(f"{campaign_name} ({campaign_id}): {e}")
            continue
        result.created += created
        result.updated += updated

    result.truncated = ctx.truncated
    logger.info(
        f"Campaign sync done: {len(by_campaign)} campaigns, {result.created} created, "
        f"{result.updated} updated, {len(result.errors)} errors",
        extra={"integration_id": integration.id, "duration_ms": ctx.elapsed_ms()},
    )

    if apply_market:
        apply_decisions(session, user_id, apply_market)
    return result
