"""ROASYNC — Meta Insights → Daily Campaign Records.

Converts one campaign-day insight row into a DailyCampaignRecord, upserted
on (user, campaign id, date). Money arrives already converted to EUR.
"""

from typing import Optional

from sqlmodel import Session, select

from roasync.analyzer.metrics_engine import compute_cpc, compute_metrics, finite
from roasync.core.logging import get_logger
from roasync.models.db_models import DailyCampaignRecord, Product, _utcnow
from roasync.models.provider_models import MetaInsightRow

logger = get_logger("meta.transformer")


def upsert_daily_record(
    session: Session,
    user_id: str,
    ad_account_id: str,
    row: MetaInsightRow,
    spend_eur: float,
    product: Optional[Product] = None,
    product_price_eur: float = 0.0,
    cog_eur: float = 0.0,
) -> bool:
    """Insert or update one campaign-day. Returns True when a row was created."""
    spend_eur = round(finite(spend_eur, "spend"), 2)
    units_sold = row.purchases
    metrics = compute_metrics(units_sold, product_price_eur, cog_eur, spend_eur)

    values = dict(
        campaign_name=row.campaign_name,
        ad_account_id=ad_account_id,
        total_spend=spend_eur,
        clicks=row.clicks,
        cpc=round(compute_cpc(spend_eur, row.clicks), 2),
        atc=row.add_to_cart,
        purchases=row.purchases,
        product_id=product.id if product else None,
        product_price=round(product_price_eur, 2),
        cog=round(cog_eur, 2),
        units_sold=units_sold,
        revenue=metrics.revenue,
        roas=metrics.roas,
        margin_eur=metrics.margin_eur,
        margin_pct=metrics.margin_pct,
        updated_at=_utcnow(),
    )

    existing = session.exec(
        select(DailyCampaignRecord).where(
            DailyCampaignRecord.user_id == user_id,
            DailyCampaignRecord.campaign_id == row.campaign_id,
            DailyCampaignRecord.date == row.date_start,
        )
    ).first()

    if existing:
        for key, value in values.items():
            setattr(existing, key, value)
        session.add(existing)
        return False

    session.add(
        DailyCampaignRecord(
            user_id=user_id,
            campaign_id=row.campaign_id,
            date=row.date_start,
            **values,
        )
    )
    return True
