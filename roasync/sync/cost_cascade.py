"""ROASYNC — Cost Price Cascade.

A product cost edit recomputes every daily campaign record whose campaign
name best-matches that product. Spend and units sold are never touched.
Price and COG are both re-derived with the caller's rate table.
"""

import math
from typing import Optional

from sqlmodel import Session, select

from roasync.analyzer.currency import CurrencyNormalizer
from roasync.analyzer.matcher import best_match
from roasync.analyzer.metrics_engine import compute_metrics, compute_profit_margin
from roasync.core.errors import InvalidInput, NotFound
from roasync.core.logging import get_logger
from roasync.models.db_models import DailyCampaignRecord, Integration, Product, _utcnow
from roasync.models.result_models import CascadeResult
from roasync.sync.providers import store_currency

logger = get_logger("sync.cascade")


def update_product_cost(
    session: Session,
    user_id: str,
    product_id: int,
    new_cost: float,
    normalizer: Optional[CurrencyNormalizer] = None,
) -> CascadeResult:
    if new_cost is None or not math.isfinite(new_cost) or new_cost < 0:
        raise InvalidInput(f"Cost price must be a non-negative number, got {new_cost}")

    product = session.get(Product, product_id)
    if product is None or product.user_id != user_id:
        raise NotFound(f"Product {product_id} not found")

    product.cost_price = new_cost
    product.profit_margin = compute_profit_margin(product.selling_price, new_cost)
    product.updated_at = _utcnow()
    session.add(product)

    normalizer = normalizer or CurrencyNormalizer()
    integration = session.get(Integration, product.integration_id)
    currency = store_currency(integration) if integration else None
    cog_eur = round(normalizer.to_reporting_currency(new_cost, currency), 2)
    price_eur = round(normalizer.to_reporting_currency(product.selling_price, currency), 2)

    candidates = [
        (str(p.id), p.product_name)
        for p in session.exec(select(Product).where(Product.user_id == user_id)).all()
    ]
    campaign_names = session.exec(
        select(DailyCampaignRecord.campaign_name)
        .where(DailyCampaignRecord.user_id == user_id)
        .distinct()
    ).all()
    matched = [
        name
        for name in campaign_names
        if best_match(name, candidates).match_id == str(product.id)
    ]

    updated = 0
    if matched:
        records = session.exec(
            select(DailyCampaignRecord).where(
                DailyCampaignRecord.user_id == user_id,
                DailyCampaignRecord.campaign_name.in_(matched),
            )
        ).all()
        for record in records:
            metrics = compute_metrics(record.units_sold, price_eur, cog_eur, record.total_spend)
            record.product_id = product.id
            record.product_price = price_eur
            record.cog = cog_eur
            record.revenue = metrics.revenue
            record.margin_eur = metrics.margin_eur
            record.margin_pct = metrics.margin_pct
            record.roas = metrics.roas
            record.updated_at = _utcnow()
            session.add(record)
            updated += 1

    session.commit()
    logger.info(
        f"Cost of product {product.id} set to {new_cost}; "
        f"{updated} records recomputed across {len(matched)} campaigns"
    )
    return CascadeResult(
        product_id=product.id,
        cost_price=new_cost,
        profit_margin=product.profit_margin,
        records_updated=updated,
        campaigns_matched=matched,
    )
