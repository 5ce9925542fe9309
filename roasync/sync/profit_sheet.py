"""ROASYNC — Daily Profit Sheet.

Per calendar day: Shopify revenue, COG and refunds, Facebook ad spend, and
manual adjustments, all in EUR, newest day first.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlmodel import Session, select

from roasync.analyzer.currency import CurrencyNormalizer, load_normalizer
from roasync.analyzer.metrics_engine import compute_profit, finite
from roasync.config import settings
from roasync.connectors.date_ranges import DateRange
from roasync.connectors.meta.client import MetaClient
from roasync.connectors.meta.endpoints import MetaEndpoints
from roasync.connectors.shopify.client import ShopifyClient
from roasync.connectors.shopify.endpoints import ShopifyEndpoints
from roasync.core.errors import InvalidInput
from roasync.core.logging import get_logger
from roasync.core.run_context import RunContext
from roasync.models.db_models import Integration, Product, ProfitSheetEntry, _utcnow
from roasync.models.result_models import ProfitDay
from roasync.sync.providers import store_currency

logger = get_logger("sync.profit")


@dataclass
class _Day:
    revenue: float = 0.0
    orders: int = 0
    cog: float = 0.0
    ad_spend: float = 0.0
    provider_refunds: float = 0.0
    other_expenses: float = 0.0
    manual_refunds: float = 0.0


def _cost_lookup(session: Session, user_id: str, integration_id: int) -> Dict[str, float]:
    """Cost price keyed by external product id and by SKU."""
    costs: Dict[str, float] = {}
    products = session.exec(
        select(Product).where(
            Product.user_id == user_id, Product.integration_id == integration_id
        )
    ).all()
    for product in products:
        cost = product.cost_price or 0.0
        costs[product.external_product_id] = cost
        if product.sku:
            costs[product.sku] = cost
    return costs


async def build_profit_sheet(
    session: Session,
    user_id: str,
    shopify_integration: Integration,
    facebook_integration: Integration,
    ad_account_id: str,
    date_range: DateRange,
    shopify_client: ShopifyClient,
    meta_client: MetaClient,
    normalizer: Optional[CurrencyNormalizer] = None,
    ctx: Optional[RunContext] = None,
) -> List[ProfitDay]:
    ctx = ctx or RunContext()

    normalizer = normalizer or await load_normalizer()
    # Different providers, different rate-limit buckets
    orders, spend_by_day = await asyncio.gather(
        ShopifyEndpoints(shopify_client).fetch_orders(date_range, ctx),
        MetaEndpoints(meta_client).fetch_daily_spend(ad_account_id, date_range, ctx),
    )

    shop_currency = store_currency(shopify_integration)
    ad_currency = (facebook_integration.meta or {}).get("currency") or settings.reporting_currency
    costs = _cost_lookup(session, user_id, shopify_integration.id)
    days: Dict[str, _Day] = {}

    for order in orders:
        day = days.setdefault(order.order_date, _Day())
        currency = order.currency or order.presentment_currency or shop_currency
        day.orders += 1
        day.revenue += normalizer.to_reporting_currency(order.total_price, currency)
        day.provider_refunds += normalizer.to_reporting_currency(order.refunded_amount, currency)
        for item in order.line_items:
            cost = 0.0
            if item.product_id is not None and str(item.product_id) in costs:
                cost = costs[str(item.product_id)]
            elif item.sku and item.sku in costs:
                cost = costs[item.sku]
            day.cog += normalizer.to_reporting_currency(cost * item.quantity, shop_currency)

    for date, spend in spend_by_day.items():
        days.setdefault(date, _Day()).ad_spend = normalizer.to_reporting_currency(
            spend, ad_currency
        )

    entries = session.exec(
        select(ProfitSheetEntry).where(
            ProfitSheetEntry.user_id == user_id,
            ProfitSheetEntry.shopify_integration_id == shopify_integration.id,
            ProfitSheetEntry.ad_account_id == ad_account_id,
            ProfitSheetEntry.date >= date_range.since.isoformat(),
            ProfitSheetEntry.date <= date_range.until.isoformat(),
        )
    ).all()
    for entry in entries:
        day = days.setdefault(entry.date, _Day())
        day.other_expenses = entry.other_expenses
        day.manual_refunds = entry.manual_refunds

    sheet: List[ProfitDay] = []
    for date, day in days.items():
        breakdown = compute_profit(
            day.revenue,
            day.cog,
            day.ad_spend,
            day.other_expenses,
            day.provider_refunds,
            day.manual_refunds,
        )
        sheet.append(
            ProfitDay(
                date=date,
                revenue=round(finite(day.revenue, "revenue"), 2),
                orders=day.orders,
                cog=round(finite(day.cog, "cog"), 2),
                ad_spend=round(finite(day.ad_spend, "ad_spend"), 2),
                other_expenses=round(day.other_expenses, 2),
                provider_refunds=round(finite(day.provider_refunds, "refunds"), 2),
                manual_refunds=round(day.manual_refunds, 2),
                total_refunds=breakdown.total_refunds,
                transaction_fee=breakdown.transaction_fee,
                profit=breakdown.profit,
            )
        )

    sheet.sort(key=lambda d: d.date, reverse=True)
    logger.info(
        f"Profit sheet built: {len(sheet)} days, {len(orders)} orders",
        extra={"integration_id": shopify_integration.id, "duration_ms": ctx.elapsed_ms()},
    )
    return sheet


def upsert_profit_sheet_entry(
    session: Session,
    user_id: str,
    shopify_integration_id: int,
    ad_account_id: str,
    date: str,
    other_expenses: float = 0.0,
    manual_refunds: float = 0.0,
) -> ProfitSheetEntry:
    """Create or replace the manual adjustments for one day."""
    if other_expenses < 0 or manual_refunds < 0:
        raise InvalidInput("Manual expenses and refunds cannot be negative")

    entry = session.exec(
        select(ProfitSheetEntry).where(
            ProfitSheetEntry.user_id == user_id,
            ProfitSheetEntry.shopify_integration_id == shopify_integration_id,
            ProfitSheetEntry.ad_account_id == ad_account_id,
            ProfitSheetEntry.date == date,
        )
    ).first()
    if entry is None:
        entry = ProfitSheetEntry(
            user_id=user_id,
            shopify_integration_id=shopify_integration_id,
            ad_account_id=ad_account_id,
            date=date,
        )
    entry.other_expenses = other_expenses
    entry.manual_refunds = manual_refunds
    entry.updated_at = _utcnow()
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return entry
