"""ROASYNC — Shopify Product Sync.

Orders → per-product sales aggregates → Product rows, enriched with image and
inventory cost. Per-product failures are collected, never fatal.
"""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from roasync.connectors.date_ranges import DateRange
from roasync.connectors.shopify.client import ShopifyClient
from roasync.connectors.shopify.endpoints import ShopifyEndpoints
from roasync.connectors.shopify.transformer import (
    ProductSale,
    aggregate_sales,
    upsert_product,
)
from roasync.core.errors import ProviderError
from roasync.core.logging import get_logger
from roasync.core.run_context import RunContext
from roasync.models.db_models import Integration
from roasync.models.result_models import SyncResult

logger = get_logger("sync.products")


async def refresh_store_currency(
    session: Session, integration: Integration, endpoints: ShopifyEndpoints
) -> None:
    """Store the shop's currency in integration metadata when it changed."""
    try:
        shop = await endpoints.fetch_shop()
    except ProviderError as e:
        logger.warning(
            f"Could not fetch store currency, keeping stored value: {e}",
            extra={"integration_id": integration.id},
        )
        return
    if shop.currency and shop.currency != (integration.meta or {}).get("store_currency"):
        integration.update_meta(store_currency=shop.currency)
        session.add(integration)
        session.commit()
        logger.info(
            f"Store currency updated to {shop.currency}",
            extra={"integration_id": integration.id},
        )


async def enrich_sale(endpoints: ShopifyEndpoints, sale: ProductSale) -> None:
    """Attach image and inventory cost; failures leave the sale unenriched."""
    try:
        detail = await endpoints.fetch_product(sale.product_id)
        sale.image_url = detail.image_url
        if detail.inventory_item_id:
            sale.cost_price = await endpoints.fetch_inventory_cost(detail.inventory_item_id)
    except ProviderError as e:
        logger.warning(f"Could not enrich product {sale.product_id}: {e}")


async def sync_shopify_products(
    session: Session,
    integration: Integration,
    client: ShopifyClient,
    ctx: Optional[RunContext] = None,
    date_range: Optional[DateRange] = None,
) -> SyncResult:
    ctx = ctx or RunContext()
    endpoints = ShopifyEndpoints(client)
    result = SyncResult()

    await refresh_store_currency(session, integration, endpoints)

    orders = await endpoints.fetch_orders(date_range, ctx)
    result.skipped += len(endpoints.rejected)
    result.errors.extend(endpoints.rejected)
    sales = aggregate_sales(orders)
    result.total = len(sales)

    for index, sale in enumerate(sales.values()):
        if ctx.expired:
            result.skipped += len(sales) - index
            ctx.mark_truncated()
            logger.warning(
                f"Run deadline reached, {result.skipped} products left unsynced",
                extra={"run_id": ctx.run_id},
            )
            break

        await enrich_sale(endpoints, sale)
        try:
            created = upsert_product(session, integration.user_id, integration.id, sale)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to save product {sale.product_name}: {e}")
            result.errors.append(f"{sale.product_name}: {e}")
            continue

        if created:
            result.created += 1
        else:
            result.updated += 1

    result.truncated = ctx.truncated
    logger.info(
        f"Product sync done: {result.created} created, {result.updated} updated, "
        f"{result.skipped} skipped, {len(result.errors)} errors",
        extra={"integration_id": integration.id, "duration_ms": ctx.elapsed_ms()},
    )
    return result
