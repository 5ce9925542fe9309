"""ROASYNC — Shopify Endpoints.

Typed fetches against the Shopify Admin REST API.
"""

from datetime import datetime, time, timezone
from typing import List, Optional

from roasync.connectors.date_ranges import DateRange
from roasync.connectors.shopify.client import ShopifyClient
from roasync.core.logging import get_logger
from roasync.core.run_context import RunContext
from roasync.models.provider_models import (
    ShopifyOrder,
    ShopifyProductDetail,
    ShopifyShop,
    validate_rows,
)

logger = get_logger("shopify.endpoints")

ORDER_FIELDS = "id,created_at,financial_status,total_price,currency,presentment_currency,line_items,refunds"


class ShopifyEndpoints:
    def __init__(self, client: ShopifyClient):
        self.client = client
        self.rejected: List[str] = []

    async def fetch_shop(self) -> ShopifyShop:
        data = await self.client.get_json("shop.json")
        return ShopifyShop.model_validate(data.get("shop") or {})

    async def fetch_orders(
        self,
        date_range: Optional[DateRange] = None,
        ctx: Optional[RunContext] = None,
    ) -> List[ShopifyOrder]:
        """All orders (any status), optionally bounded by creation date."""
        params = {"status": "any", "fields": ORDER_FIELDS}
        if date_range:
            params["created_at_min"] = datetime.combine(
                date_range.since, time.min, tzinfo=timezone.utc
            ).isoformat()
            params["created_at_max"] = datetime.combine(
                date_range.until, time.max, tzinfo=timezone.utc
            ).isoformat()

        data = await self.client.paginate("orders.json", "orders", params, ctx)
        orders = validate_rows(ShopifyOrder, data, self.rejected)
        logger.info(f"Fetched {len(orders)} orders")
        return orders

    async def fetch_product(self, product_id: int) -> ShopifyProductDetail:
        data = await self.client.get_json(f"products/{product_id}.json")
        return ShopifyProductDetail.from_payload(data.get("product") or {"id": product_id})

    async def fetch_inventory_cost(self, inventory_item_id: int) -> Optional[float]:
        """Unit cost recorded on an inventory item, if any."""
        data = await self.client.get_json(f"inventory_items/{inventory_item_id}.json")
        cost = (data.get("inventory_item") or {}).get("cost")
        try:
            return float(cost) if cost not in (None, "") else None
        except (TypeError, ValueError):
            return None
