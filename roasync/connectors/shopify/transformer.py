"""ROASYNC — Shopify Orders → Products Transformer.

Aggregates paid order line items per product and upserts Product rows keyed
by (user, integration, external product id).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlmodel import Session, select

from roasync.analyzer.metrics_engine import compute_profit_margin
from roasync.core.logging import get_logger
from roasync.models.db_models import Product, _utcnow
from roasync.models.provider_models import ShopifyOrder

logger = get_logger("shopify.transformer")


@dataclass
class ProductSale:
    product_id: int
    product_name: str
    sku: Optional[str] = None
    total_quantity: int = 0
    total_revenue: float = 0.0
    variants: List[str] = field(default_factory=list)
    last_sold_at: Optional[datetime] = None
    image_url: Optional[str] = None
    cost_price: Optional[float] = None

    @property
    def avg_price(self) -> float:
        return self.total_revenue / self.total_quantity if self.total_quantity > 0 else 0.0


def aggregate_sales(orders: Iterable[ShopifyOrder]) -> Dict[int, ProductSale]:
    """Group paid / partially paid line items by product id."""
    sales: Dict[int, ProductSale] = {}
    for order in orders:
        if not order.is_paid:
            continue
        for item in order.line_items:
            if item.product_id is None:
                continue
            sale = sales.get(item.product_id)
            if sale is None:
                sale = ProductSale(
                    product_id=item.product_id, product_name=item.title, sku=item.sku
                )
                sales[item.product_id] = sale
            sale.total_quantity += item.quantity
            sale.total_revenue += item.price * item.quantity
            if sale.last_sold_at is None or order.created_at > sale.last_sold_at:
                sale.last_sold_at = order.created_at
            if item.variant_title and item.variant_title not in sale.variants:
                sale.variants.append(item.variant_title)

    logger.info(f"Aggregated sales for {len(sales)} products")
    return sales


def upsert_product(
    session: Session,
    user_id: str,
    integration_id: int,
    sale: ProductSale,
) -> bool:
    """Insert or refresh one product. Returns True when a row was created.

    A non-zero cost price already stored is user-owned: it is kept and the
    profit margin is recomputed from it.
    """
    external_id = str(sale.product_id)
    selling_price = round(sale.avg_price, 2)

    existing = session.exec(
        select(Product).where(
            Product.user_id == user_id,
            Product.integration_id == integration_id,
            Product.external_product_id == external_id,
        )
    ).first()

    cost_price = sale.cost_price or None
    if existing and existing.cost_price:
        cost_price = existing.cost_price

    values = dict(
        product_name=sale.product_name,
        sku=sale.sku or f"SHOPIFY-{sale.product_id}",
        selling_price=selling_price,
        cost_price=cost_price,
        profit_margin=compute_profit_margin(selling_price, cost_price),
        quantity_sold=sale.total_quantity,
        total_revenue=round(sale.total_revenue, 2),
        last_sold_at=sale.last_sold_at,
        updated_at=_utcnow(),
    )

    if existing:
        for key, value in values.items():
            setattr(existing, key, value)
        if sale.image_url:
            existing.image_url = sale.image_url
        session.add(existing)
        return False

    session.add(
        Product(
            user_id=user_id,
            integration_id=integration_id,
            external_product_id=external_id,
            image_url=sale.image_url,
            **values,
        )
    )
    return True
