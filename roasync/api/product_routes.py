"""ROASYNC — Product Routes."""

from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from roasync.analyzer.currency import load_normalizer
from roasync.api.deps import get_http_client, get_user_id
from roasync.database import get_session
from roasync.models.db_models import Product
from roasync.sync.cost_cascade import update_product_cost

router = APIRouter(prefix="/products", tags=["Products"])


class CostPriceRequest(BaseModel):
    cost_price: float

    model_config = {"json_schema_extra": {"examples": [{"cost_price": 8.0}]}}


@router.get("")
async def list_products(
    user_id: str = Depends(get_user_id),
    session: Session = Depends(get_session),
):
    products = session.exec(
        select(Product)
        .where(Product.user_id == user_id)
        .order_by(Product.total_revenue.desc())
    ).all()
    return {"status": "success", "count": len(products), "products": products}


@router.patch("/{product_id}/cost-price")
async def set_cost_price(
    product_id: int,
    request: CostPriceRequest,
    user_id: str = Depends(get_user_id),
    session: Session = Depends(get_session),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
):
    """Set a product's cost and recompute every campaign record matched to it.

    Uses the same live FX table a sync would, so recomputed records stay on
    one rate.
    """
    normalizer = await load_normalizer(http_client)
    result = update_product_cost(
        session, user_id, product_id, request.cost_price, normalizer=normalizer
    )
    return {"status": "success", "result": result.model_dump()}
