"""ROASYNC — Profit Sheet Routes."""

from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from roasync.api.deps import get_http_client, get_user_id
from roasync.config import settings
from roasync.connectors.date_ranges import resolve_date_range
from roasync.core.errors import InvalidInput
from roasync.database import get_session
from roasync.sync.profit_sheet import build_profit_sheet, upsert_profit_sheet_entry
from roasync.sync.providers import (
    FACEBOOK,
    SHOPIFY,
    get_integration,
    meta_client_for,
    shopify_client_for,
    store_currency,
)

router = APIRouter(prefix="/profit-sheet", tags=["Profit Sheet"])


class ProfitSheetRequest(BaseModel):
    shopify_integration_id: int
    ad_account_id: Optional[str] = None
    facebook_integration_id: Optional[int] = None
    date_preset: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "shopify_integration_id": 1,
                    "ad_account_id": "act_1234567890",
                    "date_from": "2026-02-01",
                    "date_to": "2026-02-18",
                }
            ]
        }
    }


class ProfitSheetEntryRequest(BaseModel):
    shopify_integration_id: int
    ad_account_id: str
    date: str
    other_expenses: float = 0.0
    manual_refunds: float = 0.0


@router.post("")
async def get_profit_sheet(
    request: ProfitSheetRequest,
    user_id: str = Depends(get_user_id),
    session: Session = Depends(get_session),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
):
    """Daily revenue, costs and profit in EUR, newest day first."""
    date_range = resolve_date_range(request.date_preset, request.date_from, request.date_to)
    shopify = get_integration(session, user_id, SHOPIFY, request.shopify_integration_id)
    facebook = get_integration(session, user_id, FACEBOOK, request.facebook_integration_id)
    ad_account_id = request.ad_account_id or (facebook.meta or {}).get("ad_account_id")
    if not ad_account_id:
        raise InvalidInput("ad_account_id is required")

    async with shopify_client_for(shopify, http_client) as shop_client:
        async with meta_client_for(facebook, http_client) as meta_client:
            sheet = await build_profit_sheet(
                session,
                user_id,
                shopify,
                facebook,
                ad_account_id,
                date_range,
                shop_client,
                meta_client,
            )
    return {
        "status": "success",
        "store_currency": store_currency(shopify),
        "reporting_currency": settings.reporting_currency,
        "data": [day.model_dump() for day in sheet],
    }


@router.put("/entries")
async def put_profit_sheet_entry(
    request: ProfitSheetEntryRequest,
    user_id: str = Depends(get_user_id),
    session: Session = Depends(get_session),
):
    """Create or replace a day's manual expenses and refunds."""
    resolve_date_range(date_from=request.date, date_to=request.date)
    get_integration(session, user_id, SHOPIFY, request.shopify_integration_id)
    entry = upsert_profit_sheet_entry(
        session,
        user_id,
        request.shopify_integration_id,
        request.ad_account_id,
        request.date,
        request.other_expenses,
        request.manual_refunds,
    )
    return {"status": "success", "entry": entry.model_dump()}
