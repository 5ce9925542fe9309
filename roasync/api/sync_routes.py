"""ROASYNC — Sync Trigger Routes.

Every trigger returns ``202 {"status": "started", "run_id": ...}`` at once;
the sync continues as a background task. Poll ``GET /sync/runs/{run_id}``.
"""

from typing import Optional

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel
from sqlmodel import Session

from roasync.analyzer.decision_engine import get_tier
from roasync.api.deps import get_http_client, get_session_factory, get_user_id
from roasync.connectors.date_ranges import DateRange, resolve_date_range
from roasync.core.errors import InvalidInput, NotFound, PartialSyncFailure
from roasync.core.logging import get_logger
from roasync.database import get_session
from roasync.models.db_models import Integration, SyncRun
from roasync.sync.providers import FACEBOOK, SHOPIFY, get_integration
from roasync.sync.runner import (
    KIND_FACEBOOK,
    KIND_FULL,
    KIND_SHOPIFY,
    SessionFactory,
    run_facebook_sync,
    run_full_sync,
    run_shopify_sync,
    start_run,
)

logger = get_logger("api.sync")

router = APIRouter(prefix="/sync", tags=["Sync"])


class SyncRequest(BaseModel):
    integration_id: Optional[int] = None
    shopify_integration_id: Optional[int] = None
    facebook_integration_id: Optional[int] = None
    """Per-provider integrations for /sync/all."""
    ad_account_id: Optional[str] = None
    date_preset: Optional[str] = None
    """today, yesterday, last_7d, last_14d, last_30d, last_90d, this_month, last_month, lifetime"""
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    market: Optional[str] = None
    """When set, decisions for this market tier are applied after the sync."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"date_preset": "last_7d"},
                {"date_from": "2026-02-01", "date_to": "2026-02-18", "market": "low"},
            ]
        }
    }


def _started(run: SyncRun) -> dict:
    return {"status": "started", "run_id": run.id, "kind": run.kind}


def _requested_range(request: SyncRequest) -> Optional[DateRange]:
    """The range the caller named, or None when it named none."""
    if request.date_preset or request.date_from or request.date_to:
        return resolve_date_range(request.date_preset, request.date_from, request.date_to)
    return None


def _integration_ids(session: Session, user_id: str, request: SyncRequest):
    """Split the request's integration ids into (shopify, facebook)."""
    ids = {SHOPIFY: request.shopify_integration_id, FACEBOOK: request.facebook_integration_id}
    if request.integration_id is not None:
        integration = session.get(Integration, request.integration_id)
        if integration is None or integration.user_id != user_id:
            raise NotFound(f"Integration {request.integration_id} not found")
        if ids.get(integration.provider) not in (None, integration.id):
            raise InvalidInput(
                f"integration_id {integration.id} conflicts with the {integration.provider} id given"
            )
        ids[integration.provider] = integration.id
    for provider, integration_id in ids.items():
        if integration_id is not None:
            get_integration(session, user_id, provider, integration_id)
    return ids[SHOPIFY], ids[FACEBOOK]


@router.post("/shopify", status_code=202)
async def sync_shopify(
    background_tasks: BackgroundTasks,
    request: SyncRequest = SyncRequest(),
    user_id: str = Depends(get_user_id),
    session: Session = Depends(get_session),
    session_factory: SessionFactory = Depends(get_session_factory),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
):
    """Sync Shopify orders into products (runs in background).

    With no date range every order is counted.
    """
    orders_range = _requested_range(request)
    integration = get_integration(session, user_id, SHOPIFY, request.integration_id)
    run = start_run(session, user_id, KIND_SHOPIFY, integration.id)
    background_tasks.add_task(
        run_shopify_sync,
        run.id,
        session_factory,
        user_id,
        integration.id,
        http_client,
        orders_range,
    )
    return _started(run)


@router.post("/facebook", status_code=202)
async def sync_facebook(
    background_tasks: BackgroundTasks,
    request: SyncRequest = SyncRequest(),
    user_id: str = Depends(get_user_id),
    session: Session = Depends(get_session),
    session_factory: SessionFactory = Depends(get_session_factory),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
):
    """Sync daily Facebook campaign insights (runs in background)."""
    date_range = resolve_date_range(request.date_preset, request.date_from, request.date_to)
    if request.market:
        get_tier(request.market)
    integration = get_integration(session, user_id, FACEBOOK, request.integration_id)
    run = start_run(session, user_id, KIND_FACEBOOK, integration.id)
    background_tasks.add_task(
        run_facebook_sync,
        run.id,
        session_factory,
        user_id,
        integration.id,
        date_range,
        request.ad_account_id,
        request.market,
        http_client,
    )
    return _started(run)


@router.post("/all", status_code=202)
async def sync_all(
    background_tasks: BackgroundTasks,
    request: SyncRequest = SyncRequest(),
    user_id: str = Depends(get_user_id),
    session: Session = Depends(get_session),
    session_factory: SessionFactory = Depends(get_session_factory),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
):
    """Shopify and Facebook syncs in parallel (runs in background)."""
    orders_range = _requested_range(request)
    if request.market:
        get_tier(request.market)
    shopify_id, facebook_id = _integration_ids(session, user_id, request)
    run = start_run(session, user_id, KIND_FULL)
    background_tasks.add_task(
        run_full_sync,
        run.id,
        session_factory,
        user_id,
        orders_range or resolve_date_range(),
        request.market,
        http_client,
        shopify_integration_id=shopify_id,
        facebook_integration_id=facebook_id,
        ad_account_id=request.ad_account_id,
        orders_range=orders_range,
    )
    return _started(run)


@router.get("/runs/{run_id}")
async def get_sync_run(
    run_id: int,
    strict: bool = Query(False, description="Answer 207 when the run collected errors"),
    user_id: str = Depends(get_user_id),
    session: Session = Depends(get_session),
):
    """Poll the progress / outcome of a background sync."""
    run = session.get(SyncRun, run_id)
    if run is None or run.user_id != user_id:
        raise NotFound(f"Sync run {run_id} not found")
    if strict and run.errors:
        raise PartialSyncFailure(
            f"Sync run {run_id} finished {run.status} with {len(run.errors)} errors",
            errors=list(run.errors),
        )
    return {"status": "success", "run": run.model_dump()}
