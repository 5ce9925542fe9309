"""ROASYNC — Background Sync Runner.

Routes record a SyncRun and hand the work to a background task; the caller
gets its acknowledgement immediately. Each background run opens its own
session, threads a RunContext through every fetch loop, and stores its final
counts on the SyncRun row for polling.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import httpx
from sqlmodel import Session

from roasync.connectors.date_ranges import DateRange, resolve_date_range
from roasync.core.errors import ReconcileError
from roasync.core.logging import get_logger
from roasync.core.run_context import RunContext
from roasync.models.db_models import SyncRun, _utcnow
from roasync.models.result_models import SyncResult
from roasync.sync.campaign_sync import sync_facebook_campaigns
from roasync.sync.product_sync import sync_shopify_products
from roasync.sync.providers import (
    FACEBOOK,
    SHOPIFY,
    get_integration,
    meta_client_for,
    shopify_client_for,
)

logger = get_logger("sync.runner")

SessionFactory = Callable[[], Session]

KIND_SHOPIFY = "shopify_products"
KIND_FACEBOOK = "facebook_campaigns"
KIND_FULL = "full"


def start_run(
    session: Session, user_id: str, kind: str, integration_id: Optional[int] = None
) -> SyncRun:
    run = SyncRun(user_id=user_id, kind=kind, integration_id=integration_id)
    session.add(run)
    session.commit()
    session.refresh(run)
    logger.info(f"Sync run started: {kind}", extra={"run_id": run.id})
    return run


def _record(session: Session, run_id: int, result: SyncResult, message: str = "") -> None:
    run = session.get(SyncRun, run_id)
    if run is None:
        return
    run.status = result.status
    run.total = result.total
    run.created = result.created
    run.updated = result.updated
    run.skipped = result.skipped
    run.errors = list(result.errors)
    run.truncated = result.truncated
    run.message = message
    run.finished_at = _utcnow()
    session.add(run)
    session.commit()


async def _execute(
    run_id: int,
    session_factory: SessionFactory,
    work: Callable[[RunContext], Awaitable[SyncResult]],
) -> SyncResult:
    """Run ``work`` and persist its outcome; failures end up on the SyncRun."""
    ctx = RunContext(run_id=run_id)
    with session_factory() as session:
        run = session.get(SyncRun, run_id)
        if run is not None:
            run.status = "running"
            session.add(run)
            session.commit()

    try:
        result = await work(ctx)
        message = "completed"
    except ReconcileError as e:
        logger.error(f"Sync run failed: {e.message}", extra={"run_id": run_id})
        result = SyncResult(errors=[e.message], truncated=ctx.truncated)
        message = type(e).__name__
    except Exception as e:
        logger.error(f"Sync run crashed: {e}", exc_info=True, extra={"run_id": run_id})
        result = SyncResult(errors=[str(e)], truncated=ctx.truncated)
        message = "internal error"

    with session_factory() as session:
        _record(session, run_id, result, message)
    logger.info(
        f"Sync run finished with status {result.status}",
        extra={"run_id": run_id, "duration_ms": ctx.elapsed_ms()},
    )
    return result


# ─────────────────────────────────────────────
# PROVIDER SYNCS
# ─────────────────────────────────────────────


async def _shopify(
    session_factory: SessionFactory,
    user_id: str,
    integration_id: Optional[int],
    ctx: RunContext,
    date_range: Optional[DateRange] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> SyncResult:
    with session_factory() as session:
        integration = get_integration(session, user_id, SHOPIFY, integration_id)
        async with shopify_client_for(integration, http_client) as client:
            return await sync_shopify_products(
                session, integration, client, ctx, date_range=date_range
            )


async def _facebook(
    session_factory: SessionFactory,
    user_id: str,
    integration_id: Optional[int],
    ctx: RunContext,
    date_range: DateRange,
    ad_account_id: Optional[str] = None,
    market: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> SyncResult:
    with session_factory() as session:
        integration = get_integration(session, user_id, FACEBOOK, integration_id)
        async with meta_client_for(integration, http_client) as client:
            return await sync_facebook_campaigns(
                session,
                integration,
                client,
                date_range,
                ad_account_id=ad_account_id,
                ctx=ctx,
                apply_market=market,
            )


async def run_shopify_sync(
    run_id: int,
    session_factory: SessionFactory,
    user_id: str,
    integration_id: Optional[int] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    date_range: Optional[DateRange] = None,
) -> SyncResult:
    """Without a date range every order counts toward the product totals."""
    return await _execute(
        run_id,
        session_factory,
        lambda ctx: _shopify(
            session_factory, user_id, integration_id, ctx, date_range, http_client
        ),
    )


async def run_facebook_sync(
    run_id: int,
    session_factory: SessionFactory,
    user_id: str,
    integration_id: Optional[int] = None,
    date_range: Optional[DateRange] = None,
    ad_account_id: Optional[str] = None,
    market: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> SyncResult:
    date_range = date_range or resolve_date_range()
    return await _execute(
        run_id,
        session_factory,
        lambda ctx: _facebook(
            session_factory,
            user_id,
            integration_id,
            ctx,
            date_range,
            ad_account_id,
            market,
            http_client,
        ),
    )


async def run_full_sync(
    run_id: int,
    session_factory: SessionFactory,
    user_id: str,
    date_range: Optional[DateRange] = None,
    market: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    shopify_integration_id: Optional[int] = None,
    facebook_integration_id: Optional[int] = None,
    ad_account_id: Optional[str] = None,
    orders_range: Optional[DateRange] = None,
) -> SyncResult:
    """Shopify and Facebook concurrently; they hit different providers.

    ``date_range`` bounds the campaign insights, ``orders_range`` the Shopify
    orders (None means all orders).
    """
    date_range = date_range or resolve_date_range()

    async def work(ctx: RunContext) -> SyncResult:
        outcomes = await asyncio.gather(
            _shopify(
                session_factory, user_id, shopify_integration_id, ctx, orders_range,
                http_client,
            ),
            _facebook(
                session_factory, user_id, facebook_integration_id, ctx, date_range,
                ad_account_id=ad_account_id, market=market, http_client=http_client,
            ),
            return_exceptions=True,
        )
        merged = SyncResult()
        for provider, outcome in zip((SHOPIFY, FACEBOOK), outcomes):
            if isinstance(outcome, SyncResult):
                merged = merged.merge(outcome)
            elif isinstance(outcome, ReconcileError):
                merged.errors.append(f"{provider}: {outcome.message}")
            else:
                raise outcome
        return merged

    return await _execute(run_id, session_factory, work)
