"""ROASYNC — Scheduler Jobs.

APScheduler daily job that syncs every tenant with an active integration and
applies decisions at the configured hour.
"""

from typing import Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import select

from roasync.config import settings
from roasync.connectors.date_ranges import resolve_date_range
from roasync.database import new_session
from roasync.models.db_models import Integration
from roasync.sync.runner import KIND_FULL, SessionFactory, run_full_sync, start_run
from roasync.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def daily_sync_job(
    session_factory: SessionFactory = new_session,
    http_client: Optional[httpx.AsyncClient] = None,
):
    """Full sync for every active tenant: the last 7 days of campaign
    insights and all Shopify orders. A failing tenant is logged and skipped."""
    logger.info("Scheduled daily sync starting...")
    with session_factory() as session:
        user_ids = session.exec(
            select(Integration.user_id)
            .where(Integration.is_active == True)  # noqa: E712
            .distinct()
        ).all()

    failed = 0
    for user_id in user_ids:
        try:
            with session_factory() as session:
                run_id = start_run(session, user_id, KIND_FULL).id
            result = await run_full_sync(
                run_id,
                session_factory,
                user_id,
                date_range=resolve_date_range("last_7d"),
                market=settings.default_market_tier,
                http_client=http_client,
            )
            logger.info(
                f"Scheduled sync for tenant finished with status {result.status}",
                extra={"run_id": run_id},
            )
        except Exception as e:
            failed += 1
            logger.error(f"Scheduled sync failed for tenant {user_id}: {e}")
    logger.info(
        f"Scheduled daily sync complete for {len(user_ids)} tenants, {failed} failed"
    )


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        daily_sync_job,
        "cron",
        hour=settings.sync_hour,
        minute=0,
        id="daily_sync",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Daily sync at {settings.sync_hour}:00 UTC")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
