"""Background sync runs and the scheduled daily job."""

import asyncio

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from roasync.connectors.date_ranges import resolve_date_range
from roasync.models.db_models import DailyCampaignRecord, Integration, SyncRun
from roasync.scheduler import jobs
from roasync.scheduler.jobs import daily_sync_job
from roasync.sync.runner import (
    KIND_FULL,
    KIND_SHOPIFY,
    run_full_sync,
    run_shopify_sync,
    start_run,
)
from conftest import USER_ID, Recorder, mock_http, provider_handler, shopify_handler

DATE_RANGE = resolve_date_range(date_from="2026-02-01", date_to="2026-02-02")


def run_async(coro_factory, handler):
    async def go():
        async with mock_http(handler) as http:
            return await coro_factory(http)

    return asyncio.run(go())


class TestRuns:
    def test_shopify_run_records_outcome(self, session, session_factory, shopify_integration):
        run = start_run(session, USER_ID, KIND_SHOPIFY, shopify_integration.id)

        result = run_async(
            lambda http: run_shopify_sync(
                run.id, session_factory, USER_ID, shopify_integration.id, http
            ),
            shopify_handler(),
        )

        session.refresh(run)
        assert result.created == 2
        assert run.status == "completed"
        assert run.created == 2
        assert run.finished_at is not None

    def test_shopify_run_bounds_orders_by_date_range(
        self, session, session_factory, shopify_integration
    ):
        run = start_run(session, USER_ID, KIND_SHOPIFY, shopify_integration.id)
        recorder = Recorder(shopify_handler())

        run_async(
            lambda http: run_shopify_sync(
                run.id, session_factory, USER_ID, shopify_integration.id, http, DATE_RANGE
            ),
            recorder,
        )

        [orders] = [r for r in recorder.requests if r.url.path.endswith("/orders.json")]
        assert orders.url.params["created_at_min"].startswith("2026-02-01")

    def test_missing_integration_fails_the_run(self, session, session_factory):
        run = start_run(session, USER_ID, KIND_SHOPIFY)

        result = run_async(
            lambda http: run_shopify_sync(run.id, session_factory, USER_ID, None, http),
            shopify_handler(),
        )

        session.refresh(run)
        assert result.status == "failed"
        assert run.status == "failed"
        assert run.message == "AuthError"
        assert "shopify" in run.errors[0]

    def test_full_sync_merges_both_providers(
        self, session, session_factory, shopify_integration, facebook_integration
    ):
        run = start_run(session, USER_ID, KIND_FULL)

        result = run_async(
            lambda http: run_full_sync(run.id, session_factory, USER_ID, DATE_RANGE, None, http),
            provider_handler(),
        )

        session.refresh(run)
        assert (result.created, result.errors) == (5, [])
        assert run.status == "completed"

    def test_full_sync_reports_missing_provider(self, session, session_factory, shopify_integration):
        run = start_run(session, USER_ID, KIND_FULL)

        result = run_async(
            lambda http: run_full_sync(run.id, session_factory, USER_ID, DATE_RANGE, None, http),
            provider_handler(),
        )

        session.refresh(run)
        assert result.created == 2
        assert result.errors[0].startswith("facebook_ads: ")
        assert run.status == "partial"

    def test_full_sync_passes_integration_and_account(
        self, session, session_factory, shopify_integration, facebook_integration
    ):
        run = start_run(session, USER_ID, KIND_FULL)
        recorder = Recorder(provider_handler())

        run_async(
            lambda http: run_full_sync(
                run.id, session_factory, USER_ID, DATE_RANGE, None, http,
                shopify_integration_id=shopify_integration.id,
                facebook_integration_id=facebook_integration.id,
                ad_account_id="act_42",
                orders_range=DATE_RANGE,
            ),
            recorder,
        )

        paths = [r.url.path for r in recorder.requests]
        assert any(p.endswith("/act_42/insights") for p in paths)
        assert not any(p.endswith("/act_1/insights") for p in paths)
        [orders] = [r for r in recorder.requests if r.url.path.endswith("/orders.json")]
        assert "created_at_min" in orders.url.params


def test_daily_job_syncs_each_tenant_and_applies_decisions(
    session, session_factory, shopify_integration, facebook_integration
):
    run_async(lambda http: daily_sync_job(session_factory, http), provider_handler())

    [run] = session.exec(select(SyncRun)).all()
    assert (run.user_id, run.kind, run.status) == (USER_ID, KIND_FULL, "completed")
    c1 = session.exec(
        select(DailyCampaignRecord).where(DailyCampaignRecord.campaign_id == "c1")
    ).all()
    assert all(r.decision == "MAINTAIN" for r in c1)


def test_daily_job_keeps_going_after_a_tenant_fails(
    session, session_factory, shopify_integration, monkeypatch
):
    session.add(
        Integration(
            user_id="user-2",
            provider="shopify",
            access_token="shpat_other",
            meta={"myshopify_domain": "othershop.myshopify.com", "store_currency": "EUR"},
        )
    )
    session.commit()
    real_start_run = jobs.start_run

    def start_run_locked_for_first_tenant(session, user_id, kind, integration_id=None):
        if user_id == USER_ID:
            raise SQLAlchemyError("database is locked")
        return real_start_run(session, user_id, kind, integration_id)

    monkeypatch.setattr(jobs, "start_run", start_run_locked_for_first_tenant)

    run_async(lambda http: daily_sync_job(session_factory, http), provider_handler())

    [run] = session.exec(select(SyncRun)).all()
    assert run.user_id == "user-2"
    assert run.finished_at is not None
