"""Facebook campaign sync: EUR conversion, product pairing, idempotency."""

import asyncio

from sqlmodel import select

from roasync.connectors.date_ranges import resolve_date_range
from roasync.connectors.meta.client import MetaClient
from roasync.models.db_models import DailyCampaignRecord, Integration
from roasync.sync.campaign_sync import sync_facebook_campaigns
from conftest import SAMPLE_INSIGHTS, USER_ID, Recorder, add_product, meta_handler

DATE_RANGE = resolve_date_range(date_from="2026-02-01", date_to="2026-02-02")


def sync(session, integration, handler=None, **kwargs):
    recorder = Recorder(handler or meta_handler())

    async def go():
        async with recorder.client() as http:
            client = MetaClient("EAAB_test", http_client=http)
            return await sync_facebook_campaigns(
                session, integration, client, DATE_RANGE, **kwargs
            )

    return asyncio.run(go()), recorder


def records(session, campaign_id=None):
    query = select(DailyCampaignRecord).order_by(
        DailyCampaignRecord.campaign_id, DailyCampaignRecord.date
    )
    if campaign_id:
        query = query.where(DailyCampaignRecord.campaign_id == campaign_id)
    return session.exec(query).all()


class TestCampaignSync:
    def test_daily_record_in_eur_with_product_economics(
        self, session, shopify_integration, facebook_integration
    ):
        mug = add_product(session, shopify_integration, "101", "Cool Mug", 20.0, cost_price=5.0)

        result, _ = sync(session, facebook_integration)

        assert (result.total, result.created, result.updated) == (3, 3, 0)
        day1 = records(session, "c1")[0]
        assert day1.date == "2026-02-01"
        assert day1.product_id == mug.id
        assert day1.total_spend == 9.2
        assert day1.cpc == 0.46
        assert (day1.purchases, day1.atc, day1.units_sold) == (1, 3, 1)
        assert day1.revenue == 20.0
        assert day1.cog == 5.0
        assert day1.margin_eur == 5.8
        assert day1.margin_pct == 29.0
        assert day1.roas == 2.17
        assert day1.ad_account_id == "act_1"

    def test_no_purchase_day_has_zero_margin_pct(
        self, session, shopify_integration, facebook_integration
    ):
        add_product(session, shopify_integration, "101", "Cool Mug", 20.0, cost_price=5.0)
        sync(session, facebook_integration)

        day2 = records(session, "c1")[1]
        assert day2.revenue == 0.0
        assert day2.margin_eur == -9.2
        assert day2.margin_pct == 0.0
        assert day2.roas == 0.0

    def test_unmatched_campaign_keeps_spend(
        self, session, shopify_integration, facebook_integration
    ):
        add_product(session, shopify_integration, "101", "Cool Mug", 20.0)
        sync(session, facebook_integration)

        [winter] = records(session, "c2")
        assert winter.product_id is None
        assert winter.total_spend == 4.6
        assert winter.revenue == 0.0

    def test_rerun_updates_instead_of_duplicating(self, session, facebook_integration):
        sync(session, facebook_integration)
        result, _ = sync(session, facebook_integration)

        assert (result.created, result.updated) == (0, 3)
        assert len(records(session)) == 3

    def test_account_currency_stored(self, session, facebook_integration):
        sync(session, facebook_integration)
        session.refresh(facebook_integration)
        assert facebook_integration.meta["currency"] == "USD"

    def test_eur_account_is_not_converted(self, session, facebook_integration):
        sync(session, facebook_integration, meta_handler(currency="EUR"))
        assert records(session, "c1")[0].total_spend == 10.0

    def test_malformed_row_is_skipped_not_fatal(self, session, facebook_integration):
        broken = {"campaign_id": "c3", "campaign_name": "Broken", "spend": "1.0"}

        result, _ = sync(
            session, facebook_integration, meta_handler(insights=SAMPLE_INSIGHTS + [broken])
        )

        assert len(records(session)) == 3
        assert (result.total, result.created, result.skipped) == (4, 3, 1)
        assert "date_start" in result.errors[0]
        assert result.status == "partial"


class TestAdAccountResolution:
    def test_first_listed_account_used_without_metadata(self, session):
        integration = Integration(
            user_id=USER_ID, provider="facebook_ads", access_token="EAAB_test", meta={}
        )
        session.add(integration)
        session.commit()
        session.refresh(integration)

        _, recorder = sync(session, integration)

        paths = [r.url.path for r in recorder.requests]
        assert any(p.endswith("/me/adaccounts") for p in paths)
        assert any(p.endswith("/act_1/insights") for p in paths)

    def test_explicit_account_wins(self, session, facebook_integration):
        _, recorder = sync(session, facebook_integration, ad_account_id="act_9")
        assert any(r.url.path.endswith("/act_9/insights") for r in recorder.requests)
        assert all(r.url.path.endswith("/act_1/insights") is False for r in recorder.requests)


def test_apply_market_writes_decisions(session, shopify_integration, facebook_integration):
    add_product(session, shopify_integration, "101", "Cool Mug", 20.0, cost_price=5.0)

    sync(session, facebook_integration, apply_market="low")

    c1 = records(session, "c1")
    assert [r.decision for r in c1] == ["MAINTAIN", "MAINTAIN"]
    assert "purchase" in c1[0].decision_reason
    # a single day never forms a window
    assert records(session, "c2")[0].decision is None
