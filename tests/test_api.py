"""HTTP surface: auth header, error mapping, background syncs, actions."""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from roasync.analyzer.currency import CurrencyNormalizer
from roasync.api.deps import get_http_client, get_session_factory
from roasync.database import get_session
from roasync.main import app
from roasync.models.db_models import DailyCampaignRecord
from conftest import (
    USER_ID,
    Recorder,
    add_product,
    meta_handler,
    mock_http,
    provider_handler,
    shopify_handler,
)

HEADERS = {"X-User-Id": USER_ID}


@pytest.fixture
def outbound():
    """Holder for the fake HTTP client the routes hand to provider clients."""
    return {"client": None}


@pytest.fixture
def client(engine, session_factory, outbound):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_http_client] = lambda: outbound["client"]
    yield TestClient(app)
    app.dependency_overrides.clear()


def use(outbound, handler):
    recorder = Recorder(handler)
    outbound["client"] = mock_http(recorder)
    return recorder


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_missing_user_header_is_401(client):
    resp = client.get("/products")
    assert resp.status_code == 401
    assert resp.json()["error"] == "AuthError"


class TestIntegrations:
    def test_connect_shopify(self, client):
        resp = client.post(
            "/integrations",
            headers=HEADERS,
            json={
                "provider": "shopify",
                "access_token": "shpat_secret",
                "meta": {"myshopify_domain": "mycoolshop.myshopify.com"},
            },
        )
        assert resp.status_code == 201
        body = resp.json()["integration"]
        assert body["provider"] == "shopify"
        assert "access_token" not in body

    @pytest.mark.parametrize(
        "payload",
        [
            {"provider": "tiktok", "access_token": "x"},
            {"provider": "shopify", "access_token": "x", "meta": {}},
            {"provider": "facebook_ads", "access_token": "   "},
        ],
    )
    def test_invalid_integration(self, client, payload):
        assert client.post("/integrations", headers=HEADERS, json=payload).status_code == 400

    def test_disconnect_is_soft(self, client, session, shopify_integration):
        resp = client.delete(f"/integrations/{shopify_integration.id}", headers=HEADERS)
        assert resp.status_code == 200
        session.refresh(shopify_integration)
        assert shopify_integration.is_active is False

    def test_other_tenant_cannot_disconnect(self, client, shopify_integration):
        resp = client.delete(
            f"/integrations/{shopify_integration.id}", headers={"X-User-Id": "intruder"}
        )
        assert resp.status_code == 404

    def test_ad_account_match(self, client, outbound, shopify_integration, facebook_integration):
        use(
            outbound,
            meta_handler(
                accounts=[
                    {"id": "act_2", "name": "Agency Sandbox"},
                    {"id": "act_1", "name": "MyCoolShop Ads"},
                ]
            ),
        )
        resp = client.get(
            f"/integrations/{shopify_integration.id}/ad-account-match", headers=HEADERS
        )
        assert resp.status_code == 200
        assert resp.json()["ad_account"]["id"] == "act_1"


class TestSync:
    def test_shopify_sync_runs_in_background(self, client, outbound, shopify_integration):
        use(outbound, shopify_handler())

        resp = client.post("/sync/shopify", headers=HEADERS)

        assert resp.status_code == 202
        body = resp.json()
        assert body["status"] == "started"
        run = client.get(f"/sync/runs/{body['run_id']}", headers=HEADERS).json()["run"]
        assert run["status"] == "completed"
        assert run["created"] == 2

    def test_facebook_sync_without_integration(self, client):
        resp = client.post("/sync/facebook", headers=HEADERS, json={})
        assert resp.status_code == 401

    def test_bad_date_range_rejected_before_run(self, client, facebook_integration):
        resp = client.post(
            "/sync/facebook", headers=HEADERS, json={"date_from": "2026-02-01"}
        )
        assert resp.status_code == 400

    def test_bad_market_rejected(self, client, facebook_integration):
        resp = client.post("/sync/facebook", headers=HEADERS, json={"market": "huge"})
        assert resp.status_code == 400

    def test_strict_poll_reports_failures(self, client, outbound, shopify_integration):
        use(outbound, lambda request: httpx.Response(401))
        run_id = client.post("/sync/shopify", headers=HEADERS).json()["run_id"]

        lenient = client.get(f"/sync/runs/{run_id}", headers=HEADERS)
        strict = client.get(f"/sync/runs/{run_id}", headers=HEADERS, params={"strict": "true"})

        assert lenient.status_code == 200
        assert lenient.json()["run"]["status"] == "failed"
        assert strict.status_code == 207
        assert strict.json()["errors"]

    def test_run_of_other_tenant_hidden(self, client, outbound, shopify_integration):
        use(outbound, shopify_handler())
        run_id = client.post("/sync/shopify", headers=HEADERS).json()["run_id"]
        resp = client.get(f"/sync/runs/{run_id}", headers={"X-User-Id": "intruder"})
        assert resp.status_code == 404

    def test_shopify_sync_honours_date_range(self, client, outbound, shopify_integration):
        recorder = use(outbound, shopify_handler())

        resp = client.post(
            "/sync/shopify",
            headers=HEADERS,
            json={"date_from": "2026-02-01", "date_to": "2026-02-02"},
        )

        assert resp.status_code == 202
        [orders] = [r for r in recorder.requests if r.url.path.endswith("/orders.json")]
        assert orders.url.params["created_at_min"].startswith("2026-02-01")
        assert orders.url.params["created_at_max"].startswith("2026-02-02")

    def test_shopify_sync_without_range_counts_all_orders(
        self, client, outbound, shopify_integration
    ):
        recorder = use(outbound, shopify_handler())
        client.post("/sync/shopify", headers=HEADERS)
        [orders] = [r for r in recorder.requests if r.url.path.endswith("/orders.json")]
        assert "created_at_min" not in orders.url.params

    def test_shopify_bad_date_rejected_before_run(self, client, outbound, shopify_integration):
        recorder = use(outbound, shopify_handler())

        resp = client.post(
            "/sync/shopify",
            headers=HEADERS,
            json={"date_from": "2026-02-05", "date_to": "2026-02-01"},
        )

        assert resp.status_code == 400
        assert recorder.requests == []

    def test_full_sync_uses_requested_ad_account(
        self, client, outbound, shopify_integration, facebook_integration
    ):
        recorder = use(outbound, provider_handler())

        resp = client.post(
            "/sync/all",
            headers=HEADERS,
            json={
                "ad_account_id": "act_999",
                "date_from": "2026-02-01",
                "date_to": "2026-02-02",
            },
        )

        assert resp.status_code == 202
        graph_paths = [r.url.path for r in recorder.requests if r.url.host == "graph.facebook.com"]
        assert any(p.endswith("/act_999/insights") for p in graph_paths)
        assert not any("act_1" in p for p in graph_paths)
        [orders] = [r for r in recorder.requests if r.url.path.endswith("/orders.json")]
        assert orders.url.params["created_at_min"].startswith("2026-02-01")

    def test_full_sync_routes_integration_id_to_its_provider(
        self, client, outbound, shopify_integration, facebook_integration
    ):
        use(outbound, provider_handler())

        resp = client.post(
            "/sync/all", headers=HEADERS, json={"integration_id": facebook_integration.id}
        )

        assert resp.status_code == 202
        run_id = resp.json()["run_id"]
        run = client.get(f"/sync/runs/{run_id}", headers=HEADERS).json()["run"]
        assert run["status"] == "completed"

    def test_full_sync_unknown_integration_is_404(self, client, shopify_integration):
        resp = client.post("/sync/all", headers=HEADERS, json={"integration_id": 9999})
        assert resp.status_code == 404


class TestFacebookActions:
    @pytest.mark.parametrize(
        "payload",
        [
            {"action": "delete_everything", "campaign_id": "123"},
            {"action": "pause", "campaign_id": "12ab"},
            {"action": "get_ad_sets"},
        ],
    )
    def test_invalid_requests_make_no_calls(self, client, outbound, facebook_integration, payload):
        recorder = use(outbound, meta_handler())
        resp = client.post("/facebook/campaigns", headers=HEADERS, json=payload)
        assert resp.status_code == 400
        assert recorder.requests == []

    def test_pause_posts_status(self, client, outbound, facebook_integration):
        recorder = use(outbound, lambda request: httpx.Response(200, json={"success": True}))

        resp = client.post(
            "/facebook/campaigns",
            headers=HEADERS,
            json={"action": "pause", "campaign_id": "120200000000000001"},
        )

        assert resp.status_code == 200
        assert resp.json()["campaign_status"] == "PAUSED"
        [request] = recorder.requests
        assert request.method == "POST"
        assert request.url.path.endswith("/120200000000000001")

    def test_rate_limit_maps_to_429(self, client, outbound, facebook_integration):
        use(
            outbound,
            lambda request: httpx.Response(
                400, json={"error": {"message": "Too many calls", "code": 17}}
            ),
        )

        resp = client.post(
            "/facebook/campaigns", headers=HEADERS, json={"action": "list_ad_accounts"}
        )

        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "300"
        assert resp.json()["retry_after"] == 300


class TestDecisionsAndProducts:
    def test_unknown_market_is_400(self, client):
        resp = client.get("/decisions", headers=HEADERS, params={"market": "huge"})
        assert resp.status_code == 400

    def test_apply_decisions(self, client, session):
        for day, spend in (("2026-02-01", 4.5), ("2026-02-02", 4.5)):
            session.add(
                DailyCampaignRecord(
                    user_id=USER_ID, campaign_id="c1", campaign_name="Cool Mug",
                    date=day, total_spend=spend, cpc=0.35,
                )
            )
        session.commit()

        resp = client.post("/decisions/apply", headers=HEADERS, json={"market": "low"})

        assert resp.status_code == 200
        assert resp.json()["summary"] == {"kill": 1, "maintain": 0, "scale": 0, "total": 1}

    def test_cost_price_update(self, client, session, shopify_integration):
        product = add_product(session, shopify_integration, "101", "Cool Mug", 20.0)
        resp = client.patch(
            f"/products/{product.id}/cost-price", headers=HEADERS, json={"cost_price": 8.0}
        )
        assert resp.status_code == 200
        assert resp.json()["result"]["profit_margin"] == 60.0

    def test_cost_price_errors(self, client, session, shopify_integration):
        product = add_product(session, shopify_integration, "101", "Cool Mug", 20.0)
        negative = client.patch(
            f"/products/{product.id}/cost-price", headers=HEADERS, json={"cost_price": -1}
        )
        missing = client.patch("/products/9999/cost-price", headers=HEADERS, json={"cost_price": 1})
        assert negative.status_code == 400
        assert missing.status_code == 404

    def test_cost_price_uses_loaded_rates(self, client, session, shopify_integration, monkeypatch):
        async def live_normalizer(http_client=None):
            return CurrencyNormalizer({"EUR": 1.0, "USD": 0.5}, source="live")

        monkeypatch.setattr("roasync.api.product_routes.load_normalizer", live_normalizer)
        shopify_integration.update_meta(store_currency="USD")
        session.add(shopify_integration)
        session.commit()
        product = add_product(session, shopify_integration, "101", "Cool Mug", 20.0)
        session.add(
            DailyCampaignRecord(
                user_id=USER_ID, campaign_id="c1", campaign_name="Cool Mug - Broad",
                date="2026-02-01", total_spend=5.0, units_sold=1, purchases=1,
            )
        )
        session.commit()

        resp = client.patch(
            f"/products/{product.id}/cost-price", headers=HEADERS, json={"cost_price": 5.0}
        )

        assert resp.status_code == 200
        record = session.exec(select(DailyCampaignRecord)).one()
        session.refresh(record)
        assert (record.product_price, record.cog, record.margin_eur) == (10.0, 2.5, 2.5)


def test_profit_sheet_endpoint(client, outbound, shopify_integration, facebook_integration):
    def handler(request):
        if request.url.host == "graph.facebook.com":
            return meta_handler(daily_spend=[{"date_start": "2026-02-01", "spend": "10"}])(request)
        return shopify_handler()(request)

    use(outbound, handler)

    resp = client.post(
        "/profit-sheet",
        headers=HEADERS,
        json={
            "shopify_integration_id": shopify_integration.id,
            "date_from": "2026-02-01",
            "date_to": "2026-02-03",
        },
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["store_currency"] == "EUR"
    assert [d["date"] for d in body["data"]] == ["2026-02-03", "2026-02-02", "2026-02-01"]
