"""Shared fixtures: in-memory database, provider fakes, zeroed delays."""

import os
import re
from typing import Callable, Dict, Iterable, List, Optional

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import httpx
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from roasync.analyzer.currency import CurrencyNormalizer
from roasync.config import settings
from roasync.models.db_models import Integration, Product

USER_ID = "user-1"


# ============================================================================
# Settings
# ============================================================================


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """No sleeping between retries, pages or image batches."""
    monkeypatch.setattr(settings, "retry_base_delay", 0.0)
    monkeypatch.setattr(settings, "meta_page_delay", 0.0)
    monkeypatch.setattr(settings, "shopify_request_delay", 0.0)
    monkeypatch.setattr(settings, "image_batch_delay", 0.0)


@pytest.fixture(autouse=True)
def offline_fx(monkeypatch):
    """Sync code paths use the static rate table instead of the live feed."""

    async def fallback_normalizer(http_client=None):
        return CurrencyNormalizer()

    monkeypatch.setattr("roasync.sync.campaign_sync.load_normalizer", fallback_normalizer)
    monkeypatch.setattr("roasync.sync.profit_sheet.load_normalizer", fallback_normalizer)
    monkeypatch.setattr("roasync.api.product_routes.load_normalizer", fallback_normalizer)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def session_factory(engine) -> Callable[[], Session]:
    return lambda: Session(engine)


@pytest.fixture
def shopify_integration(session) -> Integration:
    integration = Integration(
        user_id=USER_ID,
        provider="shopify",
        access_token="shpat_test",
        meta={"myshopify_domain": "mycoolshop.myshopify.com", "store_currency": "EUR"},
    )
    session.add(integration)
    session.commit()
    session.refresh(integration)
    return integration


@pytest.fixture
def facebook_integration(session) -> Integration:
    integration = Integration(
        user_id=USER_ID,
        provider="facebook_ads",
        access_token="EAAB_test",
        meta={"ad_account_id": "act_1"},
    )
    session.add(integration)
    session.commit()
    session.refresh(integration)
    return integration


def add_product(
    session: Session,
    integration: Integration,
    external_id: str,
    name: str,
    selling_price: float = 20.0,
    cost_price: Optional[float] = None,
    sku: str = "",
) -> Product:
    product = Product(
        user_id=integration.user_id,
        integration_id=integration.id,
        external_product_id=external_id,
        product_name=name,
        sku=sku,
        selling_price=selling_price,
        cost_price=cost_price,
    )
    session.add(product)
    session.commit()
    session.refresh(product)
    return product


# ============================================================================
# Provider Fakes
# ============================================================================


def mock_http(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class Recorder:
    """Wraps a handler and keeps every request it saw."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def client(self) -> httpx.AsyncClient:
        return mock_http(self)


SAMPLE_ORDERS = [
    {
        "id": 1,
        "created_at": "2026-02-01T10:00:00+01:00",
        "financial_status": "paid",
        "total_price": "40.00",
        "currency": "EUR",
        "line_items": [
            {
                "product_id": 101,
                "variant_id": 11,
                "title": "Cool Mug",
                "variant_title": "Blue",
                "quantity": 2,
                "price": "20.00",
                "sku": "MUG-1",
            }
        ],
        "refunds": [],
    },
    {
        "id": 2,
        "created_at": "2026-02-02T09:00:00+01:00",
        "financial_status": "pending",
        "total_price": "100.00",
        "currency": "EUR",
        "line_items": [
            {"product_id": 101, "title": "Cool Mug", "quantity": 5, "price": "20.00"}
        ],
        "refunds": [],
    },
    {
        "id": 3,
        "created_at": "2026-02-03T12:00:00+01:00",
        "financial_status": "partially_paid",
        "total_price": "70.00",
        "currency": "EUR",
        "line_items": [
            {
                "product_id": 101,
                "title": "Cool Mug",
                "variant_title": "Red",
                "quantity": 1,
                "price": "20.00",
                "sku": "MUG-1",
            },
            {
                "product_id": 202,
                "title": "Desk Lamp",
                "quantity": 1,
                "price": "50.00",
                "sku": "LAMP-1",
            },
        ],
        "refunds": [{"refund_line_items": [{"subtotal": "10.00"}]}],
    },
]


def shopify_handler(
    orders: Iterable[dict] = SAMPLE_ORDERS,
    inventory_costs: Optional[Dict[int, str]] = None,
    failing_products: Iterable[int] = (),
    shop_currency: str = "EUR",
):
    orders = list(orders)
    inventory_costs = inventory_costs or {}
    failing_products = set(failing_products)

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/shop.json"):
            return httpx.Response(
                200, json={"shop": {"name": "My Cool Shop", "currency": shop_currency}}
            )
        if path.endswith("/orders.json"):
            return httpx.Response(200, json={"orders": orders})
        match = re.search(r"/products/(\d+)\.json$", path)
        if match:
            product_id = int(match.group(1))
            if product_id in failing_products:
                return httpx.Response(500, json={"errors": "boom"})
            return httpx.Response(
                200,
                json={
                    "product": {
                        "id": product_id,
                        "title": f"Product {product_id}",
                        "images": [{"src": f"https://cdn.example.com/{product_id}.jpg"}],
                        "variants": [{"inventory_item_id": product_id * 10}],
                    }
                },
            )
        match = re.search(r"/inventory_items/(\d+)\.json$", path)
        if match:
            item_id = int(match.group(1))
            return httpx.Response(
                200, json={"inventory_item": {"id": item_id, "cost": inventory_costs.get(item_id)}}
            )
        return httpx.Response(404, json={"errors": "Not Found"})

    return handler


def insight(campaign_id, name, day, spend, clicks, purchases=0, atc=0) -> dict:
    actions = []
    if purchases:
        actions.append({"action_type": "purchase", "value": str(purchases)})
    if atc:
        actions.append({"action_type": "add_to_cart", "value": str(atc)})
    return {
        "campaign_id": campaign_id,
        "campaign_name": name,
        "date_start": day,
        "date_stop": day,
        "spend": str(spend),
        "clicks": str(clicks),
        "impressions": "1000",
        "actions": actions,
    }


SAMPLE_INSIGHTS = [
    insight("c1", "Cool Mug - Broad", "2026-02-01", 10.0, 20, purchases=1, atc=3),
    insight("c1", "Cool Mug - Broad", "2026-02-02", 10.0, 25, purchases=0, atc=1),
    insight("c2", "Winter Sale XYZ", "2026-02-01", 5.0, 10),
]


def meta_handler(
    insights: Iterable[dict] = SAMPLE_INSIGHTS,
    accounts: Optional[List[dict]] = None,
    currency: str = "USD",
    daily_spend: Optional[List[dict]] = None,
):
    insights = list(insights)
    accounts = accounts if accounts is not None else [
        {"id": "act_1", "name": "My Cool Shop Ads", "account_id": "1", "currency": currency}
    ]
    daily_spend = daily_spend or []

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/me/adaccounts"):
            return httpx.Response(200, json={"data": accounts})
        if path.endswith("/insights"):
            if request.url.params.get("level") == "account":
                return httpx.Response(200, json={"data": daily_spend})
            return httpx.Response(200, json={"data": insights})
        if re.search(r"/act_\w+$", path):
            return httpx.Response(200, json={"id": path.rsplit("/", 1)[-1], "currency": currency})
        return httpx.Response(404, json={"error": {"message": "Unknown path", "code": 100}})

    return handler


def provider_handler(shopify=None, meta=None):
    """Route Graph API traffic to ``meta`` and everything else to ``shopify``."""
    shopify = shopify or shopify_handler()
    meta = meta or meta_handler()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "graph.facebook.com":
            return meta(request)
        return shopify(request)

    return handler
