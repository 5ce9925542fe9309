"""ROASYNC — Persisted Models.

Unique constraints are the sole guard against concurrent or duplicate sync
runs: every writer upserts on these keys instead of taking locks.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field, UniqueConstraint


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─────────────────────────────────────────────
# INTEGRATIONS
# ─────────────────────────────────────────────


class Integration(SQLModel, table=True):
    """One connected external account (Shopify store or Facebook ad account).

    Never hard-deleted while synced data references it; ``is_active=False``
    marks a soft removal.
    """

    __tablename__ = "integrations"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    provider: str = Field(index=True, description="shopify | facebook_ads")
    access_token: str = Field(default="", description="Token Vault ciphertext")
    expires_at: Optional[datetime] = None
    meta: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON),
        description="store_currency, myshopify_domain, ad_account_id, currency, ...",
    )
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def update_meta(self, **values: Any) -> None:
        """Replace the JSON metadata so SQLAlchemy sees the change."""
        self.meta = {**(self.meta or {}), **values}
        self.updated_at = _utcnow()


# ─────────────────────────────────────────────
# CATALOG
# ─────────────────────────────────────────────


class Product(SQLModel, table=True):
    """Catalog entry synced from Shopify.

    A non-zero ``cost_price`` is treated as user-owned: sync may only
    overwrite it while it is null or zero.
    """

    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "integration_id",
            "external_product_id",
            name="uq_product_external",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    integration_id: int = Field(index=True, foreign_key="integrations.id")
    external_product_id: str = Field(index=True)
    product_name: str = Field(default="")
    sku: str = Field(default="")
    selling_price: float = Field(default=0.0, description="Store currency")
    cost_price: Optional[float] = Field(default=None, description="Store currency")
    profit_margin: Optional[float] = Field(default=None, description="%")
    quantity_sold: int = Field(default=0)
    total_revenue: float = Field(default=0.0)
    image_url: Optional[str] = None
    last_sold_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=_utcnow)


# ─────────────────────────────────────────────
# CAMPAIGN AGGREGATES
# ─────────────────────────────────────────────


class DailyCampaignRecord(SQLModel, table=True):
    """One row per (user, campaign, calendar date). Money is in EUR."""

    __tablename__ = "daily_campaign_records"
    __table_args__ = (
        UniqueConstraint("user_id", "campaign_id", "date", name="uq_daily_campaign"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    campaign_id: str = Field(index=True)
    campaign_name: str = Field(default="")
    ad_account_id: str = Field(default="")
    date: str = Field(index=True, description="YYYY-MM-DD")
    total_spend: float = 0.0
    clicks: int = 0
    cpc: float = 0.0
    atc: int = 0
    purchases: int = 0
    product_id: Optional[int] = Field(default=None, foreign_key="products.id")
    product_price: float = 0.0
    cog: float = Field(default=0.0, description="Cost of goods per unit")
    units_sold: int = 0
    revenue: float = 0.0
    roas: float = 0.0
    margin_eur: float = 0.0
    margin_pct: float = 0.0
    decision: Optional[str] = None
    decision_reason: Optional[str] = None
    updated_at: datetime = Field(default_factory=_utcnow)


class ProfitSheetEntry(SQLModel, table=True):
    """Manual adjustments supplementing API-derived profit numbers."""

    __tablename__ = "profit_sheet_entries"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "shopify_integration_id",
            "ad_account_id",
            "date",
            name="uq_profit_sheet_entry",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    shopify_integration_id: int = Field(foreign_key="integrations.id")
    ad_account_id: str
    date: str = Field(index=True, description="YYYY-MM-DD")
    other_expenses: float = 0.0
    manual_refunds: float = 0.0
    updated_at: datetime = Field(default_factory=_utcnow)


# ─────────────────────────────────────────────
# SYNC RUNS
# ─────────────────────────────────────────────


class SyncRun(SQLModel, table=True):
    """Progress and outcome of one fire-and-forget sync."""

    __tablename__ = "sync_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    kind: str = Field(description="shopify_products | facebook_campaigns | full")
    integration_id: Optional[int] = None
    status: str = Field(default="started")
    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    truncated: bool = False
    message: str = ""
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
