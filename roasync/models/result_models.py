"""ROASYNC — Internal Result Schemas.

Typed outputs of the matcher, metrics calculator, decision engine and sync
engine. These are what routes serialize; none of them are tables.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Confidence(str, Enum):
    HIGH = "high"
    LOW = "low"
    NONE = "none"


class MatchResult(BaseModel):
    """Outcome of a fuzzy name match."""

    match_id: Optional[str] = None
    score: int = 0
    confidence: Confidence = Confidence.NONE

    @property
    def matched(self) -> bool:
        return self.match_id is not None


class CampaignMetrics(BaseModel):
    revenue: float = 0.0
    cog: float = 0.0
    margin_eur: float = 0.0
    margin_pct: float = 0.0
    roas: float = 0.0


class ProfitBreakdown(BaseModel):
    total_refunds: float = 0.0
    transaction_fee: float = 0.0
    profit: float = 0.0


class ProfitDay(BaseModel):
    """One row of the daily profit sheet, all money in EUR."""

    date: str
    revenue: float = 0.0
    orders: int = 0
    cog: float = 0.0
    ad_spend: float = 0.0
    other_expenses: float = 0.0
    provider_refunds: float = 0.0
    manual_refunds: float = 0.0
    total_refunds: float = 0.0
    transaction_fee: float = 0.0
    profit: float = 0.0


class SyncResult(BaseModel):
    """Aggregate outcome of one sync; ``errors`` lists per-item failures."""

    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)
    truncated: bool = False

    @property
    def status(self) -> str:
        if not self.errors:
            return "completed"
        if self.created or self.updated:
            return "partial"
        return "failed"

    def merge(self, other: "SyncResult") -> "SyncResult":
        return SyncResult(
            total=self.total + other.total,
            created=self.created + other.created,
            updated=self.updated + other.updated,
            skipped=self.skipped + other.skipped,
            errors=self.errors + other.errors,
            truncated=self.truncated or other.truncated,
        )


class WindowDecision(BaseModel):
    campaign_id: str
    campaign_name: str = ""
    decision: str
    reason: str
    start_day: int
    end_day: int
    start_date: str
    end_date: str
    spend: float = 0.0
    cpc: float = 0.0
    purchases: int = 0
    atc: int = 0
    margin_pct: Optional[float] = None
    record_ids: List[int] = Field(default_factory=list)


class DecisionSummary(BaseModel):
    kill: int = 0
    maintain: int = 0
    scale: int = 0
    total: int = 0


class DecisionReport(BaseModel):
    market: str
    decisions: List[WindowDecision] = Field(default_factory=list)
    summary: DecisionSummary = Field(default_factory=DecisionSummary)


class CascadeResult(BaseModel):
    product_id: int
    cost_price: float
    profit_margin: Optional[float] = None
    records_updated: int = 0
    campaigns_matched: List[str] = Field(default_factory=list)
