"""ROASYNC — Decision Engine.

Groups a campaign's daily records into 2-day windows (days 29-30-31 form a
single 3-day window when all three are present) and labels each window
KILL, MAINTAIN or SCALE.

The first window is judged on spend/CPC/conversion thresholds that depend on
the market tier. Every later window is judged on its margin percentage.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Sequence

from sqlmodel import Session, select

from roasync.core.errors import InvalidInput
from roasync.core.logging import get_logger
from roasync.analyzer.metrics_engine import finite
from roasync.models.db_models import DailyCampaignRecord, _utcnow
from roasync.models.result_models import DecisionReport, DecisionSummary, WindowDecision

logger = get_logger("analyzer.decisions")


class Decision(str, Enum):
    KILL = "KILL"
    MAINTAIN = "MAINTAIN"
    SCALE = "SCALE"


@dataclass(frozen=True)
class TierThresholds:
    spend1: float
    spend2: float
    cpc: float


MARKET_TIERS: Dict[str, TierThresholds] = {
    "low": TierThresholds(spend1=7, spend2=9, cpc=0.30),
    "mid": TierThresholds(spend1=15, spend2=20, cpc=0.45),
    "high": TierThresholds(spend1=25, spend2=35, cpc=1.00),
}

SCALE_MARGIN_PCT = 15.0
TRIPLE_DAYS = (29, 30, 31)


def get_tier(market: str) -> TierThresholds:
    try:
        return MARKET_TIERS[market.lower()]
    except (KeyError, AttributeError):
        raise InvalidInput(
            f"Unknown market tier '{market}'. Valid: {', '.join(MARKET_TIERS)}"
        )


@dataclass
class Window:
    records: List[DailyCampaignRecord]
    start_day: int
    end_day: int

    @property
    def start_date(self) -> str:
        return self.records[0].date

    @property
    def end_date(self) -> str:
        return self.records[-1].date

    @property
    def spend(self) -> float:
        return sum(r.total_spend for r in self.records)

    @property
    def cpc(self) -> float:
        return sum(r.cpc for r in self.records) / len(self.records)

    @property
    def purchases(self) -> int:
        return sum(r.purchases for r in self.records)

    @property
    def atc(self) -> int:
        return sum(r.atc for r in self.records)

    @property
    def margin_pct(self) -> float:
        revenue = sum(r.units_sold * r.product_price for r in self.records)
        cog = sum(r.units_sold * r.cog for r in self.records)
        margin = revenue - self.spend - cog
        return finite(margin / revenue * 100, "window margin_pct") if revenue > 0 else 0.0


# ─────────────────────────────────────────────
# WINDOWING
# ─────────────────────────────────────────────


def build_windows(records: Sequence[DailyCampaignRecord]) -> List[Window]:
    """Pair consecutive records; a trailing single record yields no window."""
    ordered = sorted(records, key=lambda r: r.date)
    if len(ordered) < 2:
        return []

    first = date.fromisoformat(ordered[0].date)
    days = [(date.fromisoformat(r.date) - first).days + 1 for r in ordered]

    windows: List[Window] = []
    i = 0
    while i + 1 < len(ordered):
        if i + 2 < len(ordered) and tuple(days[i : i + 3]) == TRIPLE_DAYS:
            size = 3
        else:
            size = 2
        windows.append(
            Window(
                records=list(ordered[i : i + size]),
                start_day=days[i],
                end_day=days[i + size - 1],
            )
        )
        i += size
    return windows


# ─────────────────────────────────────────────
# RULES
# ─────────────────────────────────────────────


def _day_label(window: Window) -> str:
    return f"days {window.start_day}-{window.end_day} ({window.start_date} to {window.end_date})"


def _first_window_rules(window: Window, tier: TierThresholds, market: str):
    spend, cpc = window.spend, window.cpc
    purchases, atc = window.purchases, window.atc
    label = _day_label(window)
    money = f"spend {spend:.2f}, CPC {cpc:.2f}"

    if spend >= tier.spend1 and cpc > tier.cpc and purchases == 0:
        return Decision.KILL, (
            f"KILL: {money} above {tier.cpc:.2f} with no purchases "
            f"after reaching {tier.spend1:.2f} [{market}, {label}]"
        )
    if spend >= tier.spend1 and purchases >= 1:
        return Decision.MAINTAIN, (
            f"MAINTAIN: {purchases} purchase(s) at {money} [{market}, {label}]"
        )
    if spend >= tier.spend1 and cpc < tier.cpc and atc >= 1 and spend < tier.spend2:
        return Decision.MAINTAIN, (
            f"MAINTAIN: cheap clicks ({money}) with {atc} add-to-cart, "
            f"below spend ceiling {tier.spend2:.2f} [{market}, {label}]"
        )
    if spend >= tier.spend2 and purchases == 0:
        return Decision.KILL, (
            f"KILL: {money} reached ceiling {tier.spend2:.2f} with no purchases "
            f"[{market}, {label}]"
        )
    return Decision.MAINTAIN, (
        f"MAINTAIN: not enough data yet, {money} [{market}, {label}]"
    )


def _margin_rules(window: Window, market: str):
    margin = window.margin_pct
    label = _day_label(window)
    detail = f"margin {margin:.1f}%, spend {window.spend:.2f}"

    if margin > SCALE_MARGIN_PCT:
        return Decision.SCALE, f"SCALE: {detail} above {SCALE_MARGIN_PCT:.0f}% [{market}, {label}]"
    if margin < 0:
        return Decision.KILL, f"KILL: negative {detail} [{market}, {label}]"
    if 0 <= margin <= SCALE_MARGIN_PCT:
        return Decision.MAINTAIN, f"MAINTAIN: {detail} within 0-{SCALE_MARGIN_PCT:.0f}% [{market}, {label}]"
    return Decision.MAINTAIN, f"MAINTAIN: {detail} [{market}, {label}]"


def evaluate_window(window: Window, market: str = "low", first: bool = False) -> WindowDecision:
    tier = get_tier(market)
    market = market.lower()
    if first:
        decision, reason = _first_window_rules(window, tier, market)
        margin_pct = None
    else:
        decision, reason = _margin_rules(window, market)
        margin_pct = round(window.margin_pct, 2)

    head = window.records[0]
    return WindowDecision(
        campaign_id=head.campaign_id,
        campaign_name=head.campaign_name,
        decision=decision.value,
        reason=reason,
        start_day=window.start_day,
        end_day=window.end_day,
        start_date=window.start_date,
        end_date=window.end_date,
        spend=round(window.spend, 2),
        cpc=round(window.cpc, 2),
        purchases=window.purchases,
        atc=window.atc,
        margin_pct=margin_pct,
        record_ids=[r.id for r in window.records if r.id is not None],
    )


def decide_campaign(
    records: Sequence[DailyCampaignRecord], market: str = "low"
) -> List[WindowDecision]:
    """Decisions for one campaign's records, one per complete window."""
    get_tier(market)
    windows = build_windows(records)
    return [
        evaluate_window(window, market, first=(index == 0))
        for index, window in enumerate(windows)
    ]


def summarize(decisions: Sequence[WindowDecision]) -> DecisionSummary:
    counts = defaultdict(int)
    for d in decisions:
        counts[d.decision] += 1
    return DecisionSummary(
        kill=counts[Decision.KILL.value],
        maintain=counts[Decision.MAINTAIN.value],
        scale=counts[Decision.SCALE.value],
        total=len(decisions),
    )


# ─────────────────────────────────────────────
# PERSISTENCE
# ─────────────────────────────────────────────


def _load_records(
    session: Session, user_id: str, campaign_id: Optional[str] = None
) -> Dict[str, List[DailyCampaignRecord]]:
    query = select(DailyCampaignRecord).where(DailyCampaignRecord.user_id == user_id)
    if campaign_id:
        query = query.where(DailyCampaignRecord.campaign_id == campaign_id)
    grouped: Dict[str, List[DailyCampaignRecord]] = defaultdict(list)
    for record in session.exec(query).all():
        grouped[record.campaign_id].append(record)
    return grouped


def evaluate_campaigns(
    session: Session,
    user_id: str,
    market: str = "low",
    campaign_id: Optional[str] = None,
) -> DecisionReport:
    get_tier(market)
    decisions: List[WindowDecision] = []
    for records in _load_records(session, user_id, campaign_id).values():
        decisions.extend(decide_campaign(records, market))
    return DecisionReport(
        market=market.lower(), decisions=decisions, summary=summarize(decisions)
    )


def apply_decisions(
    session: Session,
    user_id: str,
    market: str = "low",
    campaign_id: Optional[str] = None,
) -> DecisionReport:
    """Evaluate and write decision + reason onto every record of each window.

    Records outside every window (a trailing single day) are reset to
    undecided, so labels from an earlier pairing never linger.
    """
    get_tier(market)
    decisions: List[WindowDecision] = []
    updated = cleared = 0

    for records in _load_records(session, user_id, campaign_id).values():
        labels: Dict[int, WindowDecision] = {}
        for decision in decide_campaign(records, market):
            decisions.append(decision)
            for record_id in decision.record_ids:
                labels[record_id] = decision

        for record in records:
            decision = labels.get(record.id)
            if decision is not None:
                record.decision = decision.decision
                record.decision_reason = decision.reason
                updated += 1
            elif record.decision is not None or record.decision_reason is not None:
                record.decision = None
                record.decision_reason = None
                cleared += 1
            else:
                continue
            record.updated_at = _utcnow()
            session.add(record)

    session.commit()
    summary = summarize(decisions)
    logger.info(
        f"Applied {summary.total} decisions to {updated} records, cleared {cleared} "
        f"(kill={summary.kill}, maintain={summary.maintain}, scale={summary.scale})"
    )
    return DecisionReport(market=market.lower(), decisions=decisions, summary=summary)
