"""ROASYNC — Metrics Calculator.

Pure functions deriving revenue, COG, margin and ROAS for a campaign-day and
the daily profit of a store. No non-finite value ever leaves this module.
"""

import math
from typing import Optional

from roasync.config import settings
from roasync.core.errors import DataIntegrityWarning
from roasync.core.logging import get_logger
from roasync.models.result_models import CampaignMetrics, ProfitBreakdown

logger = get_logger("analyzer.metrics")


def finite(value: float, name: str = "value") -> float:
    """Clamp NaN/Infinity to 0 and log a data-integrity warning."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        value = math.nan
    if math.isfinite(value):
        return value
    logger.warning(
        f"{DataIntegrityWarning.__name__}: non-finite {name} ({value}) clamped to 0"
    )
    return 0.0


def compute_cpc(spend: float, clicks: int) -> float:
    return finite(spend / clicks, "cpc") if clicks > 0 else 0.0


def compute_metrics(
    units_sold: float,
    product_price: float,
    cog_per_unit: float,
    total_spend: float,
) -> CampaignMetrics:
    """Revenue, COG, margin (EUR and %) and ROAS for one campaign-day."""
    revenue = units_sold * product_price
    cog = units_sold * cog_per_unit
    margin_eur = revenue - total_spend - cog
    margin_pct = (margin_eur / revenue * 100) if revenue > 0 else 0.0
    roas = (revenue / total_spend) if total_spend > 0 else 0.0

    return CampaignMetrics(
        revenue=round(finite(revenue, "revenue"), 2),
        cog=round(finite(cog, "cog"), 2),
        margin_eur=round(finite(margin_eur, "margin_eur"), 2),
        margin_pct=round(finite(margin_pct, "margin_pct"), 2),
        roas=round(finite(roas, "roas"), 2),
    )


def compute_profit_margin(selling_price: float, cost_price: Optional[float]) -> Optional[float]:
    """Product margin in percent of the selling price."""
    if cost_price is None or selling_price <= 0:
        return None
    return round(finite((selling_price - cost_price) / selling_price * 100, "profit_margin"), 2)


def compute_profit(
    revenue: float,
    cog: float,
    ad_spend: float,
    other_expenses: float = 0.0,
    provider_refunds: float = 0.0,
    manual_refunds: float = 0.0,
    fee_rate: Optional[float] = None,
) -> ProfitBreakdown:
    """Daily profit-sheet figures."""
    fee_rate = settings.transaction_fee_rate if fee_rate is None else fee_rate
    total_refunds = provider_refunds + manual_refunds
    transaction_fee = revenue * fee_rate
    profit = revenue - cog - ad_spend - other_expenses - total_refunds - transaction_fee

    return ProfitBreakdown(
        total_refunds=round(finite(total_refunds, "total_refunds"), 2),
        transaction_fee=round(finite(transaction_fee, "transaction_fee"), 2),
        profit=round(finite(profit, "profit"), 2),
    )
