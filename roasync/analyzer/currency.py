"""ROASYNC — Currency Normalizer.

Converts provider amounts into the reporting currency (EUR). Live rates are
fetched once per sync run; any failure falls back to a static table.

Unknown currency codes convert 1:1. This is a deliberate lenient policy and
is logged as a warning the first time each code is seen.
"""

import math
from typing import Dict, Optional, Set

import httpx
from pydantic import ValidationError

from roasync.config import settings
from roasync.core.logging import get_logger
from roasync.models.provider_models import FxRatesPayload

logger = get_logger("analyzer.currency")

# EUR per 1 unit of source currency
FALLBACK_RATES: Dict[str, float] = {
    "EUR": 1.0,
    "USD": 0.92,
    "GBP": 1.17,
    "CAD": 0.67,
    "AUD": 0.61,
    "BRL": 0.18,
    "CHF": 1.07,
    "SEK": 0.088,
    "NOK": 0.088,
    "DKK": 0.134,
    "PLN": 0.23,
    "CZK": 0.040,
    "HUF": 0.0025,
    "RON": 0.20,
    "BGN": 0.51,
    "HRK": 0.13,
    "RUB": 0.010,
    "TRY": 0.029,
    "INR": 0.011,
    "CNY": 0.13,
    "JPY": 0.0062,
    "KRW": 0.00069,
    "MXN": 0.053,
    "ARS": 0.0010,
    "CLP": 0.0010,
    "COP": 0.00024,
    "PEN": 0.25,
    "ZAR": 0.051,
    "EGP": 0.019,
    "NGN": 0.0013,
    "KES": 0.0071,
    "MAD": 0.092,
    "SGD": 0.69,
    "HKD": 0.12,
    "MYR": 0.21,
    "THB": 0.027,
    "IDR": 0.000058,
    "PHP": 0.016,
    "VND": 0.000037,
    "NZD": 0.55,
}


def invert_rates(per_reporting: Dict[str, float]) -> Dict[str, float]:
    """Turn "source units per 1 EUR" into "EUR per 1 source unit"."""
    inverted: Dict[str, float] = {}
    for code, value in per_reporting.items():
        try:
            rate = float(value)
        except (TypeError, ValueError):
            continue
        if rate > 0 and math.isfinite(rate):
            inverted[code.upper()] = 1.0 / rate
    return inverted


class CurrencyNormalizer:
    """Rate table for one sync run."""

    def __init__(
        self,
        rates: Optional[Dict[str, float]] = None,
        source: str = "fallback",
    ):
        self.rates = {k.upper(): v for k, v in (rates or FALLBACK_RATES).items()}
        self.rates[settings.reporting_currency.upper()] = 1.0
        self.source = source
        self._warned: Set[str] = set()

    async def load(self, http_client: Optional[httpx.AsyncClient] = None) -> "CurrencyNormalizer":
        """Replace the table with live rates; keep the fallback on any failure."""
        owns_client = http_client is None
        client = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        try:
            resp = await client.get(settings.fx_rates_url)
            resp.raise_for_status()
            payload = FxRatesPayload.model_validate(resp.json())
            if payload.result != "success" or not payload.rates:
                raise ValueError(f"FX service returned result={payload.result!r}")
            live = invert_rates(payload.rates)
            if not live:
                raise ValueError("FX service returned no usable rates")
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.warning(f"Live FX rates unavailable, using fallback table: {e}")
            return self
        finally:
            if owns_client:
                await client.aclose()

        self.rates = {**{k.upper(): v for k, v in FALLBACK_RATES.items()}, **live}
        self.rates[settings.reporting_currency.upper()] = 1.0
        self.source = "live"
        logger.info(f"Loaded {len(live)} live FX rates")
        return self

    def rate(self, source_code: Optional[str]) -> float:
        code = (source_code or settings.reporting_currency).strip().upper()
        rate = self.rates.get(code)
        if rate is None:
            if code not in self._warned:
                self._warned.add(code)
                logger.warning(
                    f"Unknown currency '{code}', converting 1:1 without FX adjustment"
                )
            return 1.0
        return rate

    def to_reporting_currency(self, amount: float, source_code: Optional[str]) -> float:
        return amount * self.rate(source_code)


async def load_normalizer(http_client: Optional[httpx.AsyncClient] = None) -> CurrencyNormalizer:
    """One live FX fetch for a sync run."""
    return await CurrencyNormalizer().load(http_client)
