"""
planner/tax.py  —  Capital-gains tax estimate on a sale

Rules implemented:
  - 26%   on gains for Stock, Crypto and Commodity (gold included)
  - 12.5% on gains for Bond (white-list government bonds) and Cash (money-market)
  - Gain = gross proceeds − shares sold × average cost
  - Losses are floored to a zero gain: they never offset gains elsewhere
    and never produce a rebate

Note: this is a planning approximation, not a tax return. Allowances,
      loss carry-forward and stamp duty are ignored.

All amounts in EUR.
"""

from dataclasses import dataclass
from typing import Dict

from planner.models import AssetClass, Position

# ── Rates ─────────────────────────────────────────────────────────────────────
TAX_RATES: Dict[AssetClass, float] = {
    AssetClass.STOCK:     0.26,
    AssetClass.CRYPTO:    0.26,
    AssetClass.COMMODITY: 0.26,
    AssetClass.BOND:      0.125,
    AssetClass.CASH:      0.125,
}
DEFAULT_RATE = 0.26


@dataclass(frozen=True)
class SaleTax:
    gross: float
    gain:  float     # taxable part, never negative
    tax:   float
    net:   float     # gross − tax


def tax_rate(asset_class: AssetClass) -> float:
    return TAX_RATES.get(asset_class, DEFAULT_RATE)


def sale_tax(position: Position, shares: float) -> SaleTax:
    """Tax owed on selling `shares` of `position` at its current price."""
    gross = shares * position.current_price
    if position.current_price <= 0:
        return SaleTax(gross=gross, gain=0.0, tax=0.0, net=gross)

    # An oversold ledger can leave a negative average cost; gain is capped at gross.
    gain = min(gross, max(0.0, gross - shares * position.average_cost))
    tax  = gain * tax_rate(position.asset_class)
    return SaleTax(gross=gross, gain=gain, tax=tax, net=gross - tax)
