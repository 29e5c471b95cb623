"""
planner/rebalance.py  —  Target-allocation rebalancing

Two ways of moving a portfolio towards its targets:

  - Full rebalance : buy and sell whole shares until every asset sits at
                     its target value (within one share).
  - Buy-only       : deploy fresh cash into underweight assets only,
                     using a largest-remainder split of the cash.

Target percentages are taken as given. They need not add up to 100 and
are never rescaled.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Union

from planner.models import Position, PriceQuote, normalise_id, normalise_targets, to_float

logger = logging.getLogger(__name__)

PriceLike = Union[PriceQuote, float]

# Float slack when turning cash into whole shares (6.0 / 1.0 can land on 5.999…)
_SHARE_EPSILON = 1e-9


class ActionKind(Enum):
    BUY      = "Buy"
    SELL     = "Sell"
    BALANCED = "Balanced"
    UNPRICED = "Unpriced"


@dataclass(frozen=True)
class RebalanceAction:
    asset_id:       str
    kind:           ActionKind
    current_value:  float
    target_percent: float
    target_value:   float
    ideal_delta:    float     # cash needed to hit the target exactly (+ buy / − sell)
    price:          float
    shares:         int       # signed: + buy / − sell
    amount:         float     # shares × price


@dataclass(frozen=True)
class BuyAction:
    asset_id:   str
    shares:     int
    price:      float
    cash_spent: float


@dataclass(frozen=True)
class BuyOnlyPlan:
    actions:        List[BuyAction]
    available_cash: float

    @property
    def cash_spent(self) -> float:
        return sum(a.cash_spent for a in self.actions)

    @property
    def cash_left(self) -> float:
        return self.available_cash - self.cash_spent


# ── Helpers ───────────────────────────────────────────────────────────────────

def round_half_away(x: float) -> int:
    """Nearest integer, ties away from zero: 2.5 → 3, −2.5 → −3."""
    return int(math.copysign(math.floor(abs(x) + 0.5), x))


def total_value(positions: Iterable[Position]) -> float:
    return sum(p.current_value for p in positions)


def _price_of(value: Optional[PriceLike]) -> float:
    if value is None:
        return 0.0
    if isinstance(value, PriceQuote):
        return to_float(value.price)
    return to_float(value)


def _universe(positions: Iterable[Position], targets: Mapping[str, float]) -> List[str]:
    """Held assets in position order, then target-only assets in target order."""
    ids: List[str] = []
    for p in positions:
        if normalise_id(p.asset_id) not in ids:
            ids.append(normalise_id(p.asset_id))
    for asset_id in targets:
        if asset_id not in ids:
            ids.append(asset_id)
    return ids


def _resolve_price(asset_id: str,
                   position: Optional[Position],
                   prices: Mapping[str, PriceLike]) -> float:
    if position is not None and position.current_price > 0:
        return position.current_price
    return _price_of(prices.get(asset_id))


# ── Full rebalance ────────────────────────────────────────────────────────────

def plan_full_rebalance(positions: Iterable[Position],
                        targets: Mapping[str, float],
                        total_portfolio_value: float,
                        prices: Optional[Mapping[str, PriceLike]] = None,
                        ) -> List[RebalanceAction]:
    """
    One action per asset found in positions or targets.

    Shares are the ideal cash delta divided by price, rounded half away
    from zero. An asset with neither a target nor a quantity is left out.
    """
    positions = list(positions)
    targets   = normalise_targets(targets)
    prices    = {normalise_id(k): v for k, v in (prices or {}).items()}
    held      = {normalise_id(p.asset_id): p for p in positions}
    total     = to_float(total_portfolio_value)

    actions = []
    for asset_id in _universe(positions, targets):
        position       = held.get(asset_id)
        target_percent = targets.get(asset_id, 0.0)
        quantity       = position.quantity if position is not None else 0.0

        if target_percent == 0 and quantity == 0:
            continue

        current_value = position.current_value if position is not None else 0.0
        target_value  = total * target_percent / 100
        ideal_delta   = target_value - current_value
        price         = _resolve_price(asset_id, position, prices)

        if price <= 0:
            kind, shares = ActionKind.UNPRICED, 0
        else:
            shares = round_half_away(ideal_delta / price)
            if shares > 0:
                kind = ActionKind.BUY
            elif shares < 0:
                kind = ActionKind.SELL
            else:
                kind = ActionKind.BALANCED

        actions.append(RebalanceAction(
            asset_id=asset_id,
            kind=kind,
            current_value=current_value,
            target_percent=target_percent,
            target_value=target_value,
            ideal_delta=ideal_delta,
            price=price,
            shares=shares,
            amount=shares * price,
        ))
    return actions


# ── Buy-only deployment ───────────────────────────────────────────────────────

@dataclass
class _Candidate:
    asset_id:  str
    price:     float
    gap:       float
    shares:    int   = 0
    remainder: float = 0.0


def _spent(candidates: List[_Candidate]) -> float:
    return sum(c.shares * c.price for c in candidates)


def plan_buy_only_rebalance(positions: Iterable[Position],
                            targets: Mapping[str, float],
                            available_cash: float,
                            prices: Optional[Mapping[str, PriceLike]] = None,
                            ) -> List[BuyAction]:
    """
    Spend `available_cash` on underweight assets without selling anything.

      1. Targets are measured against the post-injection total
         (current assets + cash). Only assets below target with a known
         price are candidates.
      2. Cash is split in proportion to each candidate's gap and floored
         to whole shares.
      3. Leftover cash buys one extra share per candidate, largest
         fractional remainder first, in a single pass.
    """
    positions = list(positions)
    targets   = normalise_targets(targets)
    prices    = {normalise_id(k): v for k, v in (prices or {}).items()}
    held      = {normalise_id(p.asset_id): p for p in positions}
    cash      = to_float(available_cash)

    if cash <= 0:
        return []

    post_total = total_value(positions) + cash

    candidates: List[_Candidate] = []
    for asset_id in _universe(positions, targets):
        position      = held.get(asset_id)
        current_value = position.current_value if position is not None else 0.0
        gap           = post_total * targets.get(asset_id, 0.0) / 100 - current_value
        price         = _resolve_price(asset_id, position, prices)
        if gap > 0 and price > 0:
            candidates.append(_Candidate(asset_id=asset_id, price=price, gap=gap))

    total_gap = sum(c.gap for c in candidates)
    if total_gap <= 0:
        logger.debug("No underweight assets; %.2f stays as cash", cash)
        return []

    for c in candidates:
        exact       = (cash * c.gap / total_gap) / c.price
        c.shares    = int(math.floor(exact + _SHARE_EPSILON))
        c.remainder = max(0.0, exact - c.shares)

    # The epsilon can round a share up past the cash; give it back.
    for c in sorted(candidates, key=lambda c: c.remainder):
        if _spent(candidates) <= cash:
            break
        if c.shares > 0:
            c.shares -= 1

    for c in sorted(candidates, key=lambda c: -c.remainder):
        c.shares += 1
        if _spent(candidates) > cash:
            c.shares -= 1

    return [BuyAction(asset_id=c.asset_id, shares=c.shares, price=c.price,
                      cash_spent=c.shares * c.price)
            for c in candidates if c.shares > 0]


def summarise_buy_only(actions: List[BuyAction], available_cash: float) -> BuyOnlyPlan:
    return BuyOnlyPlan(actions=list(actions), available_cash=to_float(available_cash))


# ── Required liquidity ────────────────────────────────────────────────────────

def min_liquidity_for_full_buy_only_coverage(positions: Iterable[Position],
                                             targets: Mapping[str, float]) -> float:
    """
    Smallest cash injection that lets every positively-targeted asset reach
    its target by buying alone.

    Each asset implies a portfolio size (value / weight) at which it is
    exactly on target; the largest of those is the binding one because all
    assets share the same denominator.
    """
    positions = list(positions)
    targets   = normalise_targets(targets)
    values: Dict[str, float] = {}
    for p in positions:
        key = normalise_id(p.asset_id)
        values[key] = values.get(key, 0.0) + p.current_value

    implied = [values.get(asset_id, 0.0) / (percent / 100)
               for asset_id, percent in targets.items() if percent > 0]
    if not implied:
        return 0.0
    return max(0.0, max(implied) - total_value(positions))
