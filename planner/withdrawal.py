"""
planner/withdrawal.py  —  Sell-only withdrawal solver

Works out which whole shares to sell so that, after capital-gains tax,
the sale nets a requested amount of cash while the remaining portfolio
stays as close as possible to its target allocation.

How it works:
  1. Asking for (almost) everything short-circuits to a full liquidation.
  2. Otherwise each asset gets a score: remaining value / target weight.
     The highest score is the most overweight asset relative to what it
     should hold, so one share of it is sold. Assets with no target score
     infinitely high and go first.
  3. Net proceeds are recomputed after every share and the loop stops as
     soon as they cover the request. Tax is therefore part of the stopping
     rule, not an afterthought.

An infeasible request is not an error: the plan simply nets less than
asked, and `WithdrawalPlan.shortfall()` says by how much.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping

from planner import config
from planner.models import Position, normalise_id, normalise_targets, to_float
from planner.tax import sale_tax

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WithdrawalAction:
    asset_id:                str
    shares_sold:             float
    gross:                   float
    tax:                     float
    net:                     float
    gain:                    float
    post_quantity:           float
    post_value:              float
    post_allocation_percent: float


@dataclass(frozen=True)
class WithdrawalPlan:
    gross_total:      float
    net_total:        float
    tax_total:        float
    actions:          List[WithdrawalAction] = field(default_factory=list)
    fully_liquidated: bool                   = False

    def shortfall(self, net_cash_needed: float) -> float:
        return max(0.0, net_cash_needed - self.net_total)


@dataclass
class _Working:
    position:        Position
    target_weight:   float
    shares_sold:     int   = 0

    @property
    def remaining_qty(self) -> float:
        return self.position.quantity - self.shares_sold

    @property
    def remaining_value(self) -> float:
        return self.remaining_qty * self.position.current_price

    def score(self) -> float:
        if self.target_weight == 0:
            return math.inf
        return self.remaining_value / self.target_weight


def _total_net(state: List[_Working]) -> float:
    return sum(sale_tax(w.position, w.shares_sold).net
               for w in state if w.shares_sold > 0)


def _pick(state: List[_Working]) -> int:
    """Index of the asset to sell a share of, or -1 when nothing is sellable."""
    best, best_score = -1, -math.inf
    for idx, w in enumerate(state):
        if w.remaining_qty < 1 or w.position.current_price <= 0:
            continue
        score = w.score()
        if score > best_score:
            best, best_score = idx, score
    return best


def _full_liquidation(positions: List[Position]) -> WithdrawalPlan:
    actions = []
    for p in positions:
        if p.quantity <= 0:
            continue
        sale = sale_tax(p, p.quantity)
        actions.append(WithdrawalAction(
            asset_id=p.asset_id, shares_sold=p.quantity,
            gross=sale.gross, tax=sale.tax, net=sale.net, gain=sale.gain,
            post_quantity=0.0, post_value=0.0, post_allocation_percent=0.0,
        ))
    return WithdrawalPlan(
        gross_total=sum(a.gross for a in actions),
        net_total=sum(a.net for a in actions),
        tax_total=sum(a.tax for a in actions),
        actions=actions,
        fully_liquidated=True,
    )


def _build_plan(state: List[_Working]) -> WithdrawalPlan:
    remaining_total = sum(w.remaining_value for w in state)
    actions = []
    for w in state:
        if w.shares_sold <= 0:
            continue
        sale = sale_tax(w.position, w.shares_sold)
        actions.append(WithdrawalAction(
            asset_id=w.position.asset_id,
            shares_sold=w.shares_sold,
            gross=sale.gross, tax=sale.tax, net=sale.net, gain=sale.gain,
            post_quantity=w.remaining_qty,
            post_value=w.remaining_value,
            post_allocation_percent=(w.remaining_value / remaining_total * 100
                                     if remaining_total > 0 else 0.0),
        ))
    return WithdrawalPlan(
        gross_total=sum(a.gross for a in actions),
        net_total=sum(a.net for a in actions),
        tax_total=sum(a.tax for a in actions),
        actions=actions,
    )


def plan_withdrawal(positions: Iterable[Position],
                    targets: Mapping[str, float],
                    net_cash_needed: float) -> WithdrawalPlan:
    """Sell whole shares until the after-tax proceeds reach `net_cash_needed`."""
    positions = list(positions)
    targets   = normalise_targets(targets)
    needed    = to_float(net_cash_needed)

    if needed <= 0:
        return WithdrawalPlan(gross_total=0.0, net_total=0.0, tax_total=0.0)

    current_total = sum(p.current_value for p in positions)
    if needed >= current_total * config.FULL_LIQUIDATION_RATIO:
        logger.debug("Withdrawal of %.2f ≥ %.0f%% of %.2f; liquidating everything",
                     needed, config.FULL_LIQUIDATION_RATIO * 100, current_total)
        return _full_liquidation(positions)

    state = [_Working(position=p, target_weight=targets.get(normalise_id(p.asset_id), 0.0))
             for p in positions]

    max_shares = sum(max(0.0, p.quantity) for p in positions)
    limit      = int(max_shares) + config.WITHDRAWAL_ITERATION_SLACK
    net        = 0.0
    iterations = 0

    while net < needed and iterations < limit:
        iterations += 1
        idx = _pick(state)
        if idx == -1:
            break
        state[idx].shares_sold += 1
        net = _total_net(state)

    if net < needed:
        logger.info("Withdrawal nets %.2f of %.2f requested after %d iterations",
                    net, needed, iterations)
    return _build_plan(state)
