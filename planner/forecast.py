"""
planner/forecast.py  —  Monthly cash-flow forecast across accounts and cash sources

One state transition per simulated month:

  1. Scheduled expenses due this month are paid from, in order:
       a. this month's net inflow
       b. cash-source liquidity (only if the expense allows eroding it)
       c. the accounts whose goal the expense allows, pro-rata by value
     When (c) runs dry the month is flagged insolvent and the rest is
     charged to the first cash source, which may go negative.
  2. A negative net cash flow drains cash sources, then every account
     pro-rata. Anything still missing is dropped (no debt is modelled);
     the month is flagged as a rule breach if a liquidity floor is broken.
  3. A positive net cash flow first tops cash sources up to their floor,
  4. then the rest is invested pro-rata by account value.
  5. Accounts compound at (1 + annual%)^(1/12) − 1 per month.

The simulation always runs the full horizon. Failures are data on the
MonthlyResult, so callers can show exactly where a plan breaks.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional

from planner.goals import account_goal
from planner.models import Account, AssetDefinition, CashSource, Goal, to_float

logger = logging.getLogger(__name__)

MONTHS_PER_YEAR = 12
_EPSILON        = 1e-9


@dataclass(frozen=True)
class ForecastAccount:
    id:            str
    name:          str
    current_value: float
    goal:          Goal = Goal.GROWTH


@dataclass(frozen=True)
class ScheduledExpense:
    name:                    str
    amount:                  float
    month:                   int                        # month of year, 1–12
    year:                    Optional[int]        = None  # 1-based simulation year; None = every year
    allowed_goals:           FrozenSet[Goal]      = frozenset()
    allow_liquidity_erosion: bool                 = False

    def is_due(self, month_index: int) -> bool:
        month_of_year = (month_index - 1) % MONTHS_PER_YEAR + 1
        year          = (month_index - 1) // MONTHS_PER_YEAR + 1
        return self.month == month_of_year and (self.year is None or self.year == year)


@dataclass(frozen=True)
class MonthlyResult:
    month:           int
    total_value:     float
    invested_value:  float
    liquidity_value: float
    account_values:  Dict[str, float]
    cashflow:        float
    scheduled_paid:  float         = 0.0
    insolvent:       bool          = False
    rule_breach:     bool          = False
    failure_reason:  Optional[str] = None

    @property
    def year(self) -> int:
        return (self.month - 1) // MONTHS_PER_YEAR + 1


def monthly_rate(annual_percent: float) -> float:
    return (1 + annual_percent / 100) ** (1 / MONTHS_PER_YEAR) - 1


# ── Simulation state ──────────────────────────────────────────────────────────

@dataclass
class _State:
    accounts:  List[ForecastAccount]
    sources:   List[CashSource]
    values:    Dict[str, float]       = field(default_factory=dict)
    liquidity: List[float]            = field(default_factory=list)

    @property
    def invested(self) -> float:
        return sum(self.values.values())

    def draw_liquidity(self, amount: float) -> float:
        """Take up to `amount` from cash sources in order, never below zero."""
        drawn = 0.0
        for i, balance in enumerate(self.liquidity):
            if amount - drawn <= _EPSILON:
                break
            take = min(max(0.0, balance), amount - drawn)
            self.liquidity[i] -= take
            drawn += take
        return drawn

    def draw_pro_rata(self, account_ids: Iterable[str], amount: float) -> float:
        """Take up to `amount` from the given accounts, weighted by value."""
        ids   = [i for i in account_ids if self.values[i] > 0]
        total = sum(self.values[i] for i in ids)
        if total <= 0 or amount <= 0:
            return 0.0
        take = min(amount, total)
        for i in ids:
            self.values[i] -= take * self.values[i] / total
        return take

    def below_floor(self) -> List[CashSource]:
        invested = self.invested
        return [s for s, balance in zip(self.sources, self.liquidity)
                if balance + _EPSILON < s.required_liquidity(invested)]

    def replenish_floors(self, amount: float) -> float:
        """Top cash sources up to their floor in order. Returns what is left."""
        invested = self.invested
        for i, source in enumerate(self.sources):
            if amount <= 0:
                break
            missing = source.required_liquidity(invested) - self.liquidity[i]
            if missing > 0:
                top = min(amount, missing)
                self.liquidity[i] += top
                amount -= top
        return amount

    def invest(self, amount: float) -> None:
        if not self.accounts:
            if self.liquidity:
                self.liquidity[0] += amount
            return
        total = sum(max(0.0, v) for v in self.values.values())
        if total > 0:
            for account_id, value in self.values.items():
                self.values[account_id] = value + amount * max(0.0, value) / total
        else:
            share = amount / len(self.accounts)
            for account_id in self.values:
                self.values[account_id] += share

    def grow(self, rates: Mapping[str, float]) -> None:
        for account_id in self.values:
            self.values[account_id] *= 1 + rates[account_id]


def _pay_scheduled(state: _State, expense: ScheduledExpense,
                   available: float, reasons: List[str]) -> tuple:
    """Fund one expense. Returns (inflow left, insolvent?)."""
    remaining = to_float(expense.amount)

    if available > 0:
        take = min(available, remaining)
        available -= take
        remaining -= take

    if remaining > _EPSILON and expense.allow_liquidity_erosion:
        remaining -= state.draw_liquidity(remaining)

    if remaining <= _EPSILON:
        return available, False

    eligible = [a.id for a in state.accounts if a.goal in expense.allowed_goals]
    eligible_total = sum(max(0.0, state.values[i]) for i in eligible)

    if eligible_total + _EPSILON >= remaining:
        state.draw_pro_rata(eligible, remaining)
        return available, False

    state.draw_pro_rata(eligible, eligible_total)
    shortfall = remaining - eligible_total
    goals = ", ".join(sorted(g.value for g in expense.allowed_goals)) or "none"
    reasons.append(f"{expense.name}: short by €{shortfall:,.2f} "
                   f"(accounts with goals [{goals}] hold €{eligible_total:,.2f})")
    if state.liquidity:
        state.liquidity[0] -= shortfall
    return available, True


# ── Public API ────────────────────────────────────────────────────────────────

def simulate(accounts: Iterable[ForecastAccount],
             cash_sources: Iterable[CashSource],
             monthly_income: float,
             monthly_expenses: float,
             horizon_years: float,
             annual_return_by_account: Optional[Mapping[str, float]] = None,
             scheduled_expenses: Iterable[ScheduledExpense] = (),
             ) -> List[MonthlyResult]:
    accounts  = list(accounts)
    sources   = list(cash_sources)
    scheduled = list(scheduled_expenses)
    returns   = annual_return_by_account or {}
    months    = max(0, int(to_float(horizon_years) * MONTHS_PER_YEAR))
    cashflow  = to_float(monthly_income) - to_float(monthly_expenses)
    rates     = {a.id: monthly_rate(to_float(returns.get(a.id, 0.0))) for a in accounts}

    state = _State(
        accounts=accounts,
        sources=sources,
        values={a.id: to_float(a.current_value) for a in accounts},
        liquidity=[to_float(s.current_liquidity) for s in sources],
    )

    results: List[MonthlyResult] = []
    for month in range(1, months + 1):
        available   = cashflow
        reasons: List[str] = []
        insolvent   = False
        rule_breach = False
        paid        = 0.0

        for expense in scheduled:
            if not expense.is_due(month):
                continue
            available, failed = _pay_scheduled(state, expense, available, reasons)
            insolvent = insolvent or failed
            paid += to_float(expense.amount)

        if available < 0:
            deficit = -available
            deficit -= state.draw_liquidity(deficit)
            deficit -= state.draw_pro_rata(list(state.values), deficit)
            if deficit > _EPSILON and state.below_floor():
                rule_breach = True
                reasons.append(f"Unfunded deficit of €{deficit:,.2f} with cash "
                               f"below its minimum")
        elif available > 0:
            available = state.replenish_floors(available)
            if available > 0:
                state.invest(available)

        state.grow(rates)

        if insolvent or rule_breach:
            logger.info("Month %d: %s", month, "; ".join(reasons))

        invested  = state.invested
        liquidity = sum(state.liquidity)
        results.append(MonthlyResult(
            month=month,
            total_value=invested + liquidity,
            invested_value=invested,
            liquidity_value=liquidity,
            account_values=dict(state.values),
            cashflow=cashflow,
            scheduled_paid=paid,
            insolvent=insolvent,
            rule_breach=rule_breach,
            failure_reason="; ".join(reasons) or None,
        ))
    return results


def forecast_accounts(accounts: Iterable[Account],
                      values: Mapping[str, float],
                      asset_definitions: Iterable[AssetDefinition] = ()) -> List[ForecastAccount]:
    """Bridge from stored accounts + current values to simulation inputs."""
    definitions = list(asset_definitions)
    return [ForecastAccount(id=a.id, name=a.name,
                            current_value=to_float(values.get(a.id, 0.0)),
                            goal=account_goal(a, definitions))
            for a in accounts]


# ── Result helpers ────────────────────────────────────────────────────────────

def first_failure(results: Iterable[MonthlyResult]) -> Optional[MonthlyResult]:
    return next((r for r in results if r.insolvent or r.rule_breach), None)


def yearly_summary(results: List[MonthlyResult]) -> List[MonthlyResult]:
    """Year-end rows, with any failure flag of the year carried onto them."""
    rows = []
    for year_end in range(MONTHS_PER_YEAR, len(results) + 1, MONTHS_PER_YEAR):
        year    = results[year_end - MONTHS_PER_YEAR:year_end]
        failed  = [r for r in year if r.failure_reason]
        last    = year[-1]
        rows.append(MonthlyResult(
            month=last.month,
            total_value=last.total_value,
            invested_value=last.invested_value,
            liquidity_value=last.liquidity_value,
            account_values=last.account_values,
            cashflow=sum(r.cashflow for r in year),
            scheduled_paid=sum(r.scheduled_paid for r in year),
            insolvent=any(r.insolvent for r in year),
            rule_breach=any(r.rule_breach for r in year),
            failure_reason=failed[0].failure_reason if failed else None,
        ))
    return rows
