import pytest

from planner.forecast import (
    ForecastAccount, ScheduledExpense, first_failure, forecast_accounts,
    monthly_rate, simulate, yearly_summary,
)
from planner.models import Account, CashSource, Goal, LiquidityRule, LiquidityRuleType


def _source(liquidity=0.0, floor=None, percent=None):
    rule = None
    if floor is not None:
        rule = LiquidityRule(LiquidityRuleType.FIXED, floor)
    elif percent is not None:
        rule = LiquidityRule(LiquidityRuleType.PERCENT, percent)
    return CashSource(id="cs", name="Broker", current_liquidity=liquidity, min_liquidity_rule=rule)


@pytest.fixture
def two_goal_accounts():
    return [
        ForecastAccount(id="growth", name="Equity", current_value=10_000, goal=Goal.GROWTH),
        ForecastAccount(id="safe", name="Bonds", current_value=2_000, goal=Goal.PROTECTION),
    ]


def test_monthly_rate_compounds_to_annual():
    assert (1 + monthly_rate(12)) ** 12 == pytest.approx(1.12)
    assert monthly_rate(0) == 0


def test_runs_the_full_horizon():
    results = simulate([], [], 0, 0, 2)
    assert [r.month for r in results] == list(range(1, 25))
    assert results[-1].year == 2
    assert simulate([], [], 0, 0, 0) == []


def test_surplus_is_conserved_with_zero_returns():
    accounts = [ForecastAccount("a", "A", 1000), ForecastAccount("b", "B", 3000)]
    results  = simulate(accounts, [_source(500)], 300, 100, 1)
    last = results[-1]
    assert last.total_value == pytest.approx(4500 + 12 * 200)
    assert last.account_values["a"] == pytest.approx(1000 + 12 * 50)
    assert last.liquidity_value == pytest.approx(500)
    assert all(not r.insolvent and not r.rule_breach for r in results)


def test_surplus_tops_up_floor_before_investing():
    results = simulate([ForecastAccount("a", "A", 5000)], [_source(0, floor=1000)], 400, 0, 1)
    assert results[0].liquidity_value == pytest.approx(400)
    assert results[0].invested_value == pytest.approx(5000)
    assert results[2].liquidity_value == pytest.approx(1000)
    assert results[2].invested_value == pytest.approx(5200)


def test_surplus_splits_evenly_when_accounts_are_empty():
    accounts = [ForecastAccount("a", "A", 0), ForecastAccount("b", "B", 0)]
    [month] = simulate(accounts, [], 100, 0, 1)[:1]
    assert month.account_values == pytest.approx({"a": 50, "b": 50})


def test_surplus_without_accounts_lands_in_first_cash_source():
    results = simulate([], [_source(0)], 100, 0, 1)
    assert results[-1].liquidity_value == pytest.approx(1200)


def test_growth_applies_per_account_rate():
    results = simulate([ForecastAccount("a", "A", 1000), ForecastAccount("b", "B", 1000)],
                       [], 0, 0, 1, {"a": 12})
    assert results[-1].account_values["a"] == pytest.approx(1120)
    assert results[-1].account_values["b"] == pytest.approx(1000)


def test_deficit_drains_liquidity_then_accounts():
    results = simulate([ForecastAccount("a", "A", 1000)], [_source(100)], 0, 150, 1)
    assert results[0].liquidity_value == pytest.approx(0)
    assert results[0].invested_value == pytest.approx(950)
    assert not results[0].rule_breach


def test_unfunded_deficit_under_floor_is_a_rule_breach():
    results = simulate([], [_source(50, floor=100)], 0, 100, 1)
    first = results[0]
    assert first.rule_breach
    assert not first.insolvent
    assert first.liquidity_value == pytest.approx(0)
    assert first_failure(results) is first


def test_scheduled_expense_draws_only_on_allowed_goals(two_goal_accounts):
    expense = ScheduledExpense(name="Car", amount=1500, month=3, year=1,
                               allowed_goals=frozenset({Goal.PROTECTION}))
    results = simulate(two_goal_accounts, [_source(1000)], 0, 0, 1,
                       scheduled_expenses=[expense])
    march = results[2]
    assert march.scheduled_paid == pytest.approx(1500)
    assert march.account_values["safe"] == pytest.approx(500)
    assert march.account_values["growth"] == pytest.approx(10_000)
    assert march.liquidity_value == pytest.approx(1000)
    assert results[1].scheduled_paid == 0


def test_scheduled_expense_may_erode_liquidity_when_allowed(two_goal_accounts):
    expense = ScheduledExpense(name="Car", amount=1500, month=1,
                               allowed_goals=frozenset({Goal.PROTECTION}),
                               allow_liquidity_erosion=True)
    [first] = simulate(two_goal_accounts, [_source(1000)], 0, 0, 1,
                       scheduled_expenses=[expense])[:1]
    assert first.liquidity_value == pytest.approx(0)
    assert first.account_values["safe"] == pytest.approx(1500)


def test_scheduled_expense_uses_monthly_inflow_first(two_goal_accounts):
    expense = ScheduledExpense(name="Roof", amount=1500, month=1,
                               allowed_goals=frozenset({Goal.PROTECTION}))
    [first] = simulate(two_goal_accounts, [], 1000, 0, 1, scheduled_expenses=[expense])[:1]
    assert first.account_values["safe"] == pytest.approx(1500)
    assert first.account_values["growth"] == pytest.approx(10_000)


def test_unfundable_expense_flags_insolvency_and_goes_negative(two_goal_accounts):
    expense = ScheduledExpense(name="House", amount=5000, month=2, year=1,
                               allowed_goals=frozenset({Goal.PROTECTION}))
    results = simulate(two_goal_accounts, [_source(1000)], 0, 0, 2,
                       scheduled_expenses=[expense])
    feb = results[1]
    assert feb.insolvent
    assert "House" in feb.failure_reason
    assert feb.account_values["safe"] == pytest.approx(0)
    assert feb.account_values["growth"] == pytest.approx(10_000)
    assert feb.liquidity_value == pytest.approx(-2000)
    assert len(results) == 24
    assert first_failure(results) is feb


def test_expense_with_no_allowed_goals_is_insolvent(two_goal_accounts):
    expense = ScheduledExpense(name="Trip", amount=100, month=1)
    [first] = simulate(two_goal_accounts, [_source(0)], 0, 0, 1,
                       scheduled_expenses=[expense])[:1]
    assert first.insolvent


def test_recurring_expense_is_due_every_year():
    every  = ScheduledExpense(name="Tax", amount=10, month=6)
    second = ScheduledExpense(name="Wedding", amount=10, month=6, year=2)
    assert [m for m in range(1, 37) if every.is_due(m)] == [6, 18, 30]
    assert [m for m in range(1, 37) if second.is_due(m)] == [18]


def test_yearly_summary_carries_flags(two_goal_accounts):
    expense = ScheduledExpense(name="House", amount=5000, month=2, year=1,
                               allowed_goals=frozenset({Goal.PROTECTION}))
    results = simulate(two_goal_accounts, [_source(1000)], 100, 0, 2,
                       scheduled_expenses=[expense])
    rows = yearly_summary(results)
    assert [r.year for r in rows] == [1, 2]
    assert rows[0].insolvent
    assert not rows[1].insolvent
    assert rows[0].cashflow == pytest.approx(1200)
    assert rows[0].scheduled_paid == pytest.approx(5000)


def test_forecast_accounts_use_dominant_goal():
    accounts = [Account(id="a", name="A", target_allocations={"X": 100})]
    [fa] = forecast_accounts(accounts, {"a": 123.0})
    assert fa.current_value == 123.0
    assert fa.goal is Goal.GROWTH


def test_simulation_is_deterministic(two_goal_accounts):
    args = (two_goal_accounts, [_source(500, percent=5)], 2000, 2500, 3, {"growth": 7})
    assert simulate(*args) == simulate(*args)


def test_each_month_compounds_the_previous_month_plus_cashflow():
    accounts = [ForecastAccount("a", "A", 1000), ForecastAccount("b", "B", 3000)]
    returns  = {"a": 6, "b": 2}
    results  = simulate(accounts, [], 500, 300, 2, returns)

    for prev, cur in zip(results, results[1:]):
        total    = sum(prev.account_values.values())
        expected = sum((value + cur.cashflow * value / total) * (1 + monthly_rate(returns[k]))
                       for k, value in prev.account_values.items())
        assert cur.total_value == pytest.approx(expected)
    assert results[-1].total_value > 4000 + 24 * 200
