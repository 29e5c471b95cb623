from datetime import date, timedelta

from planner.models import Direction, LiquidityRuleType
from planner.validation import (
    target_total_warning, validate_asset_id, validate_liquidity_rule, validate_name,
    validate_scheduled_expense, validate_targets, validate_transaction,
)


def test_asset_id_rules():
    assert validate_asset_id("SWDA.MI") == []
    assert validate_asset_id("ie00b4l5y983") == []
    assert validate_asset_id("BTC-EUR") == []
    assert validate_asset_id("  ") == ["Asset identifier cannot be empty."]
    assert validate_asset_id("A B")
    assert validate_asset_id(".SWDA")
    assert validate_asset_id("X" * 13)


def test_transaction_rules():
    today = date.today()
    assert validate_transaction(Direction.BUY, 10, 100, today) == []
    assert validate_transaction(Direction.BUY, 0, 100, today)
    assert validate_transaction(Direction.BUY, 1, -1, today)
    assert validate_transaction(Direction.BUY, 1, 1, today + timedelta(days=1))


def test_cannot_sell_more_than_held():
    today = date.today()
    assert validate_transaction(Direction.SELL, 5, 10, today, held_quantity=5) == []
    errors = validate_transaction(Direction.SELL, 6, 10, today, held_quantity=5)
    assert any("only hold" in e for e in errors)
    assert validate_transaction(Direction.SELL, 1, 10, today, held_quantity=None)


def test_targets_are_reported_not_normalised():
    assert validate_targets({"A": 60, "B": 40}) == []
    assert validate_targets({"A": -1})
    assert validate_targets({"A": 101})
    assert target_total_warning({"A": 60, "B": 40}) is None
    assert "90.00%" in target_total_warning({"A": 50, "B": 40})
    assert target_total_warning({}) is None


def test_liquidity_rule_bounds():
    assert validate_liquidity_rule(LiquidityRuleType.FIXED, 5000) == []
    assert validate_liquidity_rule(LiquidityRuleType.PERCENT, 150)
    assert validate_liquidity_rule(LiquidityRuleType.FIXED, -1)


def test_scheduled_expense_rules():
    assert validate_scheduled_expense(1000, 6) == []
    assert validate_scheduled_expense(1000, 6, year=3, horizon_years=5) == []
    assert validate_scheduled_expense(0, 6)
    assert validate_scheduled_expense(100, 13)
    assert validate_scheduled_expense(100, 1, year=0)
    assert validate_scheduled_expense(100, 1, year=6, horizon_years=5)


def test_name_rules():
    assert validate_name("Fineco") == []
    assert validate_name(" ")
    assert validate_name("x" * 101)
