import pytest

from planner import config
from planner.models import AssetClass
from planner.tax import sale_tax, tax_rate
from planner.withdrawal import plan_withdrawal
from tests.helpers import position


def test_bond_sold_at_cost_pays_no_tax():
    bond = position("BTP", 50, 100, asset_class=AssetClass.BOND, sub_class="Medium")
    plan = plan_withdrawal([bond], {"BTP": 100}, 1000)

    assert plan.tax_total == 0
    assert plan.gross_total == pytest.approx(1000)
    assert plan.net_total == pytest.approx(1000)
    [action] = plan.actions
    assert action.shares_sold == 10
    assert action.post_quantity == 40
    assert not plan.fully_liquidated


def test_assets_without_target_are_sold_first():
    a = position("A", 10, 100)
    b = position("B", 5, 10)
    plan = plan_withdrawal([a, b], {"A": 100}, 30)
    assert [(x.asset_id, x.shares_sold) for x in plan.actions] == [("B", 3)]


def test_most_overweight_asset_sells_and_ties_go_to_first():
    a = position("A", 10, 100)
    b = position("B", 5, 100)
    plan = plan_withdrawal([a, b], {"A": 50, "B": 50}, 600)
    assert [(x.asset_id, x.shares_sold) for x in plan.actions] == [("A", 6)]


def test_tax_is_part_of_the_stopping_rule():
    stock = position("SWDA", 100, 100, average_cost=50)
    plan = plan_withdrawal([stock], {"SWDA": 100}, 100)
    [action] = plan.actions
    assert action.shares_sold == 2
    assert action.gain == pytest.approx(100)
    assert action.tax == pytest.approx(26)
    assert plan.net_total == pytest.approx(174)
    assert plan.net_total >= 100


def test_loss_produces_no_tax_and_no_rebate():
    loser = position("L", 10, 100, average_cost=150)
    sale = sale_tax(loser, 3)
    assert sale.gain == 0
    assert sale.tax == 0
    assert sale.net == pytest.approx(300)


def test_tax_rates_by_class():
    assert tax_rate(AssetClass.STOCK) == 0.26
    assert tax_rate(AssetClass.CRYPTO) == 0.26
    assert tax_rate(AssetClass.BOND) == 0.125
    bond = position("B", 10, 100, average_cost=60, asset_class=AssetClass.BOND)
    assert sale_tax(bond, 1).tax == pytest.approx(5)


def test_near_total_request_liquidates_everything():
    stock = position("A", 10, 100, average_cost=80)
    plan = plan_withdrawal([stock, position("EMPTY", 0, 10)], {"A": 100}, 995)

    assert plan.fully_liquidated
    [action] = plan.actions
    assert action.shares_sold == 10
    assert action.post_value == 0
    assert plan.tax_total == pytest.approx(52)
    assert plan.net_total == pytest.approx(948)
    assert plan.shortfall(995) == pytest.approx(47)


def test_fractional_leftovers_can_leave_a_shortfall():
    plan = plan_withdrawal([position("A", 0.5, 100), position("B", 10, 100)],
                           {"A": 50, "B": 50}, 1030)
    assert not plan.fully_liquidated
    assert plan.net_total == pytest.approx(1000)
    assert plan.shortfall(1030) == pytest.approx(30)
    assert all(a.asset_id == "B" for a in plan.actions)


def test_nothing_needed_means_empty_plan():
    plan = plan_withdrawal([position("A", 10, 100)], {"A": 100}, 0)
    assert plan.actions == []
    assert plan.net_total == 0
    assert plan_withdrawal([position("A", 10, 100)], {"A": 100}, -5).actions == []


def test_post_allocation_sums_to_hundred():
    positions = [position("A", 10, 100), position("B", 10, 50), position("C", 4, 25)]
    plan = plan_withdrawal(positions, {"A": 50, "B": 30, "C": 20}, 400)
    assert plan.net_total >= 400
    touched = {a.asset_id for a in plan.actions}
    assert touched
    assert all(a.tax >= 0 for a in plan.actions)
    assert sum(a.post_allocation_percent for a in plan.actions) <= 100 + 1e-9


def test_net_proceeds_grow_with_the_request():
    positions = [position("A", 10, 100, average_cost=60),
                 position("B", 20, 50, average_cost=55, asset_class=AssetClass.BOND)]
    targets   = {"A": 60, "B": 40}

    nets = [plan_withdrawal(positions, targets, needed).net_total
            for needed in range(0, 2100, 50)]
    assert nets == sorted(nets)
    assert nets[-1] > 0


def test_iteration_cap_stops_the_loop(monkeypatch):
    monkeypatch.setattr(config, "WITHDRAWAL_ITERATION_SLACK", -5)
    plan = plan_withdrawal([position("A", 10, 100)], {"A": 100}, 800)

    [action] = plan.actions
    assert action.shares_sold == 5
    assert plan.shortfall(800) == pytest.approx(300)
