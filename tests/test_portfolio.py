import pytest

from planner.models import AssetClass, PriceQuote, Transaction
from planner.portfolio import (
    account_values, aggregate, build_holdings, cash_source_summaries, liquidity_overview,
    summarise, transactions_for_account,
)
from tests.helpers import buy, sell


def test_weighted_average_cost_over_buys():
    holdings = build_holdings([buy("A", 10, 100), buy("A", 30, 200, date="2024-02-01")])
    h = holdings["A"]
    assert h.quantity == 40
    assert h.average_cost == pytest.approx(175.0)


def test_sell_reduces_quantity_and_keeps_average_cost():
    holdings = build_holdings([buy("A", 10, 100), sell("A", 4, 150)])
    assert holdings["A"].quantity == 6
    assert holdings["A"].average_cost == 100


def test_selling_everything_keeps_last_average_cost():
    holdings = build_holdings([buy("A", 10, 100), sell("A", 10, 150)])
    assert holdings["A"].quantity == 0
    assert holdings["A"].average_cost == 100


def test_oversold_ledger_goes_negative():
    holdings = build_holdings([buy("A", 1, 100), sell("A", 3, 100)])
    assert holdings["A"].quantity == -2


def test_buy_back_to_zero_resets_average_cost():
    holdings = build_holdings([sell("A", 5, 100), buy("A", 5, 120)])
    assert holdings["A"].quantity == 0
    assert holdings["A"].average_cost == 0


def test_asset_ids_group_case_insensitively():
    positions, _ = aggregate([buy("swda.mi", 1, 10), buy("SWDA.MI", 1, 20, date="2024-02-01")])
    assert len(positions) == 1
    assert positions[0].asset_id == "SWDA.MI"
    assert positions[0].quantity == 2


def test_malformed_numbers_coerce_to_zero():
    garbled = Transaction(id="x", asset_id="A", quantity="lots", unit_price=None,
                          date="2024-01-01")
    positions, summary = aggregate([buy("A", 2, 10), garbled])
    assert positions[0].quantity == 2
    assert positions[0].average_cost == 10
    # zero last price → valued at average cost
    assert summary.total_value == pytest.approx(20)


def test_price_fallback_chain():
    quote = {"A": PriceQuote(asset_id="A", price=15, as_of="2024-07-01")}
    positions, _ = aggregate([buy("A", 2, 10), buy("B", 2, 10)], prices=quote)
    by_id = {p.asset_id: p for p in positions}
    assert by_id["A"].current_price == 15
    assert by_id["A"].as_of == "2024-07-01"
    assert by_id["B"].current_price == 10
    assert by_id["B"].as_of is None


def test_price_falls_back_to_average_cost_when_last_price_is_zero():
    positions, _ = aggregate([buy("A", 2, 10), buy("A", 2, 0, date="2024-02-01")])
    assert positions[0].current_price == pytest.approx(5.0)


def test_positions_keep_first_seen_order():
    positions, _ = aggregate([buy("B", 1, 1), buy("A", 1, 1), buy("B", 1, 1)])
    assert [p.asset_id for p in positions] == ["B", "A"]


def test_undefined_asset_defaults_to_stock():
    positions, _ = aggregate([buy("XYZ", 1, 1)])
    assert positions[0].asset_class is AssetClass.STOCK
    assert positions[0].sub_class == "International"


def test_sample_snapshot_summary(sample_snapshot):
    positions, summary = aggregate(sample_snapshot.transactions,
                                   sample_snapshot.asset_definitions,
                                   sample_snapshot.prices)
    by_id = {p.asset_id: p for p in positions}

    assert by_id["SWDA.MI"].quantity == 15
    assert by_id["SWDA.MI"].average_cost == pytest.approx(90)
    assert by_id["SWDA.MI"].current_value == pytest.approx(1800)
    assert by_id["BTP"].asset_class is AssetClass.BOND
    assert by_id["GOLD"].current_value == pytest.approx(400)

    assert summary.total_value == pytest.approx(3240)
    assert summary.total_cost == pytest.approx(2750)
    assert summary.total_gain == pytest.approx(490)
    assert sum(summary.allocation.values()) == pytest.approx(100)
    assert summary.allocation[AssetClass.CRYPTO] == 0


def test_cost_basis_matches_quantity_times_average(sample_snapshot):
    positions, summary = aggregate(sample_snapshot.transactions,
                                   sample_snapshot.asset_definitions,
                                   sample_snapshot.prices)
    for p in positions:
        assert p.current_value - p.unrealized_gain == pytest.approx(p.quantity * p.average_cost)
    assert summary.total_cost == pytest.approx(sum(p.cost_basis for p in positions))


def test_aggregate_is_idempotent(sample_snapshot):
    first = aggregate(sample_snapshot.transactions, sample_snapshot.asset_definitions,
                      sample_snapshot.prices)
    second = aggregate(sample_snapshot.transactions, sample_snapshot.asset_definitions,
                       sample_snapshot.prices)
    assert first == second


def test_empty_ledger_summary_is_all_zero():
    positions, summary = aggregate([])
    assert positions == []
    assert summary.total_value == 0
    assert summary.total_gain_percent == 0
    assert all(v == 0 for v in summary.allocation.values())
    assert summarise([]) == summary


def test_account_values(sample_snapshot):
    values = account_values(sample_snapshot.transactions, sample_snapshot.accounts,
                            sample_snapshot.asset_definitions, sample_snapshot.prices)
    assert values == pytest.approx({"acc-1": 2840, "acc-2": 400})
    assert len(transactions_for_account(sample_snapshot.transactions, "acc-2")) == 1


def test_cash_source_summary_uses_invested_value_for_percent_floor(sample_snapshot):
    [row] = cash_source_summaries(sample_snapshot.transactions, sample_snapshot.cash_sources,
                                  sample_snapshot.asset_definitions, sample_snapshot.prices)
    assert row.invested_value == pytest.approx(2840)
    assert row.total_capital == pytest.approx(3840)
    assert row.required_liquidity == pytest.approx(284)
    assert row.liquidity_percent == pytest.approx(1000 / 3840 * 100)
    assert not row.below_floor


def test_liquidity_overview(sample_snapshot):
    positions, _ = aggregate(sample_snapshot.transactions, sample_snapshot.asset_definitions,
                             sample_snapshot.prices)
    overview = liquidity_overview(positions, sample_snapshot.cash_sources)
    assert overview.total_capital == pytest.approx(4240)
    assert overview.liquidity_percent == pytest.approx(1000 / 4240 * 100)
    assert liquidity_overview([], []).liquidity_percent == 0
