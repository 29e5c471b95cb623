import pytest

from planner.db import SnapshotStore
from planner.models import (
    Account, AssetClass, AssetDefinition, CashSource, LiquidityRule, LiquidityRuleType,
    PriceQuote, Snapshot,
)
from tests.helpers import buy, sell


@pytest.fixture
def store(tmp_path):
    s = SnapshotStore(path=str(tmp_path / "planner.db"),
                      backup_path=str(tmp_path / "backup.json"))
    yield s
    s.close()


@pytest.fixture
def sample_snapshot() -> Snapshot:
    return Snapshot(
        transactions=[
            buy("SWDA.MI", 10, 80, account_id="acc-1", cash_source_id="cs-1"),
            buy("SWDA.MI", 10, 100, date="2024-02-01", account_id="acc-1", cash_source_id="cs-1"),
            buy("BTP", 20, 50, account_id="acc-1", cash_source_id="cs-1"),
            sell("SWDA.MI", 5, 110, account_id="acc-1", cash_source_id="cs-1"),
            buy("GOLD", 2, 200, account_id="acc-2"),
        ],
        asset_definitions=[
            AssetDefinition(asset_id="SWDA.MI", label="MSCI World",
                            asset_class=AssetClass.STOCK, sub_class="International"),
            AssetDefinition(asset_id="BTP", label="BTP 2030",
                            asset_class=AssetClass.BOND, sub_class="Medium"),
            AssetDefinition(asset_id="GOLD", label="Physical gold",
                            asset_class=AssetClass.COMMODITY, sub_class="Gold"),
        ],
        accounts=[
            Account(id="acc-1", name="Core", target_allocations={"SWDA.MI": 70, "BTP": 30},
                    cash_reserve=500),
            Account(id="acc-2", name="Satellite", target_allocations={"GOLD": 100}),
        ],
        cash_sources=[
            CashSource(id="cs-1", name="Broker", current_liquidity=1000,
                       min_liquidity_rule=LiquidityRule(LiquidityRuleType.PERCENT, 10)),
        ],
        prices={
            "SWDA.MI": PriceQuote(asset_id="SWDA.MI", price=120, as_of="2024-07-01"),
            "BTP":     PriceQuote(asset_id="BTP", price=52, as_of="2024-07-01"),
        },
    )
