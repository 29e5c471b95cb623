from typing import Optional

from planner.models import AssetClass, Direction, Position, Transaction


def buy(asset_id: str, quantity, unit_price, date: str = "2024-01-01",
        account_id: Optional[str] = None, cash_source_id: Optional[str] = None,
        txn_id: str = "") -> Transaction:
    return Transaction(id=txn_id or f"b-{asset_id}-{date}", asset_id=asset_id,
                       quantity=quantity, unit_price=unit_price, date=date,
                       direction=Direction.BUY, account_id=account_id,
                       cash_source_id=cash_source_id)


def sell(asset_id: str, quantity, unit_price, date: str = "2024-06-01",
         account_id: Optional[str] = None, cash_source_id: Optional[str] = None,
         txn_id: str = "") -> Transaction:
    return Transaction(id=txn_id or f"s-{asset_id}-{date}", asset_id=asset_id,
                       quantity=quantity, unit_price=unit_price, date=date,
                       direction=Direction.SELL, account_id=account_id,
                       cash_source_id=cash_source_id)


def position(asset_id: str, quantity: float, price: float, average_cost: Optional[float] = None,
             asset_class: AssetClass = AssetClass.STOCK, sub_class: str = "International") -> Position:
    avg   = price if average_cost is None else average_cost
    value = quantity * price
    return Position(asset_id=asset_id, label=asset_id, asset_class=asset_class,
                    sub_class=sub_class, quantity=quantity, average_cost=avg,
                    current_price=price, current_value=value,
                    unrealized_gain=value - quantity * avg)
