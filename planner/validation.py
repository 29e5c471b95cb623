"""
planner/validation.py  —  Input validation rules

All validators return a list of error strings (empty = valid).
They guard what a user types in; the solvers themselves never reject
data and coerce anything malformed that reaches them from storage.
"""

import re
from datetime import date
from typing import List, Mapping, Optional

from planner.models import Direction, LiquidityRuleType, to_float

# ISINs (IE00B4L5Y983), exchange tickers (SIE.DE) and crypto pairs (BTC-EUR)
_BAD_ASSET_CHARS = re.compile(r'[^A-Z0-9.\-]')
_MAX_ASSET_LEN   = 12

# Sanity bounds — not hard limits, just "almost certainly a typo" guards
_MAX_PRICE       = 1_000_000.0
_MAX_QUANTITY    = 1_000_000_000


def validate_asset_id(asset_id: str) -> List[str]:
    errors = []
    a = asset_id.strip().upper()
    if not a:
        errors.append("Asset identifier cannot be empty.")
        return errors
    if len(a) > _MAX_ASSET_LEN:
        errors.append(f"Identifier '{a}' is too long (max {_MAX_ASSET_LEN} characters). "
                      f"Use a ticker or ISIN — e.g. 'SWDA.MI', 'IE00B4L5Y983'.")
    if _BAD_ASSET_CHARS.search(a):
        errors.append(f"Identifier '{a}' contains invalid characters. "
                      f"Only letters, numbers, dots and hyphens are allowed.")
    if a[0] in ".-" or a[-1] in ".-":
        errors.append(f"Identifier '{a}' cannot start or end with '.' or '-'.")
    return errors


def validate_transaction(
        direction: Direction,
        quantity: float,
        price: float,
        txn_date: date,
        held_quantity: Optional[float] = None,
) -> List[str]:
    errors = []

    if txn_date > date.today():
        errors.append(f"Date {txn_date} is in the future. "
                      f"Transactions can only be recorded for today or earlier.")

    if price < 0:
        errors.append("Price cannot be negative.")
    elif price > _MAX_PRICE:
        errors.append(f"Price €{price:,.2f} seems unusually high. Please double-check.")

    if quantity <= 0:
        errors.append("Quantity must be greater than zero.")
    elif quantity > _MAX_QUANTITY:
        errors.append(f"Quantity {quantity:,.0f} seems extremely large. Please double-check.")

    if direction is Direction.SELL:
        held = held_quantity or 0.0
        if held <= 0:
            errors.append("You have no units of this asset to sell.")
        elif quantity > held + 1e-9:
            errors.append(f"Cannot sell {quantity:,.4f} units — you only hold {held:,.4f}.")

    return errors


def validate_targets(targets: Mapping[str, float]) -> List[str]:
    """Each target must be 0–100. The total is reported, never forced to 100."""
    errors = []
    for asset_id, percent in targets.items():
        value = to_float(percent)
        if value < 0:
            errors.append(f"{asset_id}: target cannot be negative.")
        elif value > 100:
            errors.append(f"{asset_id}: target {value:.2f}% exceeds 100%.")
    return errors


def target_total_warning(targets: Mapping[str, float]) -> Optional[str]:
    total = sum(to_float(v) for v in targets.values())
    if targets and abs(total - 100) > 0.01:
        return f"Targets add up to {total:.2f}%, not 100%."
    return None


def validate_liquidity_rule(rule_type: LiquidityRuleType, value: float) -> List[str]:
    errors = []
    if value < 0:
        errors.append("Minimum liquidity cannot be negative.")
    elif rule_type is LiquidityRuleType.PERCENT and value > 100:
        errors.append("A percentage minimum cannot exceed 100%.")
    return errors


def validate_scheduled_expense(amount: float, month: int,
                               year: Optional[int] = None,
                               horizon_years: Optional[int] = None) -> List[str]:
    errors = []
    if amount <= 0:
        errors.append("Expense amount must be greater than zero.")
    if not 1 <= month <= 12:
        errors.append(f"Month must be between 1 and 12, got {month}.")
    if year is not None:
        if year < 1:
            errors.append("Year must be 1 or later (1 = first simulated year).")
        elif horizon_years is not None and year > horizon_years:
            errors.append(f"Year {year} is beyond the {horizon_years}-year horizon.")
    return errors


def validate_name(name: str) -> List[str]:
    errors = []
    n = name.strip()
    if not n:
        errors.append("Please enter a name.")
    elif len(n) > 100:
        errors.append("Name is too long (max 100 characters).")
    return errors
