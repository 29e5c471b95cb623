"""
planner/goals.py  —  Goal classification and aggregate allocation reports

Every asset serves one purpose bucket:
  - Growth     : equities, commodities, crypto
  - Protection : short-term bonds, cash / money-market
  - Security   : medium and long-term bonds

The forecast uses an account's dominant goal to decide which accounts a
scheduled expense may draw on.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Union

from planner.models import (
    Account, AssetClass, AssetDefinition, Goal, Position, normalise_id, to_float,
)

_BOND_GOALS = {
    "short":  Goal.PROTECTION,
    "medium": Goal.SECURITY,
    "long":   Goal.SECURITY,
}

# Order used to break ties between goals with the same weight
PLANNING_GOALS = (Goal.GROWTH, Goal.PROTECTION, Goal.SECURITY)


def classify(asset_class: Union[AssetClass, str, None],
             sub_class: Optional[str] = None) -> Goal:
    if not isinstance(asset_class, AssetClass):
        text = str(asset_class or "").strip().lower()
        matches = [c for c in AssetClass if c.value.lower() == text]
        if not matches:
            return Goal.GROWTH
        asset_class = matches[0]

    if asset_class is AssetClass.STOCK:
        return Goal.GROWTH
    if asset_class is AssetClass.BOND:
        return _BOND_GOALS.get(str(sub_class or "").strip().lower(), Goal.SECURITY)
    if asset_class in (AssetClass.COMMODITY, AssetClass.CRYPTO):
        return Goal.GROWTH
    if asset_class is AssetClass.CASH:
        return Goal.PROTECTION
    return Goal.GROWTH


def classify_position(position: Position) -> Goal:
    return classify(position.asset_class, position.sub_class)


def account_goal(account: Account,
                 asset_definitions: Iterable[AssetDefinition] = ()) -> Goal:
    """Goal that carries the largest share of the account's targets."""
    definitions = {normalise_id(d.asset_id): d for d in asset_definitions}
    weights = {goal: 0.0 for goal in PLANNING_GOALS}
    for asset_id, percent in account.target_allocations.items():
        definition = definitions.get(normalise_id(asset_id))
        if definition is None:
            goal = Goal.GROWTH
        else:
            goal = classify(definition.asset_class, definition.sub_class)
        weights[goal] += to_float(percent)

    best = max(PLANNING_GOALS, key=lambda g: weights[g])
    return best if weights[best] > 0 else Goal.GROWTH


# ── Aggregate reports ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AllocationRow:
    name:            str
    current_value:   float
    current_percent: float
    target_percent:  float
    diff_percent:    float    # current − target
    diff_value:      float    # + buy / − sell to reach target

    @property
    def action(self) -> str:
        return "Buy" if self.diff_value > 0 else "Sell"


def _rows(values: Dict[str, float], targets: Dict[str, float],
          total: float) -> List[AllocationRow]:
    rows = []
    for name, value in values.items():
        target  = targets.get(name, 0.0)
        current = (value / total * 100) if total else 0.0
        rows.append(AllocationRow(
            name=name,
            current_value=value,
            current_percent=current,
            target_percent=target,
            diff_percent=current - target,
            diff_value=total * target / 100 - value,
        ))
    return rows


def _key(value) -> str:
    return value.value if isinstance(value, (AssetClass, Goal)) else str(value)


def class_allocation_report(positions: Iterable[Position],
                            class_targets: Optional[Mapping] = None) -> List[AllocationRow]:
    """Per asset class, measured against invested capital only."""
    values = {c.value: 0.0 for c in AssetClass}
    for p in positions:
        values[p.asset_class.value] += p.current_value
    targets = {_key(k): to_float(v) for k, v in (class_targets or {}).items()}
    return _rows(values, targets, sum(values.values()))


def goal_allocation_report(positions: Iterable[Position],
                           goal_targets: Optional[Mapping] = None,
                           liquidity: float = 0.0) -> List[AllocationRow]:
    """Per goal, measured against invested capital plus idle cash."""
    values = {g.value: 0.0 for g in Goal}
    for p in positions:
        values[classify_position(p).value] += p.current_value
    values[Goal.LIQUIDITY.value] += to_float(liquidity)
    targets = {_key(k): to_float(v) for k, v in (goal_targets or {}).items()}
    return _rows(values, targets, sum(values.values()))
