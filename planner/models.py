"""
planner/models.py  —  Pure dataclasses and enums, no dependencies on other planner modules.

Transactions are the only source of truth for holdings. Positions and
summaries are derived from them on demand and never stored.

The *_from_dict helpers are deliberately lenient: a ledger row with a
garbled number coerces to 0 instead of refusing to load.
"""

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Type


# ── Tagged variants ───────────────────────────────────────────────────────────

class Direction(Enum):
    BUY  = "Buy"
    SELL = "Sell"

    @classmethod
    def parse(cls, value: Any) -> "Direction":
        """Case-insensitive; anything unrecognised (or missing) is a Buy."""
        if isinstance(value, cls):
            return value
        if str(value or "").strip().lower() == "sell":
            return cls.SELL
        return cls.BUY


class AssetClass(Enum):
    STOCK     = "Stock"
    BOND      = "Bond"
    COMMODITY = "Commodity"
    CRYPTO    = "Crypto"
    CASH      = "Cash"

    @classmethod
    def parse(cls, value: Any) -> "AssetClass":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        return cls.STOCK


class LiquidityRuleType(Enum):
    PERCENT = "percent"
    FIXED   = "fixed"


class Goal(Enum):
    GROWTH     = "Growth"
    PROTECTION = "Protection"
    SECURITY   = "Security"
    LIQUIDITY  = "Liquidity"   # reporting bucket for cash-source balances only


# ── Coercion helpers ──────────────────────────────────────────────────────────

def to_float(value: Any) -> float:
    """Best-effort numeric conversion. Garbage, NaN and ±inf all become 0."""
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def normalise_id(asset_id: Any) -> str:
    return str(asset_id or "").strip().upper()


def normalise_targets(targets: Optional[Mapping[str, Any]]) -> Dict[str, float]:
    """Upper-case the keys and coerce the percentages. Duplicates are summed."""
    result: Dict[str, float] = {}
    for asset_id, percent in (targets or {}).items():
        key = normalise_id(asset_id)
        result[key] = result.get(key, 0.0) + to_float(percent)
    return result


# ── Ledger ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Transaction:
    id:             str
    asset_id:       str
    quantity:       float
    unit_price:     float
    date:           str                  # "YYYY-MM-DD"
    direction:      Direction     = Direction.BUY
    account_id:     Optional[str] = None
    cash_source_id: Optional[str] = None

    @property
    def total_cost(self) -> float:
        return self.quantity * self.unit_price

    @property
    def signed_quantity(self) -> float:
        return self.quantity if self.direction is Direction.BUY else -self.quantity


# ── Reference data ────────────────────────────────────────────────────────────

@dataclass
class AssetDefinition:
    asset_id:     str
    label:        str        = ""
    asset_class:  AssetClass = AssetClass.STOCK
    sub_class:    str        = "International"
    price_source: str        = "ETF"


@dataclass
class Account:
    id:                 str
    name:               str
    target_allocations: Dict[str, float] = field(default_factory=dict)
    cash_reserve:       float            = 0.0
    description:        str              = ""

    @property
    def target_total(self) -> float:
        return sum(self.target_allocations.values())


@dataclass
class LiquidityRule:
    type:  LiquidityRuleType
    value: float

    def floor(self, invested_value: float = 0.0) -> float:
        """
        Minimum cash this rule asks for.
        A percent rule is measured against the invested capital it protects.
        """
        if self.type is LiquidityRuleType.FIXED:
            return max(0.0, self.value)
        if self.type is LiquidityRuleType.PERCENT:
            return max(0.0, invested_value * self.value / 100)
        raise ValueError(f"Unknown liquidity rule type: {self.type!r}")


@dataclass
class CashSource:
    id:                 str
    name:               str
    current_liquidity:  float                   = 0.0
    min_liquidity_rule: Optional[LiquidityRule] = None
    description:        str                     = ""

    def required_liquidity(self, invested_value: float = 0.0) -> float:
        if self.min_liquidity_rule is None:
            return 0.0
        return self.min_liquidity_rule.floor(invested_value)


@dataclass(frozen=True)
class PriceQuote:
    asset_id: str
    price:    float
    as_of:    str
    currency: str = "EUR"


# ── Derived views ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Position:
    asset_id:        str
    label:           str
    asset_class:     AssetClass
    sub_class:       str
    quantity:        float
    average_cost:    float
    current_price:   float
    current_value:   float
    unrealized_gain: float
    gain_percent:    float         = 0.0
    as_of:           Optional[str] = None

    @property
    def cost_basis(self) -> float:
        return self.quantity * self.average_cost


@dataclass(frozen=True)
class PortfolioSummary:
    total_value:        float
    total_cost:         float
    total_gain:         float
    total_gain_percent: float
    allocation:         Dict[AssetClass, float]


@dataclass
class Snapshot:
    """Everything the planner persists, loaded and saved as one document."""
    transactions:      List[Transaction]      = field(default_factory=list)
    asset_definitions: List[AssetDefinition]  = field(default_factory=list)
    accounts:          List[Account]          = field(default_factory=list)
    cash_sources:      List[CashSource]       = field(default_factory=list)
    prices:            Dict[str, PriceQuote]  = field(default_factory=dict)
    class_targets:     Dict[str, float]       = field(default_factory=dict)  # "Stock" → %
    goal_targets:      Dict[str, float]       = field(default_factory=dict)  # "Growth" → %


# ── Dict conversion ───────────────────────────────────────────────────────────

def _plain(items) -> dict:
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in items}


def to_dict(record) -> dict:
    """dataclass → JSON-friendly dict (enums flattened to their values)."""
    return asdict(record, dict_factory=_plain)


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def transaction_from_dict(d: Mapping[str, Any]) -> Transaction:
    return Transaction(
        id=str(d.get("id", "")),
        asset_id=normalise_id(d.get("asset_id")),
        quantity=to_float(d.get("quantity")),
        unit_price=to_float(d.get("unit_price")),
        date=str(d.get("date", "")),
        direction=Direction.parse(d.get("direction")),
        account_id=_optional_str(d.get("account_id")),
        cash_source_id=_optional_str(d.get("cash_source_id")),
    )


def asset_definition_from_dict(d: Mapping[str, Any]) -> AssetDefinition:
    return AssetDefinition(
        asset_id=normalise_id(d.get("asset_id")),
        label=str(d.get("label") or ""),
        asset_class=AssetClass.parse(d.get("asset_class")),
        sub_class=str(d.get("sub_class") or ""),
        price_source=str(d.get("price_source") or "ETF"),
    )


def account_from_dict(d: Mapping[str, Any]) -> Account:
    return Account(
        id=str(d.get("id", "")),
        name=str(d.get("name", "")),
        target_allocations=normalise_targets(d.get("target_allocations")),
        cash_reserve=to_float(d.get("cash_reserve")),
        description=str(d.get("description") or ""),
    )


def liquidity_rule_from_dict(d: Optional[Mapping[str, Any]]) -> Optional[LiquidityRule]:
    if not d:
        return None
    try:
        rule_type = LiquidityRuleType(str(d.get("type", "")).lower())
    except ValueError:
        return None
    return LiquidityRule(type=rule_type, value=to_float(d.get("value")))


def cash_source_from_dict(d: Mapping[str, Any]) -> CashSource:
    return CashSource(
        id=str(d.get("id", "")),
        name=str(d.get("name", "")),
        current_liquidity=to_float(d.get("current_liquidity")),
        min_liquidity_rule=liquidity_rule_from_dict(d.get("min_liquidity_rule")),
        description=str(d.get("description") or ""),
    )


def price_quote_from_dict(d: Mapping[str, Any]) -> PriceQuote:
    return PriceQuote(
        asset_id=normalise_id(d.get("asset_id")),
        price=to_float(d.get("price")),
        as_of=str(d.get("as_of") or ""),
        currency=str(d.get("currency") or "EUR"),
    )


def bucket_targets_from_dict(d: Optional[Mapping[str, Any]],
                             bucket: Type[Enum]) -> Dict[str, float]:
    """Keys matched case-insensitively to the enum's values; unknown buckets are dropped."""
    names = {member.value.lower(): member.value for member in bucket}
    result: Dict[str, float] = {}
    for key, percent in (d or {}).items():
        name = names.get(str(key).strip().lower())
        if name is not None:
            result[name] = to_float(percent)
    return result


def snapshot_from_dict(d: Mapping[str, Any]) -> Snapshot:
    quotes = [price_quote_from_dict(q) for q in (d.get("prices") or {}).values()]
    return Snapshot(
        transactions=[transaction_from_dict(t) for t in d.get("transactions") or []],
        asset_definitions=[asset_definition_from_dict(a)
                           for a in d.get("asset_definitions") or []],
        accounts=[account_from_dict(a) for a in d.get("accounts") or []],
        cash_sources=[cash_source_from_dict(c) for c in d.get("cash_sources") or []],
        prices={q.asset_id: q for q in quotes},
        class_targets=bucket_targets_from_dict(d.get("class_targets"), AssetClass),
        goal_targets=bucket_targets_from_dict(d.get("goal_targets"), Goal),
    )


def snapshot_to_dict(snapshot: Snapshot) -> dict:
    return to_dict(snapshot)
